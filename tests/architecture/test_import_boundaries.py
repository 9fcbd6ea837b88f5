"""
Import-boundary enforcement for the ledger kernel.

1. Domain purity      -- ledger_kernel/domain/** may not import the ORM,
                         db/, models/, services/ or selectors/ at runtime.
2. DB independence    -- ledger_kernel/db/** may not import services/ or
                         selectors/.
3. Selector read-only -- selectors/** may not import services/.
4. No commits         -- services/** never call session.commit().

All scanning is done via AST -- these tests are read-only.
"""

import ast
import glob
from pathlib import Path

PACKAGE_ROOT = Path(__file__).resolve().parents[2] / "ledger_kernel"


def _python_files(subdir: str) -> list[str]:
    """Return all .py files under a package sub-directory, sorted."""
    return sorted(glob.glob(f"{PACKAGE_ROOT / subdir}/**/*.py", recursive=True))


def _is_type_checking_block(node: ast.AST) -> bool:
    if not isinstance(node, ast.If):
        return False
    test = node.test
    return (isinstance(test, ast.Name) and test.id == "TYPE_CHECKING") or (
        isinstance(test, ast.Attribute) and test.attr == "TYPE_CHECKING"
    )


def _extract_runtime_imports(filepath: str) -> list[tuple[int, str]]:
    """Return (line_number, module) for every import outside TYPE_CHECKING blocks."""
    tree = ast.parse(Path(filepath).read_text(), filename=filepath)
    guarded: set[int] = set()
    for node in ast.walk(tree):
        if _is_type_checking_block(node):
            for child in node.body:
                for inner in ast.walk(child):
                    guarded.add(id(inner))

    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if id(node) in guarded:
            continue
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom) and node.module:
            results.append((node.lineno, node.module))
    return results


def _matches_any(module: str, prefixes: tuple[str, ...]) -> bool:
    """True if *module* equals or is a child of any prefix."""
    return any(module == p or module.startswith(f"{p}.") for p in prefixes)


def _violations(subdir: str, forbidden: tuple[str, ...]) -> list[str]:
    found = []
    for filepath in _python_files(subdir):
        for lineno, module in _extract_runtime_imports(filepath):
            if _matches_any(module, forbidden):
                found.append(f"{Path(filepath).relative_to(PACKAGE_ROOT)}:{lineno} imports {module}")
    return found


class TestDomainPurity:
    FORBIDDEN = (
        "sqlalchemy",
        "psycopg2",
        "yaml",
        "ledger_kernel.db",
        "ledger_kernel.models",
        "ledger_kernel.services",
        "ledger_kernel.selectors",
        "ledger_kernel.config",
    )

    def test_domain_has_no_io_imports(self):
        assert _violations("domain", self.FORBIDDEN) == []

    def test_scanner_sees_domain_files(self):
        names = {Path(f).name for f in _python_files("domain")}
        assert {"validator.py", "builder.py", "dtos.py", "values.py"} <= names


class TestLayering:
    def test_db_does_not_import_upper_layers(self):
        forbidden = ("ledger_kernel.services", "ledger_kernel.selectors")
        assert _violations("db", forbidden) == []

    def test_selectors_do_not_import_services(self):
        assert _violations("selectors", ("ledger_kernel.services",)) == []


class TestNoCommitInServices:
    def test_services_never_commit(self):
        offenders = []
        for filepath in _python_files("services"):
            tree = ast.parse(Path(filepath).read_text(), filename=filepath)
            for node in ast.walk(tree):
                if (
                    isinstance(node, ast.Call)
                    and isinstance(node.func, ast.Attribute)
                    and node.func.attr == "commit"
                    and isinstance(node.func.value, ast.Attribute)
                    and node.func.value.attr == "_session"
                ):
                    offenders.append(f"{Path(filepath).name}:{node.lineno}")
        assert offenders == []
