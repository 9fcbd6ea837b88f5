"""Pure domain core: values, DTOs, validator and builders.  No I/O."""
