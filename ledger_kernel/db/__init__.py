"""Database layer: declarative base, engine and immutability listeners."""
