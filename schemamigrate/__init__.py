"""Versioned schema migrations read from sources and applied to databases."""

__version__ = "4.0.0"