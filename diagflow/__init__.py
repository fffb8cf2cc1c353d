"""Diagnostic workflow engine: author, validate, store and run guided troubleshooting procedures."""

__version__ = "1.0.0"
