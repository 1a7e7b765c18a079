"""Versioned asset and provenance catalog for research data."""

__version__ = "0.1.0"
