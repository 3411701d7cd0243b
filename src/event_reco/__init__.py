"""Incremental event-similarity model and event recommendations."""

__version__ = "0.1.0"
