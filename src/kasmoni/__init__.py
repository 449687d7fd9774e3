"""Kasmoni payment lifecycle and group status engine."""

__version__ = "0.1.0"
