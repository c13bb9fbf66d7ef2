"""Adaptive session refresh worker."""

__version__ = "1.0.0"
