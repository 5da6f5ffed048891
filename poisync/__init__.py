"""Offline-first favorites sync for points of interest."""

__version__ = "0.1.0"
