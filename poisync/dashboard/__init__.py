"""Web dashboard for poisync devices.

Provides a local JSON API for managing favorites and sync settings using
FastAPI.
"""

from .app import create_app

__all__ = ["create_app"]
