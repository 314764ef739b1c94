"""
API Interface - FastAPI REST API for search, presets and cache control.
"""

from .main import app, create_app

__all__ = ["app", "create_app"]
