"""User registration, login and management API."""

from .api import app, create_app

__all__ = ["app", "create_app"]
