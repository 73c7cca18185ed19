"""Postboard: article publishing API with token authentication."""

from .api import app

__all__ = ["app"]
