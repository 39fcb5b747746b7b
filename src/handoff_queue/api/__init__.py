"""REST API for the handoff queue."""

from .app import create_app, main
from .routes import router

__all__ = ["create_app", "main", "router"]
