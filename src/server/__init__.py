"""Debug and control HTTP API."""

from src.server.app import create_app, create_router


__all__ = ["create_app", "create_router"]
