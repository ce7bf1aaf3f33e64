"""HTTP API for the chat assistant."""
from .app import create_app

__all__ = ["create_app"]
