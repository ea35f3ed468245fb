"""HTTP transport for the sync queue."""
from .app import create_app

__all__ = ["create_app"]
