"""Client for the hosted backend (row store and remote functions)."""

from .api import BackendClient

__all__ = ["BackendClient"]
