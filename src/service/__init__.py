"""
Service package for the matchmaking engine.

This package contains the service layer components.
"""

from .app import app
from .connection_service import ConnectionService

__all__ = ["app", "ConnectionService"]
