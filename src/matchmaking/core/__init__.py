"""
Core components of the matchmaking engine.

This submodule contains the main engine and configuration classes.
"""

from matchmaking.core.engine import ConnectionEngine
from matchmaking.core.config import MatchingConfig

__all__ = ["ConnectionEngine", "MatchingConfig"]
