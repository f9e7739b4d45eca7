"""
Weekly drop components of the matchmaking engine.
"""

from matchmaking.weekly.clock import compute_week_start, local_now
from matchmaking.weekly.drops import DropStateMachine

__all__ = ["compute_week_start", "local_now", "DropStateMachine"]
