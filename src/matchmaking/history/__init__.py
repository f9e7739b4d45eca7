"""
Interaction history of the matchmaking engine.
"""

from matchmaking.history.interactions import InteractionLedger

__all__ = ["InteractionLedger"]
