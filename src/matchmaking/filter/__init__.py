"""
Filtering components of the matchmaking engine.

This submodule contains the exclusion logic built from relations, interactions
and past weekly drops.
"""

from matchmaking.filter.exclusions import ExclusionSource, RelationGraphView

__all__ = ["ExclusionSource", "RelationGraphView"]
