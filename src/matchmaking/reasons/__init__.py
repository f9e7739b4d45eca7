"""
Compatibility reasons for recommended pairs.
"""

from matchmaking.reasons.cache import CompatibilityReasonCache, canonical_pair
from matchmaking.reasons.generator import OpenAIReasonGenerator

__all__ = ["CompatibilityReasonCache", "canonical_pair", "OpenAIReasonGenerator"]
