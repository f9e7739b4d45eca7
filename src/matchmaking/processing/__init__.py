"""
Processing components of the matchmaking engine.

This submodule contains mode eligibility and tiered candidate selection.
"""

from matchmaking.processing.eligibility import EligibilityClassifier
from matchmaking.processing.candidates import (
    CandidateProvider,
    CandidateSelector,
    EmbeddingCandidateProvider,
    InterestOverlapCandidateProvider,
)

__all__ = [
    "EligibilityClassifier",
    "CandidateProvider",
    "CandidateSelector",
    "EmbeddingCandidateProvider",
    "InterestOverlapCandidateProvider",
]
