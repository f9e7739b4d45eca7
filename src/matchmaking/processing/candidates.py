"""
Candidates module for selecting connection candidates.

Selection walks an ordered list of providers (composite embedding, basic
embedding, interest-tag overlap). The first provider that yields at least one
candidate outside the exclusion set wins; its candidates are ranked by
descending similarity and capped at the number of open slots. Interest overlap
only applies to users with no embedding in any index.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Set

from utils.common_utils import get_logger
from matchmaking.data.interfaces import ProfileStore, VectorSearch
from matchmaking.models import Profile, ScoredCandidate

logger = get_logger(__name__)


class CandidateProvider(ABC):
    """One selection tier."""

    name = "provider"
    # Embedding tiers set this; tiers marked without_embedding_only are then skipped
    uses_embedding = False
    without_embedding_only = False

    @abstractmethod
    def fetch(self, user_id: str, profile: Optional[Profile]) -> Optional[List[ScoredCandidate]]:
        """
        Produce raw candidates for the user.

        Returns:
            Candidates in source order, or None when the tier does not apply
            (e.g. the user has no embedding in this index)
        """


class EmbeddingCandidateProvider(CandidateProvider):
    """Similarity search against one embedding index."""

    uses_embedding = True

    def __init__(self, vector_search: VectorSearch, threshold: float = 0.3, top_k: int = 20):
        self.vector_search = vector_search
        self.threshold = threshold
        self.top_k = top_k
        self.name = f"{vector_search.name}_embedding"

    def fetch(self, user_id: str, profile: Optional[Profile]) -> Optional[List[ScoredCandidate]]:
        embedding = self.vector_search.get_embedding(user_id)
        if embedding is None:
            return None

        matches = self.vector_search.search(
            embedding,
            threshold=self.threshold,
            top_k=self.top_k,
            exclude_id=user_id,
        )
        return [
            ScoredCandidate(id=m["id"], similarity=m.get("similarity"), source=self.name)
            for m in matches
        ]


class InterestOverlapCandidateProvider(CandidateProvider):
    """Lexical overlap of interest tags, for users without any embedding."""

    name = "interest_overlap"
    without_embedding_only = True

    def __init__(self, profile_store: ProfileStore, limit: int = 10, similarity: float = 0.6):
        self.profile_store = profile_store
        self.limit = limit
        self.similarity = similarity

    def fetch(self, user_id: str, profile: Optional[Profile]) -> Optional[List[ScoredCandidate]]:
        if profile is None or not profile.interests:
            return None

        matches = self.profile_store.find_by_interests(user_id, profile.interests, self.limit)
        return [
            ScoredCandidate(id=other_id, similarity=self.similarity, source=self.name)
            for other_id, _overlap in matches
        ]


class CandidateSelector:
    """Tiered candidate selection with exclusion filtering and slot capping."""

    def __init__(self, providers: Sequence[CandidateProvider]):
        self.providers = list(providers)
        logger.info(
            "CandidateSelector initialized with tiers: "
            + " -> ".join(p.name for p in self.providers)
        )

    @staticmethod
    def _eligible(
        user_id: str, candidates: List[ScoredCandidate], excluded: Set[str]
    ) -> List[ScoredCandidate]:
        seen = set()
        eligible = []
        for candidate in candidates:
            if candidate.id == user_id or candidate.id in excluded or candidate.id in seen:
                continue
            seen.add(candidate.id)
            eligible.append(candidate)
        return eligible

    def select(
        self,
        user_id: str,
        profile: Optional[Profile],
        excluded: Set[str],
        slots: int,
    ) -> List[ScoredCandidate]:
        """
        Pick up to `slots` candidates for the user.

        Args:
            user_id: The user to find candidates for
            profile: The user's profile (interest tier needs it; may be None)
            excluded: Ids that must never be returned
            slots: Maximum number of candidates to return

        Returns:
            Candidates ranked by descending similarity; empty when nothing qualifies
        """
        if slots <= 0:
            return []

        has_embedding = False
        for provider in self.providers:
            if provider.without_embedding_only and has_embedding:
                logger.debug(f"Tier {provider.name} skipped for user {user_id}: embedding exists")
                continue

            try:
                candidates = provider.fetch(user_id, profile)
            except Exception as e:
                logger.warning(
                    f"Tier {provider.name} failed for user {user_id}, falling through: {e}"
                )
                continue

            if candidates is None:
                logger.debug(f"Tier {provider.name} not applicable for user {user_id}")
                continue
            if provider.uses_embedding:
                has_embedding = True

            eligible = self._eligible(user_id, candidates, excluded)
            if not eligible:
                logger.info(
                    f"Tier {provider.name} yielded no eligible candidates for user {user_id} "
                    f"({len(candidates)} before exclusions)"
                )
                continue

            # sorted() is stable, so equal similarities keep source order
            ranked = sorted(eligible, key=lambda c: -(c.similarity or 0.0))
            selected = ranked[:slots]
            logger.info(
                f"Tier {provider.name} selected {len(selected)} candidates for user {user_id}"
            )
            return selected

        logger.info(f"No candidates found for user {user_id} in any tier")
        return []
