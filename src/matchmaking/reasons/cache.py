"""
Content-addressed cache of compatibility explanations.

One description per unordered pair of users, keyed by the sorted ids so that
(a, b) and (b, a) resolve to the same entry. Misses are generated on demand
and written through with SET NX; if two misses race, whichever write lands
first is kept and the other writer re-reads it.

Sample Key Format:
   Key: "compat:{lower_user_id}:{higher_user_id}"
   Value: description text
"""

from typing import Optional, Tuple

from utils.common_utils import get_logger
from utils.valkey_utils import ValkeyService
from matchmaking.data.interfaces import TextGenerator
from matchmaking.exceptions import ConflictOnInsert, GenerationFailure
from matchmaking.models import CompatibilityDescription, Profile

logger = get_logger(__name__)

COMPAT_PREFIX = "compat:"


def canonical_pair(user_a_id: str, user_b_id: str) -> Tuple[str, str]:
    return (user_a_id, user_b_id) if user_a_id <= user_b_id else (user_b_id, user_a_id)


class CompatibilityReasonCache:
    """Get-or-generate cache for pairwise compatibility descriptions."""

    def __init__(self, valkey_service: ValkeyService, text_generator: TextGenerator):
        self.valkey_service = valkey_service
        self.text_generator = text_generator

    @staticmethod
    def _key(user_a_id: str, user_b_id: str) -> str:
        low, high = canonical_pair(user_a_id, user_b_id)
        return f"{COMPAT_PREFIX}{low}:{high}"

    def lookup(self, user_a_id: str, user_b_id: str) -> Optional[CompatibilityDescription]:
        text = self.valkey_service.get(self._key(user_a_id, user_b_id))
        if not text:
            return None
        low, high = canonical_pair(user_a_id, user_b_id)
        return CompatibilityDescription(user_a_id=low, user_b_id=high, description=text)

    def _store(self, user_a_id: str, user_b_id: str, text: str) -> None:
        key = self._key(user_a_id, user_b_id)
        if not self.valkey_service.set_if_absent(key, text):
            raise ConflictOnInsert(key)

    def get_or_generate(
        self, profile_a: Profile, profile_b: Profile, similarity: float
    ) -> Optional[str]:
        """
        Return the cached description for the pair, generating it on a miss.

        Args:
            profile_a: The viewing user's profile
            profile_b: The candidate's profile
            similarity: Similarity score passed to the generator

        Returns:
            Description text, or None if it could not be produced
        """
        user_a_id, user_b_id = profile_a.user_id, profile_b.user_id

        try:
            cached = self.lookup(user_a_id, user_b_id)
        except Exception as e:
            logger.warning(
                f"Reason cache read failed for {user_a_id}/{user_b_id}, generating: {e}"
            )
            cached = None
        if cached is not None:
            return cached.description

        try:
            text = (self.text_generator.generate(profile_a, profile_b, similarity) or "").strip()
        except GenerationFailure as e:
            logger.error(f"Reason generation failed: {e}")
            return None
        except Exception as e:
            logger.error(
                f"Unexpected error generating reason for {user_a_id}/{user_b_id}: {e}",
                exc_info=True,
            )
            return None

        if not text:
            logger.error(f"Generator returned no reason for {user_a_id}/{user_b_id}")
            return None

        try:
            self._store(user_a_id, user_b_id, text)
        except ConflictOnInsert:
            logger.info(
                f"Reason for {user_a_id}/{user_b_id} written concurrently, re-reading"
            )
            try:
                winner = self.lookup(user_a_id, user_b_id)
            except Exception as e:
                logger.warning(f"Re-read after conflict failed for {user_a_id}/{user_b_id}: {e}")
                winner = None
            return winner.description if winner is not None else text
        except Exception as e:
            logger.warning(f"Could not cache reason for {user_a_id}/{user_b_id}: {e}")

        return text
