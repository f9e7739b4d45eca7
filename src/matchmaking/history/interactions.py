"""
Ledger of what each user did with the candidates they were shown.

Outcomes are stored in one Valkey hash per user keyed by candidate id, so a
repeated action overwrites the previous one instead of adding a row.

Sample Key Format:
   Key: "interactions:{user_id}"
   Fields: {suggested_user_id} -> JSON SuggestionInteraction

   Example:
   - "interactions:user123" -> {"user456": '{"interaction_type": "connected", ...}'}

   Operations:
   - Record: HSET (upsert, O(1))
   - Count: HLEN (O(1))
"""

from datetime import datetime, timezone
from typing import Optional, Set

from utils.common_utils import get_logger
from utils.valkey_utils import ValkeyService
from matchmaking.exceptions import TransientLookupFailure
from matchmaking.models import InteractionType, SuggestionInteraction

logger = get_logger(__name__)

INTERACTIONS_PREFIX = "interactions:"


class InteractionLedger:
    """Idempotent per-(user, candidate) log of connected / skipped outcomes."""

    def __init__(self, valkey_service: ValkeyService):
        self.valkey_service = valkey_service

    @staticmethod
    def _key(user_id: str) -> str:
        return f"{INTERACTIONS_PREFIX}{user_id}"

    def record(
        self,
        user_id: str,
        suggested_user_id: str,
        interaction_type: InteractionType,
        created_at: Optional[datetime] = None,
    ) -> SuggestionInteraction:
        """
        Upsert the user's outcome for a candidate; the latest action wins.

        Args:
            user_id: The acting user
            suggested_user_id: The candidate acted upon
            interaction_type: connected or skipped
            created_at: Action time (defaults to now, UTC)

        Returns:
            The stored interaction
        """
        interaction = SuggestionInteraction(
            user_id=user_id,
            suggested_user_id=suggested_user_id,
            interaction_type=InteractionType(interaction_type),
            created_at=created_at or datetime.now(timezone.utc),
        )
        self.valkey_service.hset(
            self._key(user_id), suggested_user_id, interaction.model_dump_json()
        )
        logger.info(
            f"Recorded {interaction.interaction_type.value} for user {user_id} on {suggested_user_id}"
        )
        return interaction

    def get(self, user_id: str, suggested_user_id: str) -> Optional[SuggestionInteraction]:
        raw = self.valkey_service.hget(self._key(user_id), suggested_user_id)
        if not raw:
            return None
        return SuggestionInteraction.model_validate_json(raw)

    def interacted_ids(self, user_id: str) -> Set[str]:
        """Every candidate the user has acted on, regardless of outcome."""
        try:
            return set((self.valkey_service.hgetall(self._key(user_id)) or {}).keys())
        except Exception as e:
            raise TransientLookupFailure(
                f"interaction lookup failed for {user_id}: {e}"
            ) from e

    def count(self, user_id: str) -> int:
        try:
            return int(self.valkey_service.hlen(self._key(user_id)))
        except Exception as e:
            raise TransientLookupFailure(
                f"interaction count failed for {user_id}: {e}"
            ) from e
