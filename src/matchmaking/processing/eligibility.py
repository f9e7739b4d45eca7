"""
Decides whether a user still gets continuous suggestions or has graduated to
the once-a-week drop.

Graduation is one-way: once a user qualifies, a marker is persisted so a later
drop in counts (e.g. a removed connection) does not send them back.
"""

from typing import Optional

from utils.common_utils import get_logger
from utils.valkey_utils import ValkeyService
from matchmaking.models import Mode

logger = get_logger(__name__)

WEEKLY_MODE_PREFIX = "weekly_mode:"


class EligibilityClassifier:
    """Routes a user to suggestion mode or weekly-drop mode."""

    def __init__(
        self,
        valkey_service: Optional[ValkeyService] = None,
        connection_threshold: int = 4,
        interaction_threshold: int = 3,
    ):
        self.valkey_service = valkey_service
        self.connection_threshold = connection_threshold
        self.interaction_threshold = interaction_threshold

    def classify(self, connection_count: int, interaction_count: int) -> Mode:
        if (
            connection_count > self.connection_threshold
            or interaction_count >= self.interaction_threshold
        ):
            return Mode.WEEKLY_DROP
        return Mode.SUGGESTION

    def _has_graduated(self, user_id: str) -> bool:
        if self.valkey_service is None:
            return False
        try:
            return self.valkey_service.exists(f"{WEEKLY_MODE_PREFIX}{user_id}")
        except Exception as e:
            logger.warning(f"Could not read weekly-mode marker for user {user_id}: {e}")
            return False

    def _mark_graduated(self, user_id: str) -> None:
        if self.valkey_service is None:
            return
        try:
            if self.valkey_service.set_if_absent(f"{WEEKLY_MODE_PREFIX}{user_id}", "1"):
                logger.info(f"User {user_id} graduated to weekly-drop mode")
        except Exception as e:
            logger.warning(f"Could not persist weekly-mode marker for user {user_id}: {e}")

    def resolve_mode(self, user_id: str, connection_count: int, interaction_count: int) -> Mode:
        """
        Classify the user, honouring an earlier graduation.

        Args:
            user_id: The user being classified
            connection_count: Accepted connections, either direction
            interaction_count: Suggestion outcomes recorded for the user

        Returns:
            Mode.WEEKLY_DROP once thresholds have ever been met, else Mode.SUGGESTION
        """
        if self._has_graduated(user_id):
            return Mode.WEEKLY_DROP

        mode = self.classify(connection_count, interaction_count)
        if mode is Mode.WEEKLY_DROP:
            self._mark_graduated(user_id)
        return mode
