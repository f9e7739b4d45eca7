"""
Weekly drop state machine.

One row per (user, week), created lazily on the first read of the week:

    (none) -> shown -> connected | skipped | hidden
    (none) -> no_match

Creation is an atomic insert-if-absent (WATCH + MULTI) that also records the
candidate in the drawn set, so concurrent first reads converge on a single
row; a writer that loses the race throws away its own pick and returns the
persisted one. Once a row exists, selection never runs again for that week.

Sample Key Formats:

1. Drop row:
   Key: "weekly_drop:{user_id}:{week_start_date}"
   Value: JSON WeeklyDrop

   Example:
   - "weekly_drop:user123:2025-03-10" -> '{"status": "shown", "candidate_user_id": "user456", ...}'

2. Candidates ever drawn for a user (exclusion source):
   Key: "weekly_drop_candidates:{user_id}"
   Value: Set of candidate ids
"""

from datetime import date, datetime, timezone
from typing import Callable, Optional, Set, Tuple

from utils.common_utils import get_logger
from utils.valkey_utils import ValkeyService
from matchmaking.exceptions import ConflictOnInsert, InvalidTransition, TransientLookupFailure
from matchmaking.models import DropStatus, ScoredCandidate, WeeklyDrop

logger = get_logger(__name__)

DROP_PREFIX = "weekly_drop:"
DRAWN_PREFIX = "weekly_drop_candidates:"

ALLOWED_TRANSITIONS = {
    DropStatus.SHOWN: {DropStatus.CONNECTED, DropStatus.SKIPPED, DropStatus.HIDDEN},
}


class DropStateMachine:
    """Persisted per-(user, week) weekly drop with idempotent creation."""

    def __init__(self, valkey_service: ValkeyService):
        self.valkey_service = valkey_service

    @staticmethod
    def _key(user_id: str, week_start: date) -> str:
        return f"{DROP_PREFIX}{user_id}:{week_start.isoformat()}"

    def get(self, user_id: str, week_start: date) -> Optional[WeeklyDrop]:
        raw = self.valkey_service.get(self._key(user_id, week_start))
        if not raw:
            return None
        return WeeklyDrop.model_validate_json(raw)

    def insert(self, drop: WeeklyDrop) -> WeeklyDrop:
        """
        Create the row for (user, week) if none exists.

        Raises:
            ConflictOnInsert: another writer already created the row
        """
        key = self._key(drop.user_id, drop.week_start_date)
        drawn_key = f"{DRAWN_PREFIX}{drop.user_id}"

        # Row and drawn-candidate set are written in one MULTI so they never diverge
        def _apply(pipe):
            if pipe.exists(key):
                return False
            pipe.multi()
            pipe.set(key, drop.model_dump_json())
            if drop.candidate_user_id:
                pipe.sadd(drawn_key, drop.candidate_user_id)
            return True

        if not self.valkey_service.transaction(_apply, key):
            raise ConflictOnInsert(key)
        return drop

    def get_or_create(
        self,
        user_id: str,
        week_start: date,
        select: Callable[[], Optional[ScoredCandidate]],
        now: Optional[datetime] = None,
    ) -> Tuple[WeeklyDrop, bool]:
        """
        Return this week's drop, running selection only if no row exists yet.

        Args:
            user_id: The user the drop belongs to
            week_start: Monday identifying the week
            select: Picks the candidate (or None for no match); called at most once
            now: Timestamp stored as shown_at

        Returns:
            (drop, created) where created is False when an existing row was returned
        """
        existing = self.get(user_id, week_start)
        if existing is not None:
            logger.debug(
                f"Weekly drop for user {user_id} week {week_start} already {existing.status.value}"
            )
            return existing, False

        candidate = select()
        now = now or datetime.now(timezone.utc)
        if candidate is None:
            drop = WeeklyDrop(
                user_id=user_id,
                week_start_date=week_start,
                status=DropStatus.NO_MATCH,
            )
        else:
            drop = WeeklyDrop(
                user_id=user_id,
                week_start_date=week_start,
                candidate_user_id=candidate.id,
                similarity_score=candidate.similarity,
                status=DropStatus.SHOWN,
                shown_at=now,
            )

        try:
            self.insert(drop)
        except ConflictOnInsert:
            winner = self.get(user_id, week_start)
            if winner is None:
                raise TransientLookupFailure(
                    f"weekly drop for {user_id} {week_start} vanished after conflict"
                )
            logger.info(
                f"Lost weekly drop race for user {user_id} week {week_start}; "
                f"using persisted {winner.status.value} row"
            )
            return winner, False

        logger.info(
            f"Created weekly drop for user {user_id} week {week_start}: {drop.status.value}"
        )
        return drop, True

    def transition(
        self,
        user_id: str,
        week_start: date,
        status: DropStatus,
        now: Optional[datetime] = None,
    ) -> WeeklyDrop:
        """
        Move a shown drop to a terminal state chosen by the user.

        Repeating the transition the row is already in is a no-op.

        Raises:
            InvalidTransition: no row exists or the row cannot move to `status`
        """
        status = DropStatus(status)
        key = self._key(user_id, week_start)
        now = now or datetime.now(timezone.utc)

        def _apply(pipe):
            raw = pipe.get(key)
            if not raw:
                raise InvalidTransition(f"no weekly drop at {key}")
            drop = WeeklyDrop.model_validate_json(raw)
            if drop.status is status:
                return drop
            if status not in ALLOWED_TRANSITIONS.get(drop.status, set()):
                raise InvalidTransition(
                    f"{key}: {drop.status.value} -> {status.value} not allowed"
                )
            updated = drop.model_copy(update={"status": status, "interacted_at": now})
            pipe.multi()
            pipe.set(key, updated.model_dump_json())
            return updated

        updated = self.valkey_service.transaction(_apply, key)
        logger.info(
            f"Weekly drop for user {user_id} week {week_start} is now {updated.status.value}"
        )
        return updated

    def previously_drawn(self, user_id: str) -> Set[str]:
        """Every candidate ever shown to the user as a weekly drop."""
        return set(self.valkey_service.smembers(f"{DRAWN_PREFIX}{user_id}") or ())
