"""
Valkey-backed relation store.

Each relation is mirrored into both participants' hashes so a single HGETALL
answers "everyone I'm related to, either direction".

Sample Key Format:
   Key: "relations:{user_id}"
   Fields: {other_user_id} -> JSON Relation

   Example:
   - "relations:user123" -> {"user456": '{"sender_id": "user123", "receiver_id": "user456", "status": "pending", ...}'}
"""

from datetime import datetime, timezone
from typing import List, Optional

from utils.common_utils import get_logger
from utils.valkey_utils import ValkeyService
from matchmaking.data.interfaces import RelationStore
from matchmaking.exceptions import TransientLookupFailure
from matchmaking.models import Relation, RelationStatus

logger = get_logger(__name__)

RELATIONS_PREFIX = "relations:"

# Statuses that still tie two users together
LIVE_STATUSES = (RelationStatus.PENDING, RelationStatus.ACCEPTED)


class ValkeyRelationStore(RelationStore):
    """Relations stored as mirrored Valkey hashes."""

    def __init__(self, valkey_service: ValkeyService):
        self.valkey_service = valkey_service

    @staticmethod
    def _key(user_id: str) -> str:
        return f"{RELATIONS_PREFIX}{user_id}"

    def query(self, user_id: str) -> List[Relation]:
        try:
            rows = self.valkey_service.hgetall(self._key(user_id))
        except Exception as e:
            raise TransientLookupFailure(
                f"relation lookup failed for {user_id}: {e}"
            ) from e

        relations = []
        for other_id, raw in (rows or {}).items():
            try:
                relations.append(Relation.model_validate_json(raw))
            except ValueError as e:
                logger.warning(
                    f"Skipping unreadable relation {user_id}<->{other_id}: {e}"
                )
        return relations

    def create_request(self, sender_id: str, receiver_id: str) -> Relation:
        sender_key = self._key(sender_id)
        receiver_key = self._key(receiver_id)

        def _create(pipe):
            raw = pipe.hget(sender_key, receiver_id)
            if raw:
                existing = Relation.model_validate_json(raw)
                if existing.status in LIVE_STATUSES:
                    return existing

            now = datetime.now(timezone.utc)
            relation = Relation(
                sender_id=sender_id,
                receiver_id=receiver_id,
                status=RelationStatus.PENDING,
                created_at=now,
                updated_at=now,
            )
            payload = relation.model_dump_json()
            pipe.multi()
            pipe.hset(sender_key, receiver_id, payload)
            pipe.hset(receiver_key, sender_id, payload)
            return relation

        relation = self.valkey_service.transaction(_create, sender_key, receiver_key)
        logger.info(
            f"Connection request {sender_id} -> {receiver_id} is {relation.status.value}"
        )
        return relation

    def update_status(
        self, sender_id: str, receiver_id: str, status: RelationStatus
    ) -> Optional[Relation]:
        sender_key = self._key(sender_id)
        receiver_key = self._key(receiver_id)

        def _update(pipe):
            raw = pipe.hget(sender_key, receiver_id)
            if not raw:
                return None
            relation = Relation.model_validate_json(raw).model_copy(
                update={"status": status, "updated_at": datetime.now(timezone.utc)}
            )
            payload = relation.model_dump_json()
            pipe.multi()
            pipe.hset(sender_key, receiver_id, payload)
            pipe.hset(receiver_key, sender_id, payload)
            return relation

        relation = self.valkey_service.transaction(_update, sender_key, receiver_key)
        if relation is None:
            logger.warning(f"No relation between {sender_id} and {receiver_id} to update")
        return relation
