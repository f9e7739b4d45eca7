"""
Valkey-backed profile store.

Sample Key Formats:

1. Profile hash:
   Key: "profile:{user_id}"
   Fields: full_name, avatar_url, bio, interests (JSON list)

2. Interest index sets (lexical overlap search):
   Key: "interest:{tag}"
   Value: Set of user ids whose profile lists the tag

   Example:
   - "interest:climbing" -> {"user123", "user456"}
"""

import json
from collections import Counter
from typing import Iterator, List, Optional, Sequence, Tuple

from utils.common_utils import get_logger, unique_in_order
from utils.valkey_utils import ValkeyService
from matchmaking.data.interfaces import ProfileStore
from matchmaking.exceptions import TransientLookupFailure
from matchmaking.models import Profile

logger = get_logger(__name__)

PROFILE_PREFIX = "profile:"
INTEREST_PREFIX = "interest:"


def normalize_tag(tag: str) -> str:
    return " ".join(tag.lower().split())


class ValkeyProfileStore(ProfileStore):
    """Profiles stored as Valkey hashes with a per-tag membership index."""

    def __init__(self, valkey_service: ValkeyService):
        self.valkey_service = valkey_service

    def get(self, user_id: str) -> Optional[Profile]:
        try:
            data = self.valkey_service.hgetall(f"{PROFILE_PREFIX}{user_id}")
        except Exception as e:
            raise TransientLookupFailure(f"profile lookup failed for {user_id}: {e}") from e

        if not data:
            return None

        return Profile(
            user_id=user_id,
            full_name=data.get("full_name") or "",
            avatar_url=data.get("avatar_url") or None,
            bio=data.get("bio") or "",
            interests=json.loads(data.get("interests") or "[]"),
        )

    def save(self, profile: Profile) -> None:
        """Write the profile hash and add the user to each interest set."""
        pipe = self.valkey_service.pipeline(transaction=True)
        pipe.hset(
            f"{PROFILE_PREFIX}{profile.user_id}",
            mapping={
                "full_name": profile.full_name,
                "avatar_url": profile.avatar_url or "",
                "bio": profile.bio,
                "interests": json.dumps(profile.interests),
            },
        )
        for tag in unique_in_order(normalize_tag(t) for t in profile.interests):
            if tag:
                pipe.sadd(f"{INTEREST_PREFIX}{tag}", profile.user_id)
        pipe.execute()

    def find_by_interests(
        self, user_id: str, interests: Sequence[str], limit: int
    ) -> List[Tuple[str, int]]:
        tags = [t for t in unique_in_order(normalize_tag(t) for t in interests) if t]
        if not tags:
            return []

        try:
            pipe = self.valkey_service.pipeline(transaction=False)
            for tag in tags:
                pipe.smembers(f"{INTEREST_PREFIX}{tag}")
            member_sets = pipe.execute()
        except Exception as e:
            raise TransientLookupFailure(
                f"interest lookup failed for {user_id}: {e}"
            ) from e

        overlap = Counter()
        for members in member_sets:
            overlap.update(members or ())
        overlap.pop(user_id, None)

        ranked = sorted(overlap.items(), key=lambda item: (-item[1], item[0]))
        return ranked[:limit]

    def iter_user_ids(self) -> Iterator[str]:
        """Every user id with a stored profile (SCAN, safe on large keyspaces)."""
        for key in self.valkey_service.scan_keys(f"{PROFILE_PREFIX}*"):
            yield key[len(PROFILE_PREFIX):]
