"""
Contracts for the external collaborators the engine consumes.

Concrete Valkey / OpenAI implementations live next to this module; tests swap in
their own implementations of the same interfaces.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from matchmaking.models import Profile, Relation, RelationStatus


class ProfileStore(ABC):
    """Read access to user profiles."""

    @abstractmethod
    def get(self, user_id: str) -> Optional[Profile]:
        """Return the profile, or None if the user has none."""

    @abstractmethod
    def find_by_interests(
        self, user_id: str, interests: Sequence[str], limit: int
    ) -> List[Tuple[str, int]]:
        """
        Find other users sharing at least one interest tag.

        Returns:
            (user_id, overlap_count) pairs, best overlap first, self excluded
        """

    def iter_user_ids(self) -> Iterator[str]:
        """Every user with a profile; used by the weekly batch."""
        raise NotImplementedError(f"{type(self).__name__} cannot enumerate users")


class RelationStore(ABC):
    """Connection requests and accepted connections, either direction."""

    @abstractmethod
    def query(self, user_id: str) -> List[Relation]:
        """Every relation the user takes part in, as sender or receiver."""

    @abstractmethod
    def create_request(self, sender_id: str, receiver_id: str) -> Relation:
        """Persist a pending request unless the pair already has a live relation."""

    @abstractmethod
    def update_status(
        self, sender_id: str, receiver_id: str, status: RelationStatus
    ) -> Optional[Relation]:
        """Change the status of an existing relation; None if there is none."""

    def accept(self, sender_id: str, receiver_id: str) -> Optional[Relation]:
        return self.update_status(sender_id, receiver_id, RelationStatus.ACCEPTED)

    def decline(self, sender_id: str, receiver_id: str) -> Optional[Relation]:
        return self.update_status(sender_id, receiver_id, RelationStatus.DECLINED)


class VectorSearch(ABC):
    """One similarity index over user embeddings."""

    name = "vector"

    @abstractmethod
    def get_embedding(self, user_id: str) -> Optional[Any]:
        """The user's own embedding in this index, or None if absent."""

    @abstractmethod
    def search(
        self, embedding: Any, threshold: float, top_k: int, exclude_id: str
    ) -> List[Dict[str, Any]]:
        """Nearest neighbours as {"id", "similarity"} dicts, best first."""


class TextGenerator(ABC):
    """Writes a short explanation of why two people should meet."""

    @abstractmethod
    def generate(self, profile_a: Profile, profile_b: Profile, similarity: float) -> str:
        """Return the explanation text; raise GenerationFailure on error."""
