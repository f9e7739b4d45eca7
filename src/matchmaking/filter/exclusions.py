"""
Exclusion set for candidate selection.

Everyone a user is already tied to must never be suggested again: accepted
connections, pending requests (either direction), anyone they already acted on
in suggestions, and every past weekly-drop candidate. Each source is read
independently on every call; a failing source contributes nothing instead of
failing the whole lookup.
"""

from enum import Enum
from typing import Callable, Dict, List, Set, Tuple

from utils.common_utils import get_logger
from matchmaking.data.interfaces import RelationStore
from matchmaking.history.interactions import InteractionLedger
from matchmaking.models import Relation, RelationStatus

logger = get_logger(__name__)


class ExclusionSource(str, Enum):
    ACCEPTED_RELATIONS = "accepted_relations"
    PENDING_RELATIONS = "pending_relations"
    INTERACTIONS = "interactions"
    WEEKLY_DROPS = "weekly_drops"


class RelationGraphView:
    """Builds the per-user exclusion set from every relationship source."""

    def __init__(self, relation_store: RelationStore, interaction_ledger: InteractionLedger, drop_history):
        """
        Initialize the relation graph view.

        Args:
            relation_store: Store answering relations in either direction
            interaction_ledger: Ledger of suggestion outcomes
            drop_history: Object exposing previously_drawn(user_id) -> set of ids
        """
        self.relation_store = relation_store
        self.interaction_ledger = interaction_ledger
        self.drop_history = drop_history

    def _relations_by_status(self, user_id: str) -> Dict[RelationStatus, Set[str]]:
        by_status: Dict[RelationStatus, Set[str]] = {
            RelationStatus.ACCEPTED: set(),
            RelationStatus.PENDING: set(),
        }
        relations: List[Relation] = self.relation_store.query(user_id)
        for relation in relations:
            if relation.status in by_status:
                by_status[relation.status].add(relation.other_id(user_id))
        return by_status

    def _sources(self, user_id: str) -> List[Tuple[ExclusionSource, Callable[[], Set[str]]]]:
        relations_cache: Dict[RelationStatus, Set[str]] = {}

        def _relations(status: RelationStatus) -> Set[str]:
            # accepted and pending come from one query; fetch it once per call
            if not relations_cache:
                relations_cache.update(self._relations_by_status(user_id))
            return relations_cache[status]

        return [
            (ExclusionSource.ACCEPTED_RELATIONS, lambda: _relations(RelationStatus.ACCEPTED)),
            (ExclusionSource.PENDING_RELATIONS, lambda: _relations(RelationStatus.PENDING)),
            (ExclusionSource.INTERACTIONS, lambda: self.interaction_ledger.interacted_ids(user_id)),
            (ExclusionSource.WEEKLY_DROPS, lambda: self.drop_history.previously_drawn(user_id)),
        ]

    def get_exclusions_by_source(self, user_id: str) -> Dict[ExclusionSource, Set[str]]:
        """
        Collect excluded ids per source.

        Args:
            user_id: The user to build exclusions for

        Returns:
            Mapping of every ExclusionSource to its (possibly empty) id set
        """
        exclusions: Dict[ExclusionSource, Set[str]] = {}
        for source, fetch in self._sources(user_id):
            try:
                exclusions[source] = set(fetch())
            except Exception as e:
                logger.warning(
                    f"Exclusion source {source.value} unavailable for user {user_id}, "
                    f"continuing without it: {e}"
                )
                exclusions[source] = set()

        logger.debug(
            f"Exclusions for user {user_id}: "
            + ", ".join(f"{s.value}={len(ids)}" for s, ids in exclusions.items())
        )
        return exclusions

    def get_excluded_ids(self, user_id: str) -> Set[str]:
        """Union of every exclusion source for the user."""
        excluded: Set[str] = set()
        for ids in self.get_exclusions_by_source(user_id).values():
            excluded |= ids
        return excluded
