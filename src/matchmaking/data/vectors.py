"""
Vector search adapters over the Valkey KNN indexes.

Two independent indexes exist: "composite" (dna_v2:*) and "basic" (dna_v1:*).
"""

from typing import Any, Dict, List, Optional

from utils.common_utils import get_logger, time_execution
from utils.valkey_utils import ValkeyVectorService
from matchmaking.data.interfaces import VectorSearch
from matchmaking.exceptions import TransientLookupFailure

logger = get_logger(__name__)


class ValkeyVectorSearch(VectorSearch):
    """VectorSearch backed by one ValkeyVectorService index."""

    def __init__(self, vector_service: ValkeyVectorService, name: str):
        self.vector_service = vector_service
        self.name = name

    def get_embedding(self, user_id: str) -> Optional[Any]:
        try:
            return self.vector_service.get_embedding(user_id)
        except Exception as e:
            raise TransientLookupFailure(
                f"{self.name} embedding lookup failed for {user_id}: {e}"
            ) from e

    @time_execution
    def search(
        self, embedding: Any, threshold: float, top_k: int, exclude_id: str
    ) -> List[Dict[str, Any]]:
        try:
            return self.vector_service.find_similar_users(
                query_vector=embedding,
                threshold=threshold,
                top_k=top_k,
                exclude_id=exclude_id,
            )
        except Exception as e:
            raise TransientLookupFailure(
                f"{self.name} vector search failed for {exclude_id}: {e}"
            ) from e

    def ensure_index(self) -> bool:
        """Create the KNN index for this prefix; False if it exists or creation failed."""
        created = self.vector_service.create_vector_index()
        if created:
            logger.info(f"Created {self.name} vector index {self.vector_service.index_name}")
        return created
