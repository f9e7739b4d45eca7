"""
Connection service layer.

This module provides a service layer that interfaces with the matchmaking engine.
"""

import time
from typing import Any, Dict, List, Optional

from utils.common_utils import env_flag, get_logger
from matchmaking.core.config import create_config
from matchmaking.core.engine import ConnectionEngine
from matchmaking.models import Relation

logger = get_logger(__name__)


class ConnectionService:
    """Service for handling recommendation and connection requests."""

    _instance = None
    _engine = None

    @classmethod
    def get_instance(cls):
        """Get singleton instance of ConnectionService."""
        if cls._instance is None:
            logger.info("Creating new ConnectionService instance")
            cls._instance = cls()
            if cls._engine is None:
                cls._initialize_engine()
        return cls._instance

    @classmethod
    def _initialize_engine(cls):
        """Initialize matchmaking engine."""
        try:
            logger.info("Initializing matchmaking engine")
            config = create_config()
            engine = ConnectionEngine(config=config)
            if not engine.valkey_service.verify_connection():
                logger.warning("Valkey is unreachable at startup; requests will degrade")
            if env_flag("MATCHMAKING_CREATE_INDEXES"):
                for search in (engine.composite_search, engine.basic_search):
                    search.ensure_index()
            cls._engine = engine
            logger.info("Matchmaking engine initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize connection service: {e}")
            raise

    @classmethod
    def use_engine(cls, engine: Optional[ConnectionEngine]):
        """Install a pre-built engine (or None to reset)."""
        cls._engine = engine
        cls._instance = None

    def get_recommendations(self, user_id: str) -> Dict[str, Any]:
        """
        Get recommendations for a user.

        Args:
            user_id: User ID

        Returns:
            Dictionary with mode, candidates and timing
        """
        logger.info(f"Getting recommendations for user {user_id}")
        start_time = time.time()

        try:
            result = self._engine.get_recommendations(user_id)
            response = result.model_dump(mode="json")
            response["error"] = ""
        except Exception as e:
            logger.error(f"Error getting recommendations: {e}", exc_info=True)
            response = {"mode": "suggestion", "candidates": [], "error": str(e)}

        response["processing_time_ms"] = (time.time() - start_time) * 1000
        return response

    def record_response(self, user_id: str, candidate_id: str, action: str) -> None:
        self._engine.record_response(user_id, candidate_id, action)

    def send_request(self, sender_id: str, receiver_id: str) -> Relation:
        return self._engine.relation_store.create_request(sender_id, receiver_id)

    def accept_request(self, sender_id: str, receiver_id: str) -> Optional[Relation]:
        return self._engine.relation_store.accept(sender_id, receiver_id)

    def decline_request(self, sender_id: str, receiver_id: str) -> Optional[Relation]:
        return self._engine.relation_store.decline(sender_id, receiver_id)

    def run_weekly_batch(self, user_ids: Optional[List[str]] = None) -> Dict[str, str]:
        return self._engine.run_weekly_batch(user_ids)
