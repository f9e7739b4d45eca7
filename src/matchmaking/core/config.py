"""
Configuration module for the matchmaking engine.

This module handles loading and managing configuration settings for candidate
selection, weekly drops and compatibility reasons.
"""

import os
from zoneinfo import ZoneInfo

from utils.common_utils import env_flag, get_logger
from utils.gcp_utils import core_from_env
from utils.valkey_utils import ValkeyService, ValkeyVectorService

logger = get_logger(__name__)

DEFAULT_VALKEY_CONFIG = {
    "valkey": {
        "host": os.environ.get("MATCHMAKING_REDIS_HOST"),
        "port": int(os.environ.get("MATCHMAKING_REDIS_PORT", 6379)),
        "instance_id": os.environ.get("MATCHMAKING_REDIS_INSTANCE_ID"),
        "authkey": os.environ.get("MATCHMAKING_REDIS_AUTHKEY"),
        "ssl_enabled": False,  # Disable SSL since the server doesn't support it
        "socket_timeout": 15,
        "socket_connect_timeout": 15,
        "cluster_enabled": env_flag("MATCHMAKING_REDIS_CLUSTER_ENABLED"),
    }
}

# Check if we're in DEV_MODE (use proxy connection instead)
if env_flag("DEV_MODE"):
    logger.info("Running in DEV_MODE - using proxy connection")
    DEFAULT_VALKEY_CONFIG["valkey"].update(
        {
            "host": os.environ.get(
                "PROXY_REDIS_HOST", DEFAULT_VALKEY_CONFIG["valkey"]["host"]
            ),
            "port": int(
                os.environ.get(
                    "PROXY_REDIS_PORT", DEFAULT_VALKEY_CONFIG["valkey"]["port"]
                )
            ),
            "authkey": os.environ.get(
                "PROXY_REDIS_AUTHKEY", DEFAULT_VALKEY_CONFIG["valkey"]["authkey"]
            ),
        }
    )

DEFAULT_VECTOR_DIM = int(os.environ.get("MATCHMAKING_VECTOR_DIM", 1536))

# Vector indexes queried in priority order
COMPOSITE_INDEX = {"prefix": "dna_v2:", "index_name": "composite_embeddings"}
BASIC_INDEX = {"prefix": "dna_v1:", "index_name": "basic_embeddings"}


class MatchingConfig:
    """Configuration class for the matchmaking engine."""

    # Candidate selection
    MATCH_THRESHOLD = 0.3
    MATCH_COUNT = 20
    INTEREST_MATCH_LIMIT = 10
    INTEREST_MATCH_SIMILARITY = 0.6  # assumed similarity for tag-overlap matches

    # Slots per mode
    SUGGESTION_SLOTS = 3
    WEEKLY_DROP_SLOTS = 1

    # Weekly-drop graduation: connections > 4 OR interactions >= 3
    CONNECTION_THRESHOLD = 4
    INTERACTION_THRESHOLD = 3

    # Monday cutover for the week boundary, local time
    WEEK_CUTOVER_HOUR = 8

    # Reason generation
    MAX_WORKERS = 4
    REASON_MODEL = os.environ.get("OPENAI_REASON_MODEL", "gpt-4o-mini")
    REASON_TIMEOUT_SECONDS = float(os.environ.get("REASON_TIMEOUT_SECONDS", 20))

    def __init__(
        self,
        valkey_config=None,
        week_timezone=None,
        openai_api_key=None,
    ):
        """
        Initialize matchmaking configuration.

        Args:
            valkey_config: Valkey configuration dictionary
            week_timezone: IANA timezone used to compute the week boundary
            openai_api_key: API key for compatibility reason generation
        """
        self.valkey_config = valkey_config or DEFAULT_VALKEY_CONFIG
        self.week_timezone = week_timezone or os.environ.get("WEEK_TIMEZONE", "UTC")
        self.openai_api_key = openai_api_key or os.environ.get("OPENAI_API_KEY", "")
        self.gcp_core = None

        # Load configuration
        self._load_config()

    def _load_config(self):
        """Resolve credentials for Valkey when no authkey is configured."""
        if self.valkey_config["valkey"].get("authkey"):
            return
        self.gcp_core = core_from_env("MATCHMAKING_GCP_CREDENTIALS")

    def get_tzinfo(self) -> ZoneInfo:
        """Timezone the Monday cutover is evaluated in."""
        try:
            return ZoneInfo(self.week_timezone)
        except Exception as e:
            logger.warning(
                f"Unknown WEEK_TIMEZONE {self.week_timezone!r}, falling back to UTC: {e}"
            )
            return ZoneInfo("UTC")

    def create_valkey_service(self) -> ValkeyService:
        """Build the Valkey service holding profiles, relations and engine state."""
        return ValkeyService(core=self.gcp_core, **self.valkey_config["valkey"])

    def create_vector_service(self, index: dict) -> ValkeyVectorService:
        """Build a vector service for one of the embedding indexes."""
        return ValkeyVectorService(
            core=self.gcp_core,
            vector_dim=DEFAULT_VECTOR_DIM,
            prefix=index["prefix"],
            index_name=index["index_name"],
            **self.valkey_config["valkey"],
        )


def create_config(valkey_config=None, week_timezone=None, openai_api_key=None):
    """
    Create and initialize a matchmaking configuration.

    Args:
        valkey_config: Valkey configuration dictionary
        week_timezone: IANA timezone for the weekly cutover
        openai_api_key: API key for compatibility reason generation

    Returns:
        MatchingConfig: Initialized configuration object
    """
    config = MatchingConfig(
        valkey_config=valkey_config,
        week_timezone=week_timezone,
        openai_api_key=openai_api_key,
    )
    return config
