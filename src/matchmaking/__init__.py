"""
Matchmaking engine package.

This package provides functionality for recommending people to connect with,
either as a short list of suggestions or as a single weekly drop.
"""

from utils.common_utils import get_logger

logger = get_logger(__name__)
logger.info("Matchmaking engine package initialized")

from matchmaking.core.engine import ConnectionEngine

__version__ = "0.1.0"
