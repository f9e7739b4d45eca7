"""
Google Cloud Platform utilities for authentication.

Memorystore (Valkey) instances accept short-lived GCP access tokens as their
password; this module turns a service-account JSON string into refreshable
credentials for that purpose.
"""

import json
import os
from typing import Optional

from google.oauth2 import service_account
from .common_utils import get_logger

logger = get_logger(__name__)


class GCPCore:
    """
    Base Google Cloud Platform core class that handles authentication
    and provides basic functionality shared across all GCP services.
    """

    def __init__(
        self,
        gcp_credentials: str,
        project_id: Optional[str] = None,
    ):
        """
        Initialize GCP utilities with credentials

        Args:
            gcp_credentials: GCP credentials JSON as a string
            project_id: GCP project ID (optional, extracted from credentials if not provided)
        """
        self.gcp_credentials = gcp_credentials
        self.project_id = project_id
        self.credentials = None

        # Initialize credentials
        if not gcp_credentials:
            logger.error("GCP credentials not provided")
            raise ValueError("GCP credentials are required")

        self._initialize_credentials_from_string(gcp_credentials)

    def _initialize_credentials_from_string(self, credentials_json: str) -> None:
        """
        Initialize GCP credentials from a JSON string

        Args:
            credentials_json: GCP credentials JSON as a string
        """
        try:
            info = json.loads(credentials_json)
            self.credentials = service_account.Credentials.from_service_account_info(
                info, scopes=["https://www.googleapis.com/auth/cloud-platform"]
            )
            self.project_id = self.project_id or self.credentials.project_id
            logger.debug("Initialized GCP credentials from JSON string")
        except Exception as e:
            logger.error(f"Failed to initialize GCP credentials from string: {e}")
            raise e


def core_from_env(env_var: str = "GCP_CREDENTIALS") -> Optional[GCPCore]:
    """
    Build a GCPCore from an environment variable holding the credentials JSON.

    Returns None when the variable is unset so callers can fall back to
    authkey-based or unauthenticated connections.
    """
    gcp_credentials = os.environ.get(env_var)
    if not gcp_credentials:
        logger.warning(f"{env_var} environment variable not found")
        return None

    try:
        return GCPCore(gcp_credentials=gcp_credentials)
    except Exception as e:
        logger.error(f"Failed to initialize GCP credentials: {e}")
        return None
