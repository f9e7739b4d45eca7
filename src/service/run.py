"""
Run script for the matchmaking service.

This script starts the FastAPI server for the matchmaking service.
"""

import os
import sys
import logging
from service.app import start

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

if __name__ == "__main__":
    if not os.environ.get("MATCHMAKING_REDIS_HOST") and not os.environ.get("DEV_MODE"):
        print("ERROR: MATCHMAKING_REDIS_HOST environment variable must be set.")
        print("Use: export MATCHMAKING_REDIS_HOST=<valkey host> (or DEV_MODE=true with PROXY_REDIS_HOST)")
        sys.exit(1)

    if "OPENAI_API_KEY" not in os.environ:
        print("WARNING: OPENAI_API_KEY is not set; suggestions without a cached reason will be dropped.")

    # Start the API server
    print("Starting matchmaking service API...")
    start()
