"""Configuration settings for replica subscribers."""

import os
from common.constants import REPLICA_WS_PATH, DEFAULT_SERVER_PORT


SERVER_URL = os.environ.get(
    "REPLICA_SERVER_URL",
    f"ws://localhost:{DEFAULT_SERVER_PORT}{REPLICA_WS_PATH}"
)

CONNECT_TIMEOUT_SECONDS = float(os.environ.get("REPLICA_CONNECT_TIMEOUT", "10"))
