"""Configuration settings for the replica server."""

import os
from common.constants import UPDATE_RATE_SECONDS, REPLICA_WS_PATH, DEFAULT_SERVER_PORT


FLUSH_INTERVAL_SECONDS = float(os.environ.get("REPLICA_FLUSH_INTERVAL", str(UPDATE_RATE_SECONDS)))

SERVER_HOST = os.environ.get("REPLICA_SERVER_HOST", "0.0.0.0")

SERVER_PORT = int(os.environ.get("REPLICA_SERVER_PORT", str(DEFAULT_SERVER_PORT)))

WS_PATH = os.environ.get("REPLICA_WS_PATH", REPLICA_WS_PATH)
