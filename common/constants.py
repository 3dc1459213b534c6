"""Project-wide constants (flush cadence, sentinel paths, wire endpoints)."""

UPDATE_RATE_SECONDS: float = 0.25  # lifecycle batches go out 4 times per second

ROOT_PATH: str = "Root"
PATH_SEPARATOR: str = "."

ALL_SUBSCRIBERS: str = "All"

REPLICA_WS_PATH: str = "/replicas"
DEFAULT_SERVER_PORT: int = 8080
