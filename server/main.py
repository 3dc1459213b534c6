"""Entry point for the replica server."""

import uvicorn
from fastapi import FastAPI

from common.logging_config import setup_logging, get_logger
from server.config import FLUSH_INTERVAL_SECONDS, SERVER_HOST, SERVER_PORT, WS_PATH
from server.replica_server import ReplicaServer
from server.websocket_transport import WebSocketServerTransport

logger = get_logger(__name__)


def create_app(flush_interval: float = FLUSH_INTERVAL_SECONDS, path: str = WS_PATH) -> FastAPI:
    """
    Build the FastAPI application serving replicas over a websocket route.

    Args:
        flush_interval: Seconds between lifecycle flushes
        path: Websocket route path

    Returns:
        Application with the ReplicaServer on ``app.state.replica_server``
    """
    app = FastAPI(
        title="Replica Server",
        description="Server-authoritative replica replication over websockets",
        version="1.0.0"
    )

    transport = WebSocketServerTransport(path=path)
    transport.attach(app)
    app.state.replica_server = ReplicaServer(transport, flush_interval=flush_interval)

    @app.on_event("startup")
    async def startup_event():
        """
        Start the lifecycle flush loop on application startup.
        """
        logger.info("Replica server starting up...")
        await app.state.replica_server.start()

    @app.on_event("shutdown")
    async def shutdown_event():
        """
        Stop the flush loop on application shutdown.
        """
        logger.info("Replica server shutting down...")
        await app.state.replica_server.stop()

    @app.get("/health")
    async def health():
        """
        Liveness check with replica and subscriber counts.
        """
        replica_server = app.state.replica_server
        return {
            "status": "ok",
            "replicas": len(replica_server.store),
            "subscribers": len(replica_server.transport.subscribers())
        }

    return app


def main() -> None:
    """
    Start the replica server with uvicorn.
    """
    role = f"{SERVER_HOST}:{SERVER_PORT}"
    setup_logging('server', role=role)
    setup_logging('common', role=role)
    logger.info(f"Serving replicas on ws://{SERVER_HOST}:{SERVER_PORT}{WS_PATH}")
    uvicorn.run(create_app(), host=SERVER_HOST, port=SERVER_PORT)


if __name__ == "__main__":
    main()
