"""
Monitor service entry point.
Serves the player-count snapshot and runs the poll loop for the lifetime of the app.
"""
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import httpx
import structlog
import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from playerstats.api.v1 import metrics, servers
from playerstats.core.config import Settings, settings as default_settings
from playerstats.core.logging import configure_logging, get_logger
from playerstats.core.middleware import RequestIDMiddleware
from playerstats.services.poller import Poller
from playerstats.services.status_aggregator import StatusAggregator
from playerstats.services.timeseries_store import TimeSeriesStore


# Configure logging first
configure_logging()
logger = get_logger(__name__)


def build_store(config: Settings) -> TimeSeriesStore:
    store = TimeSeriesStore(
        [server.id for server in config.servers],
        config.snapshot_path,
        history_days=config.history_days,
    )
    store.load()
    return store


def create_app(
    config: Optional[Settings] = None,
    *,
    store: Optional[TimeSeriesStore] = None,
    run_poller: bool = True,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        config: Settings to use (defaults to the environment singleton)
        store: Pre-built store; built from config and loaded from disk if omitted
        run_poller: Start the poll loop in the lifespan
    """
    config = config or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("api.starting", env=config.app_env, servers=len(config.servers))

        client = httpx.AsyncClient(timeout=10.0, follow_redirects=True)
        poller: Optional[Poller] = None
        if run_poller:
            aggregator = StatusAggregator(
                config.servers,
                client,
                master_url=config.master_url,
                timeout=config.status_timeout_seconds,
                user_agent=config.user_agent,
            )
            poller = Poller(aggregator, app.state.store, interval=config.poll_interval_seconds)
            poller.start()

        logger.info(
            "api.started",
            poll_interval=config.poll_interval_seconds,
            history_days=config.history_days,
            snapshot_path=config.snapshot_path,
        )

        yield

        logger.info("api.shutting_down")
        if poller is not None:
            await poller.stop()
        await client.aclose()
        logger.info("api.shutdown_complete")

    app = FastAPI(
        title="Player Stats Monitor",
        version="1.0.0",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan,
    )
    app.state.store = store if store is not None else build_store(config)

    app.add_middleware(RequestIDMiddleware)

    app.include_router(servers.router, prefix="/api")
    app.include_router(metrics.router)

    @app.get("/health")
    async def health_check(request: Request):
        """
        Health check endpoint.

        Returns:
            Time of the last committed tick and per-server status
        """
        snapshot = request.app.state.store.snapshot()
        return {
            "status": "healthy",
            "updatedAt": snapshot["updatedAt"],
            "servers": {
                server_id: record["status"]
                for server_id, record in snapshot["servers"].items()
            },
        }

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """
        Handle all unhandled exceptions.
        Logs full traceback and returns 500 error.
        """
        request_id = structlog.contextvars.get_contextvars().get("request_id", "unknown")

        logger.error(
            "api.unhandled_exception",
            exc_info=exc,
            path=request.url.path,
            method=request.method
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": {
                    "code": "INTERNAL_SERVER_ERROR",
                    "message": "An unexpected error occurred",
                    "request_id": request_id
                }
            }
        )

    # Static page and bulk history export, mounted last so the API wins
    static_dir = Path(config.static_dir)
    if static_dir.is_dir():
        app.mount("/", StaticFiles(directory=static_dir, html=True), name="static")

    return app


def run() -> None:
    """Run the monitor with uvicorn."""
    app = create_app()
    logger.info("monitor.starting", host=default_settings.host, port=default_settings.port)
    uvicorn.run(app, host=default_settings.host, port=default_settings.port, log_config=None)


if __name__ == "__main__":
    run()
