from fastapi import APIRouter, Depends, Request

from playerstats.services.timeseries_store import TimeSeriesStore


router = APIRouter(tags=["Servers"])


def get_store(request: Request) -> TimeSeriesStore:
    """FastAPI dependency returning the store owned by the application."""
    return request.app.state.store


@router.get("/servers", response_model=dict)
async def list_servers(store: TimeSeriesStore = Depends(get_store)):
    """
    Get the latest snapshot of every configured server.

    Returns:
    - updatedAt: time of the last committed tick
    - servers: per-server status, current/avg/max and full history
    """
    return store.snapshot()
