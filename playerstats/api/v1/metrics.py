"""
Prometheus metrics endpoint.
Exposes poll-loop and source metrics for Prometheus scraping.
"""
from fastapi import APIRouter, Response
from prometheus_client import (
    Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
)

router = APIRouter(tags=["Metrics"])

# Counters
poll_ticks_total = Counter(
    "playerstats_poll_ticks_total",
    "Poll ticks by outcome",
    ["outcome"]
)

source_failures_total = Counter(
    "playerstats_source_failures_total",
    "Failed status source queries",
    ["source"]
)

# Histograms
poll_tick_duration_seconds = Histogram(
    "playerstats_poll_tick_duration_seconds",
    "Duration of a full poll tick in seconds"
)

# Gauges
server_players = Gauge(
    "playerstats_server_players",
    "Player count recorded on the last committed tick",
    ["server_id"]
)


@router.get("/metrics")
async def metrics():
    """
    Prometheus metrics endpoint.
    Returns metrics in Prometheus text format.
    """
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
