"""
Headless chart client entry point.
Polls the monitor and logs the per-server cards of every rendered frame.
"""
import asyncio
import signal
import sys

from playerstats.chart.client import SnapshotClient
from playerstats.chart.hover import format_tooltip_time
from playerstats.chart.session import ChartFrame, ChartSession
from playerstats.core.config import settings
from playerstats.core.logging import configure_logging, get_logger


configure_logging()
logger = get_logger(__name__)


def handle_shutdown(signum, frame):
    """Handle shutdown signals (SIGTERM, SIGINT)."""
    logger.info("chart.shutdown_signal_received", signal=signum)
    sys.exit(0)


signal.signal(signal.SIGTERM, handle_shutdown)
signal.signal(signal.SIGINT, handle_shutdown)


def log_frame(frame: ChartFrame) -> None:
    if frame.empty:
        logger.info("chart.no_data", range=frame.projection.range_name)
        return
    for card in frame.cards:
        logger.info(
            "chart.card",
            server_id=card.id,
            status=card.status_label,
            current=card.current_players,
            avg=card.avg_players,
            max=card.max_players,
            max_time=format_tooltip_time(card.max_time),
            date_range=frame.date_range,
        )


async def main() -> None:
    async with SnapshotClient(settings.api_url, online_data_url=settings.online_data_url) as client:
        session = ChartSession(
            client,
            server_ids=[server.id for server in settings.servers],
            range_name=settings.default_range,
            width=1200,
            height=420,
            max_points=settings.max_chart_points,
            palette=settings.chart_colors,
            on_frame=log_frame,
        )
        await session.run(settings.refresh_interval_seconds)


if __name__ == "__main__":
    logger.info("chart.starting", api_url=settings.api_url)
    try:
        asyncio.run(main())
    except SystemExit:
        logger.info("chart.shutdown_complete")
