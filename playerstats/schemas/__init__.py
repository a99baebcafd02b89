"""
Pydantic schemas shared by the monitor service and the chart client.
"""

from .server import (
    ServerRecord,
    ServerStatus,
    Sample,
    SourceResult,
    Stat,
    State,
    ensure_utc,
    finite_number,
    normalize_players,
    round_half_up,
)
from .online_history import OnlineDataset, OnlineHistoryImport

__all__ = [
    "ServerRecord",
    "ServerStatus",
    "Sample",
    "SourceResult",
    "Stat",
    "State",
    "ensure_utc",
    "finite_number",
    "normalize_players",
    "round_half_up",
    "OnlineDataset",
    "OnlineHistoryImport",
]
