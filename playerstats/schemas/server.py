import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def finite_number(value: Any) -> Optional[float]:
    """
    Return value as a float if it is a finite, non-boolean number.

    Integers too large for a float count as non-finite.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None


def normalize_players(value: Any) -> int:
    """
    Coerce a raw player count into a non-negative integer.

    Missing, boolean, non-numeric and non-finite values become 0,
    as do integers too large to represent as a float.
    Fractional counts round half up.

    Examples:
        >>> normalize_players(12.5)
        13
        >>> normalize_players(float("nan"))
        0
    """
    number = finite_number(value)
    if number is None:
        return 0
    return max(0, math.floor(number + 0.5))


def round_half_up(total: int, count: int) -> int:
    """Integer mean of non-negative values, halves rounded up."""
    if count <= 0:
        return 0
    return (2 * total + count) // (2 * count)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ServerStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    UNKNOWN = "unknown"


class Sample(BaseModel):
    """One player-count observation."""
    ts: datetime
    players: int = 0

    @field_validator("players", mode="before")
    @classmethod
    def validate_players(cls, value: Any) -> int:
        return normalize_players(value)

    @field_validator("ts")
    @classmethod
    def validate_ts(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class Stat(BaseModel):
    """Derived figure (current, average or peak) with its timestamp."""
    players: int = 0
    ts: Optional[datetime] = None

    @field_validator("players", mode="before")
    @classmethod
    def validate_players(cls, value: Any) -> int:
        return normalize_players(value)

    @field_validator("ts")
    @classmethod
    def validate_ts(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value) if value is not None else None


class ServerRecord(BaseModel):
    """Per-server history plus the aggregates derived from it."""
    id: str
    status: ServerStatus = ServerStatus.UNKNOWN
    current: Stat = Field(default_factory=Stat)
    avg: Stat = Field(default_factory=Stat)
    max: Stat = Field(default_factory=Stat)
    history: list[Sample] = Field(default_factory=list)

    @classmethod
    def empty(cls, server_id: str, now: Optional[datetime]) -> "ServerRecord":
        """Zeroed record with no history."""
        return cls(
            id=server_id,
            status=ServerStatus.UNKNOWN,
            current=Stat(players=0, ts=now),
            avg=Stat(players=0, ts=now),
            max=Stat(players=0, ts=now),
            history=[],
        )


class State(BaseModel):
    """
    Persisted snapshot of every monitored server.

    Example:
        {
            "updatedAt": "2024-01-15T10:30:00Z",
            "servers": {
                "s1.example.com:22005": {
                    "id": "s1.example.com:22005",
                    "status": "online",
                    "current": {"players": 42, "ts": "2024-01-15T10:30:00Z"},
                    "avg": {"players": 30, "ts": "2024-01-15T10:30:00Z"},
                    "max": {"players": 57, "ts": "2024-01-14T21:00:00Z"},
                    "history": [{"ts": "2024-01-15T10:30:00Z", "players": 42}]
                }
            }
        }
    """
    model_config = ConfigDict(populate_by_name=True)

    updated_at: datetime = Field(alias="updatedAt")
    servers: dict[str, ServerRecord] = Field(default_factory=dict)

    @field_validator("updated_at")
    @classmethod
    def validate_updated_at(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class SourceResult(BaseModel):
    """Outcome of sampling one server during a poll tick."""
    players: int = 0
    online: bool = False

    @field_validator("players", mode="before")
    @classmethod
    def validate_players(cls, value: Any) -> int:
        return normalize_players(value)
