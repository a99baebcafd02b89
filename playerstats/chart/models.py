from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Point:
    """Render-time sample: epoch seconds and player count."""

    time: float
    players: int
