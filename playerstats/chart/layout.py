"""
Chart layout engine.
Turns projected, downsampled series into pixel-space geometry: plot
rectangle, "nice" vertical axis, time ticks, colours and line coordinates.
"""
import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping, Optional, Sequence

from playerstats.chart.models import Point


NICE_STEPS = (50, 100, 200, 250, 500, 1000, 2000, 5000)
AXIS_STEPS = 4
NEUTRAL_COLOR = "#9aa0a6"
TICK_SPACING_PX = 120
MIN_TIME_TICKS = 4
MAX_TIME_TICKS = 8
# Appended to y labels of 1000 and above
THOUSANDS_SUFFIX = "k"


@dataclass(frozen=True)
class Padding:
    top: float = 28
    right: float = 32
    bottom: float = 48
    left: float = 64


DEFAULT_PADDING = Padding()


@dataclass(frozen=True)
class AxisScale:
    step: int
    max: int
    ticks: tuple[int, ...]


@dataclass(frozen=True)
class YTick:
    value: int
    y: float
    label: Optional[str]


@dataclass(frozen=True)
class XTick:
    time: float
    x: float
    label: str
    align: str


@dataclass(frozen=True)
class Series:
    id: str
    points: Sequence[Point]


@dataclass(frozen=True)
class SeriesGeometry:
    """Line coordinates and area-fill colours for one series."""

    id: str
    color: str
    coordinates: tuple[tuple[float, float], ...]
    fill_top: str
    fill_bottom: str


def nice_step(observed_max: float) -> int:
    """
    Smallest "nice" step whose four intervals cover `observed_max`.

    Candidates are NICE_STEPS scaled by powers of ten; the first with
    4 * step >= max(1, observed_max) wins.

    Examples:
        >>> nice_step(400)
        100
        >>> nice_step(401)
        200
    """
    bound = max(1, observed_max)
    scale = 1
    while True:
        for candidate in NICE_STEPS:
            step = candidate * scale
            if step * AXIS_STEPS >= bound:
                return step
        scale *= 10


def y_axis_scale(observed_max: float) -> AxisScale:
    """Vertical axis with ticks at 0, step, ..., 4 * step."""
    step = nice_step(observed_max)
    return AxisScale(
        step=step,
        max=step * AXIS_STEPS,
        ticks=tuple(i * step for i in range(AXIS_STEPS + 1)),
    )


def format_y_label(value: int, suffix: str = THOUSANDS_SUFFIX) -> str:
    """Axis label; thousands are abbreviated with `suffix` ("2k", "1.5k")."""
    if value >= 1000:
        thousands = Decimal(value) / 1000
        if thousands == thousands.to_integral_value():
            return f"{int(thousands)}{suffix}"
        label = str(thousands.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))
        if label.endswith(".0"):
            label = label[:-2]
        return f"{label}{suffix}"
    return str(value)


def format_short_date(timestamp: float) -> str:
    """Day and abbreviated month, e.g. "5 Mar"."""
    moment = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    return f"{moment.day} {moment.strftime('%b')}"


def time_tick_count(plot_width: float) -> int:
    """Roughly one time tick per 120px, clamped to [4, 8]."""
    return max(MIN_TIME_TICKS, min(MAX_TIME_TICKS, math.floor(plot_width / TICK_SPACING_PX)))


def build_time_ticks(start: float, end: float, count: int) -> list[float]:
    """Evenly spaced instants from start to end inclusive."""
    if not (math.isfinite(start) and math.isfinite(end)) or count < 2:
        return []
    span = end - start
    if span <= 0:
        return [start]
    step = span / (count - 1)
    return [start + step * i for i in range(count)]


def resolve_colors(
    series_ids: Sequence[str],
    legend_colors: Optional[Mapping[str, str]] = None,
    palette: Optional[Mapping[str, str]] = None,
) -> dict[str, str]:
    """Legend colour, then palette colour, then neutral grey per series."""
    legend_colors = legend_colors or {}
    palette = palette or {}
    return {
        series_id: legend_colors.get(series_id) or palette.get(series_id) or NEUTRAL_COLOR
        for series_id in series_ids
    }


_RGB_PATTERN = re.compile(r"^rgba?\((\d+),(\d+),(\d+)(?:,([\d.]+))?\)$", re.IGNORECASE)


def to_rgba(color: Optional[str], alpha: float) -> str:
    """Re-express an rgb()/rgba()/#rrggbb colour with the given alpha; white otherwise."""
    if color:
        match = _RGB_PATTERN.match(re.sub(r"\s+", "", color))
        if match:
            r, g, b = match.group(1, 2, 3)
            return f"rgba({r}, {g}, {b}, {alpha})"
        if color.startswith("#"):
            hex_value = color[1:]
            if len(hex_value) == 6:
                try:
                    r, g, b = (int(hex_value[i:i + 2], 16) for i in (0, 2, 4))
                except ValueError:
                    pass
                else:
                    return f"rgba({r}, {g}, {b}, {alpha})"
    return f"rgba(255, 255, 255, {alpha})"


@dataclass
class ChartLayout:
    """Pixel-space description of one rendered chart."""

    width: float
    height: float
    padding: Padding
    range_start: float
    range_end: float
    y_axis: AxisScale
    series: list[Series]
    colors: dict[str, str]
    x_ticks: list[XTick] = field(default_factory=list)
    y_ticks: list[YTick] = field(default_factory=list)
    geometry: list[SeriesGeometry] = field(default_factory=list)

    @property
    def plot_width(self) -> float:
        return self.width - self.padding.left - self.padding.right

    @property
    def plot_height(self) -> float:
        return self.height - self.padding.top - self.padding.bottom

    @property
    def span(self) -> float:
        """Horizontal time span in seconds, never below one."""
        return max(self.range_end - self.range_start, 1)

    @property
    def baseline(self) -> float:
        return self.height - self.padding.bottom

    def x_for(self, time: float) -> float:
        return self.padding.left + ((time - self.range_start) / self.span) * self.plot_width

    def y_for(self, players: float) -> float:
        return self.padding.top + (1 - players / self.y_axis.max) * self.plot_height

    def time_at(self, x: float) -> float:
        """Invert x_for."""
        return self.range_start + ((x - self.padding.left) / self.plot_width) * self.span

    def contains(self, x: float, y: float) -> bool:
        """True if (x, y) lies inside the plotting rectangle."""
        return (
            self.padding.left <= x <= self.width - self.padding.right
            and self.padding.top <= y <= self.height - self.padding.bottom
        )

    def color_for(self, series_id: str) -> str:
        return self.colors.get(series_id) or NEUTRAL_COLOR


def _labelled_indexes(tick_count: int) -> set[int]:
    if tick_count <= 4:
        return set(range(tick_count))
    return {0, 1, 2, tick_count - 1}


def build_layout(
    series: Mapping[str, Sequence[Point]],
    start: float,
    end: float,
    width: float,
    height: float,
    *,
    legend_colors: Optional[Mapping[str, str]] = None,
    palette: Optional[Mapping[str, str]] = None,
    padding: Padding = DEFAULT_PADDING,
) -> Optional[ChartLayout]:
    """
    Lay out a chart for the given series and time window.

    Args:
        series: Points per server id, ascending by time
        start: Left edge of the window (epoch seconds)
        end: Right edge of the window (epoch seconds)
        width: Canvas width in pixels
        height: Canvas height in pixels
        legend_colors: Colours declared by the caller's legend
        palette: Fallback colours by server id
        padding: Space reserved around the plotting rectangle

    Returns:
        ChartLayout, or None when the canvas has no area or no series has points
    """
    if width <= 0 or height <= 0:
        return None

    series_list = [Series(id=series_id, points=list(points)) for series_id, points in series.items()]
    if not any(item.points for item in series_list):
        return None

    layout = ChartLayout(
        width=width,
        height=height,
        padding=padding,
        range_start=start,
        range_end=end,
        y_axis=y_axis_scale(
            max((point.players for item in series_list for point in item.points), default=0)
        ),
        series=series_list,
        colors=resolve_colors([item.id for item in series_list], legend_colors, palette),
    )
    if layout.plot_width <= 0 or layout.plot_height <= 0:
        return None

    labelled = _labelled_indexes(len(layout.y_axis.ticks))
    layout.y_ticks = [
        YTick(
            value=value,
            y=layout.y_for(value),
            label=format_y_label(value) if index in labelled else None,
        )
        for index, value in enumerate(layout.y_axis.ticks)
    ]

    times = build_time_ticks(start, end, time_tick_count(layout.plot_width))
    for index, time in enumerate(times):
        if index == 0:
            align = "left"
        elif index == len(times) - 1:
            align = "right"
        else:
            align = "center"
        layout.x_ticks.append(
            XTick(time=time, x=layout.x_for(time), label=format_short_date(time), align=align)
        )

    for item in series_list:
        if not item.points:
            continue
        color = layout.color_for(item.id)
        layout.geometry.append(
            SeriesGeometry(
                id=item.id,
                color=color,
                coordinates=tuple(
                    (layout.x_for(point.time), layout.y_for(point.players))
                    for point in item.points
                ),
                fill_top=to_rgba(color, 0.2),
                fill_bottom=to_rgba(color, 0),
            )
        )

    return layout
