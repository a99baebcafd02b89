"""
Chart session.
Holds the client-side chart state and runs the refresh -> project ->
downsample -> layout -> hover pipeline whenever data, range, size or
pointer position change.
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional, Sequence

from playerstats.chart.client import SnapshotClient, SnapshotFetchError
from playerstats.chart.downsample import downsample
from playerstats.chart.history import merge_into_state
from playerstats.chart.hover import HoverState, hover_at, resolve_hover
from playerstats.chart.layout import ChartLayout, build_layout
from playerstats.chart.ranges import Projection, normalize_range, project, utcnow
from playerstats.chart.summary import Summary, summarize
from playerstats.core.logging import get_logger
from playerstats.schemas import Sample, ServerRecord, ServerStatus, State


logger = get_logger(__name__)

STATUS_LABELS = {
    ServerStatus.ONLINE: "Online",
    ServerStatus.OFFLINE: "No response",
}
UNKNOWN_STATUS_LABEL = "No data"


def first_present(*candidates: Any, default: Any = None) -> Any:
    """First candidate that is not None, else `default`."""
    for candidate in candidates:
        if candidate is not None:
            return candidate
    return default


def _epoch(value: Optional[datetime]) -> Optional[float]:
    return value.timestamp() if value is not None else None


@dataclass(frozen=True)
class Card:
    """Figures shown for one server next to the chart."""

    id: str
    status: ServerStatus
    status_label: str
    avg_players: int
    avg_time: Optional[float]
    max_players: int
    max_time: Optional[float]
    current_players: int
    current_time: Optional[float]


def build_card(server_id: str, record: Optional[ServerRecord], summary: Optional[Summary]) -> Card:
    """
    Resolve a server's card figures.

    Each figure comes from the window summary if it has data, then from
    the served record, then falls back to zero / no timestamp.
    """
    has_summary = summary is not None and summary.avg_time is not None
    status = record.status if record is not None else ServerStatus.UNKNOWN

    return Card(
        id=record.id if record is not None else server_id,
        status=status,
        status_label=STATUS_LABELS.get(status, UNKNOWN_STATUS_LABEL),
        avg_players=first_present(
            summary.avg_players if has_summary else None,
            record.avg.players if record is not None else None,
            default=0,
        ),
        avg_time=first_present(
            summary.avg_time if has_summary else None,
            _epoch(record.avg.ts) if record is not None else None,
        ),
        max_players=first_present(
            summary.max_players if has_summary else None,
            record.max.players if record is not None else None,
            default=0,
        ),
        max_time=first_present(
            summary.max_time if has_summary else None,
            _epoch(record.max.ts) if record is not None else None,
        ),
        current_players=record.current.players if record is not None else 0,
        current_time=_epoch(record.current.ts) if record is not None else None,
    )


def format_date(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%d.%m.%Y")


def format_date_range(start: Optional[float], end: Optional[float]) -> str:
    if start is None or end is None:
        return "-"
    return f"{format_date(start)} - {format_date(end)}"


@dataclass
class ChartFrame:
    """Everything a view needs to draw the chart once."""

    projection: Projection
    layout: Optional[ChartLayout]
    hover: Optional[HoverState]
    cards: list[Card] = field(default_factory=list)
    date_range: str = "-"

    @property
    def empty(self) -> bool:
        """True when there is nothing to plot ("no data" state)."""
        return self.layout is None


class ChartSession:
    """
    Client-side chart state.

    Pointer moves are coalesced: however many arrive within one event-loop
    turn, the hover is resolved and a frame emitted at most once.
    """

    def __init__(
        self,
        client: Optional[SnapshotClient] = None,
        *,
        server_ids: Optional[Sequence[str]] = None,
        range_name: str = "month",
        width: float = 0,
        height: float = 0,
        max_points: int = 180,
        legend_colors: Optional[Mapping[str, str]] = None,
        palette: Optional[Mapping[str, str]] = None,
        on_frame: Optional[Callable[[ChartFrame], None]] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._client = client
        self._server_ids = list(server_ids) if server_ids is not None else None
        self._range = normalize_range(range_name)
        self._width = width
        self._height = height
        self._max_points = max_points
        self._legend_colors = dict(legend_colors or {})
        self._palette = dict(palette or {})
        self._on_frame = on_frame
        self._clock = clock

        self._online_history: Optional[dict[str, list[Sample]]] = None
        self._payload: Optional[State] = None
        self._frame: Optional[ChartFrame] = None
        self._hover: Optional[HoverState] = None
        self._pending_pointer: Optional[tuple[float, float]] = None
        self._pointer_handle: Optional[asyncio.Handle] = None

    @property
    def active_range(self) -> str:
        return self._range

    @property
    def payload(self) -> Optional[State]:
        return self._payload

    @property
    def frame(self) -> Optional[ChartFrame]:
        return self._frame

    @property
    def layout(self) -> Optional[ChartLayout]:
        return self._frame.layout if self._frame is not None else None

    @property
    def hover(self) -> Optional[HoverState]:
        return self._hover

    # ------------------------------------------------------------------
    # Data
    # ------------------------------------------------------------------
    async def refresh(self) -> Optional[ChartFrame]:
        """
        Pull the snapshot (and the bulk export on first use) and re-render.

        Failures are logged and leave the previous frame in place.
        """
        if self._client is None:
            raise RuntimeError("ChartSession has no SnapshotClient")

        online_history = await self._client.load_online_history()
        if online_history is not None:
            self._online_history = online_history

        try:
            state = await self._client.fetch_servers()
        except SnapshotFetchError as e:
            logger.warning("chart.refresh_failed", error=str(e))
            return None

        return self.apply_payload(state)

    def apply_payload(self, state: State) -> ChartFrame:
        """Merge a fetched snapshot with the bulk history and render it."""
        self._payload = merge_into_state(state, self._online_history)
        return self.render()

    def set_online_history(self, online_history: Optional[dict[str, list[Sample]]]) -> None:
        self._online_history = online_history

    # ------------------------------------------------------------------
    # View changes
    # ------------------------------------------------------------------
    def set_range(self, range_name: str) -> Optional[ChartFrame]:
        name = normalize_range(range_name)
        if name == self._range:
            return self._frame
        self._range = name
        return self.render() if self._payload is not None else None

    def resize(self, width: float, height: float) -> Optional[ChartFrame]:
        self._width = width
        self._height = height
        return self.render() if self._payload is not None else None

    def _server_order(self) -> list[str]:
        if self._server_ids is not None:
            return list(self._server_ids)
        return list(self._payload.servers) if self._payload is not None else []

    def render(self) -> Optional[ChartFrame]:
        """
        Rebuild the frame from the current payload, range and size.

        A hover whose time falls outside the new window is cleared; one
        that is still inside is re-read against the new data.
        """
        if self._payload is None:
            return None

        payload = self._payload
        server_ids = self._server_order()
        histories = {
            server_id: payload.servers[server_id].history if server_id in payload.servers else []
            for server_id in server_ids
        }
        projection = project(
            histories,
            self._range,
            updated_at=payload.updated_at,
            clock=self._clock,
        )

        cards = [
            build_card(server_id, payload.servers.get(server_id), summarize(projection.series[server_id]))
            for server_id in server_ids
        ]
        series = {
            server_id: downsample(points, self._max_points)
            for server_id, points in projection.series.items()
        }
        layout = build_layout(
            series,
            projection.chart_start,
            projection.chart_end,
            self._width,
            self._height,
            legend_colors=self._legend_colors,
            palette=self._palette,
        )

        if layout is None:
            self._hover = None
        elif self._hover is not None:
            if layout.range_start <= self._hover.time <= layout.range_end:
                self._hover = hover_at(layout, self._hover.time)
            else:
                self._hover = None

        frame = ChartFrame(
            projection=projection,
            layout=layout,
            hover=self._hover,
            cards=cards,
            date_range=format_date_range(projection.earliest, projection.latest),
        )
        self._emit(frame)
        return frame

    # ------------------------------------------------------------------
    # Pointer
    # ------------------------------------------------------------------
    def pointer_move(self, x: float, y: float) -> None:
        """
        Record a pointer position and schedule one hover resolution.

        Without a running event loop the position is resolved immediately.
        """
        self._pending_pointer = (x, y)
        if self._pointer_handle is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._flush_pointer()
            return
        self._pointer_handle = loop.call_soon(self._flush_pointer)

    def _flush_pointer(self) -> None:
        self._pointer_handle = None
        pending, self._pending_pointer = self._pending_pointer, None
        if pending is None:
            return
        self.update_hover(resolve_hover(self.layout, *pending))

    def pointer_leave(self) -> None:
        if self._pointer_handle is not None:
            self._pointer_handle.cancel()
            self._pointer_handle = None
        self._pending_pointer = None
        self.update_hover(None)

    def update_hover(self, hover: Optional[HoverState]) -> None:
        """Store a resolved hover and emit a frame if it changed."""
        if hover == self._hover:
            return
        self._hover = hover
        if self._frame is not None:
            frame = ChartFrame(
                projection=self._frame.projection,
                layout=self._frame.layout,
                hover=hover,
                cards=self._frame.cards,
                date_range=self._frame.date_range,
            )
            self._emit(frame)

    def _emit(self, frame: ChartFrame) -> None:
        self._frame = frame
        if self._on_frame is not None:
            self._on_frame(frame)

    # ------------------------------------------------------------------
    # Refresh loop
    # ------------------------------------------------------------------
    async def run(self, interval: float = 60.0) -> None:
        """Refresh now and then every `interval` seconds until cancelled."""
        while True:
            try:
                await self.refresh()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("chart.unexpected_error", error=str(e), exc_info=True)
            await asyncio.sleep(interval)
