"""
Client-side chart pipeline: merge, project, downsample, lay out and hover.
"""

from .downsample import downsample
from .history import convert_online_history, merge_history, merge_into_state
from .hover import HoverState, find_nearest_point, resolve_hover
from .layout import ChartLayout, build_layout, y_axis_scale
from .models import Point
from .ranges import Projection, project, resolve_anchor
from .session import ChartFrame, ChartSession
from .summary import Summary, summarize

__all__ = [
    "downsample",
    "convert_online_history",
    "merge_history",
    "merge_into_state",
    "HoverState",
    "find_nearest_point",
    "resolve_hover",
    "ChartLayout",
    "build_layout",
    "y_axis_scale",
    "Point",
    "Projection",
    "project",
    "resolve_anchor",
    "ChartFrame",
    "ChartSession",
    "Summary",
    "summarize",
]
