#!/usr/bin/env python3
"""
canvas_interaction.py — Pointer handling for the frozen node graph.

States: Idle -> Dragging(node) | Panning -> Idle. Pointer coordinates arrive
in screen space and are mapped into graph space through the current pan/zoom
transform before hit-testing. Every visible change calls `on_redraw`.
"""
from __future__ import annotations

import logging
import math
import webbrowser
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence, Tuple

from similarity_graph import Item

MIN_ZOOM = 0.2
MAX_ZOOM = 5.0

log = logging.getLogger("kulturpool.interaction")


@dataclass(frozen=True)
class Transform:
    """screen = world * k + (x, y)"""
    x: float = 0.0
    y: float = 0.0
    k: float = 1.0

    def to_world(self, sx: float, sy: float) -> Tuple[float, float]:
        return (sx - self.x) / self.k, (sy - self.y) / self.k

    def to_screen(self, wx: float, wy: float) -> Tuple[float, float]:
        return wx * self.k + self.x, wy * self.k + self.y


class Mode(Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    PANNING = "panning"


def hit_test(items: Sequence[Item], wx: float, wy: float) -> Optional[Item]:
    """First node (in draw order) whose circle strictly contains the point."""
    for item in items:
        if math.hypot(wx - item.x, wy - item.y) < item.r:
            return item
    return None


class InteractionLayer:
    def __init__(
        self,
        items: Sequence[Item],
        on_redraw: Optional[Callable[[], None]] = None,
        opener: Optional[Callable[[str], object]] = None,
        min_zoom: float = MIN_ZOOM,
        max_zoom: float = MAX_ZOOM,
    ):
        self.items = items
        self.on_redraw = on_redraw or (lambda: None)
        self.opener = opener or webbrowser.open_new_tab
        self.min_zoom = min_zoom
        self.max_zoom = max_zoom
        self.transform = Transform()
        self.enabled = False
        self.reset()

    def reset(self) -> None:
        self.mode = Mode.IDLE
        self.dragged = None  # type: Optional[Item]
        self._grab_offset = (0.0, 0.0)
        self._pan_start = (0.0, 0.0)
        self._pan_origin = (0.0, 0.0)

    def enable(self) -> None:
        """Accept pointer gestures; called once the layout is frozen."""
        self.enabled = True

    # ------------------------------------------------------------------
    # Pointer events (screen coordinates)
    # ------------------------------------------------------------------

    def pointer_down(self, sx: float, sy: float) -> Mode:
        if not self.enabled:
            return self.mode
        wx, wy = self.transform.to_world(sx, sy)
        node = hit_test(self.items, wx, wy)
        if node is not None:
            self.mode = Mode.DRAGGING
            self.dragged = node
            self._grab_offset = (wx - node.x, wy - node.y)
        else:
            self.mode = Mode.PANNING
            self._pan_start = (sx, sy)
            self._pan_origin = (self.transform.x, self.transform.y)
        return self.mode

    def pointer_move(self, sx: float, sy: float) -> None:
        if self.mode is Mode.DRAGGING and self.dragged is not None:
            wx, wy = self.transform.to_world(sx, sy)
            self.dragged.x = wx - self._grab_offset[0]
            self.dragged.y = wy - self._grab_offset[1]
            if self.dragged.pinned:
                self.dragged.fx, self.dragged.fy = self.dragged.x, self.dragged.y
            self.on_redraw()
        elif self.mode is Mode.PANNING:
            dx = sx - self._pan_start[0]
            dy = sy - self._pan_start[1]
            self.transform = Transform(self._pan_origin[0] + dx,
                                       self._pan_origin[1] + dy,
                                       self.transform.k)
            self.on_redraw()

    def pointer_up(self) -> None:
        self.reset()

    def double_click(self, sx: float, sy: float) -> Optional[str]:
        """Open the hit node's detail page. Returns the URL opened, if any."""
        if not self.enabled:
            return None
        node = hit_test(self.items, *self.transform.to_world(sx, sy))
        if node is None or not node.is_shown_at:
            return None
        log.info("Opening %s (%s)", node.is_shown_at, node.title)
        self.opener(node.is_shown_at)
        return node.is_shown_at

    # ------------------------------------------------------------------
    # Zoom / pan
    # ------------------------------------------------------------------

    def zoom(self, factor: float, anchor: Tuple[float, float] = (0.0, 0.0)) -> float:
        """Scale by `factor` around a screen-space anchor, clamped to the zoom range."""
        k = min(self.max_zoom, max(self.min_zoom, self.transform.k * factor))
        ax, ay = anchor
        wx, wy = self.transform.to_world(ax, ay)
        self.transform = Transform(ax - wx * k, ay - wy * k, k)
        self.on_redraw()
        return k

    def pan_by(self, dx: float, dy: float) -> None:
        t = self.transform
        self.transform = Transform(t.x + dx, t.y + dy, t.k)
        self.on_redraw()
