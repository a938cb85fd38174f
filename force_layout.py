#!/usr/bin/env python3
"""
force_layout.py — Force-directed layout for the clustering demo.

A small numpy velocity-Verlet simulation with d3-force semantics: an `alpha`
temperature that cools toward zero, velocity decay, and four forces applied
in order every tick:

    charge     pairwise repulsion (negative strength), exact O(n²)
    center     translate so the centroid sits at the canvas middle
    collision  push apart circles closer than their collision radii
    link       spring each link toward a target distance

Positions are read from the items once and written back after every tick,
so listeners registered with `on_tick` can redraw straight from the items.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional, Sequence

import numpy as np

from similarity_graph import Item, Link, degrees

# ---------------------------------------------------------------------------
# Defaults (tuned for ~300 nodes of radius 32)
# ---------------------------------------------------------------------------

CHARGE_STRENGTH = -400.0
LINK_DISTANCE = 10.0
LINK_STRENGTH = 0.7
COLLIDE_PADDING = 80.0
VELOCITY_DECAY = 0.6
ALPHA_MIN = 0.001
TICK_INTERVAL = 1.0 / 60

log = logging.getLogger("kulturpool.layout")

TickListener = Callable[["ForceSimulation"], None]


class ForceSimulation:
    def __init__(
        self,
        items: Sequence[Item],
        links: Sequence[Link],
        width: float,
        height: float,
        charge_strength: float = CHARGE_STRENGTH,
        link_distance: float = LINK_DISTANCE,
        link_strength: float = LINK_STRENGTH,
        collide_padding: float = COLLIDE_PADDING,
        velocity_decay: float = VELOCITY_DECAY,
        alpha_min: float = ALPHA_MIN,
        seed: Optional[int] = None,
    ):
        self.items = list(items)
        self.links = list(links)
        self.center = (width / 2.0, height / 2.0)
        self.charge_strength = charge_strength
        self.link_distance = link_distance
        self.link_strength = link_strength
        self.velocity_decay = velocity_decay

        self.alpha = 1.0
        self.alpha_min = alpha_min
        self.alpha_target = 0.0
        self.alpha_decay = 1.0 - alpha_min ** (1.0 / 300)

        n = len(self.items)
        self.x = np.array([it.x for it in self.items], dtype=np.float64)
        self.y = np.array([it.y for it in self.items], dtype=np.float64)
        self.vx = np.zeros(n)
        self.vy = np.zeros(n)
        self.collide_radius = np.array([it.r + collide_padding for it in self.items],
                                       dtype=np.float64)

        self._src = np.array([l.source for l in self.links], dtype=np.intp)
        self._tgt = np.array([l.target for l in self.links], dtype=np.intp)
        deg = np.array(degrees(self.links, n), dtype=np.float64)
        if len(self.links):
            self._bias = deg[self._src] / (deg[self._src] + deg[self._tgt])
        else:
            self._bias = np.zeros(0)

        self._rng = np.random.default_rng(seed)
        self._listeners = []  # type: List[TickListener]
        self.stopped = False
        self.ticks = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def on_tick(self, listener: TickListener) -> "ForceSimulation":
        self._listeners.append(listener)
        return self

    @property
    def cooled(self) -> bool:
        return self.alpha < self.alpha_min

    def stop(self) -> None:
        self.stopped = True

    def restart(self, alpha: float = 1.0) -> None:
        self.alpha = alpha
        self.stopped = False

    def pin_all(self) -> None:
        """Fix every node where it stands. Pinned nodes never move again."""
        self.sync_from_items()
        for i, item in enumerate(self.items):
            item.fx = float(self.x[i])
            item.fy = float(self.y[i])

    def sync_from_items(self) -> None:
        """Pick up positions changed outside the simulation (e.g. dragging)."""
        for i, item in enumerate(self.items):
            self.x[i] = item.x
            self.y[i] = item.y

    # ------------------------------------------------------------------
    # Stepping
    # ------------------------------------------------------------------

    def tick(self) -> None:
        self.alpha += (self.alpha_target - self.alpha) * self.alpha_decay

        if len(self.items):
            self._apply_charge()
            self._apply_center()
            self._apply_collision()
            self._apply_links()
            self._integrate()

        self.ticks += 1
        for listener in self._listeners:
            listener(self)

    def run(self, max_ticks: Optional[int] = None) -> int:
        """Tick until cooled, stopped, or `max_ticks` reached. Returns ticks run."""
        ran = 0
        while not self.stopped and not self.cooled:
            if max_ticks is not None and ran >= max_ticks:
                break
            self.tick()
            ran += 1
        return ran

    async def run_async(self, interval: float = TICK_INTERVAL) -> int:
        """Cooperative version of `run` that yields to the loop between ticks."""
        ran = 0
        while not self.stopped and not self.cooled:
            self.tick()
            ran += 1
            await asyncio.sleep(interval)
        log.debug("Simulation loop exited after %d ticks (alpha=%.4f)", ran, self.alpha)
        return ran

    # ------------------------------------------------------------------
    # Forces
    # ------------------------------------------------------------------

    def _jiggle(self, shape) -> np.ndarray:
        return (self._rng.random(shape) - 0.5) * 1e-6

    def _apply_charge(self) -> None:
        dx = self.x[None, :] - self.x[:, None]
        dy = self.y[None, :] - self.y[:, None]
        n = len(self.x)
        off_diag = ~np.eye(n, dtype=bool)

        coincident = (dx == 0) & off_diag
        if coincident.any():
            dx[coincident] = self._jiggle(int(coincident.sum()))
        l2 = dx * dx + dy * dy
        # distanceMin = 1
        l2 = np.where(l2 < 1.0, np.sqrt(l2), l2)
        l2[~off_diag] = np.inf

        w = self.charge_strength * self.alpha / l2
        self.vx += (dx * w).sum(axis=1)
        self.vy += (dy * w).sum(axis=1)

    def _apply_center(self) -> None:
        cx, cy = self.center
        self.x -= self.x.mean() - cx
        self.y -= self.y.mean() - cy

    def _apply_collision(self) -> None:
        px = self.x + self.vx
        py = self.y + self.vy
        dx = px[:, None] - px[None, :]
        dy = py[:, None] - py[None, :]
        r = self.collide_radius
        rr = r[:, None] + r[None, :]
        upper = np.triu(np.ones((len(px), len(px)), dtype=bool), k=1)

        l2 = dx * dx + dy * dy
        overlap = upper & (l2 < rr * rr)
        if not overlap.any():
            return
        coincident = overlap & (dx == 0)
        if coincident.any():
            dx[coincident] = self._jiggle(int(coincident.sum()))
            l2 = dx * dx + dy * dy

        l = np.sqrt(np.where(overlap, l2, 1.0))
        k = np.where(overlap, (rr - l) / l, 0.0)
        ax = dx * k
        ay = dy * k
        r2 = r * r
        share = r2[None, :] / (r2[:, None] + r2[None, :])

        self.vx += (ax * share).sum(axis=1) - (ax * (1.0 - share)).sum(axis=0)
        self.vy += (ay * share).sum(axis=1) - (ay * (1.0 - share)).sum(axis=0)

    def _apply_links(self) -> None:
        if not len(self._src):
            return
        s, t = self._src, self._tgt
        dx = self.x[t] + self.vx[t] - self.x[s] - self.vx[s]
        dy = self.y[t] + self.vy[t] - self.y[s] - self.vy[s]
        zero = dx == 0
        if zero.any():
            dx[zero] = self._jiggle(int(zero.sum()))
        l = np.sqrt(dx * dx + dy * dy)
        k = (l - self.link_distance) / l * self.alpha * self.link_strength
        dx *= k
        dy *= k
        np.add.at(self.vx, t, -dx * self._bias)
        np.add.at(self.vy, t, -dy * self._bias)
        np.add.at(self.vx, s, dx * (1.0 - self._bias))
        np.add.at(self.vy, s, dy * (1.0 - self._bias))

    def _integrate(self) -> None:
        for i, item in enumerate(self.items):
            if item.fx is None:
                self.vx[i] *= self.velocity_decay
                self.x[i] += self.vx[i]
            else:
                self.x[i] = item.fx
                self.vx[i] = 0.0
            if item.fy is None:
                self.vy[i] *= self.velocity_decay
                self.y[i] += self.vy[i]
            else:
                self.y[i] = item.fy
                self.vy[i] = 0.0
            item.x = float(self.x[i])
            item.y = float(self.y[i])
