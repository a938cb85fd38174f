"""Unit tests for the force-directed layout."""

import asyncio
import math

from force_layout import ForceSimulation
from similarity_graph import Item, Link


def node(i, x, y):
    return Item(id=i, title=str(i), x=x, y=y)


def dist(a, b):
    return math.hypot(a.x - b.x, a.y - b.y)


class TestCooling:
    def test_run_stops_once_cooled(self):
        sim = ForceSimulation([node(0, 10, 10), node(1, 50, 40)], [], 800, 600, seed=1)
        ran = sim.run()
        assert sim.cooled
        assert 295 <= ran <= 305

    def test_alpha_decreases_every_tick(self):
        sim = ForceSimulation([node(0, 10, 10)], [], 800, 600, seed=1)
        previous = sim.alpha
        for _ in range(5):
            sim.tick()
            assert sim.alpha < previous
            previous = sim.alpha

    def test_empty_graph_runs(self):
        sim = ForceSimulation([], [], 800, 600)
        assert sim.run(max_ticks=10) == 10


class TestTicks:
    def test_listeners_called_each_tick(self):
        seen = []
        sim = ForceSimulation([node(0, 1, 1)], [], 800, 600, seed=1)
        sim.on_tick(lambda s: seen.append(s.ticks))
        sim.run(max_ticks=4)
        assert seen == [1, 2, 3, 4]

    def test_stop_from_listener(self):
        sim = ForceSimulation([node(0, 1, 1)], [], 800, 600, seed=1)
        sim.on_tick(lambda s: s.stop() if s.ticks == 3 else None)
        assert sim.run() == 3
        assert not sim.cooled

    def test_positions_written_back(self):
        items = [node(0, 100, 100), node(1, 110, 100)]
        sim = ForceSimulation(items, [], 800, 600, seed=1)
        sim.tick()
        assert items[0].x == sim.x[0]
        assert items[1].y == sim.y[1]

    def test_run_async(self):
        sim = ForceSimulation([node(0, 1, 1)], [], 800, 600, seed=1)
        sim.on_tick(lambda s: s.stop() if s.ticks == 5 else None)
        assert asyncio.run(sim.run_async(interval=0)) == 5


class TestForces:
    def test_linked_nodes_pulled_together(self):
        a, b, c = node(0, 0, 0), node(1, 800, 600), node(2, 800, 0)
        sim = ForceSimulation([a, b, c], [Link(0, 1)], 800, 600, seed=3)
        sim.run()
        assert dist(a, b) < 400
        assert dist(a, b) < dist(a, c)
        assert dist(a, b) < dist(b, c)

    def test_centroid_stays_at_center(self):
        items = [node(i, 50 + 37 * i, 80 + 23 * (i % 3)) for i in range(6)]
        sim = ForceSimulation(items, [], 1000, 800, seed=2)
        sim.run()
        cx = sum(it.x for it in items) / len(items)
        cy = sum(it.y for it in items) / len(items)
        assert abs(cx - 500) < 1.0
        assert abs(cy - 400) < 1.0

    def test_coincident_nodes_separate(self):
        items = [node(0, 300, 300), node(1, 300, 300)]
        sim = ForceSimulation(items, [], 600, 600, seed=4)
        sim.run(max_ticks=50)
        assert dist(items[0], items[1]) > 1

    def test_pinned_node_does_not_move(self):
        items = [node(0, 100, 100), node(1, 105, 100)]
        items[0].fx, items[0].fy = 100.0, 100.0
        sim = ForceSimulation(items, [], 800, 600, seed=1)
        sim.run(max_ticks=20)
        assert (items[0].x, items[0].y) == (100.0, 100.0)

    def test_pin_all(self):
        items = [node(0, 100, 100), node(1, 400, 300)]
        sim = ForceSimulation(items, [Link(0, 1)], 800, 600, seed=1)
        sim.run(max_ticks=30)
        sim.pin_all()
        frozen = [(it.x, it.y) for it in items]
        assert all(it.pinned for it in items)
        sim.restart()
        sim.run(max_ticks=30)
        assert [(it.x, it.y) for it in items] == frozen
