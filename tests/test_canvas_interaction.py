"""Unit tests for pointer handling on the frozen graph."""

from unittest import mock

import pytest

from canvas_interaction import MAX_ZOOM, MIN_ZOOM, InteractionLayer, Mode, Transform, hit_test
from similarity_graph import Item


@pytest.fixture()
def nodes():
    return [
        Item(id=0, title="a", x=100, y=100, is_shown_at="https://detail.example/a"),
        Item(id=1, title="b", x=300, y=100),
        Item(id=2, title="c", x=500, y=400, is_shown_at="https://detail.example/c"),
    ]


@pytest.fixture()
def layer(nodes):
    redraw = mock.Mock()
    opener = mock.Mock()
    lay = InteractionLayer(nodes, on_redraw=redraw, opener=opener)
    lay.enable()
    return lay


class TestTransform:
    def test_round_trip(self):
        t = Transform(40, -20, 2.5)
        assert t.to_world(*t.to_screen(12, 34)) == pytest.approx((12, 34))

    def test_identity(self):
        assert Transform().to_world(5, 6) == (5, 6)


class TestHitTest:
    def test_inside(self, nodes):
        assert hit_test(nodes, 110, 110) is nodes[0]

    def test_boundary_is_a_miss(self, nodes):
        assert hit_test(nodes, 132, 100) is None

    def test_first_match_wins(self):
        a = Item(id=0, title="a", x=0, y=0)
        b = Item(id=1, title="b", x=5, y=0)
        assert hit_test([a, b], 3, 0) is a


class TestGestures:
    def test_ignored_until_enabled(self, nodes):
        lay = InteractionLayer(nodes)
        assert lay.pointer_down(100, 100) is Mode.IDLE
        assert lay.double_click(100, 100) is None

    def test_drag_moves_only_grabbed_node(self, layer, nodes):
        before = [(n.x, n.y) for n in nodes]
        assert layer.pointer_down(110, 105) is Mode.DRAGGING
        layer.pointer_move(210, 155)
        assert (nodes[0].x, nodes[0].y) == (200, 150)
        assert [(n.x, n.y) for n in nodes[1:]] == before[1:]
        assert layer.on_redraw.called
        layer.pointer_up()
        assert layer.mode is Mode.IDLE
        assert layer.dragged is None

    def test_drag_pinned_node_moves_pin(self, layer, nodes):
        nodes[2].fx, nodes[2].fy = 500.0, 400.0
        layer.pointer_down(500, 400)
        layer.pointer_move(520, 410)
        assert (nodes[2].fx, nodes[2].fy) == (520, 410)

    def test_pan_changes_only_translation(self, layer, nodes):
        layer.zoom(2.0)
        k = layer.transform.k
        positions = [(n.x, n.y) for n in nodes]
        assert layer.pointer_down(5, 5) is Mode.PANNING
        layer.pointer_move(25, -15)
        assert layer.transform == Transform(20, -20, k)
        assert [(n.x, n.y) for n in nodes] == positions
        layer.pointer_up()
        assert layer.mode is Mode.IDLE

    def test_hit_test_uses_transform(self, layer, nodes):
        layer.pan_by(50, 0)
        assert layer.pointer_down(150, 100) is Mode.DRAGGING
        assert layer.dragged is nodes[0]

    def test_move_while_idle_is_noop(self, layer):
        layer.pointer_move(10, 10)
        assert layer.transform == Transform()
        assert not layer.on_redraw.called


class TestZoom:
    def test_clamped(self, layer):
        assert layer.zoom(100) == MAX_ZOOM
        assert layer.zoom(1e-6) == MIN_ZOOM
        assert layer.transform.k == MIN_ZOOM

    def test_anchor_stays_fixed(self, layer):
        anchor = (320, 240)
        world_before = layer.transform.to_world(*anchor)
        layer.zoom(1.7, anchor=anchor)
        assert layer.transform.to_world(*anchor) == pytest.approx(world_before)

    def test_works_before_enable(self, nodes):
        lay = InteractionLayer(nodes)
        assert lay.zoom(2) == 2


class TestDoubleClick:
    def test_opens_detail_page(self, layer):
        url = layer.double_click(100, 100)
        assert url == "https://detail.example/a"
        layer.opener.assert_called_once_with("https://detail.example/a")

    def test_node_without_url(self, layer):
        assert layer.double_click(300, 100) is None
        layer.opener.assert_not_called()

    def test_miss(self, layer):
        assert layer.double_click(700, 50) is None
