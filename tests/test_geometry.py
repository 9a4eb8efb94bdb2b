"""Unit tests for the geometry module."""

import math

import pytest

from flowdeconstruct import FlowDiagram, FlowNode
from flowdeconstruct.geometry import (
    anchor_point,
    connection_endpoints,
    distance_point_to_segment,
    find_connection_at,
    find_free_position,
    find_node_at,
    grid_layout,
    nearest_node_in_direction,
    would_overlap,
)


class TestOverlap:
    """Tests for would_overlap."""

    def test_close_rectangles_overlap(self):
        """Two 120x40 boxes 5px apart overlap with a 10px gap."""
        assert would_overlap((0, 0, 120, 40), [(125, 0, 120, 40)], min_gap=10)

    def test_distant_rectangles_do_not_overlap(self):
        """Two 120x40 boxes 200px apart are fine."""
        assert not would_overlap((0, 0, 120, 40), [(320, 0, 120, 40)], min_gap=10)

    def test_no_others(self):
        """Nothing to collide with."""
        assert not would_overlap((0, 0, 120, 40), [])


class TestAnchors:
    """Tests for connection attachment points."""

    def test_horizontal_anchor(self):
        """A target to the right attaches at the right edge midpoint."""
        node = FlowNode(position=(0, 0), width=100, height=40)
        assert anchor_point(node, (500, 20)) == (100, 20)
        assert anchor_point(node, (-500, 20)) == (0, 20)

    def test_vertical_anchor(self):
        """A target below attaches at the bottom edge midpoint."""
        node = FlowNode(position=(0, 0), width=100, height=40)
        assert anchor_point(node, (50, 500)) == (50, 40)
        assert anchor_point(node, (50, -500)) == (50, 0)

    def test_diagonal_tie_is_horizontal(self):
        """Equal offsets pick the left/right edge."""
        node = FlowNode(position=(0, 0), width=100, height=40)
        assert anchor_point(node, (150, 120)) == (100, 20)

    def test_connection_endpoints(self, linear_diagram):
        """Endpoints face each other across the gap."""
        connection = linear_diagram.connections[0]
        start, end = connection_endpoints(linear_diagram, connection)
        assert start == (120, 20)
        assert end == (200, 20)


class TestHitTesting:
    """Tests for point lookups."""

    def test_distance_to_segment(self):
        """Perpendicular, endpoint and degenerate cases."""
        assert distance_point_to_segment((5, 5), (0, 0), (10, 0)) == 5
        assert distance_point_to_segment((13, 4), (0, 0), (10, 0)) == 5
        assert distance_point_to_segment((3, 4), (0, 0), (0, 0)) == 5

    def test_find_node_at_prefers_topmost(self):
        """The node added last wins where nodes overlap."""
        diagram = FlowDiagram()
        bottom = diagram.create_node("bottom", 0, 0)
        top = diagram.create_node("top", 50, 10)
        assert find_node_at(diagram, (60, 20)) is top
        assert find_node_at(diagram, (10, 10)) is bottom
        assert find_node_at(diagram, (1000, 1000)) is None

    def test_find_connection_at(self, linear_diagram):
        """A point near the line hits the connection."""
        connection = find_connection_at(linear_diagram, (160, 23))
        assert connection is linear_diagram.connections[0]
        assert find_connection_at(linear_diagram, (160, 200)) is None


class TestPlacement:
    """Tests for layout helpers."""

    def test_find_free_position_skips_occupied(self):
        """The first free row below the start is returned."""
        diagram = FlowDiagram()
        diagram.create_node("taken", 50, 50)
        x, y = find_free_position(diagram, 120, 40)
        assert x == 50
        assert y > 50
        assert not would_overlap((x, y, 120, 40), [(50, 50, 120, 40)])

    def test_find_free_position_empty(self):
        """An empty diagram places at the start point."""
        assert find_free_position(FlowDiagram(), 120, 40) == (50, 50)

    def test_grid_layout(self):
        """Nodes fill rows of ceil(sqrt(n))."""
        nodes = [FlowNode() for _ in range(5)]
        grid_layout(nodes)
        per_row = math.ceil(math.sqrt(5))
        assert per_row == 3
        assert nodes[0].position == (50, 50)
        assert nodes[2].position == (50 + 2 * 160, 50)
        assert nodes[3].position == (50, 50 + 80)

    @pytest.mark.parametrize(
        "direction, expected",
        [("right", "B"), ("left", None), ("down", "D"), ("up", None)],
    )
    def test_nearest_in_direction(self, direction, expected):
        """Navigation picks the closest node on the requested side."""
        diagram = FlowDiagram()
        a = FlowNode(id="A", position=(0, 0))
        for node in (a, FlowNode(id="B", position=(200, 0)), FlowNode(id="C", position=(400, 0)),
                     FlowNode(id="D", position=(0, 100))):
            diagram.add_node(node)
        found = nearest_node_in_direction(diagram, a, direction)
        assert (found.id if found else None) == expected

    def test_unknown_direction(self, linear_diagram):
        """Unknown directions find nothing."""
        a = linear_diagram.find_node_by_id("A")
        assert nearest_node_in_direction(linear_diagram, a, "sideways") is None
