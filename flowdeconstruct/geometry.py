"""
Geometry helpers for addressing nodes and connections on the canvas.

Provides the pure functions a renderer needs to place and hit-test diagram
elements:
- Anchors: where a connection attaches to each endpoint node
- Hit-testing: point-to-segment distance, node and connection lookup
- Placement: overlap test, free-slot search and the default grid layout

Nothing here stores state; attachment points are always recomputed from the
current node positions. A rectangle is (x, y, width, height) with (x, y) the
top-left corner; a point is (x, y).
"""

import math
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .models import FlowConnection, FlowDiagram, FlowNode

Point = tuple[float, float]
Rect = tuple[float, float, float, float]

# Default layout parameters
CANVAS_MARGIN = 50
NODE_SPACING_X = 160
NODE_SPACING_Y = 80
DEFAULT_MIN_GAP = 10

# Max distance (canvas units) between a click and a connection line
HIT_TOLERANCE = 6.0

DIRECTIONS = ("up", "down", "left", "right")


def clamp(value: float, low: float, high: float) -> float:
    """Clamp value into the closed interval [low, high]."""
    return max(low, min(high, value))


def node_rect(node: "FlowNode") -> Rect:
    return (node.x, node.y, node.width, node.height)


def anchor_point(node: "FlowNode", toward: Point) -> Point:
    """
    Point on the node's border where a line heading to `toward` attaches.

    Uses the midpoint of the left/right edge when the horizontal offset from
    the node centre dominates (ties count as horizontal), otherwise the
    midpoint of the top/bottom edge.
    """
    cx, cy = node.center()
    dx = toward[0] - cx
    dy = toward[1] - cy

    if abs(dx) >= abs(dy):
        edge_x = node.x + node.width if dx >= 0 else node.x
        return (edge_x, cy)
    edge_y = node.y + node.height if dy > 0 else node.y
    return (cx, edge_y)


def connection_endpoints(
    diagram: "FlowDiagram",
    connection: "FlowConnection"
) -> Optional[tuple[Point, Point]]:
    """
    Compute the (start, end) anchors of a connection.

    Returns None if either endpoint node is not in the diagram.
    """
    source = diagram.find_node_by_id(connection.from_node_id)
    target = diagram.find_node_by_id(connection.to_node_id)
    if source is None or target is None:
        return None
    return (anchor_point(source, target.center()), anchor_point(target, source.center()))


def distance_point_to_segment(p: Point, a: Point, b: Point) -> float:
    """Shortest distance from p to the segment a-b."""
    px, py = p
    ax, ay = a
    bx, by = b
    dx = bx - ax
    dy = by - ay
    length_sq = dx * dx + dy * dy
    if length_sq == 0:
        return math.hypot(px - ax, py - ay)

    t = clamp(((px - ax) * dx + (py - ay) * dy) / length_sq, 0.0, 1.0)
    return math.hypot(px - (ax + t * dx), py - (ay + t * dy))


def find_node_at(diagram: "FlowDiagram", point: Point) -> Optional["FlowNode"]:
    """
    Topmost node whose bounds contain the point.

    Nodes are painted in diagram order, so the last match is on top.
    """
    px, py = point
    hit = None
    for node in diagram.nodes:
        left, top, right, bottom = node.bounds()
        if left <= px <= right and top <= py <= bottom:
            hit = node
    return hit


def find_connection_at(
    diagram: "FlowDiagram",
    point: Point,
    tolerance: float = HIT_TOLERANCE
) -> Optional["FlowConnection"]:
    """First connection whose drawn segment lies within `tolerance` of the point."""
    for connection in diagram.connections:
        endpoints = connection_endpoints(diagram, connection)
        if endpoints is None:
            continue
        if distance_point_to_segment(point, *endpoints) <= tolerance:
            return connection
    return None


def expand_rect(rect: Rect, gap: float) -> Rect:
    x, y, w, h = rect
    return (x - gap, y - gap, w + 2 * gap, h + 2 * gap)


def rects_intersect(a: Rect, b: Rect) -> bool:
    """True if the two rectangles share interior area (touching edges do not count)."""
    ax, ay, aw, ah = a
    bx, by, bw, bh = b
    return ax < bx + bw and bx < ax + aw and ay < by + bh and by < ay + ah


def would_overlap(candidate: Rect, others: list[Rect], min_gap: float = DEFAULT_MIN_GAP) -> bool:
    """
    Check a proposed placement against existing nodes.

    Both the candidate and every other rectangle are grown by `min_gap`
    before the intersection test, so rectangles closer than that are
    rejected. Callers reject the move; nothing is nudged here.
    """
    grown = expand_rect(candidate, min_gap)
    return any(rects_intersect(grown, expand_rect(other, min_gap)) for other in others)


def find_free_position(
    diagram: "FlowDiagram",
    width: float,
    height: float,
    start: Point = (CANVAS_MARGIN, CANVAS_MARGIN),
    min_gap: float = DEFAULT_MIN_GAP,
    max_attempts: int = 100
) -> Point:
    """
    Find a spot for a new node, stepping down from `start` one row at a time.

    Falls back to `start` when no free spot is found within max_attempts.
    """
    others = [node_rect(n) for n in diagram.nodes]
    x, y = start
    for attempt in range(max_attempts):
        candidate_y = y + attempt * NODE_SPACING_Y
        if not would_overlap((x, candidate_y, width, height), others, min_gap):
            return (x, candidate_y)
    return start


def nearest_node_in_direction(
    diagram: "FlowDiagram",
    current: "FlowNode",
    direction: str
) -> Optional["FlowNode"]:
    """
    Closest node strictly on the given side of `current` (keyboard navigation).

    Args:
        diagram: Diagram containing the nodes
        current: Node to navigate from
        direction: One of "up", "down", "left", "right"

    Returns:
        The nearest node by top-left distance, or None
    """
    if direction not in DIRECTIONS:
        return None

    closest = None
    min_distance = math.inf
    for node in diagram.nodes:
        if node == current:
            continue

        if direction == "up":
            valid = node.y < current.y
        elif direction == "down":
            valid = node.y > current.y
        elif direction == "left":
            valid = node.x < current.x
        else:
            valid = node.x > current.x

        distance = math.hypot(node.x - current.x, node.y - current.y)
        if valid and distance < min_distance:
            min_distance = distance
            closest = node

    return closest


def grid_layout(
    nodes: list["FlowNode"],
    spacing_x: float = NODE_SPACING_X,
    spacing_y: float = NODE_SPACING_Y,
    margin: float = CANVAS_MARGIN
) -> list["FlowNode"]:
    """
    Arrange nodes in a square-ish grid, ceil(sqrt(n)) nodes per row.

    Args:
        nodes: List of nodes to arrange
        spacing_x: Horizontal distance between node origins
        spacing_y: Vertical distance between node origins
        margin: Offset of the first node from the canvas origin

    Returns:
        The same list of nodes (modified in-place)
    """
    if not nodes:
        return nodes

    per_row = max(1, math.ceil(math.sqrt(len(nodes))))
    for i, node in enumerate(nodes):
        row = i // per_row
        col = i % per_row
        node.set_position(int(margin + col * spacing_x), int(margin + row * spacing_y))

    return nodes
