"""Pytest configuration and shared fixtures for FlowDeconstruct tests."""

from datetime import datetime, timezone

import pytest

from flowdeconstruct import FlowDiagram, FlowNode


@pytest.fixture
def diagram():
    """Empty diagram."""
    return FlowDiagram(name="Test Flow")


@pytest.fixture
def two_node_diagram():
    """Diagram with nodes A (Alpha) and B (Beta), not connected."""
    diagram = FlowDiagram(name="Test Flow")
    diagram.add_node(FlowNode(id="A", text="Alpha", position=(50, 50)))
    diagram.add_node(FlowNode(id="B", text="Beta", position=(300, 50)))
    return diagram


@pytest.fixture
def linear_diagram():
    """Diagram A -> B -> C laid out left to right."""
    diagram = FlowDiagram(name="Linear")
    a = FlowNode(id="A", text="Start", position=(0, 0))
    b = FlowNode(id="B", text="Process", position=(200, 0))
    c = FlowNode(id="C", text="End", position=(400, 0))
    for node in (a, b, c):
        diagram.add_node(node)
    diagram.add_connection(a, b)
    diagram.add_connection(b, c)
    return diagram


@pytest.fixture
def recorder():
    """Diagram listener that records (event, old, new) tuples."""
    class Recorder:
        def __init__(self):
            self.events = []

        def __call__(self, diagram, event, old_value, new_value):
            self.events.append((event, old_value, new_value))

        @property
        def names(self):
            return [e[0] for e in self.events]

    return Recorder()


@pytest.fixture
def t0():
    """Fixed reference timestamp."""
    return datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def home(tmp_path):
    """Isolated application data directory."""
    path = tmp_path / "home"
    path.mkdir()
    return path
