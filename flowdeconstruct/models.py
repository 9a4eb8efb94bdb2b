"""
Core data models for flow diagrams.

These models define the in-memory schema shared by the markdown format,
the project files and every caller that edits a diagram:
- FlowNode: a box with text, notes, geometry and cosmetic settings
- FlowConnection: an edge between two nodes, referenced by node id
- TimelineEvent: a point on the diagram's logical timeline
- FlowDiagram: the aggregate root owning nodes, connections and events

Change notification:
- Assigning any public field of a FlowNode notifies the node's listeners
  with (node, property, old_value, new_value)
- FlowDiagram listeners receive (diagram, event, old_value, new_value)
  synchronously, in registration order, right after the mutation
- Listeners that mutate the diagram from inside their own callback re-enter
  the notifier and may observe a partially updated diagram
"""

import logging
import uuid
from datetime import datetime, timezone
from enum import Enum, IntFlag
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator

from . import timeline

logger = logging.getLogger(__name__)

HEX_COLOR_LENGTH = 7
MIN_NODE_SIZE = 20
MIN_FONT_SIZE = 6
MAX_FONT_SIZE = 96

DEFAULT_FILL_COLOR = "#3a3a3a"
DEFAULT_BORDER_COLOR = "#666666"
DEFAULT_TEXT_COLOR = "#cccccc"
DEFAULT_CONNECTION_COLOR = "#666666"
DEFAULT_FONT_FAMILY = "Monospaced"
DEFAULT_FONT_SIZE = 12
DEFAULT_NODE_WIDTH = 120
DEFAULT_NODE_HEIGHT = 40

# Node properties that bump modified_at and fire nodeModified.
# Colours, shape, fonts and selection do neither.
TRACKED_NODE_PROPERTIES = frozenset({"text", "notes", "position", "width", "height"})


class NodeShape(str, Enum):
    """Visual shapes for nodes on the canvas."""
    RECTANGLE = "RECTANGLE"
    SQUARE = "SQUARE"
    CIRCLE = "CIRCLE"
    OVAL = "OVAL"
    DIAMOND = "DIAMOND"


class ConnectionType(str, Enum):
    """Informational category of a connection."""
    NORMAL = "NORMAL"
    CONDITIONAL = "CONDITIONAL"
    ERROR = "ERROR"


class DirectionStyle(str, Enum):
    """Which end(s) of a connection carry an arrow head."""
    FROM_TO = "FROM_TO"
    TO_FROM = "TO_FROM"
    BIDIRECTIONAL = "BIDIRECTIONAL"
    NONE = "NONE"


class FontStyle(IntFlag):
    """Font style bit flags."""
    PLAIN = 0
    BOLD = 1
    ITALIC = 2


def generate_id() -> str:
    """Generate a unique element ID."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _validate_hex_color(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    if len(value) != HEX_COLOR_LENGTH or not value.startswith("#"):
        raise ValueError(f"Expected a #RRGGBB colour, got {value!r}")
    try:
        int(value[1:], 16)
    except ValueError:
        raise ValueError(f"Expected a #RRGGBB colour, got {value!r}") from None
    return value


NodeListener = Callable[["FlowNode", str, Any, Any], None]
DiagramListener = Callable[["FlowDiagram", str, Any, Any], None]


class FlowNode(BaseModel):
    """A box in a flow diagram, optionally owning a nested sub-flow."""
    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=generate_id, frozen=True)
    text: str = ""
    notes: str = ""
    position: tuple[float, float] = (0, 0)
    width: int = DEFAULT_NODE_WIDTH
    height: int = DEFAULT_NODE_HEIGHT
    shape: NodeShape = NodeShape.RECTANGLE
    fill_color: Optional[str] = DEFAULT_FILL_COLOR
    border_color: Optional[str] = DEFAULT_BORDER_COLOR
    text_color: Optional[str] = DEFAULT_TEXT_COLOR
    text_font_family: Optional[str] = DEFAULT_FONT_FAMILY
    text_font_size: int = DEFAULT_FONT_SIZE
    text_font_style: int = int(FontStyle.PLAIN)
    sub_flow: Optional["FlowDiagram"] = None
    # UI state (not persisted)
    selected: bool = False

    _listeners: list[NodeListener] = PrivateAttr(default_factory=list)

    @field_validator("width", "height", mode="before")
    @classmethod
    def clamp_size(cls, value: Any) -> int:
        return max(MIN_NODE_SIZE, int(value))

    @field_validator("text_font_size", mode="before")
    @classmethod
    def clamp_font_size(cls, value: Any) -> int:
        return max(MIN_FONT_SIZE, min(MAX_FONT_SIZE, int(value)))

    @field_validator("shape", mode="before")
    @classmethod
    def default_shape(cls, value: Any) -> Any:
        return NodeShape.RECTANGLE if value is None else value

    @field_validator("fill_color", "border_color", "text_color")
    @classmethod
    def check_color(cls, value: Optional[str]) -> Optional[str]:
        return _validate_hex_color(value)

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith("_") or name not in type(self).model_fields:
            super().__setattr__(name, value)
            return
        old_value = getattr(self, name)
        super().__setattr__(name, value)
        self._notify(name, old_value, getattr(self, name))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FlowNode):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def __repr__(self) -> str:
        return (
            f"FlowNode(id={self.id!r}, text={self.text!r}, position={self.position}, "
            f"shape={self.shape.value}, has_sub_flow={self.has_sub_flow})"
        )

    # --- Listeners ---

    def on_change(self, callback: NodeListener):
        """Register a callback for property changes on this node."""
        self._listeners.append(callback)

    def remove_listener(self, callback: NodeListener):
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _notify(self, prop: str, old_value: Any, new_value: Any):
        for callback in list(self._listeners):
            callback(self, prop, old_value, new_value)

    # --- Convenience accessors ---

    @property
    def x(self) -> float:
        return self.position[0]

    @property
    def y(self) -> float:
        return self.position[1]

    def set_position(self, x: float, y: float):
        self.position = (x, y)

    @property
    def has_notes(self) -> bool:
        return bool(self.notes and self.notes.strip())

    @property
    def has_sub_flow(self) -> bool:
        return self.sub_flow is not None

    @property
    def is_bold(self) -> bool:
        return bool(self.text_font_style & FontStyle.BOLD)

    @property
    def is_italic(self) -> bool:
        return bool(self.text_font_style & FontStyle.ITALIC)

    def set_font_flags(self, bold: bool, italic: bool):
        style = FontStyle.PLAIN
        if bold:
            style |= FontStyle.BOLD
        if italic:
            style |= FontStyle.ITALIC
        self.text_font_style = int(style)

    def create_sub_flow(self) -> "FlowDiagram":
        """Return the node's sub-flow, creating an empty one on first use."""
        if self.sub_flow is None:
            self.sub_flow = FlowDiagram(name=f"{self.text} Sub-flow")
        return self.sub_flow

    def center(self) -> tuple[float, float]:
        """Get the center point of the node."""
        return (self.x + self.width / 2, self.y + self.height / 2)

    def bounds(self) -> tuple[float, float, float, float]:
        """Get the bounding box (x, y, right, bottom)."""
        return (self.x, self.y, self.x + self.width, self.y + self.height)

    def to_json_dict(self) -> dict:
        result = self.model_dump(mode="json", exclude={"sub_flow", "selected"})
        if self.sub_flow is not None:
            result["sub_flow"] = self.sub_flow.to_json_dict()
        return result

    @classmethod
    def from_json_dict(cls, data: dict) -> "FlowNode":
        fields = {k: v for k, v in data.items() if k in cls.model_fields and k not in ("sub_flow", "selected")}
        node = cls(**fields)
        if data.get("sub_flow"):
            node.sub_flow = FlowDiagram.from_json_dict(data["sub_flow"])
        return node


class FlowConnection(BaseModel):
    """
    A directed or bidirectional edge between two nodes.

    Endpoints are stored as node ids rather than node objects so that the
    markdown reader can resolve them by id and the file format stays stable
    when nodes are reordered.
    """
    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=generate_id, frozen=True)
    from_node_id: str
    to_node_id: str
    type: ConnectionType = ConnectionType.NORMAL
    direction_style: DirectionStyle = DirectionStyle.FROM_TO
    protocol: Optional[str] = None
    line_color: Optional[str] = DEFAULT_CONNECTION_COLOR
    arrow_color: Optional[str] = DEFAULT_CONNECTION_COLOR
    # UI state (not persisted)
    selected: bool = False

    @field_validator("line_color", "arrow_color")
    @classmethod
    def check_color(cls, value: Optional[str]) -> Optional[str]:
        return _validate_hex_color(value)

    def connects_node(self, node: Optional[FlowNode]) -> bool:
        """True if the node is the source or the target of this connection."""
        if node is None:
            return False
        return node.id in (self.from_node_id, self.to_node_id)

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", exclude={"selected"})


class TimelineEvent(BaseModel):
    """A labelled point on the logical timeline, position in [0, 1]."""
    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=generate_id, frozen=True)
    label: str = "Event"
    position: float = 0.5
    timestamp: Optional[datetime] = None

    @field_validator("label", mode="before")
    @classmethod
    def default_label(cls, value: Any) -> Any:
        return "Event" if value is None else value

    @field_validator("position")
    @classmethod
    def clamp_position(cls, value: float) -> float:
        return timeline.clamp01(value)

    @field_validator("timestamp")
    @classmethod
    def assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json")


class FlowDiagram(BaseModel):
    """
    The complete diagram: nodes, connections, timeline and metadata.

    Collections are private; `nodes`, `connections` and `timeline_events`
    hand out copies so callers can never mutate internal storage. All
    mutations go through the methods below, which keep the invariants
    (no self-loops, no duplicate ordered pairs, connection endpoints present
    at creation time) and notify listeners.
    """
    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=generate_id, frozen=True)
    name: str = "Main Flow"
    created_at: datetime = Field(default_factory=utcnow)
    modified_at: datetime = Field(default_factory=utcnow)

    _nodes: list[FlowNode] = PrivateAttr(default_factory=list)
    _connections: list[FlowConnection] = PrivateAttr(default_factory=list)
    _timeline_events: list[TimelineEvent] = PrivateAttr(default_factory=list)
    _selected_node: Optional[FlowNode] = PrivateAttr(default=None)
    _listeners: list[DiagramListener] = PrivateAttr(default_factory=list)

    def __setattr__(self, name: str, value: Any) -> None:
        if name != "name":
            super().__setattr__(name, value)
            return
        old_name = self.name
        super().__setattr__(name, value)
        self._touch()
        self._notify("renamed", old_name, self.name)

    def rename(self, name: str):
        self.name = name

    def __repr__(self) -> str:
        return (
            f"FlowDiagram(id={self.id!r}, name={self.name!r}, "
            f"nodes={len(self._nodes)}, connections={len(self._connections)})"
        )

    # --- Listeners ---

    def on_change(self, callback: DiagramListener):
        """Register a callback for diagram changes."""
        self._listeners.append(callback)

    def remove_listener(self, callback: DiagramListener):
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _notify(self, event: str, old_value: Any = None, new_value: Any = None):
        for callback in list(self._listeners):
            try:
                callback(self, event, old_value, new_value)
            except Exception:
                logger.exception("Diagram listener failed while handling %s", event)

    def _touch(self):
        super().__setattr__("modified_at", utcnow())

    def _on_node_changed(self, node: FlowNode, prop: str, old_value: Any, new_value: Any):
        if prop in TRACKED_NODE_PROPERTIES:
            self._touch()
            self._notify("nodeModified", node, prop)

    # --- Read access (copies) ---

    @property
    def nodes(self) -> list[FlowNode]:
        return list(self._nodes)

    @property
    def connections(self) -> list[FlowConnection]:
        return list(self._connections)

    @property
    def node_count(self) -> int:
        return len(self._nodes)

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    @property
    def is_empty(self) -> bool:
        return not self._nodes

    @property
    def selected_node(self) -> Optional[FlowNode]:
        return self._selected_node

    # --- Nodes ---

    def create_node(self, text: str = "", x: float = 0, y: float = 0) -> FlowNode:
        """Create a node at (x, y) and add it to the diagram."""
        node = FlowNode(text=text, position=(x, y))
        self.add_node(node)
        return node

    def add_node(self, node: Optional[FlowNode]) -> bool:
        """Append a node unless a node with the same id is already present."""
        if node is None or node in self._nodes:
            return False
        self._nodes.append(node)
        node.on_change(self._on_node_changed)
        self._touch()
        self._notify("nodeAdded", None, node)
        return True

    def remove_node(self, node: Optional[FlowNode]) -> bool:
        """Remove a node and every connection touching it."""
        stored = self.find_node_by_id(node.id) if node is not None else None
        if stored is None:
            return False

        self._connections = [c for c in self._connections if not c.connects_node(stored)]
        self._nodes.remove(stored)
        stored.remove_listener(self._on_node_changed)

        if self._selected_node is stored:
            self.set_selected_node(None)

        self._touch()
        self._notify("nodeRemoved", stored, None)
        return True

    def find_node_by_id(self, node_id: Optional[str]) -> Optional[FlowNode]:
        """Get a node by ID (linear scan)."""
        for node in self._nodes:
            if node.id == node_id:
                return node
        return None

    def set_selected_node(self, node: Optional[FlowNode]):
        """Move the selection; always notifies, even when unchanged."""
        previous = self._selected_node
        if previous is not None:
            previous.selected = False
        self._selected_node = node
        if node is not None:
            node.selected = True
        self._notify("selectedNode", previous, node)

    def next_node(self, current: Optional[FlowNode]) -> Optional[FlowNode]:
        """The node after `current` in diagram order, wrapping around."""
        if current is None or current not in self._nodes:
            return None
        index = self._nodes.index(current)
        return self._nodes[(index + 1) % len(self._nodes)]

    def previous_node(self, current: Optional[FlowNode]) -> Optional[FlowNode]:
        """The node before `current` in diagram order, wrapping around."""
        if current is None or current not in self._nodes:
            return None
        index = self._nodes.index(current)
        return self._nodes[(index - 1) % len(self._nodes)]

    # --- Connections ---

    def _has_pair(self, from_id: str, to_id: str) -> bool:
        return any(c.from_node_id == from_id and c.to_node_id == to_id for c in self._connections)

    def add_connection(self, from_node: Optional[FlowNode], to_node: Optional[FlowNode]) -> Optional[FlowConnection]:
        """
        Connect two nodes of this diagram.

        Returns None (and changes nothing) when either node is missing or not
        part of this diagram, when both are the same node, or when a
        connection with the same ordered pair already exists.
        """
        if from_node is None or to_node is None:
            return None
        if from_node is to_node or from_node.id == to_node.id:
            return None
        if self.find_node_by_id(from_node.id) is None or self.find_node_by_id(to_node.id) is None:
            return None
        if self._has_pair(from_node.id, to_node.id):
            return None

        connection = FlowConnection(from_node_id=from_node.id, to_node_id=to_node.id)
        self._connections.append(connection)
        self._touch()
        self._notify("connectionAdded", None, connection)
        return connection

    def remove_connection(self, connection: Optional[FlowConnection]) -> bool:
        for index, existing in enumerate(self._connections):
            if existing is connection:
                del self._connections[index]
                self._touch()
                self._notify("connectionRemoved", connection, None)
                return True
        return False

    def get_connections_for_node(self, node: Optional[FlowNode]) -> list[FlowConnection]:
        return [c for c in self._connections if c.connects_node(node)]

    def get_outgoing_connections(self, node: Optional[FlowNode]) -> list[FlowConnection]:
        if node is None:
            return []
        return [c for c in self._connections if c.from_node_id == node.id]

    def get_incoming_connections(self, node: Optional[FlowNode]) -> list[FlowConnection]:
        if node is None:
            return []
        return [c for c in self._connections if c.to_node_id == node.id]

    # --- Timeline ---

    @property
    def timeline_events(self) -> list[TimelineEvent]:
        """Events ordered by timestamp, label and position (a copy)."""
        return timeline.sort_events(self._timeline_events)

    def add_timeline_event(self, label: str, position: float, timestamp: Optional[datetime] = None) -> TimelineEvent:
        """
        Append an event at `position` (clamped to [0, 1]).

        Positions are kept as given and the list is not normalised; callers
        that want evenly spread positions call normalize_timeline_positions()
        afterwards.
        """
        event = TimelineEvent(label=label, position=timeline.clamp01(position), timestamp=timestamp)
        self._timeline_events.append(event)
        self._touch()
        self._notify("timelineEventAdded", None, event)
        return event

    def update_timeline_event(
        self,
        event: Optional[TimelineEvent],
        label: Optional[str] = None,
        position: Optional[float] = None,
        timestamp: Optional[datetime] = None,
        normalize_after: bool = False,
    ) -> bool:
        """Change only the provided fields of an event owned by this diagram."""
        if event is None or not any(e is event for e in self._timeline_events):
            return False

        snapshot = event.model_copy()
        if label is not None:
            event.label = label
        if position is not None:
            event.position = position
        if timestamp is not None:
            event.timestamp = timestamp
        if normalize_after:
            self.normalize_timeline_positions()

        self._touch()
        self._notify("timelineEventUpdated", snapshot, event)
        return True

    def remove_timeline_event(self, event: Optional[TimelineEvent]) -> bool:
        for index, existing in enumerate(self._timeline_events):
            if existing is event:
                del self._timeline_events[index]
                self._touch()
                self._notify("timelineEventRemoved", event, None)
                return True
        return False

    def set_timeline_events(self, events: Optional[list[TimelineEvent]]):
        """Replace all events and spread them evenly in chronological order."""
        self._timeline_events = list(events or [])
        self.normalize_timeline_positions()
        self._touch()
        self._notify("timelineChanged", None, self.timeline_events)

    def normalize_timeline_positions(self):
        self._timeline_events = timeline.normalize_positions(self._timeline_events)

    def insertion_timestamp(self, position: float, now: Optional[datetime] = None) -> datetime:
        """A timestamp that orders a new event dropped at `position` between its neighbours."""
        return timeline.insertion_timestamp(self._timeline_events, position, now=now)

    # --- Bulk ---

    def clear(self):
        for node in self._nodes:
            node.remove_listener(self._on_node_changed)
        self._nodes.clear()
        self._connections.clear()
        self._timeline_events.clear()
        self.set_selected_node(None)
        self._touch()
        self._notify("cleared")

    # --- JSON (project files) ---

    def to_json_dict(self) -> dict:
        """Convert to JSON-serializable dict, sub-flows included."""
        return {
            "id": self.id,
            "name": self.name,
            "created_at": self.created_at.isoformat(),
            "modified_at": self.modified_at.isoformat(),
            "nodes": [n.to_json_dict() for n in self._nodes],
            "connections": [c.to_json_dict() for c in self._connections],
            "timeline_events": [e.to_json_dict() for e in self._timeline_events],
        }

    @classmethod
    def from_json_dict(cls, data: dict) -> "FlowDiagram":
        """Create a FlowDiagram from a JSON dict (missing keys use defaults)."""
        kwargs = {"id": data.get("id") or generate_id(), "name": data.get("name", "Main Flow")}
        for key in ("created_at", "modified_at"):
            if data.get(key):
                kwargs[key] = datetime.fromisoformat(data[key])
        diagram = cls(**kwargs)

        for node_data in data.get("nodes", []):
            diagram.add_node(FlowNode.from_json_dict(node_data))

        for conn_data in data.get("connections", []):
            connection = FlowConnection(**{k: v for k, v in conn_data.items() if k != "selected"})
            if diagram._accepts(connection):
                diagram._connections.append(connection)
            else:
                logger.debug("Dropping invalid connection %s", connection.id)

        diagram._timeline_events = [TimelineEvent(**e) for e in data.get("timeline_events", [])]

        # Loading is not a modification.
        if "modified_at" in kwargs:
            super(FlowDiagram, diagram).__setattr__("modified_at", kwargs["modified_at"])
        return diagram

    def _accepts(self, connection: FlowConnection) -> bool:
        return (
            connection.from_node_id != connection.to_node_id
            and self.find_node_by_id(connection.from_node_id) is not None
            and self.find_node_by_id(connection.to_node_id) is not None
            and not self._has_pair(connection.from_node_id, connection.to_node_id)
        )


FlowNode.model_rebuild()
