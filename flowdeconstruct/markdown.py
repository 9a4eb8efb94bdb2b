"""
Markdown-flavoured text format for diagrams.

The format is line oriented and meant to be edited by hand or produced by
text-to-diagram generators:

    # <diagram name>

    [<nodeId>] <node text>
      Position: <x>, <y>
      Size: <width>, <height>
      Shape: RECTANGLE|SQUARE|CIRCLE|OVAL|DIAMOND
      FillColor: #RRGGBB
      ...
      *Notes: <notes>*

    ## Connections
    From: <id> To: <id> (<TYPE>) Direction: <STYLE> LineColor: #.. ArrowColor: #.. Protocol: <text>

Sub-flows are written right after their node, indented two spaces per level.
`Protocol:` is always the last field on a connection line and takes the rest
of the line, so protocol values may contain spaces.

The reader accepts everything the writer produces plus the usual variations
found in hand-written or generated files (list markers, other heading levels,
Portuguese headings, direction and shape synonyms). Lines it cannot make
sense of are skipped; only I/O errors reach the caller.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from .models import (
    ConnectionType,
    DirectionStyle,
    FlowDiagram,
    FlowNode,
    NodeShape,
)

logger = logging.getLogger(__name__)

INDENT = "  "
CONNECTIONS_HEADING = "## Connections"

CONNECTIONS_TITLES = {"connections", "conexoes", "conexões"}

# Textual synonyms consulted before the strict enum lookup.
SHAPE_SYNONYMS = {
    "ELLIPSE": NodeShape.OVAL,
}
DIRECTION_SYNONYMS = {
    "FORWARD": DirectionStyle.FROM_TO,
    "BACKWARD": DirectionStyle.TO_FROM,
    "REVERSE": DirectionStyle.TO_FROM,
}
TYPE_SYNONYMS: dict[str, ConnectionType] = {}

# Field name token -> how much of the line its value takes:
#   "one"  the next token only
#   "many" tokens up to the next field name
#   "rest" everything up to the end of the line, verbatim
FIELD_ARITY = {
    "Position:": "many",
    "Size:": "many",
    "Shape:": "one",
    "FillColor:": "one",
    "BorderColor:": "one",
    "TextColor:": "one",
    "TextFontFamily:": "many",
    "TextFontSize:": "one",
    "TextFontBold:": "one",
    "TextFontItalic:": "one",
    "*Notes:": "rest",
    "Notes:": "rest",
    "From:": "one",
    "To:": "one",
    "Direction:": "one",
    "LineColor:": "one",
    "ArrowColor:": "one",
    "Protocol:": "rest",
}

LIST_MARKER = re.compile(r"^(?:[-*+]|\d+[.)])\s+")
HEADING = re.compile(r"^(#{1,6})(?:\s+(.*?))?\s*$")
# Spaces and tabs separate tokens; other whitespace belongs to the value.
TOKEN = re.compile(r"[^ \t]+")


def escape_text(text: Optional[str]) -> str:
    """Escape newlines, `*` and `_` for a single-line field value."""
    if text is None:
        return ""
    return text.replace("\n", "<br>").replace("*", "\\*").replace("_", "\\_")


def unescape_text(text: Optional[str]) -> str:
    """Reverse escape_text."""
    if text is None:
        return ""
    return text.replace("<br>", "\n").replace("\\*", "*").replace("\\_", "_")


def normalize_enum(enum_cls, synonyms: dict, token: Optional[str], default):
    """Look a token up in the synonym table, then the enum; fall back to default."""
    if not token:
        return default
    key = token.strip().upper()
    if key in synonyms:
        return synonyms[key]
    try:
        return enum_cls(key)
    except ValueError:
        return default


def _format_number(value: float) -> str:
    """Whole numbers without a fraction, anything else exactly."""
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return repr(value)


# ============================================================================
# WRITER
# ============================================================================

class DiagramWriter:
    """Serialises a FlowDiagram into the markdown format."""

    def __init__(self, include_notes: bool = True, include_sub_flows: bool = True):
        self.include_notes = include_notes
        self.include_sub_flows = include_sub_flows

    def write(self, diagram: FlowDiagram) -> str:
        lines: list[str] = []
        self._append_flow(lines, diagram, 0)
        return "".join(lines)

    def export(self, diagram: FlowDiagram, file_path: str | Path) -> Path:
        """Write the diagram to a UTF-8 file. I/O errors propagate."""
        path = Path(file_path)
        # newline="" keeps "\r" inside escaped text as written.
        with open(path, "w", encoding="utf-8", newline="") as f:
            f.write(self.write(diagram))
        return path

    def _append_flow(self, out: list[str], diagram: FlowDiagram, level: int):
        indent = INDENT * level
        field_indent = indent + INDENT
        out.append(f"{indent}# {diagram.name}\n\n")

        for node in diagram.nodes:
            out.append(f"{indent}[{node.id}] {escape_text(node.text)}\n")
            for line in self._node_fields(node):
                out.append(f"{field_indent}{line}\n")
            if self.include_sub_flows and node.sub_flow is not None:
                self._append_flow(out, node.sub_flow, level + 1)

        out.append(f"\n{indent}{CONNECTIONS_HEADING}\n")
        for connection in diagram.connections:
            out.append(f"{indent}{self._connection_line(connection)}\n")
        out.append("\n")

    def _node_fields(self, node: FlowNode) -> list[str]:
        fields = [
            f"Position: {_format_number(node.x)}, {_format_number(node.y)}",
            f"Size: {node.width}, {node.height}",
            f"Shape: {node.shape.value}",
        ]
        if node.fill_color is not None:
            fields.append(f"FillColor: {node.fill_color}")
        if node.border_color is not None:
            fields.append(f"BorderColor: {node.border_color}")
        if node.text_color is not None:
            fields.append(f"TextColor: {node.text_color}")
        if node.text_font_family and node.text_font_family.strip():
            fields.append(f"TextFontFamily: {node.text_font_family}")
        if node.text_font_size > 0:
            fields.append(f"TextFontSize: {node.text_font_size}")
        fields.append(f"TextFontBold: {str(node.is_bold).lower()}")
        fields.append(f"TextFontItalic: {str(node.is_italic).lower()}")
        if self.include_notes and node.notes:
            fields.append(f"*Notes: {escape_text(node.notes)}*")
        return fields

    @staticmethod
    def _connection_line(connection) -> str:
        parts = [
            f"From: {connection.from_node_id}",
            f"To: {connection.to_node_id}",
            f"({connection.type.value})",
            f"Direction: {connection.direction_style.value}",
        ]
        if connection.line_color is not None:
            parts.append(f"LineColor: {connection.line_color}")
        if connection.arrow_color is not None:
            parts.append(f"ArrowColor: {connection.arrow_color}")
        # Protocol must stay last: the reader takes the rest of the line.
        protocol = (connection.protocol or "").strip()
        if protocol:
            parts.append(f"Protocol: {escape_text(protocol)}")
        return " ".join(parts)


# ============================================================================
# READER
# ============================================================================

@dataclass
class _Scope:
    """One diagram being filled in, plus the reader state that belongs to it."""
    indent: int
    diagram: FlowDiagram
    current_node: Optional[FlowNode] = None
    in_connections: bool = False


@dataclass
class _ScannedLine:
    fields: dict[str, str]
    extras: list[str]


def scan_fields(line: str) -> _ScannedLine:
    """
    Split a line into recognised `Name:` fields and stray tokens.

    Tokens are whitespace separated. A field's value is one token, all tokens
    up to the next field name, or the rest of the line depending on
    FIELD_ARITY. Tokens outside any field (like "(NORMAL)") go to extras.
    """
    fields: dict[str, str] = {}
    extras: list[str] = []
    tokens = list(TOKEN.finditer(line))
    i = 0
    while i < len(tokens):
        name = tokens[i].group()
        arity = FIELD_ARITY.get(name)
        if arity is None:
            extras.append(name)
            i += 1
            continue

        if arity == "rest":
            fields[name] = line[tokens[i].end():].strip(" \t")
            break

        if arity == "one":
            if i + 1 < len(tokens) and tokens[i + 1].group() not in FIELD_ARITY:
                fields[name] = tokens[i + 1].group()
                i += 2
            else:
                i += 1
            continue

        j = i + 1
        while j < len(tokens) and tokens[j].group() not in FIELD_ARITY:
            j += 1
        fields[name] = " ".join(t.group() for t in tokens[i + 1:j])
        i = j

    return _ScannedLine(fields=fields, extras=extras)


def _parse_pair(value: str) -> Optional[tuple[float, float]]:
    parts = [p.strip() for p in value.split(",")]
    if len(parts) < 2:
        return None
    try:
        return (float(parts[0]), float(parts[1]))
    except ValueError:
        return None


def _parse_bool(value: str) -> Optional[bool]:
    lowered = value.strip().lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    return None


class DiagramReader:
    """Parses the markdown format into a FlowDiagram."""

    def read(self, text: str) -> FlowDiagram:
        root = FlowDiagram()
        stack: list[_Scope] = []

        # Only "\n" ends a line; "\r" and unicode separators may sit inside escaped text.
        for raw in text.split("\n"):
            if raw.endswith("\r"):
                raw = raw[:-1]
            if not raw.strip(" \t"):
                continue

            expanded = raw.expandtabs(4)
            indent = len(expanded) - len(expanded.lstrip(" "))
            line = LIST_MARKER.sub("", expanded.strip(" \t"), count=1).strip(" \t")
            if not line:
                continue

            heading = HEADING.match(line)
            if heading:
                self._handle_heading(stack, root, indent, len(heading.group(1)), heading.group(2) or "")
                continue

            scope = self._scope_for(stack, root, indent)
            if line.startswith("["):
                # A node line always ends a connections section.
                scope.in_connections = False
                self._parse_node(scope, line)
            elif scope.in_connections:
                self._parse_connection(scope.diagram, line)
            elif scope.current_node is not None:
                self._parse_node_fields(scope.current_node, line)
            else:
                logger.debug("Skipping line outside any node: %s", line)

        return root

    def import_file(self, file_path: str | Path) -> FlowDiagram:
        """Read a UTF-8 markdown file. I/O and decoding errors propagate."""
        path = Path(file_path)
        logger.info("Importing diagram from %s", path)
        with open(path, encoding="utf-8", newline="") as f:
            return self.read(f.read())

    # --- Scopes ---

    @staticmethod
    def _is_connections_heading(title: str) -> bool:
        return title.rstrip(":").strip().casefold() in CONNECTIONS_TITLES

    @staticmethod
    def _scope_for(stack: list[_Scope], root: FlowDiagram, indent: int) -> _Scope:
        """Scope a line at `indent` belongs to, popping finished sub-flows."""
        if not stack:
            stack.append(_Scope(indent=indent, diagram=root))
        while len(stack) > 1 and indent < stack[-1].indent:
            stack.pop()
        return stack[-1]

    @staticmethod
    def _opens_sub_flow(stack: list[_Scope], indent: int) -> bool:
        if not stack:
            return False
        top = stack[-1]
        return indent > top.indent and top.current_node is not None and not top.in_connections

    def _handle_heading(self, stack: list[_Scope], root: FlowDiagram, indent: int, level: int, title: str):
        if self._is_connections_heading(title):
            if level > 1:
                self._enter_connections(stack, root, indent)
                return
            # "# Connections" names a diagram unless that diagram already has nodes.
            if not self._opens_sub_flow(stack, indent) and self._scope_for(stack, root, indent).diagram.node_count > 0:
                self._enter_connections(stack, root, indent)
                return
        if level == 1:
            self._enter_heading(stack, root, indent, title)
        else:
            logger.debug("Ignoring level-%d heading: %s", level, title)

    @staticmethod
    def _enter_connections(stack: list[_Scope], root: FlowDiagram, indent: int):
        """
        Start the connections section of every open scope at or below `indent`.

        A heading at column 0 inside a sub-flow (as older writers produced it)
        keeps the sub-flow open, so its indented connection lines still reach
        it while column-0 lines go to the root.
        """
        if not stack:
            stack.append(_Scope(indent=indent, diagram=root))
        for scope in stack:
            if scope.indent >= indent:
                scope.in_connections = True

    def _enter_heading(self, stack: list[_Scope], root: FlowDiagram, indent: int, title: str):
        if self._opens_sub_flow(stack, indent):
            sub_flow = stack[-1].current_node.create_sub_flow()
            sub_flow.name = title
            stack.append(_Scope(indent=indent, diagram=sub_flow))
            return

        scope = self._scope_for(stack, root, indent)
        scope.diagram.name = title
        scope.in_connections = False

    # --- Nodes ---

    @staticmethod
    def _parse_node(scope: _Scope, line: str):
        end = line.find("]")
        if end == -1:
            logger.debug("Skipping node line without closing bracket: %s", line)
            return
        node_id = line[1:end].strip()
        if not node_id or "[" in node_id or "]" in node_id:
            logger.debug("Skipping node line with malformed id: %s", line)
            return

        node = FlowNode(id=node_id, text=unescape_text(line[end + 1:].strip(" \t")))
        if not scope.diagram.add_node(node):
            logger.debug("Skipping duplicate node id %s", node_id)
            return
        scope.current_node = node

    def _parse_node_fields(self, node: FlowNode, line: str):
        scanned = scan_fields(line)
        for name, value in scanned.fields.items():
            try:
                self._apply_node_field(node, name, value)
            except (ValidationError, ValueError):
                logger.debug("Ignoring malformed %s value %r on node %s", name, value, node.id)

    @staticmethod
    def _apply_node_field(node: FlowNode, name: str, value: str):
        if name == "Position:":
            pair = _parse_pair(value)
            if pair is not None:
                node.set_position(*pair)
        elif name == "Size:":
            pair = _parse_pair(value)
            if pair is not None:
                node.width = int(pair[0])
                node.height = int(pair[1])
        elif name == "Shape:":
            node.shape = normalize_enum(NodeShape, SHAPE_SYNONYMS, value, node.shape)
        elif name == "FillColor:":
            node.fill_color = value
        elif name == "BorderColor:":
            node.border_color = value
        elif name == "TextColor:":
            node.text_color = value
        elif name == "TextFontFamily:":
            if value.strip():
                node.text_font_family = value.strip()
        elif name == "TextFontSize:":
            size = int(value)
            if size > 0:
                node.text_font_size = size
        elif name == "TextFontBold:":
            flag = _parse_bool(value)
            if flag is not None:
                node.set_font_flags(bold=flag, italic=node.is_italic)
        elif name == "TextFontItalic:":
            flag = _parse_bool(value)
            if flag is not None:
                node.set_font_flags(bold=node.is_bold, italic=flag)
        elif name == "*Notes:":
            notes = value[:-1] if value.endswith("*") else value
            node.notes = unescape_text(notes.strip(" \t"))
        elif name == "Notes:":
            node.notes = unescape_text(value.strip(" \t"))

    # --- Connections ---

    @staticmethod
    def _parse_connection(diagram: FlowDiagram, line: str):
        scanned = scan_fields(line)
        fields = scanned.fields
        if "From:" not in fields or "To:" not in fields:
            logger.debug("Skipping connection line without From:/To: %s", line)
            return

        source = diagram.find_node_by_id(fields["From:"])
        target = diagram.find_node_by_id(fields["To:"])
        connection = diagram.add_connection(source, target)
        if connection is None:
            logger.debug("Dropping connection %s -> %s", fields["From:"], fields["To:"])
            return

        type_token = next(
            (t[1:-1] for t in scanned.extras if t.startswith("(") and t.endswith(")")),
            None,
        )
        connection.type = normalize_enum(ConnectionType, TYPE_SYNONYMS, type_token, ConnectionType.NORMAL)
        connection.direction_style = normalize_enum(
            DirectionStyle, DIRECTION_SYNONYMS, fields.get("Direction:"), DirectionStyle.FROM_TO
        )

        for name, attr in (("LineColor:", "line_color"), ("ArrowColor:", "arrow_color")):
            if name in fields:
                try:
                    setattr(connection, attr, fields[name])
                except ValidationError:
                    logger.debug("Ignoring malformed %s %r", name, fields[name])

        if fields.get("Protocol:"):
            connection.protocol = unescape_text(fields["Protocol:"])


# ============================================================================
# MODULE API
# ============================================================================

def serialize(diagram: FlowDiagram, include_notes: bool = True, include_sub_flows: bool = True) -> str:
    """Diagram to markdown text."""
    return DiagramWriter(include_notes, include_sub_flows).write(diagram)


def deserialize(text: str) -> FlowDiagram:
    """Markdown text to diagram."""
    return DiagramReader().read(text)


def export_file(
    diagram: FlowDiagram,
    file_path: str | Path,
    include_notes: bool = True,
    include_sub_flows: bool = True
) -> Path:
    return DiagramWriter(include_notes, include_sub_flows).export(diagram, file_path)


def import_file(file_path: str | Path) -> FlowDiagram:
    return DiagramReader().import_file(file_path)
