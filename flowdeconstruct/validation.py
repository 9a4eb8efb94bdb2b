"""
Diagram validation - Check diagrams for structural issues.

The model refuses to create invalid connections, but diagrams loaded from
project files or edited by other tools can still be inspected here. Used by
the CLI `validate` command and by tests that assert the model invariants.
"""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import FlowDiagram


class IssueSeverity(str, Enum):
    """Severity levels for validation issues."""
    ERROR = "error"      # Broken invariant
    WARNING = "warning"  # Potential problem, should review
    INFO = "info"        # Informational, may be intentional


@dataclass
class ValidationIssue:
    """A single validation issue found in a diagram."""
    severity: IssueSeverity
    message: str
    diagram_name: str
    node_id: str | None = None
    connection_id: str | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        result = {
            "type": self.severity.value,
            "message": self.message,
            "diagram": self.diagram_name,
        }
        if self.node_id:
            result["node_id"] = self.node_id
        if self.connection_id:
            result["connection_id"] = self.connection_id
        return result


def validate_diagram(diagram: "FlowDiagram", recursive: bool = True) -> list[ValidationIssue]:
    """
    Validate a diagram and return a list of issues.

    Checks for:
    - Self-referencing connections - ERROR
    - Duplicate connections (same from -> to) - ERROR
    - Connections to nodes that are not in the diagram - ERROR
    - Timeline positions outside [0, 1] - ERROR
    - Orphan nodes (no connections) - WARNING
    - Blank node text - WARNING
    - Empty diagram - INFO

    Args:
        diagram: The diagram to validate
        recursive: Also validate every sub-flow

    Returns:
        List of ValidationIssue objects
    """
    issues: list[ValidationIssue] = []
    name = diagram.name
    nodes = diagram.nodes
    connections = diagram.connections

    node_ids = {n.id for n in nodes}

    if not nodes:
        issues.append(ValidationIssue(IssueSeverity.INFO, "Diagram has no nodes", name))

    for connection in connections:
        if connection.from_node_id == connection.to_node_id:
            issues.append(ValidationIssue(
                IssueSeverity.ERROR,
                "Self-referencing connection (node points to itself)",
                name,
                node_id=connection.from_node_id,
                connection_id=connection.id,
            ))
        for endpoint in (connection.from_node_id, connection.to_node_id):
            if endpoint not in node_ids:
                issues.append(ValidationIssue(
                    IssueSeverity.ERROR,
                    f"Connection references non-existent node: {endpoint}",
                    name,
                    connection_id=connection.id,
                ))

    seen_pairs: set[tuple[str, str]] = set()
    for connection in connections:
        pair = (connection.from_node_id, connection.to_node_id)
        if pair in seen_pairs:
            issues.append(ValidationIssue(
                IssueSeverity.ERROR,
                f"Duplicate connection from {pair[0]} to {pair[1]}",
                name,
                connection_id=connection.id,
            ))
        else:
            seen_pairs.add(pair)

    for event in diagram.timeline_events:
        if not 0.0 <= event.position <= 1.0:
            issues.append(ValidationIssue(
                IssueSeverity.ERROR,
                f"Timeline event '{event.label}' has position {event.position} outside [0, 1]",
                name,
            ))

    connected: set[str] = set()
    for connection in connections:
        connected.add(connection.from_node_id)
        connected.add(connection.to_node_id)

    if len(nodes) > 1:
        orphans = [f"{n.text or '(blank)'} ({n.id})" for n in nodes if n.id not in connected]
        if orphans:
            issues.append(ValidationIssue(
                IssueSeverity.WARNING,
                f"Orphan nodes (no connections): {', '.join(orphans)}",
                name,
            ))

    for node in nodes:
        if not node.text.strip():
            issues.append(ValidationIssue(
                IssueSeverity.WARNING,
                "Node has empty text",
                name,
                node_id=node.id,
            ))

    if recursive:
        for node in nodes:
            if node.sub_flow is not None:
                issues.extend(validate_diagram(node.sub_flow, recursive=True))

    return issues


def validation_summary(issues: list[ValidationIssue]) -> dict:
    """
    Create a summary of validation issues.

    Args:
        issues: List of validation issues

    Returns:
        Dictionary with counts by severity
    """
    errors = len([i for i in issues if i.severity == IssueSeverity.ERROR])
    return {
        "total": len(issues),
        "errors": errors,
        "warnings": len([i for i in issues if i.severity == IssueSeverity.WARNING]),
        "info": len([i for i in issues if i.severity == IssueSeverity.INFO]),
        "valid": errors == 0
    }
