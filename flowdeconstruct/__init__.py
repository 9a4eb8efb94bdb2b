"""
FlowDeconstruct - Flow diagram model, markdown format, timeline and geometry.

This package provides the diagram core shared by editors and tools: the
entity model with change notification, the markdown-flavoured text format,
timeline ordering, canvas geometry and project persistence.
"""

__version__ = "1.0.0"

from .models import (
    # Enums
    NodeShape,
    ConnectionType,
    DirectionStyle,
    FontStyle,
    # Core models
    FlowNode,
    FlowConnection,
    TimelineEvent,
    FlowDiagram,
)

from .markdown import DiagramReader, DiagramWriter, serialize, deserialize, export_file, import_file
from .validation import validate_diagram, validation_summary, ValidationIssue, IssueSeverity
from .project import ProjectManager, ProjectInfo
from .prompt import build_prompt

__all__ = [
    "__version__",
    # Enums
    "NodeShape",
    "ConnectionType",
    "DirectionStyle",
    "FontStyle",
    # Models
    "FlowNode",
    "FlowConnection",
    "TimelineEvent",
    "FlowDiagram",
    # Markdown
    "DiagramReader",
    "DiagramWriter",
    "serialize",
    "deserialize",
    "export_file",
    "import_file",
    # Validation
    "validate_diagram",
    "validation_summary",
    "ValidationIssue",
    "IssueSeverity",
    # Persistence
    "ProjectManager",
    "ProjectInfo",
    # Prompt
    "build_prompt",
]
