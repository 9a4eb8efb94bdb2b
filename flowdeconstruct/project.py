"""
Project Manager - Current project state, persistence and auto-save.

This module implements:
- Single project state management (one diagram open at a time)
- Dirty tracking through the diagram's change listener
- Atomic JSON (.flowproj) and markdown persistence
- "Last opened project" bookkeeping and the recent projects list
- Auto-save polling for a caller-owned scheduler
"""

import json
import logging
import os
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional

from . import config, markdown
from .models import FlowDiagram

logger = logging.getLogger(__name__)

ProjectListener = Callable[[str, Any, Any], None]

DEFAULT_PROJECT_NAME = "Untitled Project"
PROJECTS_DIR = "projects"


@dataclass
class ProjectInfo:
    """Entry of the recent projects list."""
    path: Path
    name: str
    last_modified: datetime

    def to_dict(self) -> dict:
        return {
            "path": str(self.path),
            "name": self.name,
            "last_modified": self.last_modified.isoformat(),
        }


def sanitize_file_name(name: str) -> str:
    """Replace everything but ASCII letters, digits, dots and dashes with underscores."""
    return re.sub(r"[^a-zA-Z0-9.-]", "_", name)


def atomic_write_text(path: Path, text: str):
    """Write UTF-8 text to a sibling temp file, then rename it over `path`."""
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_name(path.name + ".tmp")
    with open(temp_path, "w", encoding="utf-8", newline="") as f:
        f.write(text)
    os.replace(temp_path, path)


def is_markdown_path(path: Path) -> bool:
    return path.suffix.lower() == config.MARKDOWN_SUFFIX


def read_project_file(file_path: str | Path) -> FlowDiagram:
    """
    Load a diagram from a project file.

    `.md` files go through the markdown reader; anything else is parsed as
    a JSON project file.
    """
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"Project file not found: {path}")

    if is_markdown_path(path):
        return markdown.import_file(path)

    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return FlowDiagram.from_json_dict(data)


def write_project_file(
    diagram: FlowDiagram,
    file_path: str | Path,
    include_notes: bool = True,
    include_sub_flows: bool = True
) -> Path:
    """Atomically write a diagram as JSON, or as markdown for `.md` paths."""
    path = Path(file_path)
    if is_markdown_path(path):
        text = markdown.serialize(diagram, include_notes, include_sub_flows)
    else:
        text = json.dumps(diagram.to_json_dict(), indent=2, ensure_ascii=False)
    atomic_write_text(path, text)
    return path


class ProjectManager:
    """
    Manages the current project's state, persistence and auto-save.

    Features:
    - Dirty flag set by any diagram change, cleared by a successful save
    - Project lifecycle callbacks for UI sync
    - `state.json` in the app data directory remembers the last project
    - `autosave()` is meant to be polled by the caller's own timer

    Callbacks registered with `on_change` receive (event, old_value, new_value):
    - projectCreated / projectLoaded / projectSaved: (None, diagram)
    - projectModified: (None, diagram)
    - nodeModified: (node, diagram)
    - currentProjectChanged: (previous_diagram, diagram)
    """

    def __init__(self, home: Optional[str | Path] = None, autosave_seconds: Optional[float] = None):
        self._home = Path(home) if home is not None else config.HOME
        self._projects_path = self._home / PROJECTS_DIR
        self._projects_path.mkdir(parents=True, exist_ok=True)
        self._autosave_seconds = config.AUTOSAVE_SECONDS if autosave_seconds is None else autosave_seconds

        self._project: Optional[FlowDiagram] = None
        self._file_path: Optional[Path] = None
        self._dirty = False
        self._last_saved = time.monotonic()
        self._on_change_callbacks: list[ProjectListener] = []

    # --- Properties ---

    @property
    def home(self) -> Path:
        return self._home

    @property
    def projects_path(self) -> Path:
        return self._projects_path

    @property
    def state_path(self) -> Path:
        return self._home / config.STATE_FILE_NAME

    @property
    def current_project(self) -> Optional[FlowDiagram]:
        return self._project

    @property
    def file_path(self) -> Optional[Path]:
        """Path the current project is saved to, None until first save."""
        return self._file_path

    @property
    def is_dirty(self) -> bool:
        """Check if there are unsaved changes."""
        return self._dirty

    def mark_modified(self):
        self._dirty = True

    # --- Change Callbacks ---

    def on_change(self, callback: ProjectListener):
        """Register a callback for project lifecycle changes."""
        self._on_change_callbacks.append(callback)

    def remove_listener(self, callback: ProjectListener):
        if callback in self._on_change_callbacks:
            self._on_change_callbacks.remove(callback)

    def _notify(self, event: str, old_value: Any, new_value: Any):
        for callback in list(self._on_change_callbacks):
            callback(event, old_value, new_value)

    def _on_diagram_changed(self, diagram: FlowDiagram, event: str, old_value: Any, new_value: Any):
        self._dirty = True
        if event == "nodeModified":
            self._notify("nodeModified", old_value, diagram)
        else:
            self._notify("projectModified", None, diagram)

    def _set_current(self, project: FlowDiagram, file_path: Optional[Path]):
        previous = self._project
        if previous is not None:
            previous.remove_listener(self._on_diagram_changed)

        self._project = project
        self._file_path = file_path
        self._dirty = False
        self._last_saved = time.monotonic()
        project.on_change(self._on_diagram_changed)
        self._notify("currentProjectChanged", previous, project)

    # --- State file ---

    def _read_state(self) -> dict:
        if not self.state_path.exists():
            return {}
        with open(self.state_path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _remember(self, path: Path):
        state = self._read_state()
        state["last_project"] = str(path)
        atomic_write_text(self.state_path, json.dumps(state, indent=2))

    @property
    def last_project_path(self) -> Optional[Path]:
        value = self._read_state().get("last_project")
        return Path(value) if value else None

    # --- Project lifecycle ---

    def new_project(self, name: str = DEFAULT_PROJECT_NAME) -> FlowDiagram:
        """Create a new empty project and make it current."""
        project = FlowDiagram(name=name)
        self._set_current(project, None)
        self._notify("projectCreated", None, project)
        return project

    def open_project(self, file_path: str | Path) -> FlowDiagram:
        """Open a project file (JSON, or markdown for `.md`) and make it current."""
        path = Path(file_path)
        project = read_project_file(path)
        self._set_current(project, path)
        self._remember(path)
        logger.info("Loaded project %s from %s", project.name, path)
        self._notify("projectLoaded", None, project)
        return project

    def open_last_project(self) -> bool:
        """
        Reopen the last project recorded in the state file.

        Falls back to a new project and returns False when there is no last
        project or its file has gone.
        """
        path = self.last_project_path
        if path is not None:
            if path.exists():
                self.open_project(path)
                return True
            logger.warning("Last project %s no longer exists", path)
        self.new_project()
        return False

    def save(self) -> Path:
        """
        Save the current project.

        Projects that were never saved get a file in the projects directory
        named after the sanitized project name.
        """
        if self._project is None:
            raise ValueError("No project to save")

        if self._file_path is None:
            file_name = sanitize_file_name(self._project.name) + config.PROJECT_SUFFIX
            self._file_path = self._projects_path / file_name
        return self._save_to(self._file_path)

    def save_as(self, file_path: str | Path) -> Path:
        """Save the current project to a new path and remember it."""
        if self._project is None:
            raise ValueError("No project to save")

        path = self._save_to(Path(file_path))
        self._file_path = path
        self._remember(path)
        return path

    def _save_to(self, path: Path) -> Path:
        write_project_file(self._project, path)
        self._dirty = False
        self._last_saved = time.monotonic()
        logger.info("Saved project %s to %s", self._project.name, path)
        self._notify("projectSaved", None, self._project)
        return path

    # --- Markdown ---

    def save_markdown(
        self,
        file_path: str | Path,
        include_notes: bool = True,
        include_sub_flows: bool = True
    ) -> Optional[Path]:
        """Export the current project as markdown. Does not change the dirty flag."""
        if self._project is None:
            return None
        path = Path(file_path)
        atomic_write_text(path, markdown.serialize(self._project, include_notes, include_sub_flows))
        logger.info("Exported markdown to %s", path)
        return path

    def load_markdown(self, file_path: str | Path) -> FlowDiagram:
        """
        Import a markdown file and make it the current project.

        The imported project has no file path, so the next save writes a
        project file instead of overwriting the markdown source.
        """
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"Markdown file not found: {path}")
        project = markdown.import_file(path)
        self._set_current(project, None)
        logger.info("Loaded markdown %s from %s", project.name, path)
        self._notify("projectLoaded", None, project)
        return project

    # --- Recent projects ---

    def recent_projects(self, limit: int = config.MAX_RECENT_PROJECTS) -> list[ProjectInfo]:
        """Most recently modified project files in the projects directory, newest first."""
        entries = []
        for path in self._projects_path.rglob("*" + config.PROJECT_SUFFIX):
            modified = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
            entries.append(ProjectInfo(path=path, name=path.stem, last_modified=modified))
        entries.sort(key=lambda info: info.last_modified, reverse=True)
        return entries[:limit]

    # --- Auto-save ---

    def autosave_due(self, now: Optional[float] = None) -> bool:
        """True when there are unsaved changes older than the auto-save interval."""
        if self._project is None or not self._dirty:
            return False
        now = time.monotonic() if now is None else now
        return now - self._last_saved >= self._autosave_seconds

    def autosave(self, now: Optional[float] = None) -> Optional[Path]:
        """Save if an auto-save is due; returns the saved path or None."""
        if not self.autosave_due(now):
            return None
        return self.save()

    def shutdown(self) -> Optional[Path]:
        """Final save of pending changes."""
        if self._project is not None and self._dirty:
            return self.save()
        return None

    def get_state(self) -> dict:
        """Get current project state as a JSON-serializable dict."""
        return {
            "name": self._project.name if self._project else None,
            "file_path": str(self._file_path) if self._file_path else None,
            "is_dirty": self._dirty,
            "node_count": self._project.node_count if self._project else 0,
            "connection_count": self._project.connection_count if self._project else 0,
        }
