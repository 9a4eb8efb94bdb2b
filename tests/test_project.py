"""Tests for project persistence and the project manager."""

import json
import os

import pytest

from flowdeconstruct import FlowDiagram, ProjectManager
from flowdeconstruct.project import read_project_file, sanitize_file_name, write_project_file


@pytest.fixture
def manager(home):
    """Project manager rooted in a temporary directory."""
    return ProjectManager(home=home, autosave_seconds=5)


@pytest.fixture
def events(manager):
    """Records project manager events."""
    seen = []
    manager.on_change(lambda event, old, new: seen.append(event))
    return seen


class TestProjectFiles:
    """Tests for reading and writing project files."""

    def test_json_round_trip(self, linear_diagram, tmp_path):
        """.flowproj files are JSON and load back."""
        path = write_project_file(linear_diagram, tmp_path / "flow.flowproj")
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["name"] == "Linear"
        loaded = read_project_file(path)
        assert loaded.connection_count == 2

    def test_markdown_by_suffix(self, linear_diagram, tmp_path):
        """.md paths are written and read as markdown."""
        path = write_project_file(linear_diagram, tmp_path / "flow.md")
        assert path.read_text(encoding="utf-8").startswith("# Linear")
        assert read_project_file(path).node_count == 3

    def test_no_temp_file_left(self, linear_diagram, tmp_path):
        """The temporary file is renamed over the target."""
        write_project_file(linear_diagram, tmp_path / "flow.flowproj")
        assert os.listdir(tmp_path) == ["flow.flowproj"]

    def test_missing_file(self, tmp_path):
        """Missing files raise FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            read_project_file(tmp_path / "nope.flowproj")

    def test_sanitize_file_name(self):
        """Unsafe characters become underscores."""
        assert sanitize_file_name("My Flow/v1.2") == "My_Flow_v1.2"


class TestProjectLifecycle:
    """Tests for creating, saving and loading projects."""

    def test_new_project(self, manager, events):
        """A new project is current, clean and announced."""
        project = manager.new_project("Plan")
        assert manager.current_project is project
        assert not manager.is_dirty
        assert events == ["currentProjectChanged", "projectCreated"]

    def test_changes_mark_dirty(self, manager, events):
        """Diagram edits set the dirty flag and are forwarded."""
        project = manager.new_project()
        node = project.create_node("Alpha")
        node.text = "Beta"
        assert manager.is_dirty
        assert events[-2:] == ["projectModified", "nodeModified"]

    def test_save_uses_projects_directory(self, manager, events):
        """Unsaved projects go to projects/<sanitized name>.flowproj."""
        project = manager.new_project("My Plan")
        project.create_node("Alpha")
        path = manager.save()
        assert path == manager.projects_path / "My_Plan.flowproj"
        assert path.exists()
        assert not manager.is_dirty
        assert events[-1] == "projectSaved"

    def test_save_without_project(self, manager):
        """Saving with nothing open is an error."""
        with pytest.raises(ValueError):
            manager.save()

    def test_save_as_and_reopen_last(self, home, manager, tmp_path):
        """save_as records the path; a new manager reopens it."""
        project = manager.new_project("Plan")
        project.create_node("Alpha")
        target = tmp_path / "elsewhere" / "plan.flowproj"
        manager.save_as(target)
        assert manager.last_project_path == target

        other = ProjectManager(home=home)
        assert other.open_last_project()
        assert other.current_project.name == "Plan"
        assert other.file_path == target

    def test_open_last_project_falls_back(self, manager):
        """Without a state file a new project is created."""
        assert not manager.open_last_project()
        assert manager.current_project is not None

    def test_open_last_project_missing_file(self, manager, tmp_path):
        """A vanished last project falls back to a new project."""
        manager.new_project("Gone")
        manager.save_as(tmp_path / "gone.flowproj")
        (tmp_path / "gone.flowproj").unlink()
        assert not manager.open_last_project()
        assert manager.current_project.name == "Untitled Project"

    def test_open_missing_file(self, manager, tmp_path):
        """Opening a missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            manager.open_project(tmp_path / "missing.flowproj")

    def test_switching_projects_detaches_listener(self, manager):
        """Edits to the previous project no longer mark the manager dirty."""
        old = manager.new_project("Old")
        manager.new_project("New")
        old.create_node("Ghost")
        assert not manager.is_dirty

    def test_get_state(self, manager):
        """State summarises the current project."""
        project = manager.new_project("Plan")
        project.create_node("Alpha")
        state = manager.get_state()
        assert state["name"] == "Plan"
        assert state["node_count"] == 1
        assert state["is_dirty"]
        assert state["file_path"] is None


class TestMarkdown:
    """Tests for markdown export and import through the manager."""

    def test_save_and_load_markdown(self, manager, tmp_path, events):
        """Markdown exports leave the dirty flag alone and import as a new project."""
        project = manager.new_project("Doc")
        a = project.create_node("Alpha")
        b = project.create_node("Beta")
        project.add_connection(a, b)

        path = manager.save_markdown(tmp_path / "doc.md")
        assert manager.is_dirty

        loaded = manager.load_markdown(path)
        assert loaded.name == "Doc"
        assert loaded.connection_count == 1
        assert manager.file_path is None
        assert events[-1] == "projectLoaded"

    def test_save_markdown_without_project(self, manager, tmp_path):
        """Nothing is written when no project is open."""
        assert manager.save_markdown(tmp_path / "doc.md") is None

    def test_load_missing_markdown(self, manager, tmp_path):
        """Missing markdown files raise FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            manager.load_markdown(tmp_path / "missing.md")


class TestRecentAndAutosave:
    """Tests for the recent list and auto-save polling."""

    def test_recent_projects_newest_first(self, manager):
        """Recent projects are ordered by modification time and capped."""
        for i in range(12):
            path = manager.projects_path / f"p{i}.flowproj"
            write_project_file(FlowDiagram(name=f"p{i}"), path)
            os.utime(path, (1_000_000 + i, 1_000_000 + i))

        recent = manager.recent_projects()
        assert len(recent) == 10
        assert recent[0].name == "p11"
        assert recent[-1].name == "p2"

    def test_autosave_due_after_interval(self, manager):
        """Auto-save triggers only for dirty projects past the interval."""
        project = manager.new_project("Auto")
        assert not manager.autosave_due()

        project.create_node("Alpha")
        start = manager._last_saved
        assert not manager.autosave_due(now=start + 1)
        assert manager.autosave_due(now=start + 5)

        path = manager.autosave(now=start + 5)
        assert path is not None and path.exists()
        assert not manager.is_dirty
        assert manager.autosave(now=start + 100) is None

    def test_shutdown_saves_pending_changes(self, manager):
        """shutdown writes unsaved work."""
        manager.new_project("Exit").create_node("Alpha")
        assert manager.shutdown() is not None
        assert manager.shutdown() is None
