"""Tests for the flowdeconstruct command line."""

import io
import json

import pytest

from flowdeconstruct import serialize
from flowdeconstruct.cli import main
from flowdeconstruct.project import read_project_file, write_project_file


def run(capsys, *argv):
    code = main(list(argv))
    out = capsys.readouterr().out
    return code, out


@pytest.fixture
def project_file(linear_diagram, tmp_path):
    return write_project_file(linear_diagram, tmp_path / "linear.flowproj")


class TestShowAndValidate:
    """Tests for the inspection commands."""

    def test_show(self, capsys, project_file):
        """show prints a JSON summary."""
        code, out = run(capsys, "show", str(project_file))
        data = json.loads(out)
        assert code == 0
        assert data["summary"]["name"] == "Linear"
        assert data["summary"]["node_count"] == 3
        assert "diagram" not in data

    def test_show_full(self, capsys, project_file):
        """--full includes the whole diagram."""
        _, out = run(capsys, "show", "--full", str(project_file))
        assert len(json.loads(out)["diagram"]["connections"]) == 2

    def test_validate_clean(self, capsys, project_file):
        """A clean diagram validates with exit code 0."""
        code, out = run(capsys, "validate", str(project_file))
        assert code == 0
        assert json.loads(out)["summary"]["valid"]

    def test_validate_reports_issues(self, capsys, tmp_path):
        """Warnings are listed; only errors make the result invalid."""
        path = tmp_path / "orphans.md"
        path.write_text("# F\n[A] a\n[B] b\n", encoding="utf-8")
        code, out = run(capsys, "validate", str(path))
        data = json.loads(out)
        assert code == 0
        assert data["summary"]["warnings"] == 1

    def test_missing_file(self, capsys, tmp_path):
        """Missing files produce an error result and exit code 1."""
        code, out = run(capsys, "show", str(tmp_path / "missing.flowproj"))
        assert code == 1
        assert json.loads(out)["status"] == "error"

    def test_invalid_json(self, capsys, tmp_path):
        """Corrupt project files are reported, not raised."""
        path = tmp_path / "broken.flowproj"
        path.write_text("{not json", encoding="utf-8")
        code, out = run(capsys, "show", str(path))
        assert code == 1
        assert "Invalid project file" in json.loads(out)["error"]

    @pytest.mark.parametrize("content", ["[1, 2, 3]", '"just a string"', '{"nodes": 5}'])
    def test_json_not_a_project(self, capsys, tmp_path, content):
        """Valid JSON with the wrong shape is an error result, not a traceback."""
        path = tmp_path / "odd.flowproj"
        path.write_text(content, encoding="utf-8")
        code, out = run(capsys, "show", str(path))
        data = json.loads(out)
        assert code == 1
        assert data["status"] == "error"
        assert "Invalid project data" in data["error"]


class TestConvert:
    """Tests for format conversion."""

    def test_project_to_markdown(self, capsys, project_file, linear_diagram, tmp_path):
        """A .flowproj converts to the same markdown the writer produces."""
        target = tmp_path / "linear.md"
        code, out = run(capsys, "convert", str(project_file), str(target))
        assert code == 0
        assert json.loads(out)["status"] == "converted"
        assert target.read_text(encoding="utf-8") == serialize(read_project_file(project_file))

    def test_markdown_to_project(self, capsys, tmp_path):
        """A .md converts to a JSON project file."""
        source = tmp_path / "flow.md"
        source.write_text("# F\n[A] a\n[B] b\n## Connections\nFrom: A To: B\n", encoding="utf-8")
        target = tmp_path / "flow.flowproj"
        run(capsys, "convert", str(source), str(target))
        loaded = read_project_file(target)
        assert loaded.name == "F"
        assert loaded.connection_count == 1


class TestNormalizeTimeline:
    """Tests for normalize-timeline."""

    def test_rewrites_positions(self, capsys, linear_diagram, tmp_path):
        """Positions are respread and written back."""
        linear_diagram.add_timeline_event("b", 0.7)
        linear_diagram.add_timeline_event("a", 0.2)
        path = write_project_file(linear_diagram, tmp_path / "timeline.flowproj")

        code, out = run(capsys, "normalize-timeline", str(path))

        assert code == 0
        assert [e["position"] for e in json.loads(out)["events"]] == [0.0, 1.0]
        assert [e.position for e in read_project_file(path).timeline_events] == [0.0, 1.0]


class TestPrompt:
    """Tests for the prompt command."""

    def test_prompt_from_file(self, capsys, tmp_path):
        """The transcription file ends up inside the prompt."""
        path = tmp_path / "talk.txt"
        path.write_text("alpha calls beta", encoding="utf-8")
        code, out = run(capsys, "prompt", str(path))
        assert code == 0
        assert "alpha calls beta" in json.loads(out)["prompt"]

    def test_prompt_raw_from_stdin(self, capsys, monkeypatch):
        """--raw prints the prompt text read from stdin."""
        monkeypatch.setattr("sys.stdin", io.StringIO("gamma to delta"))
        code, out = run(capsys, "prompt", "--raw")
        assert code == 0
        assert out.startswith("You are an assistant")
        assert "gamma to delta" in out
