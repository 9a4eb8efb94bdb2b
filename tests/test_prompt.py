"""Tests for the text-to-diagram prompt builder."""

import pytest

from flowdeconstruct import build_prompt, deserialize


class TestBuildPrompt:
    """Tests for build_prompt."""

    def test_structure(self):
        """The prompt carries the rules, format summary, example and closing line."""
        prompt = build_prompt("alpha sends data to beta; beta processes and sends to gamma")
        assert prompt.startswith("You are an assistant")
        assert "Mandatory rules:" in prompt
        assert "1) Output ONLY the final markdown" in prompt
        assert "2) Use a level-1 HEADING (#) for the flow name." in prompt
        assert "## Connections" in prompt
        assert "Reference format (summary):" in prompt
        assert "Minimal example (do NOT copy, only follow the format):" in prompt
        assert "Transcription (content to transform):" in prompt
        assert prompt.rstrip().endswith("Generate ONLY the final markdown following the format. Nothing else.")

    def test_transcription_embedded(self):
        """The trimmed transcription sits between triple quotes."""
        prompt = build_prompt("  alpha sends data to beta  ")
        assert '"""\nalpha sends data to beta\n"""' in prompt

    @pytest.mark.parametrize("transcription", [None, "", "   \n"])
    def test_empty_transcription(self, transcription):
        """Missing or blank transcriptions are shown as (empty)."""
        assert '"""\n(empty)\n"""' in build_prompt(transcription)

    def test_example_is_importable(self):
        """The minimal example in the prompt is a valid document."""
        prompt = build_prompt(None)
        start = prompt.index("# Integration Flow")
        end = prompt.index("Transcription (content to transform):")
        diagram = deserialize(prompt[start:end])
        assert diagram.name == "Integration Flow"
        assert diagram.node_count == 3
        assert diagram.connection_count == 2
