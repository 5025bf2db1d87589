"""Tests for prompt composition."""

import pytest

from repolens.schemas.analysis import FileItem, Granularity
from repolens.services.llm_gateway import (
    FALLBACK_DIRECTORY_RESPONSE,
    FALLBACK_FILE_RESPONSE,
    FALLBACK_REPOSITORY_RESPONSE,
    fallback_response,
)
from repolens.services.prompts import compose_prompt
from repolens.services.repo_context import build_analysis_context


class TestComposePrompt:
    """Tests for compose_prompt()."""

    def test_file_prompt_embeds_path_and_content(self):
        prompt = compose_prompt(Granularity.FILE, path="src/app.py", content="print('hi')")

        assert prompt.startswith("Analyze the following code file")
        assert "File: src/app.py" in prompt
        assert "print('hi')" in prompt
        assert '"complexity"' in prompt

    def test_directory_prompt_embeds_listing(self):
        contents = [{"name": "main.py", "path": "src/main.py", "type": "file", "size": 40}]
        prompt = compose_prompt("directory", path="src", contents=contents)

        assert prompt.startswith("Analyze the following directory structure")
        assert "Directory: src" in prompt
        assert '"path": "src/main.py"' in prompt
        assert '"recommendations"' in prompt

    def test_repository_prompt_embeds_context(self):
        context = build_analysis_context([
            FileItem(name="a.ts", path="a.ts", size=5, content="x"),
            FileItem(name="package.json", path="package.json", size=5),
        ])
        prompt = compose_prompt(Granularity.REPOSITORY, context=context)

        assert prompt.startswith("Analyze the following GitHub repository structure")
        assert '"language": "ts"' in prompt
        assert '"type": "dependency"' in prompt
        assert '"totalFiles": 2' in prompt
        assert '"codeStats"' in prompt

    def test_repository_prompt_without_context(self):
        prompt = compose_prompt(Granularity.REPOSITORY)
        assert "Languages: []" in prompt

    def test_unknown_granularity_is_rejected(self):
        with pytest.raises(ValueError):
            compose_prompt("module", path="x")


class TestFallbackSelection:
    """Each composed prompt maps to the narrative of its own granularity."""

    def test_file_prompt(self):
        prompt = compose_prompt(Granularity.FILE, path="README.md", content="# Directory layout")
        assert fallback_response(prompt) == FALLBACK_FILE_RESPONSE

    def test_directory_prompt(self):
        prompt = compose_prompt(Granularity.DIRECTORY, path="src", contents=[])
        assert fallback_response(prompt) == FALLBACK_DIRECTORY_RESPONSE

    def test_repository_prompt(self):
        prompt = compose_prompt(Granularity.REPOSITORY)
        assert fallback_response(prompt) == FALLBACK_REPOSITORY_RESPONSE

    def test_unrecognized_prompt_gets_repository_narrative(self):
        assert fallback_response("Tell me something") == FALLBACK_REPOSITORY_RESPONSE
        assert fallback_response("") == FALLBACK_REPOSITORY_RESPONSE
