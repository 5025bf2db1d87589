"""Generation prompts for repository, directory and file analysis.

Each prompt's first line names its granularity. The requested JSON shape is
advisory: the response parser accepts anything the model returns.
"""

import json
from typing import Any

from repolens.schemas.analysis import AnalysisContext, Granularity

# =============================================================================
# Requested Response Shapes
# =============================================================================

REPOSITORY_RESPONSE_SHAPE = """{
  "summary": "Overall summary of the repository",
  "features": [
    { "name": "Feature name", "description": "Feature description" }
  ],
  "architecture": {
    "pattern": "Architectural pattern used",
    "components": ["Key architectural components"],
    "description": "Description of the architecture"
  },
  "codeStats": {
    "complexity": "Overall complexity assessment",
    "quality": "Code quality assessment",
    "maintainability": "Maintainability assessment"
  },
  "items": [
    { "path": "Path to key file", "summary": "Summary of the file" }
  ]
}"""

DIRECTORY_RESPONSE_SHAPE = """{
  "summary": "Summary of this directory's purpose",
  "features": {
    "key_feature_1": "Description of feature 1",
    "key_feature_2": "Description of feature 2"
  },
  "structure": {
    "description": "Description of the directory structure",
    "key_components": ["List of key components in this directory"]
  },
  "dependencies": ["List of key dependencies or relationships"],
  "recommendations": ["Potential improvements or recommendations"]
}"""

FILE_RESPONSE_SHAPE = """{
  "summary": "Summary of what this file does",
  "features": {
    "key_feature_1": "Description of feature 1",
    "key_feature_2": "Description of feature 2"
  },
  "complexity": 0.0 to 1.0 (estimated complexity score),
  "functions": [
    { "name": "functionName", "description": "What this function does" }
  ],
  "dependencies": ["List of dependencies or imports used"],
  "issues": [
    { "type": "issue type", "description": "Description of potential issue" }
  ]
}"""


def _to_json(value: Any, indent: int | None = None) -> str:
    return json.dumps(value, indent=indent, ensure_ascii=False)


def repository_prompt(context: AnalysisContext) -> str:
    """Prompt for a whole-repository analysis."""
    data = context.model_dump(mode="json", by_alias=True)
    return (
        "Analyze the following GitHub repository structure and provide insights:\n"
        "\n"
        "Repository Statistics:\n"
        f"- Languages: {_to_json(data['languages'])}\n"
        f"- Key Files: {_to_json(data['keyFiles'])}\n"
        f"- Stats: {_to_json(data['stats'])}\n"
        "\n"
        "Structure:\n"
        f"{_to_json(data['structure'], indent=2)}\n"
        "\n"
        "Provide the following in JSON format:\n"
        f"{REPOSITORY_RESPONSE_SHAPE}"
    )


def directory_prompt(path: str, contents: list[dict[str, Any]]) -> str:
    """Prompt for a single directory and its immediate listing."""
    return (
        "Analyze the following directory structure and provide insights:\n"
        "\n"
        f"Directory: {path}\n"
        "Contents:\n"
        f"{_to_json(contents, indent=2)}\n"
        "\n"
        "Provide the following in JSON format:\n"
        f"{DIRECTORY_RESPONSE_SHAPE}"
    )


def file_prompt(path: str, content: str) -> str:
    """Prompt for a single file and its full content."""
    return (
        "Analyze the following code file and provide insights:\n"
        "\n"
        f"File: {path}\n"
        "Content:\n"
        f"{content}\n"
        "\n"
        "Provide the following in JSON format:\n"
        f"{FILE_RESPONSE_SHAPE}"
    )


def compose_prompt(granularity: Granularity | str, **payload: Any) -> str:
    """Build the prompt for one granularity.

    Args:
        granularity: repository, directory or file.
        **payload: ``context`` for repository; ``path`` and ``contents`` for
            directory; ``path`` and ``content`` for file.
    """
    granularity = Granularity(granularity)

    if granularity is Granularity.FILE:
        return file_prompt(payload["path"], payload.get("content") or "")
    if granularity is Granularity.DIRECTORY:
        return directory_prompt(payload["path"], payload.get("contents") or [])
    return repository_prompt(payload.get("context") or AnalysisContext())
