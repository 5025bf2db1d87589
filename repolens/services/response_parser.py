"""Normalize raw generation text into structured analysis results.

Models do not reliably honor the JSON shape requested in the prompt. The
parsers here try, in order:

1. a JSON object inside a fenced block (```json first, then any ```),
   or the first balanced ``{...}`` span in the text
2. splitting prose on numbered list items (``1. ``, ``2. `` ...) and mapping
   segments to fields by position
3. the whole text as the summary

Every parser returns a fully populated result and never raises.
"""

import json
import logging
import re
from typing import Any

from repolens.schemas.analysis import (
    AnalysisResult,
    CodeIssue,
    DirectoryAnalysisResult,
    Feature,
    FileAnalysisResult,
    FunctionSummary,
    RepositoryItemSummary,
)

logger = logging.getLogger(__name__)

DEFAULT_COMPLEXITY = 0.5

JSON_FENCE_PATTERN = re.compile(r"```json[ \t]*\n([\s\S]*?)\n\s*```", re.IGNORECASE)
GENERIC_FENCE_PATTERN = re.compile(r"```[\w-]*[ \t]*\n([\s\S]*?)\n\s*```")
NUMBERED_ITEM_PATTERN = re.compile(r"\n\s*\d+\.\s+")
FEATURE_LINE_PATTERN = re.compile(r"^\s*[•\-*]?\s*([^:\n]+):\s*([^\n]+)$", re.MULTILINE)
BULLET_PREFIX_PATTERN = re.compile(r"^[•\-*]?\s*")


# =============================================================================
# Structured Block Extraction
# =============================================================================


def _first_balanced_object(text: str) -> str | None:
    """Return the first top-level ``{...}`` span, honoring JSON strings."""
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escape_next = False

    for i in range(start, len(text)):
        char = text[i]
        if escape_next:
            escape_next = False
            continue
        if char == "\\" and in_string:
            escape_next = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]

    return None


def _candidate_blocks(text: str) -> list[str]:
    candidates = []
    for pattern in (JSON_FENCE_PATTERN, GENERIC_FENCE_PATTERN):
        match = pattern.search(text)
        if match:
            candidates.append(match.group(1).strip())
    brace_span = _first_balanced_object(text)
    if brace_span:
        candidates.append(brace_span)
    return candidates


def extract_json_block(text: str) -> dict[str, Any] | None:
    """Find and decode the first JSON object embedded in generated text.

    Returns ``None`` when no candidate block decodes to an object.
    """
    for candidate in _candidate_blocks(text):
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            logger.debug(f"Candidate block is not valid JSON: {candidate[:100]!r}")
            continue
        if isinstance(data, dict):
            return data
    return None


def split_numbered_sections(text: str) -> list[str]:
    """Split prose on numbered list items, dropping empty segments."""
    sections = NUMBERED_ITEM_PATTERN.split(text)
    return [section.strip() for section in sections if section.strip()]


def parse_features(text: str) -> list[Feature]:
    """Turn a prose features section into named features.

    ``name: description`` lines (optionally bulleted) become features;
    otherwise every non-empty line is both name and description.
    """
    if not text:
        return []

    matches = FEATURE_LINE_PATTERN.findall(text)
    if matches:
        return [
            Feature(name=name.strip(), description=description.strip())
            for name, description in matches
        ]

    features = []
    for line in text.split("\n"):
        if not line.strip():
            continue
        name = BULLET_PREFIX_PATTERN.sub("", line.strip())
        features.append(Feature(name=name, description=name))
    return features


# =============================================================================
# Field Coercion
# =============================================================================


def _text(value: Any, default: str = "") -> str:
    if isinstance(value, str):
        return value
    if value is None:
        return default
    if isinstance(value, (int, float, bool)):
        return str(value)
    return json.dumps(value, ensure_ascii=False)


def _dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _strings(value: Any) -> list[str]:
    return [_text(entry) for entry in _list(value) if entry is not None]


def _named_entries(value: Any) -> list[tuple[str, str]]:
    """(name, description) pairs from a list of objects or strings."""
    entries = []
    for entry in _list(value):
        if isinstance(entry, dict):
            entries.append((_text(entry.get("name")), _text(entry.get("description"))))
        elif isinstance(entry, str):
            entries.append((entry, entry))
    return entries


def _complexity(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_COMPLEXITY
    return min(1.0, max(0.0, float(value)))


# =============================================================================
# Parsers
# =============================================================================


def parse_repository_response(text: str) -> AnalysisResult:
    """Parse repository-level generation output."""
    try:
        data = extract_json_block(text)
        if data is not None:
            items = [
                RepositoryItemSummary(path=_text(entry.get("path")), summary=_text(entry.get("summary")))
                for entry in _list(data.get("items"))
                if isinstance(entry, dict)
            ]
            code_stats = data.get("codeStats", data.get("code_stats"))
            return AnalysisResult(
                summary=_text(data.get("summary")) or "No summary provided",
                features=[
                    Feature(name=name, description=description)
                    for name, description in _named_entries(data.get("features"))
                ],
                architecture=_dict(data.get("architecture")),
                code_stats=_dict(code_stats),
                items=items,
            )

        sections = split_numbered_sections(text)
        if len(sections) >= 4:
            return AnalysisResult(
                summary=sections[0],
                features=parse_features(sections[1]),
                architecture={"description": sections[2]},
                code_stats={"description": sections[3]},
            )

        return AnalysisResult(summary=text.strip())
    except Exception as e:
        logger.error(f"Error parsing repository analysis response: {e}")
        return AnalysisResult(
            summary="Failed to parse analysis response",
            architecture={"description": "Analysis parsing error"},
        )


def parse_directory_response(text: str, path: str) -> DirectoryAnalysisResult:
    """Parse directory-level generation output."""
    try:
        data = extract_json_block(text)
        if data is not None:
            return DirectoryAnalysisResult(
                summary=_text(data.get("summary")) or f"Analysis of {path}",
                features=_dict(data.get("features")),
                structure=_dict(data.get("structure")),
                dependencies=_strings(data.get("dependencies")),
                recommendations=_strings(data.get("recommendations")),
            )

        sections = split_numbered_sections(text)
        if len(sections) >= 2:
            return DirectoryAnalysisResult(
                summary=sections[0],
                features={"description": sections[1]},
            )

        return DirectoryAnalysisResult(summary=text.strip())
    except Exception as e:
        logger.error(f"Error parsing directory analysis response for {path}: {e}")
        return DirectoryAnalysisResult(summary=f"Failed to parse analysis for {path}")


def parse_file_response(text: str, path: str) -> FileAnalysisResult:
    """Parse file-level generation output."""
    try:
        data = extract_json_block(text)
        if data is not None:
            issues = []
            for entry in _list(data.get("issues")):
                if isinstance(entry, dict):
                    issues.append(CodeIssue(type=_text(entry.get("type")), description=_text(entry.get("description"))))
                elif isinstance(entry, str):
                    issues.append(CodeIssue(type="general", description=entry))

            return FileAnalysisResult(
                summary=_text(data.get("summary")) or f"Analysis of {path}",
                features=_dict(data.get("features")),
                complexity=_complexity(data.get("complexity")),
                functions=[
                    FunctionSummary(name=name, description=description)
                    for name, description in _named_entries(data.get("functions"))
                ],
                dependencies=_strings(data.get("dependencies")),
                issues=issues,
            )

        sections = split_numbered_sections(text)
        if len(sections) >= 2:
            return FileAnalysisResult(
                summary=sections[0],
                features={"description": sections[1]},
            )

        return FileAnalysisResult(summary=text.strip())
    except Exception as e:
        logger.error(f"Error parsing file analysis response for {path}: {e}")
        return FileAnalysisResult(summary=f"Failed to parse analysis for {path}")
