"""Aggregate facts derived from a fetched repository tree.

Everything here is pure: no I/O, no shared state. The results are embedded
in repository-level generation prompts.
"""

import math
from collections.abc import Iterable, Iterator
from typing import Literal

from repolens.schemas.analysis import (
    AnalysisContext,
    CodeStats,
    DirectoryItem,
    FileItem,
    KeyFile,
    LanguageShare,
    LanguageStat,
    RepoItem,
    SimplifiedDirectoryItem,
    SimplifiedFileItem,
    SimplifiedRepoItem,
)

KeyFileType = Literal["dependency", "documentation", "license", "configuration"]

# Matched case-insensitively against the file name
KEY_FILE_PATTERNS: dict[str, KeyFileType] = {
    "package.json": "dependency",
    "requirements.txt": "dependency",
    "gemfile": "dependency",
    "pom.xml": "dependency",
    "build.gradle": "dependency",
    "readme.md": "documentation",
    "license": "license",
    ".gitignore": "configuration",
    "dockerfile": "configuration",
    "docker-compose.yml": "configuration",
    ".env.example": "configuration",
    "tsconfig.json": "configuration",
    ".eslintrc": "configuration",
    ".prettierrc": "configuration",
    "next.config.js": "configuration",
    "nuxt.config.js": "configuration",
    "angular.json": "configuration",
    "svelte.config.js": "configuration",
}


def _percentage(count: int, total: int) -> int:
    """Percentage rounded half-up; shares are not normalized to sum to 100."""
    if total <= 0:
        return 0
    return math.floor(count / total * 100 + 0.5)


def _extension(name: str) -> str | None:
    if "." not in name:
        return None
    return name.rsplit(".", 1)[-1].lower() or None


def walk_tree(tree: Iterable[RepoItem]) -> Iterator[RepoItem]:
    """Yield every item of a tree depth-first, parents before children."""
    stack = list(reversed(list(tree)))
    while stack:
        item = stack.pop()
        yield item
        if isinstance(item, DirectoryItem):
            stack.extend(reversed(item.children))


def iter_files(tree: Iterable[RepoItem]) -> Iterator[FileItem]:
    for item in walk_tree(tree):
        if isinstance(item, FileItem):
            yield item


def detect_languages(tree: list[RepoItem]) -> list[LanguageShare]:
    """Share of files per lowercased extension, highest first."""
    counts: dict[str, int] = {}
    total = 0
    for item in iter_files(tree):
        extension = _extension(item.name)
        if extension:
            counts[extension] = counts.get(extension, 0) + 1
            total += 1

    languages = [
        LanguageShare(language=language, percentage=_percentage(count, total))
        for language, count in counts.items()
    ]
    return sorted(languages, key=lambda share: share.percentage, reverse=True)


def find_key_files(tree: list[RepoItem]) -> list[KeyFile]:
    """Manifests, docs, license and config files found anywhere in the tree."""
    key_files = []
    for item in iter_files(tree):
        file_type = KEY_FILE_PATTERNS.get(item.name.lower())
        if file_type:
            key_files.append(KeyFile(name=item.name, path=item.path, type=file_type))
    return key_files


def calculate_code_stats(tree: list[RepoItem]) -> CodeStats:
    """Counts, sizes and line totals.

    Lines are only counted for files whose content was retrieved; the
    per-extension breakdown covers the same files.
    """
    total_files = 0
    total_directories = 0
    total_lines = 0
    total_size = 0
    by_extension: dict[str, LanguageStat] = {}

    for item in walk_tree(tree):
        if isinstance(item, DirectoryItem):
            total_directories += 1
            continue

        total_files += 1
        total_size += item.size or 0

        if not item.content:
            continue

        lines = len(item.content.split("\n"))
        total_lines += lines

        extension = _extension(item.name)
        if extension:
            stat = by_extension.setdefault(extension, LanguageStat(language=extension))
            stat.files += 1
            stat.lines += lines
            stat.size += item.size or 0

    for stat in by_extension.values():
        stat.percentage = _percentage(stat.files, total_files)

    return CodeStats(
        total_files=total_files,
        total_directories=total_directories,
        total_lines=total_lines,
        total_size=total_size,
        language_stats=sorted(by_extension.values(), key=lambda stat: stat.files, reverse=True),
    )


def simplify_structure(tree: list[RepoItem]) -> list[SimplifiedRepoItem]:
    """Project the tree to names, paths and sizes only."""
    def simplify(item: RepoItem) -> SimplifiedRepoItem:
        if isinstance(item, FileItem):
            return SimplifiedFileItem(name=item.name, path=item.path, size=item.size)
        return SimplifiedDirectoryItem(
            name=item.name,
            path=item.path,
            children=[simplify(child) for child in item.children],
        )

    return [simplify(item) for item in tree]


def build_analysis_context(tree: list[RepoItem]) -> AnalysisContext:
    """Derive the full analysis context from a fetched tree."""
    return AnalysisContext(
        languages=detect_languages(tree),
        key_files=find_key_files(tree),
        stats=calculate_code_stats(tree),
        structure=simplify_structure(tree),
    )
