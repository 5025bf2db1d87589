"""Analysis schemas.

Repository tree items, the aggregate context derived from a tree, and the
three result shapes (repository, directory, file) produced by the pipeline.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import ConfigDict, Field

from repolens.schemas.common import BaseSchema


class Granularity(str, Enum):
    """Scope an analysis result applies to."""
    REPOSITORY = "repository"
    DIRECTORY = "directory"
    FILE = "file"


class AnalysisStatusValue(str, Enum):
    """Analysis status enum for schemas."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


# =============================================================================
# Repository Tree
# =============================================================================


class FileItem(BaseSchema):
    """A file in a fetched repository tree.

    ``content`` is only populated for recognized source files under the
    size ceiling.
    """

    model_config = ConfigDict(frozen=True)

    type: Literal["file"] = "file"
    name: str
    path: str
    size: int = 0
    content: str | None = None


class DirectoryItem(BaseSchema):
    """A directory in a fetched repository tree."""

    model_config = ConfigDict(frozen=True)

    type: Literal["directory"] = "directory"
    name: str
    path: str
    children: list["RepoItem"] = Field(default_factory=list)


RepoItem = Annotated[FileItem | DirectoryItem, Field(discriminator="type")]

DirectoryItem.model_rebuild()


class SimplifiedFileItem(BaseSchema):
    """Content-free projection of a FileItem for prompt embedding."""

    type: Literal["file"] = "file"
    name: str
    path: str
    size: int = 0


class SimplifiedDirectoryItem(BaseSchema):
    """Content-free projection of a DirectoryItem."""

    type: Literal["directory"] = "directory"
    name: str
    path: str
    children: list["SimplifiedRepoItem"] = Field(default_factory=list)


SimplifiedRepoItem = Annotated[
    SimplifiedFileItem | SimplifiedDirectoryItem, Field(discriminator="type")
]

SimplifiedDirectoryItem.model_rebuild()


# =============================================================================
# Analysis Context
# =============================================================================


class LanguageShare(BaseSchema):
    """Share of files with a given extension."""

    language: str
    percentage: int


class KeyFile(BaseSchema):
    """Recognized manifest, documentation, license or config file."""

    name: str
    path: str
    type: Literal["dependency", "documentation", "license", "configuration"]


class LanguageStat(BaseSchema):
    """Per-extension breakdown over files with retrieved content."""

    language: str
    files: int = 0
    lines: int = 0
    size: int = 0
    percentage: int = 0


class CodeStats(BaseSchema):
    """Aggregate repository statistics."""

    total_files: int = 0
    total_directories: int = 0
    total_lines: int = 0
    total_size: int = 0
    language_stats: list[LanguageStat] = Field(default_factory=list)


class AnalysisContext(BaseSchema):
    """Facts derived from a fetched tree, embedded in repository prompts."""

    languages: list[LanguageShare] = Field(default_factory=list)
    key_files: list[KeyFile] = Field(default_factory=list)
    stats: CodeStats = Field(default_factory=CodeStats)
    structure: list[SimplifiedRepoItem] = Field(default_factory=list)


# =============================================================================
# Analysis Results
# =============================================================================


class Feature(BaseSchema):
    """A named feature of the analyzed repository."""

    name: str = ""
    description: str = ""


class RepositoryItemSummary(BaseSchema):
    """Summary of a notable path inside the repository."""

    path: str = ""
    summary: str = ""


class AnalysisResult(BaseSchema):
    """Repository-level analysis."""

    summary: str = ""
    features: list[Feature] = Field(default_factory=list)
    architecture: dict[str, Any] = Field(default_factory=dict)
    code_stats: dict[str, Any] = Field(default_factory=dict)
    items: list[RepositoryItemSummary] = Field(default_factory=list)


class FunctionSummary(BaseSchema):
    """A function or component described by a file analysis."""

    name: str = ""
    description: str = ""


class CodeIssue(BaseSchema):
    """A potential problem reported by a file analysis."""

    type: str = ""
    description: str = ""


class FileAnalysisResult(BaseSchema):
    """File-level analysis."""

    summary: str = ""
    features: dict[str, Any] = Field(default_factory=dict)
    complexity: float = Field(default=0.5, ge=0.0, le=1.0)
    functions: list[FunctionSummary] = Field(default_factory=list)
    dependencies: list[str] = Field(default_factory=list)
    issues: list[CodeIssue] = Field(default_factory=list)


class DirectoryAnalysisResult(BaseSchema):
    """Directory-level analysis."""

    summary: str = ""
    features: dict[str, Any] = Field(default_factory=dict)
    structure: dict[str, Any] = Field(default_factory=dict)
    dependencies: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


# =============================================================================
# Pipeline Responses
# =============================================================================


class RepositoryAnalysis(AnalysisResult):
    """Repository analysis with the identifiers assigned on persistence."""

    id: str
    repo_url: str
    repo_name: str
    created_at: datetime


class DirectoryAnalysis(DirectoryAnalysisResult):
    """Directory analysis with the identifiers assigned on persistence."""

    id: str
    path: str
    created_at: datetime


class FileAnalysis(FileAnalysisResult):
    """File analysis with the identifiers assigned on persistence."""

    id: str
    path: str
    created_at: datetime


class AnalysisStatus(BaseSchema):
    """Derived progress of a persisted analysis."""

    status: AnalysisStatusValue
    progress: int = Field(default=0, ge=0, le=100)
    message: str | None = None
