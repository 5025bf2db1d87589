"""Pydantic schemas for analysis data."""

from repolens.schemas.analysis import (
    AnalysisContext,
    AnalysisResult,
    AnalysisStatus,
    AnalysisStatusValue,
    CodeIssue,
    CodeStats,
    DirectoryAnalysis,
    DirectoryAnalysisResult,
    DirectoryItem,
    Feature,
    FileAnalysis,
    FileAnalysisResult,
    FileItem,
    FunctionSummary,
    Granularity,
    KeyFile,
    LanguageShare,
    LanguageStat,
    RepoItem,
    RepositoryAnalysis,
    RepositoryItemSummary,
    SimplifiedDirectoryItem,
    SimplifiedFileItem,
    SimplifiedRepoItem,
)
from repolens.schemas.common import BaseSchema

__all__ = [
    # Common
    "BaseSchema",
    # Tree
    "DirectoryItem",
    "FileItem",
    "RepoItem",
    "SimplifiedDirectoryItem",
    "SimplifiedFileItem",
    "SimplifiedRepoItem",
    # Context
    "AnalysisContext",
    "CodeStats",
    "KeyFile",
    "LanguageShare",
    "LanguageStat",
    # Results
    "AnalysisResult",
    "CodeIssue",
    "DirectoryAnalysisResult",
    "Feature",
    "FileAnalysisResult",
    "FunctionSummary",
    "RepositoryItemSummary",
    # Responses
    "AnalysisStatus",
    "AnalysisStatusValue",
    "DirectoryAnalysis",
    "FileAnalysis",
    "Granularity",
    "RepositoryAnalysis",
]
