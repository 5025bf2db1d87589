"""Persistence contract for analysis records.

The pipeline only needs identifiers and timestamps back from persistence;
schema design belongs to whatever implements ``AnalysisRecordStore``.
``InMemoryRecordStore`` is the implementation used for local runs and tests.
"""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal, Protocol

ItemType = Literal["FILE", "DIRECTORY"]


@dataclass
class AnalysisRecord:
    """A persisted repository analysis."""
    id: str
    repo_url: str
    repo_name: str
    summary: str | None = None
    features: list[dict[str, Any]] | None = None
    architecture: dict[str, Any] = field(default_factory=dict)
    code_stats: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    used_fallback: bool = False  # generated offline, low confidence


@dataclass
class AnalysisItemRecord:
    """A persisted directory or file analysis belonging to an analysis."""
    id: str
    analysis_id: str | None
    path: str
    type: ItemType
    summary: str
    features: Any = None
    content: str | None = None
    complexity: float | None = None
    created_at: datetime | None = None
    used_fallback: bool = False


class AnalysisRecordStore(Protocol):
    """Operations the pipeline needs from persistence."""

    async def create_analysis(
        self,
        *,
        repo_url: str,
        repo_name: str,
        summary: str,
        features: list[dict[str, Any]],
        architecture: dict[str, Any],
        code_stats: dict[str, Any],
        used_fallback: bool = False,
    ) -> AnalysisRecord: ...

    async def create_item(
        self,
        *,
        analysis_id: str | None,
        path: str,
        item_type: ItemType,
        summary: str,
        features: Any = None,
        content: str | None = None,
        complexity: float | None = None,
        used_fallback: bool = False,
    ) -> AnalysisItemRecord: ...

    async def get_analysis(self, analysis_id: str) -> AnalysisRecord | None: ...


class InMemoryRecordStore:
    """Dict-backed ``AnalysisRecordStore``."""

    def __init__(self):
        self.analyses: dict[str, AnalysisRecord] = {}
        self.items: dict[str, AnalysisItemRecord] = {}

    async def create_analysis(
        self,
        *,
        repo_url: str,
        repo_name: str,
        summary: str,
        features: list[dict[str, Any]],
        architecture: dict[str, Any],
        code_stats: dict[str, Any],
        used_fallback: bool = False,
    ) -> AnalysisRecord:
        record = AnalysisRecord(
            id=str(uuid.uuid4()),
            repo_url=repo_url,
            repo_name=repo_name,
            summary=summary,
            features=features,
            architecture=architecture,
            code_stats=code_stats,
            created_at=datetime.now(UTC),
            used_fallback=used_fallback,
        )
        self.analyses[record.id] = record
        return record

    async def create_item(
        self,
        *,
        analysis_id: str | None,
        path: str,
        item_type: ItemType,
        summary: str,
        features: Any = None,
        content: str | None = None,
        complexity: float | None = None,
        used_fallback: bool = False,
    ) -> AnalysisItemRecord:
        record = AnalysisItemRecord(
            id=str(uuid.uuid4()),
            analysis_id=analysis_id,
            path=path,
            type=item_type,
            summary=summary,
            features=features,
            content=content,
            complexity=complexity,
            created_at=datetime.now(UTC),
            used_fallback=used_fallback,
        )
        self.items[record.id] = record
        return record

    async def get_analysis(self, analysis_id: str) -> AnalysisRecord | None:
        return self.analyses.get(analysis_id)

    def items_for(self, analysis_id: str) -> list[AnalysisItemRecord]:
        return [item for item in self.items.values() if item.analysis_id == analysis_id]
