"""Tests for AnalysisPipeline orchestration."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from repolens.core.redis import InMemoryCacheStore
from repolens.schemas.analysis import (
    AnalysisStatusValue,
    DirectoryAnalysis,
    FileAnalysis,
    FileItem,
    Granularity,
    RepositoryAnalysis,
)
from repolens.services.analysis_cache import AnalysisCache
from repolens.services.analysis_pipeline import AnalysisPipeline, normalize_path
from repolens.services.analysis_status import AnalysisStatusService
from repolens.services.github import (
    GitHubAPIError,
    GitHubNotFoundError,
    GitHubService,
    InvalidRepositoryReference,
    RepositorySnapshot,
)
from repolens.services.llm_gateway import FALLBACK_REPOSITORY_RESPONSE, GenerationResult, LLMGateway
from repolens.services.records import InMemoryRecordStore

REPO = "https://github.com/acme/widget"

REPOSITORY_JSON = json.dumps({
    "summary": "A widget library",
    "features": [{"name": "Rendering", "description": "Draws widgets"}],
    "architecture": {"pattern": "Layered"},
    "codeStats": {"quality": "good"},
    "items": [{"path": "src/index.ts", "summary": "Entry point"}],
})

FILE_JSON = json.dumps({
    "summary": "Entry point",
    "features": {"exports": "public API"},
    "complexity": 0.25,
})

DIRECTORY_JSON = json.dumps({
    "summary": "Sources",
    "features": {"core": "widgets"},
})


def _github():
    github = MagicMock()
    github.max_file_size = 1_000_000
    github.fetch_repository = AsyncMock(return_value=RepositorySnapshot(
        metadata={"name": "widget"},
        structure=[
            FileItem(name="index.ts", path="src/index.ts", size=20, content="export {};"),
            FileItem(name="README.md", path="README.md", size=10, content="# Widget"),
        ],
    ))
    github.fetch_directory_listing = AsyncMock(return_value=[
        {"name": "index.ts", "path": "src/index.ts", "type": "file", "size": 20},
    ])
    github.fetch_file_content = AsyncMock(return_value="export {};")
    return github


def _gateway(text, used_fallback=False):
    gateway = MagicMock()
    gateway.generate_with_metadata = AsyncMock(
        return_value=GenerationResult(text=text, model="gemini/gemini-pro", used_fallback=used_fallback)
    )
    return gateway


class TestNormalizePath:
    """Tests for normalize_path()."""

    @pytest.mark.parametrize("raw", ["src/api", "/src/api", "src/api/", " /src/api/ "])
    def test_strips_slashes(self, raw):
        assert normalize_path(raw) == "src/api"


class TestAnalyzeRepository:
    """Tests for AnalysisPipeline.analyze_repository()."""

    def setup_method(self):
        self.github = _github()
        self.gateway = _gateway(f"```json\n{REPOSITORY_JSON}\n```")
        self.store = InMemoryCacheStore()
        self.cache = AnalysisCache(self.store)
        self.records = InMemoryRecordStore()
        self.pipeline = AnalysisPipeline(self.github, self.gateway, self.cache, self.records)

    @pytest.mark.asyncio
    async def test_miss_computes_persists_and_caches(self):
        result = await self.pipeline.analyze_repository(REPO)

        assert isinstance(result, RepositoryAnalysis)
        assert result.summary == "A widget library"
        assert result.repo_name == "widget"
        assert result.repo_url == REPO
        assert result.features[0].name == "Rendering"

        record = self.records.analyses[result.id]
        assert record.summary == "A widget library"
        assert record.features == [{"name": "Rendering", "description": "Draws widgets"}]
        assert record.used_fallback is False

        items = self.records.items_for(result.id)
        assert [(i.path, i.type, i.summary) for i in items] == [("src/index.ts", "FILE", "Entry point")]

        cached = await self.cache.get(REPO, Granularity.REPOSITORY)
        assert cached["summary"] == "A widget library"
        assert cached["repoName"] == "widget"

        prompt = self.gateway.generate_with_metadata.call_args.args[0]
        assert prompt.startswith("Analyze the following GitHub repository structure")
        assert '"totalFiles": 2' in prompt

    @pytest.mark.asyncio
    async def test_hit_short_circuits(self):
        first = await self.pipeline.analyze_repository(REPO)
        second = await self.pipeline.analyze_repository(REPO)

        assert second == first
        assert self.github.fetch_repository.await_count == 1
        assert self.gateway.generate_with_metadata.await_count == 1
        assert len(self.records.analyses) == 1

    @pytest.mark.asyncio
    async def test_malformed_cache_entry_is_recomputed(self):
        await self.cache.put(REPO, Granularity.REPOSITORY, {"summary": "stale"})

        result = await self.pipeline.analyze_repository(REPO)

        assert result.summary == "A widget library"
        self.github.fetch_repository.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_invalid_reference_touches_nothing(self):
        with pytest.raises(InvalidRepositoryReference):
            await self.pipeline.analyze_repository("https://example.com/nope")

        self.github.fetch_repository.assert_not_called()
        assert [key async for key in self.store.scan_iter()] == []

    @pytest.mark.asyncio
    async def test_transport_error_propagates_and_caches_nothing(self):
        self.github.fetch_repository.side_effect = GitHubNotFoundError()

        with pytest.raises(GitHubNotFoundError):
            await self.pipeline.analyze_repository(REPO)

        assert await self.cache.get(REPO, Granularity.REPOSITORY) is None
        assert self.records.analyses == {}
        assert self.pipeline._in_flight == {}

    @pytest.mark.asyncio
    async def test_fallback_generation_is_flagged(self):
        pipeline = AnalysisPipeline(
            self.github,
            _gateway(FALLBACK_REPOSITORY_RESPONSE, used_fallback=True),
            self.cache,
            self.records,
        )

        result = await pipeline.analyze_repository(REPO)

        assert result.summary.startswith("Summary:")
        assert self.records.analyses[result.id].used_fallback is True

    @pytest.mark.asyncio
    async def test_offline_analysis_reports_completed(self):
        pipeline = AnalysisPipeline(self.github, LLMGateway(api_key=""), self.cache, self.records)
        status_service = AnalysisStatusService(self.store, self.records)

        result = await pipeline.analyze_repository(REPO)
        status = await status_service.get_status(result.id)

        assert self.records.analyses[result.id].features == []
        assert status.status == AnalysisStatusValue.COMPLETED
        assert status.progress == 100

    @pytest.mark.asyncio
    async def test_concurrent_calls_share_one_computation(self):
        release = asyncio.Event()
        snapshot = self.github.fetch_repository.return_value

        async def slow_fetch(repo_url):
            await release.wait()
            return snapshot

        self.github.fetch_repository.side_effect = slow_fetch

        tasks = [asyncio.create_task(self.pipeline.analyze_repository(REPO)) for _ in range(3)]
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(*tasks)

        assert self.github.fetch_repository.await_count == 1
        assert len({r.id for r in results}) == 1
        assert self.pipeline._in_flight == {}

    @pytest.mark.asyncio
    async def test_cache_outage_still_computes(self):
        store = MagicMock()
        store.get = AsyncMock(side_effect=ConnectionError("redis down"))
        store.setex = AsyncMock(side_effect=ConnectionError("redis down"))
        pipeline = AnalysisPipeline(self.github, self.gateway, AnalysisCache(store), self.records)

        result = await pipeline.analyze_repository(REPO)

        assert result.summary == "A widget library"


class TestAnalyzeDirectory:
    """Tests for AnalysisPipeline.analyze_directory()."""

    def setup_method(self):
        self.github = _github()
        self.gateway = _gateway(DIRECTORY_JSON)
        self.cache = AnalysisCache(InMemoryCacheStore())
        self.records = InMemoryRecordStore()
        self.pipeline = AnalysisPipeline(self.github, self.gateway, self.cache, self.records)

    @pytest.mark.asyncio
    async def test_computes_and_caches_under_normalized_path(self):
        result = await self.pipeline.analyze_directory(REPO, "/src/", analysis_id="a1")

        assert isinstance(result, DirectoryAnalysis)
        assert result.path == "src"
        assert result.summary == "Sources"
        self.github.fetch_directory_listing.assert_awaited_once_with(REPO, "src")

        item = self.records.items[result.id]
        assert (item.analysis_id, item.type, item.path) == ("a1", "DIRECTORY", "src")

        cached = await self.cache.get(REPO, Granularity.DIRECTORY, "src")
        assert cached["summary"] == "Sources"

        again = await self.pipeline.analyze_directory(REPO, "src")
        assert again.id == result.id
        assert self.github.fetch_directory_listing.await_count == 1

    @pytest.mark.asyncio
    async def test_empty_directory_is_not_found(self):
        self.github.fetch_directory_listing.return_value = []

        with pytest.raises(GitHubNotFoundError):
            await self.pipeline.analyze_directory(REPO, "empty")

        self.gateway.generate_with_metadata.assert_not_called()

    @pytest.mark.asyncio
    async def test_file_path_is_a_typed_error(self):
        github = GitHubService()
        github.fetch_one = AsyncMock(return_value="print('hi')\n")
        pipeline = AnalysisPipeline(github, self.gateway, self.cache, self.records)

        with pytest.raises(GitHubAPIError) as exc_info:
            await pipeline.analyze_directory(REPO, "app.py")

        assert exc_info.value.status_code == 400
        self.gateway.generate_with_metadata.assert_not_called()


class TestAnalyzeFile:
    """Tests for AnalysisPipeline.analyze_file()."""

    def setup_method(self):
        self.github = _github()
        self.gateway = _gateway(FILE_JSON)
        self.cache = AnalysisCache(InMemoryCacheStore())
        self.records = InMemoryRecordStore()
        self.pipeline = AnalysisPipeline(self.github, self.gateway, self.cache, self.records)

    @pytest.mark.asyncio
    async def test_computes_with_complexity(self):
        result = await self.pipeline.analyze_file(REPO, "src/index.ts")

        assert isinstance(result, FileAnalysis)
        assert result.complexity == 0.25
        item = self.records.items[result.id]
        assert item.content == "export {};"
        assert item.complexity == 0.25
        assert item.analysis_id is None

        prompt = self.gateway.generate_with_metadata.call_args.args[0]
        assert "File: src/index.ts" in prompt
        assert "export {};" in prompt

    @pytest.mark.asyncio
    async def test_oversized_file_is_rejected(self):
        self.github.fetch_file_content.return_value = None

        with pytest.raises(GitHubAPIError) as exc_info:
            await self.pipeline.analyze_file(REPO, "big.json")

        assert exc_info.value.status_code == 413
        assert self.records.items == {}

    @pytest.mark.asyncio
    async def test_garbage_generation_still_yields_result(self):
        pipeline = AnalysisPipeline(self.github, _gateway("¯\\_(ツ)_/¯"), self.cache, self.records)

        result = await pipeline.analyze_file(REPO, "src/index.ts")

        assert result.summary == "¯\\_(ツ)_/¯"
        assert result.complexity == 0.5

    @pytest.mark.asyncio
    async def test_directory_path_is_a_typed_error(self):
        github = GitHubService()
        github.fetch_one = AsyncMock(return_value=[
            {"name": "index.ts", "path": "src/index.ts", "type": "file", "size": 20},
        ])
        pipeline = AnalysisPipeline(github, self.gateway, self.cache, self.records)

        with pytest.raises(GitHubAPIError) as exc_info:
            await pipeline.analyze_file(REPO, "src")

        assert exc_info.value.status_code == 400
        assert self.records.items == {}
