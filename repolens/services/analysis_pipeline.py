"""Analysis pipeline: cache check, fetch, prompt, generate, parse, persist.

Each public operation runs:

    cache check -> (hit) return
                -> (miss) fetch -> build prompt -> generate -> parse
                   -> persist -> cache write -> return

There is no intermediate durable state; a failure mid-pipeline means the
next call recomputes. Concurrent calls for the same cache key on one
pipeline instance share a single computation. Across processes the last
cache write wins.

Only a malformed repository reference or a GitHub transport failure reaches
the caller. Generation and parsing failures degrade to lower-fidelity
results (see ``LLMGateway.generate`` and ``response_parser``).
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from repolens.schemas.analysis import (
    DirectoryAnalysis,
    FileAnalysis,
    Granularity,
    RepositoryAnalysis,
)
from repolens.services.analysis_cache import AnalysisCache, cache_key
from repolens.services.github import GitHubAPIError, GitHubNotFoundError, GitHubService, parse_repo_reference
from repolens.services.llm_gateway import LLMGateway
from repolens.services.prompts import compose_prompt
from repolens.services.records import AnalysisRecordStore
from repolens.services.repo_context import build_analysis_context
from repolens.services.response_parser import (
    parse_directory_response,
    parse_file_response,
    parse_repository_response,
)

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


def normalize_path(path: str) -> str:
    """Canonical repository-relative path used in cache keys and records."""
    return path.strip().strip("/")


class AnalysisPipeline:
    """Composes fetching, generation, parsing and caching into three operations."""

    def __init__(
        self,
        github: GitHubService,
        gateway: LLMGateway,
        cache: AnalysisCache,
        records: AnalysisRecordStore,
    ):
        self.github = github
        self.gateway = gateway
        self.cache = cache
        self.records = records
        self._in_flight: dict[str, asyncio.Future] = {}

    # -------------------------------------------------------------------------
    # Public operations
    # -------------------------------------------------------------------------

    async def analyze_repository(self, repo_url: str) -> RepositoryAnalysis:
        """Analyze a whole repository.

        Raises:
            InvalidRepositoryReference: If ``repo_url`` is malformed.
            GitHubAPIError: On tree transport failures.
            TreeLimitExceededError: If the tree exceeds the traversal budget.
        """
        parse_repo_reference(repo_url)

        cached = await self._cached(repo_url, Granularity.REPOSITORY, None, RepositoryAnalysis)
        if cached is not None:
            return cached

        return await self._single_flight(
            cache_key(repo_url, Granularity.REPOSITORY),
            lambda: self._compute_repository(repo_url),
        )

    async def analyze_directory(
        self,
        repo_url: str,
        path: str,
        analysis_id: str | None = None,
    ) -> DirectoryAnalysis:
        """Analyze one directory from its immediate listing.

        Raises:
            InvalidRepositoryReference: If ``repo_url`` is malformed.
            GitHubNotFoundError: If the directory is missing or empty.
            GitHubAPIError: On other transport failures.
        """
        parse_repo_reference(repo_url)
        path = normalize_path(path)

        cached = await self._cached(repo_url, Granularity.DIRECTORY, path, DirectoryAnalysis)
        if cached is not None:
            return cached

        return await self._single_flight(
            cache_key(repo_url, Granularity.DIRECTORY, path),
            lambda: self._compute_directory(repo_url, path, analysis_id),
        )

    async def analyze_file(
        self,
        repo_url: str,
        path: str,
        analysis_id: str | None = None,
    ) -> FileAnalysis:
        """Analyze one file from its full content.

        Raises:
            InvalidRepositoryReference: If ``repo_url`` is malformed.
            GitHubAPIError: If the file is missing, too large or unreachable.
        """
        parse_repo_reference(repo_url)
        path = normalize_path(path)

        cached = await self._cached(repo_url, Granularity.FILE, path, FileAnalysis)
        if cached is not None:
            return cached

        return await self._single_flight(
            cache_key(repo_url, Granularity.FILE, path),
            lambda: self._compute_file(repo_url, path, analysis_id),
        )

    # -------------------------------------------------------------------------
    # Computation
    # -------------------------------------------------------------------------

    async def _compute_repository(self, repo_url: str) -> RepositoryAnalysis:
        ref = parse_repo_reference(repo_url)
        snapshot = await self.github.fetch_repository(repo_url)
        repo_name = snapshot.metadata.get("name") or ref.repo

        context = build_analysis_context(snapshot.structure)
        prompt = compose_prompt(Granularity.REPOSITORY, context=context)
        generation = await self.gateway.generate_with_metadata(prompt)
        result = parse_repository_response(generation.text)

        record = await self.records.create_analysis(
            repo_url=repo_url,
            repo_name=repo_name,
            summary=result.summary,
            features=[feature.model_dump() for feature in result.features],
            architecture=result.architecture,
            code_stats=result.code_stats,
            used_fallback=generation.used_fallback,
        )
        for item in result.items:
            await self.records.create_item(
                analysis_id=record.id,
                path=item.path,
                item_type="FILE",
                summary=item.summary,
                used_fallback=generation.used_fallback,
            )

        analysis = RepositoryAnalysis.model_validate({
            **result.model_dump(),
            "id": record.id,
            "repo_url": repo_url,
            "repo_name": repo_name,
            "created_at": record.created_at,
        })
        await self.cache.put(repo_url, Granularity.REPOSITORY, analysis)

        logger.info(
            f"Analyzed repository {ref.full_name} "
            f"({context.stats.total_files} files, fallback={generation.used_fallback})"
        )
        return analysis

    async def _compute_directory(
        self,
        repo_url: str,
        path: str,
        analysis_id: str | None,
    ) -> DirectoryAnalysis:
        contents = await self.github.fetch_directory_listing(repo_url, path)
        if not contents:
            raise GitHubNotFoundError(f"Directory '{path}' not found or empty.")

        prompt = compose_prompt(Granularity.DIRECTORY, path=path, contents=contents)
        generation = await self.gateway.generate_with_metadata(prompt)
        result = parse_directory_response(generation.text, path)

        record = await self.records.create_item(
            analysis_id=analysis_id,
            path=path,
            item_type="DIRECTORY",
            summary=result.summary,
            features=result.features,
            used_fallback=generation.used_fallback,
        )

        analysis = DirectoryAnalysis.model_validate({
            **result.model_dump(),
            "id": record.id,
            "path": path,
            "created_at": record.created_at,
        })
        await self.cache.put(repo_url, Granularity.DIRECTORY, analysis, path=path)
        return analysis

    async def _compute_file(
        self,
        repo_url: str,
        path: str,
        analysis_id: str | None,
    ) -> FileAnalysis:
        content = await self.github.fetch_file_content(repo_url, path)
        if content is None:
            raise GitHubAPIError(
                f"File '{path}' exceeds the maximum size of {self.github.max_file_size} bytes.",
                status_code=413,
            )

        prompt = compose_prompt(Granularity.FILE, path=path, content=content)
        generation = await self.gateway.generate_with_metadata(prompt)
        result = parse_file_response(generation.text, path)

        record = await self.records.create_item(
            analysis_id=analysis_id,
            path=path,
            item_type="FILE",
            summary=result.summary,
            features=result.features,
            content=content,
            complexity=result.complexity,
            used_fallback=generation.used_fallback,
        )

        analysis = FileAnalysis.model_validate({
            **result.model_dump(),
            "id": record.id,
            "path": path,
            "created_at": record.created_at,
        })
        await self.cache.put(repo_url, Granularity.FILE, analysis, path=path)
        return analysis

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _cached(
        self,
        repo_url: str,
        granularity: Granularity,
        path: str | None,
        model: type[T],
    ) -> T | None:
        cached = await self.cache.get(repo_url, granularity, path)
        if cached is None:
            return None
        try:
            return model.model_validate(cached)
        except ValidationError:
            logger.warning(f"Ignoring cached {granularity.value} analysis of unexpected shape for {repo_url}")
            return None

    async def _single_flight(self, key: str, compute: Callable[[], Awaitable[Any]]) -> Any:
        """Run ``compute`` once per key; concurrent callers share the result."""
        future = self._in_flight.get(key)
        if future is None:
            future = asyncio.ensure_future(compute())
            self._in_flight[key] = future

            def _release(done: asyncio.Future) -> None:
                if self._in_flight.get(key) is done:
                    del self._in_flight[key]

            future.add_done_callback(_release)
        else:
            logger.debug(f"Joining in-flight computation for {key}")

        return await asyncio.shield(future)
