"""Process entry point: wiring, lifecycle and a command-line runner.

Usage:
    # Repository summary
    python -m repolens https://github.com/owner/repo

    # One directory or file
    python -m repolens https://github.com/owner/repo --dir src/api
    python -m repolens https://github.com/owner/repo --file src/main.py

    # Drop cached results first
    python -m repolens https://github.com/owner/repo --refresh
"""

import argparse
import asyncio
import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from repolens.core.config import Settings, get_settings
from repolens.core.redis import CacheStore, close_cache_store, create_cache_store
from repolens.services.analysis_cache import AnalysisCache
from repolens.services.analysis_pipeline import AnalysisPipeline
from repolens.services.analysis_status import AnalysisStatusService
from repolens.services.github import GitHubAPIError, GitHubService, InvalidRepositoryReference, TreeLimitExceededError
from repolens.services.llm_gateway import LLMGateway
from repolens.services.records import AnalysisRecordStore, InMemoryRecordStore

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Objects built once per process and shared by every request."""
    store: CacheStore
    cache: AnalysisCache
    records: AnalysisRecordStore
    pipeline: AnalysisPipeline
    status: AnalysisStatusService


@asynccontextmanager
async def lifespan(
    settings: Settings | None = None,
    records: AnalysisRecordStore | None = None,
) -> AsyncGenerator[Services, None]:
    """Build the pipeline and its collaborators; close the cache store on exit."""
    settings = settings or get_settings()
    store = await create_cache_store(settings)
    records = records or InMemoryRecordStore()

    cache = AnalysisCache(store, default_ttl=settings.analysis_cache_ttl)
    github = GitHubService(
        access_token=settings.github_api_token,
        base_url=settings.github_api_url,
        max_file_size=settings.max_file_size,
        max_depth=settings.max_tree_depth,
        max_nodes=settings.max_tree_nodes,
    )
    gateway = LLMGateway(
        api_key=settings.gemini_api_key,
        model=settings.generation_model,
        temperature=settings.generation_temperature,
        max_tokens=settings.generation_max_tokens,
    )

    logger.info("Starting repolens...")
    try:
        yield Services(
            store=store,
            cache=cache,
            records=records,
            pipeline=AnalysisPipeline(github, gateway, cache, records),
            status=AnalysisStatusService(store, records, ttl=settings.status_cache_ttl),
        )
    finally:
        logger.info("Shutting down repolens...")
        await close_cache_store(store)


async def run(args: argparse.Namespace) -> str:
    """Run one analysis and return its JSON form."""
    async with lifespan() as services:
        if args.refresh:
            removed = await services.cache.invalidate(args.repo_url)
            logger.info(f"Invalidated {removed} cached entries")

        if args.dir is not None:
            result = await services.pipeline.analyze_directory(args.repo_url, args.dir)
        elif args.file is not None:
            result = await services.pipeline.analyze_file(args.repo_url, args.file)
        else:
            result = await services.pipeline.analyze_repository(args.repo_url)

        return result.model_dump_json(by_alias=True, indent=2)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="repolens",
        description="Analyze a GitHub repository, directory or file",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("repo_url", help="GitHub repository URL")
    target = parser.add_mutually_exclusive_group()
    target.add_argument("--dir", help="Analyze one directory (repository-relative path)")
    target.add_argument("--file", help="Analyze one file (repository-relative path)")
    parser.add_argument(
        "--refresh",
        action="store_true",
        help="Invalidate cached results for the repository first",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        output = asyncio.run(run(args))
    except InvalidRepositoryReference as e:
        parser.error(str(e))
    except (GitHubAPIError, TreeLimitExceededError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(output)
    return 0
