"""Tests for process wiring and the command-line runner."""

from unittest.mock import AsyncMock, patch

import pytest

from repolens.core.config import Settings
from repolens.core.redis import InMemoryCacheStore
from repolens.main import lifespan, main
from repolens.services.github import GitHubNotFoundError
from repolens.services.records import InMemoryRecordStore


class TestLifespan:
    """Tests for lifespan()."""

    @pytest.mark.asyncio
    async def test_builds_and_closes_services(self):
        settings = Settings(_env_file=None, analysis_cache_ttl=120, max_tree_depth=5)
        records = InMemoryRecordStore()

        async with lifespan(settings, records=records) as services:
            assert isinstance(services.store, InMemoryCacheStore)
            assert services.records is records
            assert services.cache.default_ttl == 120
            assert services.pipeline.github.max_depth == 5
            assert services.status.records is records
            store = services.store

        assert store._purge_task is None

    @pytest.mark.asyncio
    async def test_closes_store_on_error(self):
        settings = Settings(_env_file=None)

        with pytest.raises(RuntimeError):
            async with lifespan(settings) as services:
                store = services.store
                raise RuntimeError("boom")

        assert store._purge_task is None


class TestMain:
    """Tests for the command-line entry point."""

    def test_prints_result(self, capsys):
        with patch("repolens.main.run", new_callable=AsyncMock) as mock_run:
            mock_run.return_value = '{"summary": "S"}'
            exit_code = main(["https://github.com/acme/widget", "--file", "src/app.py"])

        assert exit_code == 0
        assert '{"summary": "S"}' in capsys.readouterr().out
        args = mock_run.call_args.args[0]
        assert args.file == "src/app.py"
        assert args.dir is None
        assert args.refresh is False

    def test_transport_error_exits_nonzero(self, capsys):
        with patch("repolens.main.run", new_callable=AsyncMock) as mock_run:
            mock_run.side_effect = GitHubNotFoundError()
            exit_code = main(["https://github.com/acme/widget"])

        assert exit_code == 1
        assert "Repository not found" in capsys.readouterr().err

    def test_invalid_reference_is_usage_error(self):
        with pytest.raises(SystemExit) as exc_info:
            main(["https://example.com/acme/widget"])

        assert exc_info.value.code == 2

    def test_dir_and_file_are_exclusive(self):
        with pytest.raises(SystemExit):
            main(["https://github.com/acme/widget", "--dir", "src", "--file", "a.py"])
