"""Tests for the run_discovery command-line script."""

import argparse
import importlib.util
from contextlib import asynccontextmanager
from pathlib import Path

import pytest

SCRIPT_PATH = Path(__file__).parent.parent / "scripts" / "run_discovery.py"


def load_script():
    spec = importlib.util.spec_from_file_location("run_discovery", SCRIPT_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class DisconnectedCache:
    async def connect(self):
        return False

    async def close(self):
        pass

    async def delete_pattern(self, pattern):
        return 0


def make_args(**overrides) -> argparse.Namespace:
    values = {
        "all": False,
        "user_id": None,
        "media_type": None,
        "clear_pool_days": None,
        "clear_cache": False,
        "print_metrics": False,
    }
    values.update(overrides)
    return argparse.Namespace(**values)


@pytest.fixture
def script(db_session, monkeypatch):
    module = load_script()

    @asynccontextmanager
    async def session_maker():
        yield db_session

    async def noop():
        pass

    monkeypatch.setattr(module, "init_db", noop)
    monkeypatch.setattr(module, "close_all_clients", noop)
    monkeypatch.setattr(module, "cache", DisconnectedCache())
    monkeypatch.setattr(module, "async_session_maker", session_maker)
    return module


class TestRunDiscoveryScript:
    """Tests for run()."""

    @pytest.mark.asyncio
    async def test_prints_metrics_when_asked(self, script, capsys):
        exit_code = await script.run(make_args(clear_pool_days=30, print_metrics=True))

        output = capsys.readouterr().out
        assert exit_code == 0
        assert "Removed 0 stale pool entries" in output
        assert "# TYPE discovery_runs_total counter" in output
        assert "# TYPE discovery_run_duration_seconds histogram" in output

    @pytest.mark.asyncio
    async def test_metrics_not_printed_by_default(self, script, capsys):
        await script.run(make_args(clear_cache=True))

        output = capsys.readouterr().out
        assert "Dropped 0 cached TMDB entries" in output
        assert "# TYPE" not in output

    @pytest.mark.asyncio
    async def test_unknown_user_exits_with_error(self, script, capsys):
        exit_code = await script.run(make_args(user_id=404, media_type="movie"))

        assert exit_code == 1
        assert "Error:" in capsys.readouterr().out
