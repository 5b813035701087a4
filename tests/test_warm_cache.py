"""
Tests for the cron warm-up script.
"""

import importlib.util
from pathlib import Path

import pytest
from conftest import FakeUpstream

from asana_cache.exceptions import RateLimitedError

SCRIPT = Path(__file__).resolve().parent.parent / "scripts" / "warm_cache.py"


@pytest.fixture
def warm_cache(monkeypatch, store):
    """Load the script with its store and upstream replaced."""
    spec = importlib.util.spec_from_file_location("warm_cache", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    def _install(upstream):
        monkeypatch.setattr(module, "build_upstream", lambda config: upstream)
        monkeypatch.setattr(module, "build_repository", lambda config: store)
        return module

    return _install


@pytest.mark.asyncio
async def test_warms_projects_and_tasks(warm_cache, capsys):
    upstream = FakeUpstream([[{"gid": "1", "name": "Roadmap"}], [{"gid": "9"}, {"gid": "10"}]])
    module = warm_cache(upstream)

    code = await module.warm("name,gid", "name", force=False)

    assert code == 0
    assert upstream.calls == ["projects?opt_fields=name%2Cgid", "proj:1:tasks?opt_fields=name"]
    assert upstream.closed is True
    assert "Roadmap: 2 tasks (fresh)" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_project_list_unavailable_exits_nonzero(warm_cache, capsys):
    upstream = FakeUpstream([RateLimitedError(retry_after=30)])
    module = warm_cache(upstream)

    code = await module.warm("name,gid", "name", force=False)

    assert code == 1
    assert "✗ Project list unavailable" in capsys.readouterr().out
    assert upstream.closed is True
