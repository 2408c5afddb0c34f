from __future__ import annotations

import tempfile
from pathlib import Path

import pytest
import pytest_asyncio


@pytest_asyncio.fixture
async def sqlite_db_path():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield str(Path(tmpdir) / "memory.db")


@pytest_asyncio.fixture
async def memory_store(sqlite_db_path):
    from invmem_store import MemoryStore
    store = await MemoryStore.open(sqlite_db_path)
    yield store
    await store.close()


@pytest_asyncio.fixture
async def engine(sqlite_db_path):
    from invmem_core.config import EngineConfig
    from invmem_engine import MemoryEngine
    eng = await MemoryEngine.open(EngineConfig(storage_path=sqlite_db_path))
    yield eng
    await eng.close()


@pytest.fixture()
def fake_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Redirect Path.home() and the cwd to temp directories."""
    home = tmp_path / "home"
    (home / ".invmem").mkdir(parents=True)
    project = tmp_path / "project"
    project.mkdir()
    monkeypatch.setattr(Path, "home", lambda: home)
    monkeypatch.chdir(project)
    return home

