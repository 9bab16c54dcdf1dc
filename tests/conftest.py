# tests/conftest.py
import asyncio
import time

import pytest

from pigen.config import Settings
from pigen.db import init_db, make_engine
from pigen.exceptions import UploadFailure
from pigen.jobs import JobManager
from pigen.storage import UploadResult
from pigen.store import JobStore


class StaticRenderer:
    """Returns a per-subject fake PDF, optionally after a blocking delay."""

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.calls = []

    def render(self, subject_id, tenant_id, requester, options):
        self.calls.append((subject_id, tenant_id, requester, options))
        if self.delay:
            time.sleep(self.delay)
        return f"%PDF-1.4 contrato {subject_id}".encode()


class AsyncRenderer:
    def __init__(self, delay: float = 0.05):
        self.delay = delay

    async def render(self, subject_id, tenant_id, requester, options):
        await asyncio.sleep(self.delay)
        return f"%PDF-1.4 contrato {subject_id}".encode()


class FailingRenderer:
    def __init__(self, message: str = "Contrato não encontrado"):
        self.message = message

    def render(self, subject_id, tenant_id, requester, options):
        raise RuntimeError(self.message)


class FakeStorage:
    is_remote = True

    def __init__(self):
        self.uploads = []

    async def upload(self, source, key, content_type="application/pdf"):
        self.uploads.append((str(source), key, content_type))
        return UploadResult(url=f"https://cdn.example.test/{key}", key=key)


class BrokenStorage:
    is_remote = True

    async def upload(self, source, key, content_type="application/pdf"):
        raise UploadFailure("bucket unreachable", key=key)


@pytest.fixture
def settings(tmp_path):
    data = tmp_path / "data"
    return Settings(
        data_dir=str(data),
        database_url=f"sqlite:///{data / 'pigen.db'}",
        staging_dir=str(data / "tmp"),
        fallback_dir=str(data / "uploads" / "pigen"),
        contracts_dir=str(data / "contratos"),
    )


@pytest.fixture
def store(settings):
    settings.ensure_dirs()
    engine = make_engine(settings.database_url)
    init_db(engine)
    return JobStore(engine)


@pytest.fixture
def make_manager(store, settings):
    def _make(renderer=None, storage=None):
        return JobManager(
            store=store,
            storage=storage or FakeStorage(),
            renderer=renderer or StaticRenderer(),
            staging_dir=settings.staging_dir,
        )
    return _make
