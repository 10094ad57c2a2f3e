"""Shared fixtures: a fresh SQLite-backed store and runtime per test."""

from __future__ import annotations

import pytest
import pytest_asyncio

from app.core.db import create_session_factory
from app.db.repositories.document_repository import DocumentStore
from app.domains.changes.router import ChangeRouter
from app.domains.revivers.services import Reviver
from app.domains.runtime import Runtime
from app.infrastructure.uploads import LocalBlobStore

from tests.helpers import make_settings


@pytest.fixture
def settings(tmp_path):
    return make_settings(tmp_path)


@pytest_asyncio.fixture
async def store(settings):
    engine, session_factory = create_session_factory(settings.database_url)
    store = DocumentStore(session_factory, engine, watch_buffer_size=settings.watch_buffer_size)
    await store.init_schema()
    yield store
    await store.close()


@pytest.fixture
def reviver(store):
    return Reviver(store)


@pytest_asyncio.fixture
async def router(store, reviver):
    router = ChangeRouter(store, reviver)
    yield router
    await router.close()


@pytest.fixture
def blobs(settings):
    return LocalBlobStore(settings.uploads_dir, settings.max_upload_size_mb)


@pytest_asyncio.fixture
async def runtime(settings, store, blobs):
    runtime = Runtime(settings, store=store, blobs=blobs)
    await runtime.start()
    yield runtime
    runtime.rooms.close()
    await runtime.triggers.stop()
    await runtime.router.close()


@pytest_asyncio.fixture
async def people(store):
    """Two users: Alice (u1) and Bob (u2)."""
    await store.upsert("users/u1", {"name": "Alice", "description": ""})
    await store.upsert("users/u2", {"name": "Bob", "description": ""})
    return "u1", "u2"
