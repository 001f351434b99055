from __future__ import annotations

import os
import tempfile
from typing import AsyncIterator

# Point the engine at a throwaway sqlite file before any modcore module builds it.
_DB_DIR = tempfile.mkdtemp(prefix="modcore-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_DB_DIR, 'modcore.db')}"

import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from modcore.domain.models import Base  # noqa: E402
from modcore.persistence.db import SessionLocal, engine  # noqa: E402
from modcore.services.content import StaticContentDirectory  # noqa: E402
from modcore.tests.utils.moderation import build_content  # noqa: E402


@pytest.fixture(autouse=True)
async def database() -> AsyncIterator[None]:
    # Fresh tables per test; dispose the engine so no connection outlives its event loop.
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            await conn.execute(table.delete())
    await engine.dispose()


@pytest.fixture
async def session() -> AsyncIterator[AsyncSession]:
    async with SessionLocal() as db_session:
        yield db_session


@pytest.fixture
def content() -> StaticContentDirectory:
    return build_content()
