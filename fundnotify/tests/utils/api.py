from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fundnotify.apps.api.deps import get_db
from fundnotify.apps.api.main import create_app


def identity_headers(*, tenant_id: str = "t1", user_id: str = "user-1", role: str = "reader") -> dict[str, str]:
    # Mirror the identity headers the gateway forwards after authentication.
    return {"X-Tenant-Id": tenant_id, "X-User-Id": user_id, "X-Role": role}


@asynccontextmanager
async def api_client(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncClient]:
    app = create_app()

    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
