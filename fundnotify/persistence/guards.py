from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fundnotify.core.errors import NotificationValidationError, StoreError


def require_tenant_id(tenant_id: str | None) -> str:
    # Caller-facing operations are always tenant scoped.
    if not tenant_id or not str(tenant_id).strip():
        raise NotificationValidationError("tenant_id is required")
    return str(tenant_id).strip()


@asynccontextmanager
async def store_errors(session: AsyncSession, action: str) -> AsyncIterator[AsyncSession]:
    # Roll back and surface driver failures as StoreError so callers see one error type.
    try:
        yield session
    except SQLAlchemyError as exc:
        await session.rollback()
        raise StoreError(f"Database error while {action}") from exc
