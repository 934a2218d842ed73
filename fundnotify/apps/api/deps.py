from __future__ import annotations

from typing import AsyncGenerator

from fastapi import Depends, HTTPException, Request, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from fundnotify.core.config import get_settings
from fundnotify.persistence.db import get_session
from fundnotify.services.auth.roles import normalize_role, role_allows


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    # One AsyncSession per request; context manager ensures close on success/error.
    async with get_session() as session:
        yield session


class Principal(BaseModel):
    # Identity resolved by the upstream gateway, used for tenant scoping and RBAC.
    tenant_id: str
    user_id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def _auth_error(message: str) -> HTTPException:
    # Normalize auth errors for clients without leaking internal details.
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": "AUTH_UNAUTHORIZED", "message": message},
    )


def _forbidden_error(message: str) -> HTTPException:
    # Use 403 for authenticated principals lacking permissions.
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={"code": "AUTH_FORBIDDEN", "message": message},
    )


async def get_current_principal(request: Request) -> Principal:
    settings = get_settings()
    tenant_id = (request.headers.get(settings.auth_tenant_header) or "").strip()
    user_id = (request.headers.get(settings.auth_user_header) or "").strip()
    if not tenant_id:
        raise _auth_error(f"{settings.auth_tenant_header} header is required")
    if not user_id:
        raise _auth_error(f"{settings.auth_user_header} header is required")
    role_header = request.headers.get(settings.auth_role_header) or settings.auth_default_role
    try:
        role = normalize_role(role_header)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "AUTH_INVALID_ROLE", "message": str(exc)},
        ) from exc
    principal = Principal(tenant_id=tenant_id, user_id=user_id, role=role)
    # Expose identity to the request logger.
    request.state.tenant_id = tenant_id
    return principal


def require_role(minimum_role: str):
    # Dependency factory to enforce RBAC at the route level.
    async def _dependency(principal: Principal = Depends(get_current_principal)) -> Principal:
        if not role_allows(role=principal.role, minimum_role=minimum_role):
            raise _forbidden_error("Insufficient role for this operation")
        return principal

    return _dependency
