"""API dependencies."""
from typing import AsyncIterator

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from notifyhub.container import ServiceContainer, Services


class Identity:
    """Caller identity forwarded by the authenticating gateway."""

    def __init__(self, user_id: str, tenant_id: str):
        self.user_id = user_id
        self.tenant_id = tenant_id


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


async def get_db(container: ServiceContainer = Depends(get_container)) -> AsyncIterator[AsyncSession]:
    async with container.session() as session:
        yield session


def get_services(
    container: ServiceContainer = Depends(get_container),
    db: AsyncSession = Depends(get_db),
) -> Services:
    return container.services(db)


async def get_identity(
    x_user_id: str = Header(default=""),
    x_tenant_id: str = Header(default=""),
) -> Identity:
    """Read X-User-Id / X-Tenant-Id; both are required for inbox routes."""
    if not x_user_id.strip() or not x_tenant_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-Id and X-Tenant-Id headers are required",
        )
    return Identity(x_user_id.strip(), x_tenant_id.strip())
