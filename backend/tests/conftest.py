"""Shared fixtures: in-memory SQLite, fake Redis, a recording email sender and a controllable clock."""
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
from fakeredis import aioredis as fake_aioredis
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from notifyhub.container import ServiceContainer
from notifyhub.domain.common.types import generate_id
from notifyhub.infra.db.base import Base, make_sessionmaker
from notifyhub.infra.db.models import (
    TenantMemberModel,
    TenantModel,
    TenantSecurityConfigModel,
    UserModel,
)
from notifyhub.infra.messaging.email_base import EmailResult, EmailSender
from notifyhub.settings import Settings

T0 = datetime(2026, 3, 2, 12, 0, 0)


class FakeClock:
    """Naive-UTC clock that only moves when told to."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now

    def timestamp(self) -> float:
        return self.now.replace(tzinfo=timezone.utc).timestamp()


class RecordingEmailSender(EmailSender):
    """Keeps every email in memory; `fail_with` simulates a provider outage."""

    def __init__(self):
        self.sent: list[dict] = []
        self.fail_with: Optional[str] = None

    async def send_email(self, to_email, subject, html_content, text_content=None) -> EmailResult:
        if self.fail_with:
            return EmailResult(sent=False, error=self.fail_with)
        self.sent.append({"to": to_email, "subject": subject, "html": html_content, "text": text_content})
        return EmailResult(sent=True)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        database_url="sqlite+aiosqlite:///:memory:",
        redis_url="redis://localhost:6379/15",
        email_provider="console",
        app_public_url="https://app.example.com",
        email_from_name="Notifyhub",
    )


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(engine) -> AsyncSession:
    async with make_sessionmaker(engine)() as session:
        yield session


@pytest.fixture
async def redis_client():
    client = fake_aioredis.FakeRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def email_sender() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest.fixture
async def container(settings, engine, redis_client, email_sender, clock):
    container = ServiceContainer(
        settings,
        engine=engine,
        redis_client=redis_client,
        email_sender=email_sender,
        clock=clock,
    )
    await container.start()
    yield container
    await container.background.drain()


@pytest.fixture
def services(container, db_session):
    return container.services(db_session)


async def seed_user(
    session: AsyncSession,
    email: Optional[str] = None,
    first_name: str = "Ada",
    created_at: datetime = T0,
    mfa_enabled: bool = False,
    phone_verified: bool = False,
    status: str = "active",
) -> str:
    user_id = generate_id()
    session.add(
        UserModel(
            id=user_id,
            email=email or f"{user_id}@example.com",
            first_name=first_name,
            status=status,
            mfa_enabled=mfa_enabled,
            phone_verified=phone_verified,
            created_at=created_at,
            updated_at=created_at,
        )
    )
    await session.commit()
    return user_id


async def seed_tenant(
    session: AsyncSession,
    name: str = "Acme",
    status: str = "active",
    subscription_status: Optional[str] = None,
    plan: str = "team",
    license_count: int = 10,
    trial_expires_at: Optional[datetime] = None,
    deletion_scheduled_at: Optional[datetime] = None,
    created_at: datetime = T0,
) -> str:
    tenant_id = generate_id()
    session.add(
        TenantModel(
            id=tenant_id,
            name=name,
            status=status,
            plan=plan,
            subscription_status=subscription_status,
            license_count=license_count,
            trial_expires_at=trial_expires_at,
            deletion_scheduled_at=deletion_scheduled_at,
            created_at=created_at,
            updated_at=created_at,
        )
    )
    await session.commit()
    return tenant_id


async def add_member(
    session: AsyncSession,
    tenant_id: str,
    user_id: str,
    is_owner: bool = False,
    created_at: datetime = T0,
) -> None:
    session.add(
        TenantMemberModel(
            id=generate_id(),
            tenant_id=tenant_id,
            user_id=user_id,
            is_owner=is_owner,
            status="active",
            created_at=created_at,
        )
    )
    await session.commit()


async def set_security_config(session: AsyncSession, tenant_id: str, **values) -> None:
    session.add(TenantSecurityConfigModel(tenant_id=tenant_id, updated_at=T0, **values))
    await session.commit()
