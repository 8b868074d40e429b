"""Composition root.

Everything with a connection or a lifecycle is built here once per process
and handed down explicitly; nothing reaches for module-level clients.
"""
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import AsyncIterator, Callable, Optional

import redis.asyncio as redis
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from notifyhub.domain.common.types import utcnow
from notifyhub.domain.reminders.models import StageThresholds
from notifyhub.infra.db.base import make_engine, make_sessionmaker
from notifyhub.infra.db.repositories.notification_repo import NotificationRepositoryImpl
from notifyhub.infra.db.repositories.preference_repo import PreferenceRepositoryImpl
from notifyhub.infra.db.repositories.reminder_log_repo import ReminderLogRepositoryImpl
from notifyhub.infra.db.repositories.subject_repo import SubjectRepositoryImpl
from notifyhub.infra.db.repositories.tenant_repo import TenantRepositoryImpl
from notifyhub.infra.db.repositories.user_repo import UserRepositoryImpl
from notifyhub.infra.jobs.queue import QueueOptions, RedisJobQueue
from notifyhub.infra.jobs.worker import JobWorker, RateLimiter
from notifyhub.infra.messaging.email_base import EmailSender, get_email_sender
from notifyhub.infra.messaging.redis_bus import RedisBus
from notifyhub.services.event_notifier import BackgroundNotifier, SecurityEventNotifier
from notifyhub.services.lifecycle_service import TenantLifecycleService
from notifyhub.services.notification_hub import NotificationHub
from notifyhub.services.notification_service import NotificationService, PreferenceService
from notifyhub.services.reminder_service import ReminderScanner, ReminderSender
from notifyhub.services.scheduler import ReminderScheduler, daily_triggers
from notifyhub.settings import Settings

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Session-scoped services for one request or one job."""
    notifications: NotificationService
    preferences: PreferenceService
    hub: NotificationHub
    events: SecurityEventNotifier
    scanner: ReminderScanner
    sender: ReminderSender
    lifecycle: TenantLifecycleService


class ServiceContainer:
    """Owns the engine, Redis connection, queue and email sender."""

    def __init__(
        self,
        settings: Settings,
        engine: Optional[AsyncEngine] = None,
        redis_client: Optional[redis.Redis] = None,
        email_sender: Optional[EmailSender] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.settings = settings
        self.engine = engine or make_engine(settings.database_url, settings.database_echo)
        self.sessionmaker = make_sessionmaker(self.engine)
        self.bus = RedisBus(settings.redis_url, client=redis_client)
        self.email_sender = email_sender or get_email_sender(settings)
        self.background = BackgroundNotifier()
        self.clock = clock
        self._queue: Optional[RedisJobQueue] = None

    async def start(self) -> None:
        """Connect Redis and check the database. Raises when either is unreachable."""
        await self.bus.connect()
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database connection verified")

    async def close(self) -> None:
        await self.background.drain()
        await self.engine.dispose()
        await self.bus.disconnect()

    @property
    def queue(self) -> RedisJobQueue:
        if self._queue is None:
            self._queue = RedisJobQueue(
                self.bus.client,
                name=self.settings.queue_name,
                options=QueueOptions.from_settings(self.settings),
            )
        return self._queue

    @property
    def scheduler(self) -> ReminderScheduler:
        return ReminderScheduler(self.queue, daily_triggers(self.settings))

    def worker(self, handler) -> JobWorker:
        limiter = RateLimiter(
            self.bus,
            key=f"notifyhub:{self.settings.queue_name}:limiter",
            max_jobs=self.settings.rate_limit_max,
            duration_ms=self.settings.rate_limit_duration_ms,
        )
        return JobWorker(
            self.queue,
            handler,
            concurrency=self.settings.worker_concurrency,
            limiter=limiter,
            job_timeout=self.settings.job_timeout_seconds,
        )

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with self.sessionmaker() as session:
            yield session

    def services(self, session: AsyncSession) -> Services:
        s = self.settings
        users = UserRepositoryImpl(session)
        ledger = ReminderLogRepositoryImpl(session)
        notifications = NotificationService(
            NotificationRepositoryImpl(session), retention_days=s.notification_retention_days, clock=self.clock
        )
        preferences = PreferenceService(
            PreferenceRepositoryImpl(session), quiet_hours_timezone=s.quiet_hours_timezone, clock=self.clock
        )
        hub = NotificationHub(users, preferences, notifications, self.email_sender)
        return Services(
            notifications=notifications,
            preferences=preferences,
            hub=hub,
            events=SecurityEventNotifier(hub, s.email_from_name, s.app_public_url),
            scanner=ReminderScanner(
                SubjectRepositoryImpl(session),
                ledger,
                self.queue,
                thresholds=StageThresholds(s.reminder_first_threshold_days, s.reminder_final_threshold_days),
                mfa_default_deadline_days=s.mfa_default_deadline_days,
                phone_default_deadline_days=s.phone_default_deadline_days,
                clock=self.clock,
            ),
            sender=ReminderSender(
                hub, ledger, users, self.queue, s.email_from_name, s.app_public_url, clock=self.clock
            ),
            lifecycle=TenantLifecycleService(
                TenantRepositoryImpl(session), hub, s.email_from_name, s.app_public_url, clock=self.clock
            ),
        )

    async def notify_event_in_background(
        self, key: str, user_id: str, tenant_id: Optional[str], details: Optional[dict] = None
    ) -> None:
        """Submit a security-event notification that must not fail the caller."""

        async def work():
            async with self.session() as session:
                return await self.services(session).events.notify_event(key, user_id, tenant_id, details)

        self.background.submit(work, f"{key}:{user_id}")
