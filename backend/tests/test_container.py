"""Tests for the composition root."""
import pytest
from fakeredis import aioredis as fake_aioredis

from notifyhub.container import ServiceContainer
from notifyhub.infra.jobs.worker import JobWorker


class TestServiceContainer:
    """Wiring and lifecycle."""

    async def test_services_share_the_session(self, container, db_session):
        services = container.services(db_session)
        assert services.hub.notifications is services.notifications
        assert services.hub.preferences is services.preferences
        assert services.scanner.queue is container.queue
        assert services.scanner.thresholds.first == 3
        assert services.scanner.thresholds.final == 1

    async def test_queue_and_worker_follow_settings(self, container, settings):
        assert container.queue.name == settings.queue_name
        assert container.queue.options.attempts == 3
        worker = container.worker(lambda job: None)
        assert isinstance(worker, JobWorker)
        assert worker.concurrency == 5
        assert worker.limiter.max_jobs == 100
        assert worker.limiter.key == "notifyhub:reminders:limiter"

    async def test_close_releases_resources(self, settings, engine, email_sender, clock):
        container = ServiceContainer(
            settings,
            engine=engine,
            redis_client=fake_aioredis.FakeRedis(decode_responses=True),
            email_sender=email_sender,
            clock=clock,
        )
        await container.start()
        await container.close()
        assert container.background.pending == 0
        with pytest.raises(RuntimeError):
            container.bus.client
