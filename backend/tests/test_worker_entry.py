"""Tests for the worker process entry point."""
import pytest

from notifyhub import worker as worker_module


class UnreachableContainer:
    """Container whose backing services are down."""

    closed = False

    def __init__(self, settings):
        self.settings = settings

    async def start(self):
        raise ConnectionError("redis://localhost:6379 refused")

    async def close(self):
        UnreachableContainer.closed = True


class TestWorkerStartup:
    """Startup failures are fatal."""

    async def test_unreachable_backends_exit_with_status_1(self, monkeypatch):
        monkeypatch.setattr(worker_module, "ServiceContainer", UnreachableContainer)
        assert await worker_module.main_async() == 1
        assert UnreachableContainer.closed is True

    def test_main_exits_with_status(self, monkeypatch):
        async def fake_main():
            return 1

        monkeypatch.setattr(worker_module, "main_async", fake_main)
        with pytest.raises(SystemExit) as exc:
            worker_module.main()
        assert exc.value.code == 1
