"""Security-event notifications and supervised background delivery."""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from notifyhub.domain.notifications.models import NotifyResult
from notifyhub.services.notification_configs import get_event_config, render_email_html, render_email_text
from notifyhub.services.notification_hub import NotificationHub

logger = logging.getLogger(__name__)


class SecurityEventNotifier:
    """Turns a named event (password changed, MFA toggled, ...) into a Hub delivery."""

    def __init__(self, hub: NotificationHub, brand: str, app_url: str):
        self.hub = hub
        self.brand = brand
        self.app_url = app_url.rstrip("/")

    async def notify_event(
        self,
        key: str,
        user_id: str,
        tenant_id: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> NotifyResult:
        config = get_event_config(key)
        details = details or {}
        message = config.render_message(details)
        action_url = f"{self.app_url}{config.action_route}"
        first_name = details.get("first_name")
        return await self.hub.notify(
            user_id=user_id,
            tenant_id=tenant_id,
            category=config.category,
            type=config.type,
            title=config.title,
            message=message,
            severity=config.severity,
            email_subject=f"{config.email_subject} - {self.brand}",
            email_html=render_email_html(self.brand, config.title, message, first_name, action_url, config.action_label),
            email_text=render_email_text(config.title, message, first_name, action_url),
            action_route=config.action_route,
            action_label=config.action_label,
            metadata={"event": key},
        )


class BackgroundNotifier:
    """Runs notifications off the caller's path.

    A failing notification is logged here and never reaches the caller.
    Pending work is awaited on shutdown.
    """

    def __init__(self):
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, work: Callable[[], Awaitable[Any]], description: str) -> asyncio.Task:
        task = asyncio.create_task(self._run(work, description), name=f"notify:{description}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, work: Callable[[], Awaitable[Any]], description: str) -> Any:
        try:
            result = await work()
        except asyncio.CancelledError:
            logger.warning("Background notification %s cancelled", description)
            raise
        except Exception:
            logger.exception("Background notification %s failed", description)
            return None
        if isinstance(result, NotifyResult) and (result.email_error or result.in_app_error):
            logger.warning(
                "Background notification %s delivered with errors (email: %s, in-app: %s)",
                description,
                result.email_error,
                result.in_app_error,
            )
        return result

    async def drain(self, timeout: float = 10.0) -> None:
        """Wait for pending notifications; cancel whatever is left after `timeout`."""
        if not self._tasks:
            return
        _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning("Cancelled %d background notifications at shutdown", len(pending))
            await asyncio.gather(*pending, return_exceptions=True)
