"""Notification Hub: policy-aware email + in-app delivery with fallback.

The in-app record is the backstop for email: when email is enabled for a
category but the provider fails, an in-app notification is created even if
the user turned in-app off. Email that is disabled by preference is not a
failure and does not trigger the fallback.

Pause and DND only apply to ALLOW_DISABLE categories in a tenant. Callers
that can retry later (reminders) ask for the whole delivery to be held;
everything else goes to the inbox with the email suppressed.
"""
import logging
from typing import Any, Optional

from notifyhub.domain.notifications.models import (
    Channel,
    NotificationCategory,
    NotificationSeverity,
    NotificationType,
    NotifyResult,
)
from notifyhub.domain.notifications.policy import as_category, is_always_send
from notifyhub.domain.notifications.repositories import RecipientRepository
from notifyhub.infra.messaging.email_base import EmailSender
from notifyhub.services.notification_service import NotificationService, PreferenceService

logger = logging.getLogger(__name__)


class NotificationHub:
    """Single entry point for event notifications and reminders."""

    def __init__(
        self,
        recipients: RecipientRepository,
        preferences: PreferenceService,
        notifications: NotificationService,
        email_sender: EmailSender,
    ):
        self.recipients = recipients
        self.preferences = preferences
        self.notifications = notifications
        self.email_sender = email_sender

    async def notify(
        self,
        user_id: str,
        tenant_id: Optional[str],
        category: NotificationCategory,
        type: NotificationType,
        title: str,
        message: str,
        severity: NotificationSeverity = NotificationSeverity.INFO,
        email_subject: Optional[str] = None,
        email_html: Optional[str] = None,
        email_text: Optional[str] = None,
        action_route: Optional[str] = None,
        action_label: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
        hold_when_quiet: bool = False,
    ) -> NotifyResult:
        """Deliver one notification.

        With `hold_when_quiet`, nothing is delivered during pause or DND and
        the result carries `deferred_until`; the caller re-sends then.
        """
        category = as_category(category)
        result = NotifyResult()

        recipient = await self.recipients.get_recipient(user_id)
        if recipient is None:
            logger.warning("Notification %s skipped: user %s not found", category.value, user_id)
            return result

        always_send = is_always_send(category)
        if always_send or not tenant_id:
            email_enabled = in_app_enabled = True
        else:
            email_enabled = await self.preferences.is_category_enabled(user_id, tenant_id, category, Channel.EMAIL)
            in_app_enabled = await self.preferences.is_category_enabled(user_id, tenant_id, category, Channel.IN_APP)

        resume_at = None
        if not always_send and tenant_id and (email_enabled or in_app_enabled):
            resume_at = await self.preferences.quiet_until(user_id, tenant_id)
        if resume_at is not None and hold_when_quiet:
            logger.info("Holding %s for user %s until %s (quiet hours)", category.value, user_id, resume_at)
            result.deferred_until = resume_at
            return result
        # Without a hold, quiet hours drop the email and the inbox keeps the message.
        quiet = resume_at is not None

        if email_enabled and not quiet and email_subject and email_html:
            sent = await self.email_sender.send_email(recipient.email, email_subject, email_html, email_text)
            result.email_sent = sent.sent
            result.email_error = sent.error
            if not sent.sent:
                logger.warning("Email for %s to user %s failed: %s", category.value, user_id, sent.error)

        if not tenant_id:
            return result

        fallback = email_enabled and not result.email_sent and not quiet and not in_app_enabled
        if in_app_enabled or fallback or quiet:
            extra = dict(metadata or {})
            extra.update(emailSent=result.email_sent, emailError=result.email_error)
            if fallback:
                extra["fallback"] = True
            if quiet:
                extra["emailSuppressed"] = "quiet_hours"
            try:
                notification = await self.notifications.create(
                    user_id=user_id,
                    tenant_id=tenant_id,
                    type=type,
                    category=category,
                    title=title,
                    message=message,
                    severity=severity,
                    action_route=action_route,
                    action_label=action_label,
                    metadata=extra,
                )
            except Exception as e:
                logger.exception("In-app notification %s for user %s failed", category.value, user_id)
                result.in_app_error = str(e)
            else:
                result.in_app_sent = True
                result.notification_id = notification.id

        return result
