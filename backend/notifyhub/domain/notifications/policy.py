"""Alert policy resolution.

Every category is classified as ALWAYS_SEND (security-critical, cannot be
silenced) or ALLOW_DISABLE (user preferences apply). The classification is
compiled in and is not user or tenant editable.
"""
from typing import Optional, Union, assert_never

from notifyhub.domain.common.errors import UnknownCategoryError
from notifyhub.domain.notifications.models import (
    AlertPolicy,
    Channel,
    NotificationCategory,
    NotificationPreference,
)

C = NotificationCategory


def as_category(value: Union[str, NotificationCategory]) -> NotificationCategory:
    """Coerce a raw value into the closed category set."""
    if isinstance(value, NotificationCategory):
        return value
    try:
        return NotificationCategory(value)
    except ValueError:
        raise UnknownCategoryError(value) from None


def alert_policy(category: Union[str, NotificationCategory]) -> AlertPolicy:
    """Return the alert policy of a category."""
    category = as_category(category)
    match category:
        case (
            C.SUSPICIOUS_LOGIN
            | C.MFA_DISABLED
            | C.ACCOUNT_LOCKED
            | C.PASSWORD_CHANGED
            | C.MFA_ENABLEMENT_FIRST
            | C.MFA_ENABLEMENT_FINAL
            | C.PHONE_VERIFICATION_FIRST
            | C.PHONE_VERIFICATION_FINAL
            | C.TENANT_DELETION_REQUESTED
            | C.TENANT_DELETION_FIRST
            | C.TENANT_DELETION_FINAL
        ):
            return AlertPolicy.ALWAYS_SEND
        case (
            C.LOGIN_ALERT
            | C.MFA_ENABLED
            | C.SESSION_REVOKED
            | C.BACKUP_CODES
            | C.WELCOME
            | C.WORKFLOW_CREATED
            | C.WORKFLOW_PUBLISHED
            | C.TEAM_INVITATION
            | C.INTEGRATION_FAILURE
            | C.BILLING_EMAIL_CHANGED
            | C.PRIMARY_CONTACT_CHANGED
            | C.MEMBER_JOINED
            | C.TENANT_DELETION_CANCELLED
            | C.TRIAL_EXPIRED
            | C.TRIAL_EXPIRATION_FIRST
            | C.TRIAL_EXPIRATION_FINAL
        ):
            return AlertPolicy.ALLOW_DISABLE
        case _:
            assert_never(category)


def is_always_send(category: Union[str, NotificationCategory]) -> bool:
    """True when preferences can never silence the category."""
    return alert_policy(category) is AlertPolicy.ALWAYS_SEND


def is_channel_enabled(
    preference: Optional[NotificationPreference],
    category: Union[str, NotificationCategory],
    channel: Channel,
) -> bool:
    """Decide whether a channel is enabled for a category.

    ALWAYS_SEND wins over everything, including explicit per-category
    overrides. A missing preference row fails open. Do-not-disturb and pause
    are not consulted here; they only delay interrupting channels at the Hub.
    """
    category = as_category(category)
    if is_always_send(category):
        return True
    if preference is None:
        return True
    if not preference.channel_toggle(channel):
        return False
    override = preference.category_preferences.get(category)
    if override is not None and override.for_channel(channel) is False:
        return False
    return True


# Fails at import if a category was added without a policy.
for _category in NotificationCategory:
    alert_policy(_category)
del _category
