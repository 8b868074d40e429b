"""Notification copy: security-event configs, reminder copy and the email layout."""
from dataclasses import dataclass
from html import escape
from typing import Any, Callable, Optional, Union

from notifyhub.domain.common.errors import ValidationError
from notifyhub.domain.notifications.models import (
    NotificationCategory,
    NotificationSeverity,
    NotificationType,
)
from notifyhub.domain.reminders.models import Campaign, Stage, category_for

Details = dict[str, Any]
MessageBuilder = Callable[[Details], str]


@dataclass(frozen=True)
class EventConfig:
    """How a named event is presented on every channel."""
    type: NotificationType
    category: NotificationCategory
    title: str
    message: Union[str, MessageBuilder]
    severity: NotificationSeverity
    action_route: str
    action_label: str
    email_subject: str

    def render_message(self, details: Optional[Details] = None) -> str:
        if callable(self.message):
            return self.message(details or {})
        return self.message


def _session_revoked(details: Details) -> str:
    device = details.get("device")
    return f"A session on {device} has been logged out." if device else "One of your sessions has been logged out."


def _login_alert(details: Details) -> str:
    parts = []
    if details.get("device"):
        parts.append(f"from {details['device']}")
    if details.get("location"):
        parts.append(f"in {details['location']}")
    if parts:
        return f"New sign-in to your account {' '.join(parts)}."
    return "New sign-in to your account detected."


def _billing_email_changed(details: Details) -> str:
    if details.get("is_new_address"):
        return "You have been set as the billing contact for this workspace."
    return "The billing email for this workspace has been changed."


def _deletion_requested(details: Details) -> str:
    tenant_name = details.get("tenant_name")
    if tenant_name:
        return f'The workspace "{tenant_name}" has been scheduled for permanent deletion.'
    return "Your workspace has been scheduled for permanent deletion."


def _deletion_cancelled(details: Details) -> str:
    tenant_name = details.get("tenant_name")
    if tenant_name:
        return f'Good news! The deletion of "{tenant_name}" has been cancelled.'
    return "Good news! The workspace deletion has been cancelled."


def _team_invitation(details: Details) -> str:
    inviter, tenant_name = details.get("inviter_name"), details.get("tenant_name")
    if inviter and tenant_name:
        return f"{inviter} invited you to join {tenant_name}."
    return "You have been invited to join a workspace."


def _member_joined(details: Details) -> str:
    member = details.get("member_name")
    if member:
        return f"{member} has joined {details.get('tenant_name') or 'the workspace'}."
    return "A new member has joined the workspace."


S = NotificationSeverity
T = NotificationType
C = NotificationCategory

EVENT_CONFIGS: dict[str, EventConfig] = {
    "mfa_enabled": EventConfig(
        T.SECURITY, C.MFA_ENABLED, "Two-Factor Authentication Enabled",
        "You have successfully enabled two-factor authentication on your account.",
        S.SUCCESS, "/settings/security", "View Security Settings", "Two-factor authentication enabled",
    ),
    "mfa_disabled": EventConfig(
        T.SECURITY, C.MFA_DISABLED, "Two-Factor Authentication Disabled",
        "Two-factor authentication has been disabled on your account. "
        "If you did not do this, please secure your account immediately.",
        S.WARNING, "/settings/security", "Re-enable 2FA", "Two-factor authentication disabled",
    ),
    "session_revoked": EventConfig(
        T.SECURITY, C.SESSION_REVOKED, "Session Logged Out", _session_revoked,
        S.INFO, "/settings/sessions", "View Sessions", "A session has been logged out",
    ),
    "password_changed": EventConfig(
        T.SECURITY, C.PASSWORD_CHANGED, "Password Changed",
        "Your password has been changed successfully. If you did not do this, please contact support immediately.",
        S.WARNING, "/settings/security", "Review Security", "Your password has been changed",
    ),
    "backup_codes": EventConfig(
        T.SECURITY, C.BACKUP_CODES, "Backup Codes Regenerated",
        "Your backup codes have been regenerated. Your old codes are no longer valid.",
        S.INFO, "/settings/security", "View Backup Codes", "Backup codes regenerated",
    ),
    "login_alert": EventConfig(
        T.SECURITY, C.LOGIN_ALERT, "New Sign-in Detected", _login_alert,
        S.INFO, "/settings/sessions", "Review Sessions", "New sign-in to your account",
    ),
    "suspicious_login": EventConfig(
        T.SECURITY, C.SUSPICIOUS_LOGIN, "Suspicious Sign-in Detected",
        "A suspicious sign-in attempt was detected on your account. Please review your recent activity.",
        S.DANGER, "/settings/sessions", "Review Sessions", "Suspicious sign-in detected",
    ),
    "account_locked": EventConfig(
        T.SECURITY, C.ACCOUNT_LOCKED, "Account Locked",
        "Your account was locked after repeated failed sign-in attempts.",
        S.DANGER, "/settings/security", "Review Security", "Your account has been locked",
    ),
    "welcome": EventConfig(
        T.SYSTEM, C.WELCOME, "Welcome!",
        "Your email has been verified. You now have full access to all features.",
        S.SUCCESS, "/dashboard", "Go to Dashboard", "Welcome!",
    ),
    "billing_email_changed": EventConfig(
        T.SYSTEM, C.BILLING_EMAIL_CHANGED, "Billing Email Changed", _billing_email_changed,
        S.WARNING, "/settings/billing", "View Billing Settings", "Billing email changed",
    ),
    "primary_contact_added": EventConfig(
        T.SYSTEM, C.PRIMARY_CONTACT_CHANGED, "Primary Contact Added",
        "You have been set as the primary contact for this workspace.",
        S.INFO, "/settings/contacts", "View Contact Settings", "You are now the primary contact",
    ),
    "primary_contact_updated": EventConfig(
        T.SYSTEM, C.PRIMARY_CONTACT_CHANGED, "Primary Contact Updated",
        "The primary contact information for this workspace has been updated.",
        S.INFO, "/settings/contacts", "View Contact Settings", "Primary contact updated",
    ),
    "primary_contact_removed": EventConfig(
        T.SYSTEM, C.PRIMARY_CONTACT_CHANGED, "Primary Contact Removed",
        "You have been removed as the primary contact for this workspace.",
        S.WARNING, "/settings/contacts", "View Contact Settings", "Primary contact removed",
    ),
    "tenant_deletion_requested": EventConfig(
        T.SYSTEM, C.TENANT_DELETION_REQUESTED, "Workspace Deletion Requested", _deletion_requested,
        S.DANGER, "/settings/danger-zone", "View Deletion Status", "Workspace deletion scheduled",
    ),
    "tenant_deletion_cancelled": EventConfig(
        T.SYSTEM, C.TENANT_DELETION_CANCELLED, "Workspace Deletion Cancelled", _deletion_cancelled,
        S.SUCCESS, "/dashboard", "Go to Dashboard", "Workspace deletion cancelled",
    ),
    "team_invitation_received": EventConfig(
        T.TEAM, C.TEAM_INVITATION, "Workspace Invitation", _team_invitation,
        S.SUCCESS, "/invites", "View Invitation", "You've been invited to join a workspace",
    ),
    "member_joined": EventConfig(
        T.TEAM, C.MEMBER_JOINED, "New Team Member", _member_joined,
        S.SUCCESS, "/settings/users", "View Members", "A new member has joined your workspace",
    ),
    "integration_failure": EventConfig(
        T.INTEGRATION, C.INTEGRATION_FAILURE, "Integration Failed",
        lambda d: f"The {d.get('integration_name') or 'integration'} integration stopped working.",
        S.DANGER, "/settings/integrations", "View Integrations", "An integration needs attention",
    ),
}


def get_event_config(key: str) -> EventConfig:
    try:
        return EVENT_CONFIGS[key]
    except KeyError:
        raise ValidationError(f"Unknown notification event: {key}") from None


@dataclass(frozen=True)
class ReminderCopy:
    """Text of one reminder stage on every channel."""
    type: NotificationType
    category: NotificationCategory
    severity: NotificationSeverity
    title: str
    message: str
    email_subject: str
    action_route: str
    action_label: str


def reminder_copy(campaign: Campaign, stage: Stage, days_remaining: int, deadline_date: str) -> ReminderCopy:
    """Copy for a reminder; the final stage is more urgent."""
    final = stage is Stage.FINAL
    category = category_for(campaign, stage)
    severity = S.WARNING if final else S.INFO
    if campaign is Campaign.MFA_ENABLEMENT:
        return ReminderCopy(
            T.SECURITY, category, severity,
            "Action Required: Enable 2FA Tomorrow" if final else "Reminder: Enable Two-Factor Authentication",
            f"Your organization requires 2FA to be enabled by {deadline_date}. Please enable it today."
            if final else f"You have {days_remaining} days to enable two-factor authentication on your account.",
            "Action Required: Enable 2FA by tomorrow" if final else "Reminder: Enable two-factor authentication",
            "/settings/security", "Enable 2FA",
        )
    if campaign is Campaign.PHONE_VERIFICATION:
        return ReminderCopy(
            T.SECURITY, category, severity,
            "Action Required: Verify Phone Tomorrow" if final else "Reminder: Verify Your Phone Number",
            f"Your organization requires phone verification by {deadline_date}. Please verify today."
            if final else f"You have {days_remaining} days to verify your phone number.",
            "Action Required: Verify your phone by tomorrow" if final else "Reminder: Verify your phone number",
            "/settings/security", "Verify Phone",
        )
    if campaign is Campaign.TRIAL_EXPIRATION:
        return ReminderCopy(
            T.SYSTEM, category, severity,
            "Your Trial Ends Tomorrow" if final else "Trial Ending Soon",
            f"Your free trial ends {deadline_date}. Upgrade now to keep your data."
            if final else f"Your free trial ends in {days_remaining} days. Upgrade to continue using all features.",
            "Your trial ends tomorrow" if final else f"Your trial ends in {days_remaining} days",
            "/settings/billing", "Upgrade Now",
        )
    if campaign is Campaign.TENANT_DELETION:
        return ReminderCopy(
            T.SYSTEM, category, S.DANGER if final else S.WARNING,
            "Workspace Deleted Tomorrow" if final else "Workspace Deletion Approaching",
            f"Your workspace will be permanently deleted on {deadline_date}. Cancel the deletion today to keep it."
            if final else f"Your workspace will be permanently deleted in {days_remaining} days.",
            "Your workspace will be deleted tomorrow" if final else f"Workspace deletion in {days_remaining} days",
            "/settings/danger-zone", "Cancel Deletion",
        )
    raise ValidationError(f"No reminder copy for {campaign}")


def render_email_html(
    brand: str,
    heading: str,
    body: str,
    first_name: Optional[str] = None,
    action_url: Optional[str] = None,
    action_label: Optional[str] = None,
) -> str:
    """Shared HTML layout for notification emails."""
    name = escape(first_name or "there")
    button = ""
    if action_url and action_label:
        button = f"""
                <div style="text-align: center; margin: 32px 0;">
                    <a href="{escape(action_url)}"
                       style="background-color: #1e293b; color: #ffffff; padding: 14px 28px; text-decoration: none; border-radius: 6px; font-weight: 600; display: inline-block; font-size: 16px;">
                        {escape(action_label)}
                    </a>
                </div>"""
    return f"""
        <!DOCTYPE html>
        <html>
        <head>
            <meta charset="utf-8">
            <meta name="viewport" content="width=device-width, initial-scale=1.0">
        </head>
        <body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, 'Helvetica Neue', Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
            <div style="background-color: #f8f9fa; padding: 30px; border-radius: 8px; text-align: center; margin-bottom: 30px;">
                <h1 style="color: #1e293b; margin: 0;">{escape(brand)}</h1>
            </div>
            <div style="background-color: #ffffff; padding: 30px; border-radius: 8px; box-shadow: 0 2px 4px rgba(0,0,0,0.1);">
                <h2 style="color: #1e293b; margin-top: 0;">{escape(heading)}</h2>
                <p style="font-size: 16px; color: #475569;">Hi {name},</p>
                <p style="font-size: 16px; color: #475569;">{escape(body)}</p>{button}
            </div>
        </body>
        </html>
        """


def render_email_text(heading: str, body: str, first_name: Optional[str] = None, action_url: Optional[str] = None) -> str:
    lines = [heading, "", f"Hi {first_name or 'there'},", "", body]
    if action_url:
        lines += ["", action_url]
    return "\n".join(lines)
