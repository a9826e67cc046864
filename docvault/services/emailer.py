"""Outbound e-mail for invitations, over plain SMTP."""

from __future__ import annotations

import smtplib
from datetime import datetime
from email.message import EmailMessage

from ..core.config import settings


def _email_from_header() -> str:
    if settings.smtp_sender_name:
        return f"{settings.smtp_sender_name} <{settings.smtp_sender}>"
    return settings.smtp_sender


def _send_message(message: EmailMessage) -> None:
    with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=10) as smtp:
        smtp.ehlo()
        smtp.starttls()
        smtp.ehlo()
        if settings.smtp_user and settings.smtp_password:
            smtp.login(settings.smtp_user, settings.smtp_password)
        smtp.send_message(message)


def send_invitation(recipient: str, role: str, accept_url: str, expires_at: datetime) -> None:
    if not settings.email_enabled:
        raise RuntimeError("SMTP settings are not configured")

    message = EmailMessage()
    message["Subject"] = "You have been invited to DocVault"
    message["From"] = _email_from_header()
    message["To"] = recipient
    message.set_content(
        "\n".join(
            [
                f"You have been invited to join DocVault as {role}.",
                "",
                "Open the link below to create your account:",
                accept_url,
                "",
                f"This invitation expires on {expires_at:%Y-%m-%d %H:%M} UTC.",
                "If you were not expecting this invitation, you can ignore this email.",
            ]
        )
    )
    message.add_alternative(
        f"""\
<div style="font-family:-apple-system,BlinkMacSystemFont,'Segoe UI',Arial,sans-serif;color:#0f172a;">
  <h1 style="font-size:20px;">You have been invited to DocVault</h1>
  <p style="font-size:14px;">You were invited to join as <strong>{role}</strong>.</p>
  <a href="{accept_url}" style="display:inline-block;background:#2563eb;color:#ffffff;text-decoration:none;padding:12px 20px;border-radius:10px;">Accept invitation</a>
  <p style="font-size:12px;color:#94a3b8;">This invitation expires on {expires_at:%Y-%m-%d %H:%M} UTC.</p>
</div>
""",
        subtype="html",
    )
    _send_message(message)
