"""
Email Service: best-effort outbound notifications.

The provider is chosen by ``EMAIL_PROVIDER``:
    resend   Resend REST API (requires RESEND_API_KEY)
    smtp     plain SMTP via smtplib (requires SMTP_HOST/USER/PASSWORD)
    none     log-only; the default

A provider missing its credentials degrades to log-only with a warning.
``EmailService.send`` never raises: callers fire notifications after
their own commit and the primary request must not fail because of mail.

Configuration (env vars):
    EMAIL_PROVIDER, RESEND_API_KEY, SMTP_HOST, SMTP_PORT, SMTP_USER,
    SMTP_PASSWORD, FROM_EMAIL, APP_BASE_URL
"""

from __future__ import annotations

import html
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any

import requests
from flask import current_app

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


# ═══════════════════════════════════════════════════════════════════════════
#  Email Templates
# ═══════════════════════════════════════════════════════════════════════════

_LAYOUT = """
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
    <h2 style="color: #1e293b;">{heading}</h2>
    {body}
    <hr style="margin: 30px 0; border: none; border-top: 1px solid #eee;" />
    <p style="color: #94a3b8; font-size: 12px;">SourceTrack notification</p>
</div>
"""

_TEMPLATES: dict[str, dict[str, str]] = {
    "company_invite": {
        "subject": "Приглашение в {company_name} / Invitation to {company_name}",
        "heading": "{company_name}",
        "body": """
            <p>Вас пригласили присоединиться к компании <strong>{company_name}</strong>.</p>
            <p>You have been invited to join <strong>{company_name}</strong>.</p>
            <p><a href="{invite_url}">{invite_url}</a></p>
        """,
    },
    "task_assigned": {
        "subject": "Новая задача / New task: {project_name}",
        "heading": "{assigner_name} assigned you a task",
        "body": """
            <p><strong>{project_name}</strong> &middot; {stage_name}</p>
            <blockquote>{description}</blockquote>
            <p><a href="{project_url}">{project_url}</a></p>
        """,
    },
    "comment_mention": {
        "subject": "Вас упомянули / You were mentioned: {project_name}",
        "heading": "{author_name} mentioned you",
        "body": """
            <p><strong>{project_name}</strong> &middot; {stage_name}</p>
            <blockquote>{content}</blockquote>
            <p><a href="{project_url}">{project_url}</a></p>
        """,
    },
}


class _SafeDict(dict):
    """Dict that returns {key} for missing keys instead of raising."""

    def __missing__(self, key):
        return f"{{{key}}}"


# ═══════════════════════════════════════════════════════════════════════════
#  Email Service
# ═══════════════════════════════════════════════════════════════════════════

class EmailService:
    """Provider-selecting sender. All methods read config at call time."""

    @staticmethod
    def provider() -> str:
        """Effective provider name after credential checks."""
        cfg = current_app.config
        name = (cfg.get("EMAIL_PROVIDER") or "none").lower()
        if name == "resend" and not cfg.get("RESEND_API_KEY"):
            logger.warning("Resend API key not configured, email disabled")
            return "none"
        if name == "smtp" and not (
            cfg.get("SMTP_HOST") and cfg.get("SMTP_USER") and cfg.get("SMTP_PASSWORD")
        ):
            logger.warning("SMTP not fully configured, email disabled")
            return "none"
        if name not in ("resend", "smtp"):
            return "none"
        return name

    @classmethod
    def send(cls, *, to_email: str, subject: str, html_body: str) -> bool:
        """Send one message. Returns True on success (or log-only), False on failure."""
        provider = cls.provider()
        if provider == "none":
            logger.info("Email (disabled): to=%s subject='%s'", to_email, subject)
            return True
        try:
            if provider == "resend":
                cls._send_resend(to_email=to_email, subject=subject, html_body=html_body)
            else:
                cls._send_smtp(to_email=to_email, subject=subject, html_body=html_body)
        except Exception as exc:
            logger.error("Email failed: provider=%s to=%s error=%s", provider, to_email, exc)
            return False
        logger.info("Email sent: provider=%s to=%s subject='%s'", provider, to_email, subject)
        return True

    @classmethod
    def send_from_template(cls, *, to_email: str, template_name: str, context: dict[str, Any]) -> bool:
        template = _TEMPLATES.get(template_name)
        if not template:
            logger.warning("Email template not found: %s", template_name)
            return False
        ctx = _SafeDict({k: html.escape(str(v)) for k, v in context.items()})
        html_body = _LAYOUT.format(
            heading=template["heading"].format_map(ctx),
            body=template["body"].format_map(ctx),
        )
        return cls.send(
            to_email=to_email,
            subject=template["subject"].format_map(ctx),
            html_body=html_body,
        )

    @staticmethod
    def _sender() -> str:
        cfg = current_app.config
        return cfg.get("FROM_EMAIL") or cfg.get("SMTP_USER") or "noreply@example.com"

    @classmethod
    def _send_resend(cls, *, to_email: str, subject: str, html_body: str) -> None:
        resp = requests.post(
            RESEND_API_URL,
            headers={"Authorization": f"Bearer {current_app.config['RESEND_API_KEY']}"},
            json={"from": cls._sender(), "to": [to_email], "subject": subject, "html": html_body},
            timeout=15,
        )
        resp.raise_for_status()

    @classmethod
    def _send_smtp(cls, *, to_email: str, subject: str, html_body: str) -> None:
        cfg = current_app.config
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = cls._sender()
        msg["To"] = to_email
        msg.attach(MIMEText(html_body, "html"))

        with smtplib.SMTP(cfg["SMTP_HOST"], cfg.get("SMTP_PORT", 587), timeout=30) as smtp:
            smtp.starttls()
            smtp.login(cfg["SMTP_USER"], cfg["SMTP_PASSWORD"])
            smtp.send_message(msg)


# ═══════════════════════════════════════════════════════════════════════════
#  Notification helpers
# ═══════════════════════════════════════════════════════════════════════════

def _project_url(project_id) -> str:
    base = (current_app.config.get("APP_BASE_URL") or "").rstrip("/")
    return f"{base}/projects/{project_id}"


def send_invite_email(invite) -> bool:
    base = (current_app.config.get("APP_BASE_URL") or "").rstrip("/")
    return EmailService.send_from_template(
        to_email=invite.email,
        template_name="company_invite",
        context={"company_name": invite.company.name, "invite_url": f"{base}/invite/{invite.token}"},
    )


def send_task_assigned_email(task) -> bool:
    stage = task.stage
    return EmailService.send_from_template(
        to_email=task.assigned_to.email,
        template_name="task_assigned",
        context={
            "assigner_name": task.assigned_by.display_name,
            "project_name": stage.project.name,
            "stage_name": stage.name,
            "description": task.description,
            "project_url": _project_url(stage.project_id),
        },
    )


def send_mention_email(comment, recipient) -> bool:
    stage = comment.stage
    return EmailService.send_from_template(
        to_email=recipient.email,
        template_name="comment_mention",
        context={
            "author_name": comment.user.display_name,
            "project_name": stage.project.name,
            "stage_name": stage.name,
            "content": comment.content,
            "project_url": _project_url(stage.project_id),
        },
    )
