"""Email service using Resend for sending transactional emails."""

from __future__ import annotations

import html
import logging
import os
from typing import Any
from urllib.parse import urlencode

import resend

from ..errors import UpstreamFailure
from ..settings import APP_URL

logger = logging.getLogger(__name__)

# Resend configuration from environment
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
RESEND_FROM_EMAIL = os.getenv("RESEND_FROM_EMAIL", "Beam Galleries <hello@beam.ms>")


def _init_resend() -> bool:
    """Initialize Resend API key. Returns True if configured."""
    if not RESEND_API_KEY:
        logger.warning("RESEND_API_KEY not configured - email sending disabled")
        return False
    resend.api_key = RESEND_API_KEY
    return True


def gallery_url(slug: str) -> str:
    return f"{APP_URL}/g/{slug}"


def sign_up_url(email: str, token: str, slug: str) -> str:
    """Magic link for an unregistered invitee; claimed via /auth/verify-magic-link after sign-up."""
    query = urlencode({"email": email, "inviteToken": token, "gallery": slug})
    return f"{APP_URL}/sign-up?{query}"


def _render_invite_html(title: str, lead: str, button_label: str, url: str, footnote: str) -> str:
    return f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{title}</title>
</head>
<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
    <div style="background: #111; padding: 30px; border-radius: 10px 10px 0 0; text-align: center;">
        <h1 style="color: white; margin: 0; font-size: 24px;">Beam</h1>
    </div>

    <div style="background: #f9f9f9; padding: 30px; border-radius: 0 0 10px 10px;">
        <p style="margin-top: 0; font-size: 18px;">Hi there!</p>

        <p>{lead}</p>

        <div style="text-align: center; margin: 30px 0;">
            <a href="{url}"
               style="background: #111;
                      color: white;
                      text-decoration: none;
                      padding: 15px 30px;
                      border-radius: 5px;
                      font-weight: bold;
                      display: inline-block;">
                {button_label}
            </a>
        </div>

        <p style="color: #666; font-size: 14px;">
            If the button doesn't work, copy and paste this link into your browser:
        </p>
        <p style="color: #666; font-size: 12px; word-break: break-all;">
            <a href="{url}" style="color: #111;">{url}</a>
        </p>

        <hr style="border: none; border-top: 1px solid #ddd; margin: 25px 0;">

        <p style="color: #999; font-size: 12px; margin-bottom: 0;">{footnote}</p>
    </div>
</body>
</html>
"""


def send_invite_email(
    to_email: str,
    gallery_title: str,
    slug: str,
    role: str,
    inviter_name: str | None,
    is_registered: bool,
    token: str | None = None,
) -> dict[str, Any] | None:
    """
    Send a gallery invitation.

    Registered recipients get a direct gallery link; everyone else gets a
    sign-up link carrying the invite token.

    Returns:
        Resend API response, or None if email sending is disabled

    Raises:
        UpstreamFailure: the provider rejected the message
    """
    if not _init_resend():
        logger.info(f"Email sending disabled - would send invite for {slug} to {to_email}")
        return None

    inviter = inviter_name or "A Beam user"
    safe_inviter = html.escape(inviter)
    safe_title = html.escape(gallery_title)

    if is_registered:
        url = gallery_url(slug)
        subject = f"{inviter} shared \"{gallery_title}\" with you"
        lead = (
            f"{safe_inviter} invited you to <strong>{safe_title}</strong> "
            f"with <strong>{role}</strong> access. Sign in with your existing account to open it."
        )
        button_label = "Open Gallery"
        footnote = "You received this because someone shared a gallery with this address."
        text_lead = f"{inviter} invited you to \"{gallery_title}\" with {role} access."
    else:
        if not token:
            raise ValueError("token is required for unregistered invitees")
        url = sign_up_url(to_email, token, slug)
        subject = f"{inviter} invited you to view \"{gallery_title}\""
        lead = (
            f"{safe_inviter} invited you to <strong>{safe_title}</strong> "
            f"with <strong>{role}</strong> access. Create a free account to view it."
        )
        button_label = "Sign Up to View"
        footnote = (
            "This link can be used once. If you weren't expecting this invitation, "
            "you can safely ignore this email."
        )
        text_lead = f"{inviter} invited you to \"{gallery_title}\" with {role} access. Sign up to view it."

    html_content = _render_invite_html(subject, lead, button_label, url, footnote)
    text_content = f"""Hi there!

{text_lead}

{url}

---
Beam Galleries
"""

    try:
        params: resend.Emails.SendParams = {
            "from": RESEND_FROM_EMAIL,
            "to": [to_email],
            "subject": subject,
            "html": html_content,
            "text": text_content,
        }
        response = resend.Emails.send(params)
    except Exception as e:
        logger.error(f"Failed to send invite email for {slug} to {to_email}: {e}")
        raise UpstreamFailure("Failed to send invite email")

    logger.info(
        f"Invite email sent to {to_email} for {slug} (role={role}, registered={is_registered}), "
        f"id: {response.get('id', 'unknown')}"
    )
    return response
