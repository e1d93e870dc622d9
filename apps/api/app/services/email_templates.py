"""Built-in email templates for platform emails.

Templates use {{variable}} placeholders. Values are HTML-escaped unless the
variable is listed in safe_html_vars (pre-rendered blocks built here).
"""

from __future__ import annotations

import html as html_module
import re
from dataclasses import dataclass
from datetime import datetime, timezone

from app.core.config import settings

VARIABLE_PATTERN = re.compile(r"\{\{(\w+)\}\}")

BUTTON_STYLE = (
    "display:inline-block;padding:12px 20px;background:#0070f3;color:white;"
    "text-decoration:none;border-radius:5px;"
)


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html: str
    text: str


def render_template(
    subject: str,
    body: str,
    variables: dict[str, str],
    safe_html_vars: set[str] | None = None,
) -> tuple[str, str]:
    """
    Render a template with variable substitution.

    Missing variables are replaced with empty string. The subject is plain
    text and never escaped.

    Returns (rendered_subject, rendered_body).
    """
    safe = safe_html_vars or set()

    def replace_subject(match: re.Match) -> str:
        return variables.get(match.group(1), "")

    def replace_body(match: re.Match) -> str:
        name = match.group(1)
        value = variables.get(name, "")
        return value if name in safe else html_module.escape(value)

    return VARIABLE_PATTERN.sub(replace_subject, subject), VARIABLE_PATTERN.sub(replace_body, body)


def format_event_date(start_time: datetime) -> str:
    if start_time.tzinfo is None:
        start_time = start_time.replace(tzinfo=timezone.utc)
    return start_time.strftime("%A, %B %d, %Y %H:%M %Z").strip()


def _event_block(event: dict | None) -> tuple[str, str]:
    """HTML and text sections advertising the next event."""
    if not event:
        return "", ""
    title = html_module.escape(event["title"])
    date = html_module.escape(format_event_date(event["start_time"]))
    url = event.get("url")
    link = (
        f'<a href="{html_module.escape(url)}" style="{BUTTON_STYLE}">View Event &amp; Register</a>'
        if url
        else ""
    )
    html = f"""
    <div style="margin-top:30px;padding:20px;background:#f5f5f5;border-left:4px solid #0070f3;">
      <h3 style="margin-top:0;">Join us at our next event!</h3>
      <p style="margin:10px 0;"><strong>{title}</strong></p>
      <p style="margin:10px 0;">Date: {date}</p>
      {link}
    </div>"""
    text = f"\n\nJoin us at our next event: {event['title']} on {format_event_date(event['start_time'])}."
    if url:
        text += f" Register at: {url}"
    return html, text


# =============================================================================
# Claim verification (initial email + drip stages)
# =============================================================================

CLAIM_STAGE_TEMPLATES: list[dict[str, str]] = [
    {
        "subject": "Your {{community}} member profile is ready to claim",
        "heading": "Welcome to {{community}}!",
        "intro": (
            "You've been added to the {{community}} online directory. "
            "Click the button below to claim your profile and add your bio:"
        ),
        "button": "Claim Your Profile",
    },
    {
        "subject": "Reminder: Your {{community}} profile is waiting",
        "heading": "Don't forget to claim your {{community}} profile",
        "intro": (
            "Yesterday, we sent you an invitation to claim your profile in the "
            "{{community}} directory. It only takes a minute:"
        ),
        "button": "Claim Profile Now",
    },
    {
        "subject": "Quick reminder: Set up your {{community}} profile",
        "heading": "Your {{community}} profile is still available",
        "intro": "Your profile in the {{community}} directory is ready for you to claim.",
        "button": "Set Up Profile",
    },
    {
        "subject": "Your {{community}} profile is still available",
        "heading": "It's been a week - your profile is still waiting",
        "intro": (
            "We noticed you haven't claimed your {{community}} profile yet. "
            "Having your profile helps other members connect with you."
        ),
        "button": "Claim Your Profile",
    },
    {
        "subject": "Two weeks later: Your {{community}} profile",
        "heading": "Your {{community}} profile has been waiting for 2 weeks",
        "intro": "Your fellow community members want to connect with you!",
        "button": "Activate Profile",
    },
    {
        "subject": "Monthly reminder: Claim your {{community}} profile",
        "heading": "Monthly Reminder",
        "intro": "You have a profile waiting in the {{community}} directory.",
        "button": "Claim Profile",
    },
]

CLAIM_BODY = """
<div>
  <h2>{{heading}}</h2>
  <p>{{intro}}</p>
  <a href="{{verification_url}}" style="{{button_style}}">{{button}}</a>
  <p style="margin-top:20px">Or copy and paste this link in your browser:</p>
  <p>{{verification_url}}</p>
  {{event_block}}
</div>
"""

FINAL_NOTICE_SUBJECT = "Final notice: Your {{community}} profile"
FINAL_NOTICE_BODY = """
<div>
  <h2>Final Notice</h2>
  <p>This is our final automated reminder about your {{community}} profile.</p>
  <p>We won't send any more automatic emails, but your profile will remain available.
  You can request a new link any time at <a href="{{site_url}}">{{site_url}}</a>.</p>
</div>
"""


def _community_vars() -> dict[str, str]:
    return {
        "community": settings.COMMUNITY_NAME,
        "site_url": settings.FRONTEND_URL.rstrip("/"),
        "button_style": BUTTON_STYLE,
    }


def _fill(value: str, variables: dict[str, str]) -> str:
    return VARIABLE_PATTERN.sub(lambda m: variables.get(m.group(1), ""), value)


def build_verification_url(token: str) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}/verify?token={token}"


def claim_email(
    verification_url: str,
    stage: int = 0,
    event: dict | None = None,
) -> RenderedEmail:
    """
    Claim-profile email for a drip stage (0 = first email).

    Stages past the last template reuse the monthly reminder.
    """
    base = _community_vars()
    stage_template = CLAIM_STAGE_TEMPLATES[min(max(stage, 0), len(CLAIM_STAGE_TEMPLATES) - 1)]
    event_html, event_text = _event_block(event)
    variables = {
        **base,
        "heading": _fill(stage_template["heading"], base),
        "intro": _fill(stage_template["intro"], base),
        "button": stage_template["button"],
        "verification_url": verification_url,
        "event_block": event_html,
    }
    subject, html = render_template(
        stage_template["subject"],
        CLAIM_BODY,
        variables,
        safe_html_vars={"event_block"},
    )
    text = f"{variables['heading']}\n\n{variables['intro']}\n\n{verification_url}{event_text}"
    return RenderedEmail(subject=subject, html=html, text=text)


def final_notice_email() -> RenderedEmail:
    variables = _community_vars()
    subject, html = render_template(FINAL_NOTICE_SUBJECT, FINAL_NOTICE_BODY, variables)
    text = (
        "Final notice: this is our last automated reminder. You can always claim "
        f"your profile later by requesting a new link at {variables['site_url']}."
    )
    return RenderedEmail(subject=subject, html=html, text=text)


# =============================================================================
# Invites (no directory match)
# =============================================================================

EVENT_INVITE_BODY = """
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2 style="color: #333;">Welcome to {{community}}!</h2>
  <p style="font-size: 16px; color: #333; line-height: 1.6;">
    Thanks for signing up! We're excited to have you join our growing tech community.
  </p>
  {{event_block}}
  <p style="font-size: 14px; color: #666; line-height: 1.6;">We look forward to seeing you there!</p>
</div>
"""

COMMUNITY_INVITE_BODY = """
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2 style="color: #333;">Welcome to {{community}}!</h2>
  <p style="font-size: 16px; color: #333; line-height: 1.6;">
    Thanks for signing up! You'll receive updates about upcoming events and opportunities.
  </p>
  <a href="{{site_url}}" style="{{button_style}}">Visit {{community}}</a>
</div>
"""


def event_invite_email(event: dict) -> RenderedEmail:
    event_html, event_text = _event_block(event)
    variables = {**_community_vars(), "event_block": event_html}
    subject, html = render_template(
        f"You're invited to {event['title']}",
        EVENT_INVITE_BODY,
        variables,
        safe_html_vars={"event_block"},
    )
    text = (
        f"Welcome to {variables['community']}!\n\n"
        f"Thanks for signing up! We're excited to have you join our growing tech community."
        f"{event_text}\n\nWe look forward to seeing you there!"
    )
    return RenderedEmail(subject=subject, html=html, text=text)


def community_invite_email() -> RenderedEmail:
    variables = _community_vars()
    subject, html = render_template(
        "Welcome to {{community}}",
        COMMUNITY_INVITE_BODY,
        variables,
    )
    text = (
        f"Welcome to {variables['community']}! You'll receive updates about upcoming "
        f"events and opportunities. {variables['site_url']}"
    )
    return RenderedEmail(subject=subject, html=html, text=text)


# =============================================================================
# Sign-in link
# =============================================================================

SIGN_IN_BODY = """
<div>
  <h2>Sign in to {{community}}</h2>
  <p>Click the button below to sign in. This link expires in {{expires_minutes}} minutes.</p>
  <a href="{{sign_in_url}}" style="{{button_style}}">Sign In</a>
  <p style="margin-top:20px">If you didn't request this email, you can safely ignore it.</p>
</div>
"""


def sign_in_email(sign_in_url: str) -> RenderedEmail:
    variables = {
        **_community_vars(),
        "sign_in_url": sign_in_url,
        "expires_minutes": str(settings.SIGN_IN_TOKEN_EXPIRES_MINUTES),
    }
    subject, html = render_template("Your {{community}} sign-in link", SIGN_IN_BODY, variables)
    text = f"Sign in to {variables['community']}: {sign_in_url}"
    return RenderedEmail(subject=subject, html=html, text=text)
