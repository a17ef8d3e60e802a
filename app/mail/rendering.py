"""Email rendering.

Pure functions: data in, markup out. Nothing here touches the database,
the transport or the clock (callers pass ``sent_at`` when they want it
printed), so every template can be rendered in isolation.
"""
from datetime import date as date_cls, datetime, time as time_cls
from typing import Optional
from urllib.parse import urlencode

from jinja2 import DictLoader, Environment, StrictUndefined, select_autoescape

from app.core.constants import (
    EMAIL_TYPE_MEDIATION_NOTICE,
    EMAIL_TYPE_POLL_INVITATION,
    VOTE_FIELD_PREFIX,
    VOTE_IF_NEED_BE,
    VOTE_NO,
    VOTE_YES,
)

_BASE = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{% block title %}{% endblock %}</title>
</head>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
  <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
    {% block body %}{% endblock %}
    <div style="margin-top: 20px; font-size: 12px; color: #6c757d;">
      {% block footer %}{% endblock %}
      <p>If you have questions, please contact your mediator directly.</p>
      <img src="{{ tracking_url }}" width="1" height="1" style="display:none;" alt="">
    </div>
  </div>
</body>
</html>
"""

_CASE_INFO = """<div>
  <h3>Case Information</h3>
  <p><strong>Case:</strong> {{ subject.case_name or 'N/A' }}</p>
  <p><strong>Case Number:</strong> {{ subject.case_number or 'N/A' }}</p>
  <p><strong>Mediator:</strong> {{ subject.mediator_name or 'N/A' }}</p>
  {% if show_location and subject.location %}<p><strong>Location:</strong> {{ subject.location }}</p>{% endif %}
</div>
"""

_POLL_INVITATION = """{% extends "base.html" %}
{% block title %}Mediation Scheduling Poll{% endblock %}
{% block body %}
<h1>Mediation Scheduling Poll</h1>
<p>Hello{% if recipient.name %} {{ recipient.name }}{% endif %}, you have been invited to help schedule a mediation session.</p>
{% with subject=poll, show_location=True %}{% include "case_info.html" %}{% endwith %}
<h3>{{ poll.title }}</h3>
{% if poll.description %}<p>{{ poll.description }}</p>{% endif %}

<form method="post" action="{{ vote_action_url }}">
  <input type="hidden" name="pollId" value="{{ poll.id }}">
  <input type="hidden" name="email" value="{{ recipient.email }}">
  <input type="hidden" name="token" value="{{ token }}">
  <input type="hidden" name="source" value="email">
  <table cellpadding="6">
    {% for option in options %}
    <tr>
      <td>{{ option.label }}</td>
      {% for value, text in vote_choices %}
      <td><label><input type="radio" name="{{ field_prefix }}{{ option.id }}" value="{{ value }}"> {{ text }}</label></td>
      {% endfor %}
    </tr>
    {% endfor %}
  </table>
  <button type="submit">Submit availability</button>
</form>

<p>If the form above does not work in your email client, use this link instead:</p>
<p><a href="{{ vote_url }}">Vote on Scheduling Options</a></p>
<p>This link is personal to you and expires in {{ token_ttl_days }} days.</p>
{% endblock %}
{% block footer %}<p>This is an automated message from the Mediation Scheduling System.</p>{% endblock %}
"""

_MEDIATION_NOTICE = """{% extends "base.html" %}
{% block title %}Mediation Notice{% endblock %}
{% block body %}
<h1>Official Mediation Notice</h1>
<p>{{ headline }}</p>
{% with subject=notice, show_location=False %}{% include "case_info.html" %}{% endwith %}
{% if notice.notice_type != 'cancelled' %}
<div>
  <h3>Mediation Details</h3>
  <p><strong>Date &amp; Time:</strong> {{ when }}</p>
  <p><strong>Location:</strong> {{ notice.location or 'To be confirmed' }}</p>
</div>
{% else %}
<div>
  <h3>Cancellation Notice</h3>
  <p>This mediation has been cancelled. You will be contacted if it is rescheduled.</p>
</div>
{% endif %}
{% if attachment_name %}
<div>
  <h4>Attachment</h4>
  <p>This email includes an official mediation notice document: <strong>{{ attachment_name }}</strong></p>
</div>
{% endif %}
<div>
  <h4>Important Instructions</h4>
  <ul>
    <li>Please arrive 15 minutes before the scheduled time</li>
    <li>Bring a valid photo ID</li>
    <li>Bring any relevant documents related to your case</li>
    {% if notice.notice_type != 'cancelled' %}<li>If you cannot attend, notify your mediator immediately</li>{% endif %}
  </ul>
</div>
{% if notice.notes %}<div><h4>Additional Notes</h4><p>{{ notice.notes }}</p></div>{% endif %}
{% endblock %}
{% block footer %}
<p>This is an official notice from the Mediation Scheduling System.</p>
{% if sent_at %}<p><strong>Notice sent:</strong> {{ sent_at }}</p>{% endif %}
{% endblock %}
"""

_env = Environment(
    loader=DictLoader({
        "base.html": _BASE,
        "case_info.html": _CASE_INFO,
        "poll_invitation.html": _POLL_INVITATION,
        "mediation_notice.html": _MEDIATION_NOTICE,
    }),
    autoescape=select_autoescape(default=True, default_for_string=True),
    undefined=StrictUndefined,
)

VOTE_CHOICES = (
    (VOTE_YES, "Available"),
    (VOTE_IF_NEED_BE, "If need be"),
    (VOTE_NO, "Unavailable"),
)

NOTICE_HEADLINES = {
    "scheduled": "Your mediation has been scheduled.",
    "rescheduled": "Your mediation has been rescheduled.",
    "cancelled": "Your mediation has been cancelled.",
    "reminder": "This is a reminder about your upcoming mediation.",
}


def build_vote_url(frontend_url: str, poll_id: str, email: str, token: str) -> str:
    """Link to the web voting page, carrying identity and token."""
    query = urlencode({"email": email, "token": token})
    return f"{frontend_url.rstrip('/')}/poll/{poll_id}?{query}"


def build_vote_action_url(base_url: str) -> str:
    return f"{base_url.rstrip('/')}/api/vote"


def build_tracking_url(
    base_url: str,
    email_type: str,
    subject_id: str,
    email: str,
    token: Optional[str] = None,
    tracking_key: Optional[str] = None,
) -> str:
    """URL of the open-tracking pixel for one recipient of one send."""
    params = {"type": email_type}
    if email_type == EMAIL_TYPE_POLL_INVITATION:
        params["pollId"] = subject_id
    elif email_type == EMAIL_TYPE_MEDIATION_NOTICE:
        params["noticeId"] = subject_id
    else:
        raise ValueError(f"Unknown email type: {email_type}")
    params["email"] = email
    if token:
        params["token"] = token
    if tracking_key:
        params["tk"] = tracking_key
    return f"{base_url.rstrip('/')}/api/track-email-open?{urlencode(params)}"


def format_mediation_datetime(date_value: Optional[str], time_value: Optional[str]) -> str:
    """'2025-03-03', '14:00' -> 'Monday, March 3, 2025 at 2:00 PM'."""
    try:
        day = date_cls.fromisoformat(date_value)
        clock = time_cls.fromisoformat(time_value)
    except (TypeError, ValueError):
        return "Date and time to be confirmed"

    hour12 = clock.hour % 12 or 12
    ampm = "PM" if clock.hour >= 12 else "AM"
    return f"{day:%A}, {day:%B} {day.day}, {day.year} at {hour12}:{clock.minute:02d} {ampm}"


def format_option_label(option) -> str:
    when = format_mediation_datetime(option.date, option.time)
    label = f"{when} ({option.duration_minutes} minutes)"
    if getattr(option, "location", None):
        label += f", {option.location}"
    return label


def invitation_subject(poll) -> str:
    return f"Mediation Scheduling Poll - {poll.case_name or poll.case_number or poll.title}"


def notice_subject(notice) -> str:
    return f"Mediation Notice - {notice.case_name or notice.case_number or 'Your Case'}"


def render_poll_invitation(
    poll,
    options,
    recipient,
    token: str,
    vote_url: str,
    vote_action_url: str,
    tracking_url: str,
    token_ttl_days: int,
) -> str:
    """Render the invitation for one participant."""
    template = _env.get_template("poll_invitation.html")
    return template.render(
        poll=poll,
        options=[{"id": option.id, "label": format_option_label(option)} for option in options],
        recipient=recipient,
        token=token,
        vote_url=vote_url,
        vote_action_url=vote_action_url,
        tracking_url=tracking_url,
        token_ttl_days=token_ttl_days,
        vote_choices=VOTE_CHOICES,
        field_prefix=VOTE_FIELD_PREFIX,
    )


def render_mediation_notice(
    notice,
    recipient,
    tracking_url: str,
    attachment_name: Optional[str] = None,
    sent_at: Optional[datetime] = None,
) -> str:
    """Render a mediation notice for one participant."""
    template = _env.get_template("mediation_notice.html")
    return template.render(
        notice=notice,
        recipient=recipient,
        headline=NOTICE_HEADLINES.get(notice.notice_type, "Mediation notice."),
        when=format_mediation_datetime(notice.mediation_date, notice.mediation_time),
        attachment_name=attachment_name,
        tracking_url=tracking_url,
        sent_at=sent_at.strftime("%Y-%m-%d %H:%M UTC") if sent_at else None,
    )
