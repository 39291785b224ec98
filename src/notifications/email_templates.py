"""
HTML and plain-text bodies for transactional email.

Every renderer returns a RenderedEmail; callers hand it to the
notification sink. Values supplied by users (titles, reasons, names) are
HTML-escaped before interpolation.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from html import escape
from typing import Iterable, List, Optional, Sequence, Tuple

URGENCY_COLORS = {
    "low": "#3b82f6",
    "medium": "#f59e0b",
    "high": "#f97316",
    "critical": "#dc2626",
}

DIGEST_ACCENT = "#6366f1"
MEDIATION_ACCENT = "#f59e0b"
ARBITRATION_ACCENT = "#dc2626"
DISPUTE_ACCENT = "#f97316"
RESOLVED_ACCENT = "#10b981"


@dataclass
class RenderedEmail:
    """Subject plus HTML and text alternatives."""
    subject: str
    body_html: str
    body_text: str


def format_amount(amount) -> str:
    """Format a monetary amount as ``$1,234.56``; ``N/A`` when unknown."""
    if amount is None or amount == "":
        return "N/A"
    value = Decimal(str(amount))
    if value == value.to_integral_value():
        return f"${value:,.0f}"
    return f"${value:,.2f}"


def format_relative_time(timestamp: datetime, now: datetime) -> str:
    """Render how long ago ``timestamp`` was, in hours, relative to ``now``."""
    hours = int((now - timestamp).total_seconds() // 3600)
    if hours < 1:
        return "Just now"
    if hours == 1:
        return "1 hour ago"
    if hours < 24:
        return f"{hours} hours ago"
    return timestamp.strftime("%b %d, %Y")


def shorten_address(address: str) -> str:
    """0x1234...abcd form of a wallet address."""
    if len(address) <= 12:
        return address
    return f"{address[:6]}...{address[-4:]}"


def _layout(platform_name: str, accent: str, heading: str, inner: str, footer_extra: str = "") -> str:
    return f"""
<!DOCTYPE html>
<html>
<body style="font-family: Arial, sans-serif; background: #f5f5f5; margin: 0; padding: 20px;">
  <div style="max-width: 600px; margin: 0 auto; background: white; border-radius: 8px; overflow: hidden;">
    <div style="background: {accent}; color: white; padding: 30px; text-align: center;">
      <h1 style="margin: 0;">{heading}</h1>
    </div>
    <div style="padding: 30px;">
{inner}
    </div>
    <div style="background: #f9fafb; padding: 20px; text-align: center; color: #6b7280; font-size: 12px;">
      <p>{escape(platform_name)} - Secure Real-World Asset Trading</p>
{footer_extra}
    </div>
  </div>
</body>
</html>
"""


def _button(url: str, label: str, accent: str) -> str:
    return (
        f'<p style="text-align: center;"><a href="{escape(url, quote=True)}" '
        f'style="display: inline-block; background: {accent}; color: white; padding: 12px 30px; '
        f'text-decoration: none; border-radius: 6px; margin-top: 20px;">{label}</a></p>'
    )


def _detail_box(rows: Iterable[Tuple[str, str]], accent: str) -> str:
    lines = "".join(
        f'<p style="margin: 6px 0;"><strong>{escape(label)}:</strong> {escape(value)}</p>'
        for label, value in rows
    )
    return (
        f'<div style="background: #f3f4f6; border-left: 4px solid {accent}; '
        f'padding: 15px; margin: 20px 0;">{lines}</div>'
    )


# =============================================================================
# DEADLINE REMINDERS
# =============================================================================

def countdown_label(days_until_due: int) -> str:
    if days_until_due <= 0:
        return "OVERDUE"
    if days_until_due == 1:
        return "Due Tomorrow"
    return f"{days_until_due} Days Left"


def render_deadline_reminder(
    *,
    platform_name: str,
    subject: str,
    urgency: str,
    days_until_due: int,
    deal_reference: str,
    deal_title: str,
    action_required: str,
    due_date: datetime,
    action_url: str,
    amount=None,
) -> RenderedEmail:
    """Reminder email coloured by urgency, with a countdown banner."""
    color = URGENCY_COLORS.get(urgency, URGENCY_COLORS["low"])
    countdown = countdown_label(days_until_due)

    rows: List[Tuple[str, str]] = [
        ("Deal", deal_reference),
        ("Title", deal_title),
        ("Action Required", action_required),
    ]
    if amount:
        rows.append(("Amount", format_amount(amount)))
    rows.append(("Due Date", due_date.strftime("%B %d, %Y")))

    inner = f"""
      <div style="font-size: 32px; font-weight: bold; color: {color}; text-align: center; margin: 20px 0;">{countdown}</div>
      {_detail_box(rows, color)}
      <p>Please take action to avoid delays or penalties.</p>
      {_button(action_url, "View Deal", color)}
"""
    body_text = "\n".join(
        [f"{countdown}", ""]
        + [f"{label}: {value}" for label, value in rows]
        + ["", "Please take action to avoid delays or penalties.", f"View deal: {action_url}"]
    )
    return RenderedEmail(
        subject=subject,
        body_html=_layout(platform_name, color, "Deadline Reminder", inner),
        body_text=body_text,
    )


# =============================================================================
# DAILY DIGEST
# =============================================================================

def render_daily_digest(
    *,
    platform_name: str,
    app_url: str,
    recipient_name: Optional[str],
    now: datetime,
    stats,
    preview_items: int,
    stage_label,
) -> RenderedEmail:
    """
    Daily summary email.

    ``stats`` is a DigestStats; ``stage_label`` turns a stage value into its
    display label.
    """
    greeting = f"Hello {recipient_name}," if recipient_name else "Hello,"
    date_line = now.strftime("%A, %B %d, %Y")

    cards = "".join(
        f'<td style="background: #f3f4f6; border-radius: 8px; padding: 15px; text-align: center;">'
        f'<div style="font-size: 28px; font-weight: bold; color: {DIGEST_ACCENT};">{value}</div>'
        f'<div style="font-size: 12px; color: #6b7280;">{label}</div></td>'
        for label, value in (
            ("Active Deals", stats.active_deals),
            ("Pending Actions", stats.pending_actions),
            ("Unread Messages", stats.unread_messages),
            ("Upcoming Deadlines", stats.upcoming_deadlines),
        )
    )
    sections = [f'<table style="width: 100%; border-spacing: 10px;"><tr>{cards}</tr></table>']

    if stats.alerts:
        sections.append("<h3>Alerts</h3>")
        sections.extend(
            f'<div style="padding: 12px 15px; border-radius: 6px; margin: 10px 0; '
            f'background: #fef3c7; border-left: 4px solid #f59e0b;">{escape(alert.message)}</div>'
            for alert in stats.alerts
        )

    if stats.deal_summaries:
        sections.append("<h3>Your Active Deals</h3>")
        for deal in stats.deal_summaries[:preview_items]:
            action = (
                f'<p style="color: #f59e0b; font-weight: 500;">Action needed: {escape(deal.next_action)}</p>'
                if deal.next_action else ""
            )
            sections.append(
                f'<div style="border: 1px solid #e5e7eb; border-radius: 8px; padding: 15px; margin: 10px 0;">'
                f'<strong>{escape(deal.reference)}</strong> '
                f'<span style="font-size: 12px; padding: 4px 8px; border-radius: 4px; background: #e5e7eb;">'
                f'{escape(stage_label(deal.stage))}</span>'
                f'<p style="color: #4b5563;">{escape(deal.title)}</p>'
                f'<p style="font-size: 14px;"><strong>Role:</strong> {deal.role.value.title()} &middot; '
                f'<strong>Value:</strong> {format_amount(deal.amount)}</p>{action}</div>'
            )

    if stats.recent_activity:
        sections.append("<h3>Recent Activity (Last 24h)</h3>")
        sections.extend(
            f'<div style="padding: 10px 0; border-bottom: 1px solid #f3f4f6;">'
            f'<p style="margin: 0;">{escape(item.description)}</p>'
            f'<span style="font-size: 12px; color: #9ca3af;">{escape(item.deal_reference or "")} &middot; '
            f'{format_relative_time(item.timestamp, now)}</span></div>'
            for item in stats.recent_activity[:preview_items]
        )
    else:
        sections.append('<p style="color: #9ca3af;">No recent activity in the last 24 hours.</p>')

    inner = (
        f"<p>{escape(greeting)}</p><p>Here's your daily platform activity summary:</p>"
        + "".join(sections)
        + _button(f"{app_url}/dashboard", "Go to Dashboard", DIGEST_ACCENT)
    )
    footer = (
        f'<p><a href="{escape(app_url, quote=True)}/settings/notifications" '
        f'style="color: {DIGEST_ACCENT};">Manage notification preferences</a></p>'
    )

    text_lines = [
        greeting,
        "",
        f"Active deals: {stats.active_deals}",
        f"Pending actions: {stats.pending_actions}",
        f"Unread messages: {stats.unread_messages}",
        f"Upcoming deadlines: {stats.upcoming_deadlines}",
    ]
    text_lines.extend(f"- {alert.message}" for alert in stats.alerts)
    text_lines.extend(["", f"Dashboard: {app_url}/dashboard"])

    return RenderedEmail(
        subject=f"Your Daily {platform_name} Summary - {now.strftime('%Y-%m-%d')}",
        body_html=_layout(platform_name, DIGEST_ACCENT, f"Daily Summary<br><small>{date_line}</small>", inner, footer),
        body_text="\n".join(text_lines),
    )


# =============================================================================
# DISPUTES
# =============================================================================

def render_dispute_notice(
    *,
    platform_name: str,
    subject: str,
    heading: str,
    accent: str,
    recipient_name: Optional[str],
    message: str,
    details: Sequence[Tuple[str, str]],
    action_url: str,
    button_label: str = "View Dispute",
    closing: Optional[str] = None,
) -> RenderedEmail:
    """Generic dispute workflow email: message, detail box, call to action."""
    greeting = f"Hi {recipient_name}," if recipient_name else "Hello,"
    inner = (
        f"<p>{escape(greeting)}</p><p>{escape(message)}</p>"
        f"{_detail_box(details, accent)}"
        + (f"<p>{escape(closing)}</p>" if closing else "")
        + _button(action_url, button_label, accent)
    )
    text_lines = [greeting, "", message, ""]
    text_lines.extend(f"{label}: {value}" for label, value in details)
    if closing:
        text_lines.extend(["", closing])
    text_lines.extend(["", f"{button_label}: {action_url}"])
    return RenderedEmail(
        subject=subject,
        body_html=_layout(platform_name, accent, escape(heading), inner),
        body_text="\n".join(text_lines),
    )
