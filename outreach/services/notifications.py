"""
Notifications — Slack webhook integration for lifecycle events.

Notification failure never blocks or rolls back a lead transition.
"""
import logging
import requests

from outreach.config import SLACK_WEBHOOK_URL

logger = logging.getLogger('services.notifications')


def _post(blocks, what):
    if not SLACK_WEBHOOK_URL:
        logger.debug("SLACK_WEBHOOK_URL not set, skipping %s", what)
        return False
    try:
        response = requests.post(SLACK_WEBHOOK_URL, json={"blocks": blocks}, timeout=10)
        response.raise_for_status()
        logger.info("%s notification sent", what)
        return True
    except Exception:
        logger.error("Failed to send %s notification", what, exc_info=True)
        return False


def notify_qualifying_lead(lead, call_summary=None, notify_email=None):
    """Post a qualifying-lead alert with score, contact details and the latest call summary."""
    name = f"{lead.first_name or ''} {lead.last_name or ''}".strip() or f"Lead #{lead.id}"
    blocks = [
        {
            "type": "header",
            "text": {"type": "plain_text", "text": f"New Qualifying Lead — {name}"},
        },
        {
            "type": "section",
            "fields": [
                {"type": "mrkdwn", "text": f"*Company:* {lead.company_name or 'n/a'}"},
                {"type": "mrkdwn", "text": f"*Score:* {lead.score} ({lead.score_tier})"},
                {"type": "mrkdwn", "text": f"*Phone:* {lead.phone or 'n/a'}"},
                {"type": "mrkdwn", "text": f"*Email:* {lead.email or 'n/a'}"},
            ]
        },
    ]

    if call_summary:
        blocks.append({
            "type": "section",
            "text": {"type": "mrkdwn", "text": f"*Latest call:* _{call_summary[:500]}_"}
        })

    if notify_email:
        blocks.append({
            "type": "context",
            "elements": [{"type": "mrkdwn", "text": f"Assigned rep: {notify_email}"}]
        })

    return _post(blocks, f"qualifying lead #{lead.id}")


def notify_ops_alert(message, lead_id=None):
    """Short ops alert (hot lead, reply needing a rep)."""
    blocks = [
        {"type": "section", "text": {"type": "mrkdwn", "text": message}},
    ]
    if lead_id is not None:
        blocks.append({
            "type": "context",
            "elements": [{"type": "mrkdwn", "text": f"Lead #{lead_id}"}]
        })
    return _post(blocks, f"ops alert for lead #{lead_id}" if lead_id is not None else "ops alert")


def notify_scheduler_paused(paused):
    state = 'PAUSED' if paused else 'RESUMED'
    return _post(
        [{"type": "section", "text": {"type": "mrkdwn", "text": f"*Outreach {state}* by operator"}}],
        f"system {state.lower()}",
    )
