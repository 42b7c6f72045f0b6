"""
RQ jobs for transition side effects.

Notifications and auto-actions are enqueued only after the transition that asked
for them has committed. A failure to enqueue or deliver is logged and never undoes
the transition.
"""
import logging

from outreach.config import APP_LINK_TEMPLATE_ID, MEETING_LINK_TEMPLATE_ID, QUALIFYING_NOTIFICATION_EMAIL
from outreach.database import get_session
from outreach.extensions import get_queue
from outreach.lifecycle.persistence import latest_call_log
from outreach.lifecycle.senders import get_sender
from outreach.models.lead import Lead
from outreach.services.notifications import notify_ops_alert, notify_qualifying_lead
from outreach.services.settings import QUALIFYING_EMAIL, get_setting

logger = logging.getLogger('outreach.tasks')

AUTO_ACTION_TEMPLATES = {
    'send_meeting_link': lambda: MEETING_LINK_TEMPLATE_ID,
    'send_app_link': lambda: APP_LINK_TEMPLATE_ID,
}


# ── Dispatch (called after commit) ───────────────────────────────────────────

def dispatch_effects(transitions):
    """Enqueue the notifications and auto-actions of already-committed transitions."""
    queued = 0
    for transition in transitions:
        if transition is None:
            continue
        for request in transition.notifications:
            try:
                get_queue().enqueue(deliver_notification, request.type, request.lead_id,
                                    request.message, request.payload, job_timeout=60)
                queued += 1
            except Exception as e:
                logger.error("Could not queue %s notification for lead #%d: %s", request.type, request.lead_id, e)
        for action in transition.auto_actions:
            try:
                get_queue().enqueue(run_auto_action, action.type, action.lead_id, job_timeout=120)
                queued += 1
            except Exception as e:
                logger.error("Could not queue %s for lead #%d: %s", action.type, action.lead_id, e)
    return queued


# ── Jobs ─────────────────────────────────────────────────────────────────────

def deliver_notification(notification_type, lead_id, message, payload=None):
    if notification_type != 'qualifying':
        return notify_ops_alert(message, lead_id=lead_id)

    session = get_session()
    try:
        lead = session.get(Lead, lead_id)
        if lead is None:
            logger.warning("Qualifying notification for missing lead #%d dropped", lead_id)
            return False
        call = latest_call_log(session, lead_id)
        notify_email = get_setting(session, QUALIFYING_EMAIL) or QUALIFYING_NOTIFICATION_EMAIL
        return notify_qualifying_lead(lead, call_summary=call.summary if call else None,
                                      notify_email=notify_email or None)
    finally:
        session.close()


def run_auto_action(action_type, lead_id):
    """Send the meeting/app link by SMS, or by email when SMS is not possible."""
    template_for = AUTO_ACTION_TEMPLATES.get(action_type)
    if template_for is None:
        logger.error("Unknown auto action '%s' for lead #%d", action_type, lead_id)
        return False
    template_id = template_for()
    if not template_id:
        logger.warning("%s skipped for lead #%d: no template configured", action_type, lead_id)
        return False

    session = get_session()
    try:
        lead = session.get(Lead, lead_id)
        if lead is None:
            return False
        if lead.phone and not lead.sms_opt_out:
            channel = 'sms'
        elif lead.email and not lead.email_opt_out:
            channel = 'email'
        else:
            logger.info("%s skipped for lead #%d: no reachable channel", action_type, lead_id)
            return False
    finally:
        session.close()

    result = get_sender(channel).send(lead_id, template_id)
    logger.info("%s for lead #%d via %s: %s", action_type, lead_id, channel, 'sent' if result else 'not sent')
    return bool(result)
