#!/usr/bin/env python3
"""
Seed a demo sequence and leads for exercising the scheduler locally.

Creates one 5-step SMS/email/call sequence and a handful of leads covering the
interesting scheduler paths:
  1. Fresh lead, due now
  2. Warm lead mid-sequence
  3. Lead that already replied (step skips)
  4. Lead opted out of SMS
  5. Lead on the suppression list

Usage:
    python scripts/seed_test_data.py          # seed all scenarios
    python scripts/seed_test_data.py --clear  # wipe seeded data first

Requires: DATABASE_URL set (or defaults to sqlite:///local.db).
"""
import sys
import os
import argparse
from datetime import datetime, timezone, timedelta

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from outreach import create_app
from outreach.database import get_session, engine, Base
from outreach.lifecycle.persistence import add_suppression
from outreach.models.activity import Activity
from outreach.models.lead import Lead
from outreach.models.sequence import Sequence, SequenceStep

SEQUENCE_NAME = 'Demo: SMS → Email → Call'

STEPS = [
    dict(step_number=1, channel='sms', delay_hours=0, template_id='intro_sms'),
    dict(step_number=2, channel='email', delay_hours=24, template_id='intro_email', send_window_start=8,
         send_window_end=21),
    dict(step_number=3, channel='ai_call', delay_hours=48, template_id=None, send_window_start=10,
         send_window_end=17),
    dict(step_number=4, channel='sms', delay_hours=72, template_id='followup_sms', skip_if_score_above=40),
    dict(step_number=5, channel='email', delay_hours=96, template_id='breakup_email', send_window_start=8,
         send_window_end=21),
]

LEADS = [
    {'first_name': 'Dana', 'last_name': 'Whitfield', 'company_name': 'Whitfield Plumbing',
     'phone': '+15555550101', 'email': 'dana@whitfieldplumbing.test'},
    {'first_name': 'Marco', 'last_name': 'Ruiz', 'company_name': 'Ruiz Roofing',
     'phone': '+15555550102', 'email': 'marco@ruizroofing.test', 'score': 28, 'score_tier': 'warm',
     'current_step': 2, 'status': 'lead'},
    {'first_name': 'Ivy', 'last_name': 'Chen', 'company_name': 'Chen Dental',
     'phone': '+15555550103', 'email': 'ivy@chendental.test', 'replied': True},
    {'first_name': 'Owen', 'last_name': 'Price', 'company_name': 'Price HVAC',
     'phone': '+15555550104', 'email': 'owen@pricehvac.test', 'sms_opt_out': True, 'call_opt_out': True},
    {'first_name': 'Rita', 'last_name': 'Nakamura', 'company_name': 'Nakamura Law',
     'phone': '+15555550105', 'email': 'rita@nakamuralaw.test'},
]


def clear(session):
    sequence = session.query(Sequence).filter_by(name=SEQUENCE_NAME).one_or_none()
    if sequence is None:
        return
    lead_ids = [row.id for row in session.query(Lead.id).filter_by(sequence_id=sequence.id)]
    if lead_ids:
        session.query(Activity).filter(Activity.lead_id.in_(lead_ids)).delete(synchronize_session=False)
        session.query(Lead).filter(Lead.id.in_(lead_ids)).delete(synchronize_session=False)
    session.query(SequenceStep).filter_by(sequence_id=sequence.id).delete()
    session.delete(sequence)
    session.commit()
    print(f"Cleared sequence {sequence.id} and {len(lead_ids)} leads")


def seed(session):
    sequence = Sequence(name=SEQUENCE_NAME, description='Seeded by scripts/seed_test_data.py')
    session.add(sequence)
    session.flush()
    for step in STEPS:
        session.add(SequenceStep(sequence_id=sequence.id, **step))

    now = datetime.now(timezone.utc).replace(tzinfo=None)
    for i, fields in enumerate(LEADS):
        lead = Lead(
            sequence_id=sequence.id,
            sequence_status='active',
            next_action_at=now - timedelta(minutes=i),
            **fields,
        )
        session.add(lead)

    add_suppression(session, 'phone', LEADS[-1]['phone'], 'seeded')
    session.commit()
    print(f"Seeded sequence {sequence.id} with {len(STEPS)} steps and {len(LEADS)} leads")


def main():
    parser = argparse.ArgumentParser(description=__doc__.split('\n')[1])
    parser.add_argument('--clear', action='store_true', help='remove previously seeded data first')
    args = parser.parse_args()

    create_app()
    Base.metadata.create_all(engine)

    session = get_session()
    try:
        if args.clear:
            clear(session)
        seed(session)
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


if __name__ == '__main__':
    main()
