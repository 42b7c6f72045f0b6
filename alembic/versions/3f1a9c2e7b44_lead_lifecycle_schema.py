"""Lead lifecycle schema: leads, sequences, steps, activities, suppression, settings, call logs

Revision ID: 3f1a9c2e7b44
Revises:
Create Date: 2026-10-12 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1a9c2e7b44'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('sequences',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table('sequence_steps',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('sequence_id', sa.Integer(), nullable=False),
        sa.Column('step_number', sa.Integer(), nullable=False),
        sa.Column('channel', sa.Text(), nullable=False),
        sa.Column('delay_hours', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('template_id', sa.Text(), nullable=True),
        sa.Column('send_window_start', sa.Integer(), nullable=False, server_default='9'),
        sa.Column('send_window_end', sa.Integer(), nullable=False, server_default='20'),
        sa.Column('send_days', sa.Text(), nullable=False, server_default='mon,tue,wed,thu,fri'),
        sa.Column('skip_if_replied', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('skip_if_score_above', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['sequence_id'], ['sequences.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sequence_id', 'step_number', name='uq_sequence_step_number'),
    )

    op.create_table('leads',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('first_name', sa.Text(), nullable=True),
        sa.Column('last_name', sa.Text(), nullable=True),
        sa.Column('company_name', sa.Text(), nullable=True),
        sa.Column('phone', sa.Text(), nullable=True),
        sa.Column('email', sa.Text(), nullable=True),
        sa.Column('status', sa.Text(), nullable=False, server_default='new'),
        sa.Column('score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('score_tier', sa.Text(), nullable=False, server_default='cold'),
        sa.Column('sequence_id', sa.Integer(), nullable=True),
        sa.Column('current_step', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('sequence_status', sa.Text(), nullable=False, server_default='pending'),
        sa.Column('next_action_at', sa.DateTime(), nullable=True),
        sa.Column('sms_opt_out', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('email_opt_out', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('call_opt_out', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('replied', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('meeting_booked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('app_downloaded', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('last_contacted_at', sa.DateTime(), nullable=True),
        sa.Column('last_reply_at', sa.DateTime(), nullable=True),
        sa.Column('total_sms_sent', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_emails_sent', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_calls_made', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.ForeignKeyConstraint(['sequence_id'], ['sequences.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_leads_ready', 'leads', ['sequence_status', 'next_action_at'])
    op.create_index('ix_leads_phone', 'leads', ['phone'])
    op.create_index('ix_leads_email', 'leads', ['email'])

    op.create_table('activities',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('lead_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.Text(), nullable=False),
        sa.Column('channel', sa.Text(), nullable=False, server_default='system'),
        sa.Column('direction', sa.Text(), nullable=True),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('score_before', sa.Integer(), nullable=True),
        sa.Column('score_after', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['lead_id'], ['leads.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_activities_lead', 'activities', ['lead_id'])
    op.create_index('ix_activities_outbound_day', 'activities', ['channel', 'direction', 'created_at'])

    op.create_table('suppression_list',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('identifier_type', sa.Text(), nullable=False),
        sa.Column('identifier', sa.Text(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('identifier_type', 'identifier', name='uq_suppression_identifier'),
    )

    op.create_table('system_settings',
        sa.Column('key', sa.Text(), nullable=False),
        sa.Column('value', sa.Text(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('key'),
    )
    op.execute("INSERT INTO system_settings (key, value, description) "
               "VALUES ('system_paused', '0', 'Emergency stop for all automated outreach')")

    op.create_table('call_logs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('lead_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.Text(), nullable=True),
        sa.Column('outcome', sa.Text(), nullable=True),
        sa.Column('duration_seconds', sa.Integer(), nullable=True),
        sa.Column('summary', sa.Text(), nullable=True),
        sa.Column('interest_level', sa.Text(), nullable=True),
        sa.Column('next_action', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.ForeignKeyConstraint(['lead_id'], ['leads.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_call_logs_lead_status', 'call_logs', ['lead_id', 'status'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_call_logs_lead_status', 'call_logs')
    op.drop_table('call_logs')
    op.drop_table('system_settings')
    op.drop_table('suppression_list')
    op.drop_index('ix_activities_outbound_day', 'activities')
    op.drop_index('ix_activities_lead', 'activities')
    op.drop_table('activities')
    op.drop_index('ix_leads_email', 'leads')
    op.drop_index('ix_leads_phone', 'leads')
    op.drop_index('ix_leads_ready', 'leads')
    op.drop_table('leads')
    op.drop_table('sequence_steps')
    op.drop_table('sequences')
