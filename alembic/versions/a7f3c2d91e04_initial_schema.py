"""initial_schema

Revision ID: a7f3c2d91e04
Revises:
Create Date: 2025-02-10 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'a7f3c2d91e04'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'polls',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('case_id', sa.String(length=64), nullable=True),
        sa.Column('case_name', sa.String(length=200), nullable=True),
        sa.Column('case_number', sa.String(length=100), nullable=True),
        sa.Column('mediator_name', sa.String(length=200), nullable=True),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('location', sa.String(length=300), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('created_by', sa.String(length=128), nullable=False),
        sa.Column('selected_option_id', sa.String(length=36), nullable=True),
        sa.Column('finalized_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('invitations_sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('emails_sent', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('emails_opened', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('emails_failed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_polls_case_id', 'polls', ['case_id'])
    op.create_index('ix_polls_created_by', 'polls', ['created_by'])
    op.create_index('idx_polls_creator_created', 'polls', ['created_by', 'created_at'])

    op.create_table(
        'poll_options',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('poll_id', sa.String(length=36), sa.ForeignKey('polls.id', ondelete='CASCADE'), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('date', sa.String(length=10), nullable=False),
        sa.Column('time', sa.String(length=5), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False, server_default='60'),
        sa.Column('location', sa.String(length=300), nullable=True),
        sa.UniqueConstraint('poll_id', 'position', name='uq_poll_option_position'),
    )
    op.create_index('idx_poll_options_poll', 'poll_options', ['poll_id'])

    op.create_table(
        'poll_participants',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('poll_id', sa.String(length=36), sa.ForeignKey('polls.id', ondelete='CASCADE'), nullable=False),
        sa.Column('email', sa.String(length=320), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=True),
        sa.UniqueConstraint('poll_id', 'email', name='uq_poll_participant'),
    )

    op.create_table(
        'poll_votes',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('poll_id', sa.String(length=36), sa.ForeignKey('polls.id', ondelete='CASCADE'), nullable=False),
        sa.Column('option_id', sa.String(length=36), sa.ForeignKey('poll_options.id', ondelete='CASCADE'),
                  nullable=False),
        sa.Column('participant_email', sa.String(length=320), nullable=False),
        sa.Column('vote_type', sa.String(length=12), nullable=False),
        sa.Column('source', sa.String(length=32), nullable=False, server_default='email'),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('poll_id', 'participant_email', 'option_id', name='uq_poll_participant_option'),
    )
    op.create_index('idx_poll_votes_poll', 'poll_votes', ['poll_id'])
    op.create_index('idx_poll_votes_participant', 'poll_votes', ['poll_id', 'participant_email'])

    op.create_table(
        'voting_tokens',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('poll_id', sa.String(length=36), sa.ForeignKey('polls.id', ondelete='CASCADE'), nullable=False),
        sa.Column('participant_email', sa.String(length=320), nullable=False),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('poll_id', 'participant_email', name='uq_voting_token_poll_participant'),
    )

    op.create_table(
        'notices',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('case_id', sa.String(length=64), nullable=True),
        sa.Column('case_name', sa.String(length=200), nullable=True),
        sa.Column('case_number', sa.String(length=100), nullable=True),
        sa.Column('mediator_name', sa.String(length=200), nullable=True),
        sa.Column('notice_type', sa.String(length=20), nullable=False, server_default='scheduled'),
        sa.Column('mediation_date', sa.String(length=10), nullable=True),
        sa.Column('mediation_time', sa.String(length=5), nullable=True),
        sa.Column('location', sa.String(length=300), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('pdf_file_name', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('created_by', sa.String(length=128), nullable=False),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('emails_sent', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('emails_opened', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('emails_failed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('idx_notices_case_created', 'notices', ['case_id', 'created_at'])

    op.create_table(
        'notice_participants',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('notice_id', sa.String(length=36), sa.ForeignKey('notices.id', ondelete='CASCADE'),
                  nullable=False),
        sa.Column('email', sa.String(length=320), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=True),
        sa.UniqueConstraint('notice_id', 'email', name='uq_notice_participant'),
    )

    # subject_id holds a poll id or a notice id, so there is no foreign key
    op.create_table(
        'email_tracking',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('tracking_key', sa.String(length=32), nullable=False, unique=True),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('subject_id', sa.String(length=36), nullable=False),
        sa.Column('case_id', sa.String(length=64), nullable=True),
        sa.Column('participant_email', sa.String(length=320), nullable=False),
        sa.Column('participant_name', sa.String(length=200), nullable=True),
        sa.Column('email_subject', sa.String(length=300), nullable=True),
        sa.Column('external_id', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('opened', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('opened_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('voted_via_email', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('voted_via_email_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('has_attachment', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('attachment_name', sa.String(length=255), nullable=True),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('idx_email_tracking_subject', 'email_tracking', ['subject_id'])
    op.create_index('idx_email_tracking_lookup', 'email_tracking', ['type', 'subject_id', 'participant_email'])
    op.create_index('idx_email_tracking_case', 'email_tracking', ['case_id', 'sent_at'])


def downgrade():
    op.drop_table('email_tracking')
    op.drop_table('notice_participants')
    op.drop_table('notices')
    op.drop_table('voting_tokens')
    op.drop_table('poll_votes')
    op.drop_table('poll_participants')
    op.drop_table('poll_options')
    op.drop_table('polls')
