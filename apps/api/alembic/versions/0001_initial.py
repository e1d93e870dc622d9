"""Initial schema - directory, member accounts, email log and sync state

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19

Creates:
- people, events (imported from Luma, replaced by reset & sync)
- users (verified member accounts, optionally linked to a person)
- email_logs, event_invites, claim_invitations
- sync_state
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_initial'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ==========================================================================
    # people
    # ==========================================================================
    op.create_table(
        'people',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('api_id', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('user_name', sa.String(255), nullable=True),
        sa.Column('full_name', sa.String(255), nullable=True),
        sa.Column('avatar_url', sa.String(500), nullable=True),
        sa.Column('role', sa.String(50), nullable=True),
        sa.Column('phone_number', sa.String(50), nullable=True),
        sa.Column('bio', sa.Text(), nullable=True),
        sa.Column('organization_name', sa.String(255), nullable=True),
        sa.Column('job_title', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_people'),
        sa.UniqueConstraint('api_id', name='uq_people_api_id'),
    )
    op.create_index('ix_people_email', 'people', ['email'])

    # ==========================================================================
    # events
    # ==========================================================================
    op.create_table(
        'events',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('api_id', sa.String(255), nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('cover_url', sa.String(500), nullable=True),
        sa.Column('url', sa.String(500), nullable=True),
        sa.Column('timezone', sa.String(50), nullable=True),
        sa.Column('location', sa.JSON(), nullable=True),
        sa.Column('visibility', sa.String(50), nullable=True),
        sa.Column('meeting_url', sa.String(500), nullable=True),
        sa.Column('calendar_api_id', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('synced_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_events'),
        sa.UniqueConstraint('api_id', name='uq_events_api_id'),
    )
    op.create_index('ix_events_start_time', 'events', ['start_time'])

    # ==========================================================================
    # users
    # ==========================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('display_name', sa.String(255), nullable=False),
        sa.Column('bio', sa.Text(), nullable=True),
        sa.Column('avatar_url', sa.String(500), nullable=True),
        sa.Column('is_admin', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('is_verified', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('token_version', sa.Integer(), server_default='1', nullable=False),
        sa.Column('person_id', sa.Uuid(), nullable=True),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(
            ['person_id'], ['people.id'],
            name='fk_users_person_id_people',
            ondelete='SET NULL',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_users'),
        sa.UniqueConstraint('email', name='uq_users_email'),
        sa.UniqueConstraint('person_id', name='uq_users_person_id'),
    )

    # ==========================================================================
    # Email log, invites and the claim drip
    # ==========================================================================
    op.create_table(
        'email_logs',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('recipient_email', sa.String(255), nullable=False),
        sa.Column('kind', sa.String(40), nullable=False),
        sa.Column('subject', sa.String(200), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('external_id', sa.String(255), nullable=True),
        sa.Column('idempotency_key', sa.String(255), nullable=True),
        sa.Column('status', sa.String(20), server_default='pending', nullable=False),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_email_logs'),
        sa.UniqueConstraint('idempotency_key', name='uq_email_logs_idempotency_key'),
    )
    op.create_index(
        'idx_email_logs_recipient',
        'email_logs',
        ['recipient_email', 'kind', 'created_at'],
    )

    op.create_table(
        'event_invites',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('event_api_id', sa.String(255), nullable=True),
        sa.Column('send_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('last_sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_event_invites'),
        sa.UniqueConstraint('email', 'event_api_id', name='uq_event_invites_email_event'),
    )

    op.create_table(
        'claim_invitations',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('emails_sent_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('last_sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('next_send_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('opted_out', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('final_message_sent', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_claim_invitations'),
        sa.UniqueConstraint('email', name='uq_claim_invitations_email'),
    )

    # ==========================================================================
    # sync_state
    # ==========================================================================
    op.create_table(
        'sync_state',
        sa.Column('key', sa.String(100), nullable=False),
        sa.Column('value', sa.Text(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('key', name='pk_sync_state'),
    )


def downgrade() -> None:
    op.drop_table('sync_state')
    op.drop_table('claim_invitations')
    op.drop_table('event_invites')
    op.drop_index('idx_email_logs_recipient', table_name='email_logs')
    op.drop_table('email_logs')
    op.drop_table('users')
    op.drop_index('ix_events_start_time', table_name='events')
    op.drop_table('events')
    op.drop_index('ix_people_email', table_name='people')
    op.drop_table('people')
