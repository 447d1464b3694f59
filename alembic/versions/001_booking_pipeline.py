"""Booking pipeline schema

Revision ID: 001_booking_pipeline
Revises:
Create Date: 2026-10-17

Tables:
- booking_drafts: pre-purchase assembly, guarded by (status, version)
- flight_bookings: one per completed draft, frozen snapshots
- booking_links: guest access tokens
- traveler_profiles: saved traveler details per account
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_booking_pipeline'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all database tables."""

    # ===========================================
    # 1. BOOKING DRAFTS
    # ===========================================
    op.create_table(
        'booking_drafts',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('account_id', sa.String(64), nullable=False),
        sa.Column('trip_id', sa.String(64), nullable=False),
        sa.Column('offer_id', sa.String(255), nullable=False),
        sa.Column('offer_expires_at', sa.DateTime, nullable=True),
        # Money (minor units)
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('base_price_minor', sa.BigInteger, nullable=False),
        sa.Column('extras_total_minor', sa.BigInteger, nullable=False, server_default='0'),
        sa.Column('total_price_minor', sa.BigInteger, nullable=False),
        sa.Column('passengers', sa.JSON, nullable=False),
        sa.Column('selected_bags', sa.JSON, nullable=False),
        sa.Column('selected_seats', sa.JSON, nullable=False),
        sa.Column('offer_snapshot', sa.JSON, nullable=False),
        sa.Column('policy_acknowledged', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('policy_acknowledged_at', sa.DateTime, nullable=True),
        sa.Column('status', sa.String(30), nullable=False, server_default='draft'),
        sa.Column('version', sa.Integer, nullable=False, server_default='1'),
        sa.Column('booking_id', sa.String(36), nullable=True),
        # Timestamps
        sa.Column('created_at', sa.DateTime, nullable=True),
        sa.Column('updated_at', sa.DateTime, nullable=True),
        sa.Column('expires_at', sa.DateTime, nullable=True),
    )
    op.create_index('ix_booking_drafts_account_id', 'booking_drafts', ['account_id'])
    op.create_index('ix_booking_draft_account_trip', 'booking_drafts', ['account_id', 'trip_id', 'created_at'])
    op.create_index('ix_booking_draft_status_expiry', 'booking_drafts', ['status', 'expires_at'])

    # ===========================================
    # 2. FLIGHT BOOKINGS
    # ===========================================
    op.create_table(
        'flight_bookings',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('account_id', sa.String(64), nullable=False),
        sa.Column('trip_id', sa.String(64), nullable=False),
        sa.Column('draft_id', sa.String(36), nullable=False, unique=True),
        sa.Column('offer_id', sa.String(255), nullable=False),
        sa.Column('upstream_order_id', sa.String(255), nullable=True),
        sa.Column('booking_reference', sa.String(32), nullable=True),
        sa.Column('payment_intent_id', sa.String(255), nullable=True),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('total_amount_minor', sa.BigInteger, nullable=False),
        sa.Column('base_price_minor', sa.BigInteger, nullable=True),
        sa.Column('extras_total_minor', sa.BigInteger, nullable=True),
        # Frozen snapshots
        sa.Column('outbound_flight', sa.JSON, nullable=False),
        sa.Column('return_flight', sa.JSON, nullable=True),
        sa.Column('passengers', sa.JSON, nullable=False),
        sa.Column('policies', sa.JSON, nullable=True),
        sa.Column('included_baggage', sa.JSON, nullable=False),
        sa.Column('paid_baggage', sa.JSON, nullable=False),
        sa.Column('seat_selections', sa.JSON, nullable=False),
        sa.Column('departure_at', sa.DateTime, nullable=True),
        sa.Column('status', sa.String(30), nullable=False, server_default='pending_payment'),
        sa.Column('failure_reason', sa.Text, nullable=True),
        # Confirmation marker
        sa.Column('confirmation_sent_at', sa.DateTime, nullable=True),
        sa.Column('confirmation_provider', sa.String(50), nullable=True),
        sa.Column('confirmation_message_id', sa.String(255), nullable=True),
        sa.Column('support_reference', sa.String(100), nullable=True),
        # Timestamps
        sa.Column('created_at', sa.DateTime, nullable=True),
        sa.Column('confirmed_at', sa.DateTime, nullable=True),
        sa.Column('failed_at', sa.DateTime, nullable=True),
        sa.Column('cancelled_at', sa.DateTime, nullable=True),
    )
    op.create_index('ix_flight_bookings_account_id', 'flight_bookings', ['account_id'])
    op.create_index('ix_flight_bookings_trip_id', 'flight_bookings', ['trip_id'])
    op.create_index('ix_flight_booking_upstream_order', 'flight_bookings', ['upstream_order_id'])
    op.create_index('ix_flight_booking_account_created', 'flight_bookings', ['account_id', 'created_at'])

    # ===========================================
    # 3. BOOKING LINKS (depends on flight_bookings)
    # ===========================================
    op.create_table(
        'booking_links',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('token', sa.String(64), nullable=False),
        sa.Column('booking_id', sa.String(36), sa.ForeignKey('flight_bookings.id'), nullable=False),
        sa.Column('idempotency_key', sa.String(100), nullable=True),
        sa.Column('expires_at', sa.DateTime, nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=True),
        sa.UniqueConstraint('booking_id', 'idempotency_key', name='uq_booking_link_idempotency'),
    )
    op.create_index('ix_booking_links_token', 'booking_links', ['token'], unique=True)
    op.create_index('ix_booking_links_booking_id', 'booking_links', ['booking_id'])

    # ===========================================
    # 4. TRAVELER PROFILES
    # ===========================================
    op.create_table(
        'traveler_profiles',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('account_id', sa.String(64), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=False),
        sa.Column('date_of_birth', sa.Date, nullable=False),
        sa.Column('gender', sa.String(10), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('phone_country_code', sa.String(8), nullable=True),
        sa.Column('phone_number', sa.String(32), nullable=True),
        sa.Column('passport_number', sa.String(50), nullable=True),
        sa.Column('passport_issuing_country', sa.String(2), nullable=True),
        sa.Column('passport_expiry_date', sa.Date, nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=True),
        sa.Column('updated_at', sa.DateTime, nullable=True),
        # Soft Delete
        sa.Column('is_deleted', sa.Boolean, server_default=sa.false()),
        sa.Column('deleted_at', sa.DateTime, nullable=True),
    )
    op.create_index('ix_traveler_profiles_is_deleted', 'traveler_profiles', ['is_deleted'])
    op.create_index('ix_traveler_profile_account', 'traveler_profiles', ['account_id', 'is_deleted'])


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    op.drop_table('booking_links')
    op.drop_table('flight_bookings')
    op.drop_table('booking_drafts')
    op.drop_table('traveler_profiles')
