"""Charging core schema: profiles, stations, memberships, slots, sessions, booking payments

Revision ID: 001
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None

OPEN_SESSION_PREDICATE = sa.text("status IN ('pending', 'ready', 'in_progress')")


def upgrade():
    op.create_table('profiles',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('full_name', sa.String(), nullable=True),
        sa.Column('external_account_id', sa.String(), nullable=True),
        sa.Column('vehicle_brand', sa.String(), nullable=True),
        sa.Column('vehicle_model', sa.String(), nullable=True),
        sa.Column('vehicle_plate', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('stations',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('owner_id', sa.String(36), sa.ForeignKey('profiles.id'), nullable=False),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('street_name', sa.String(), nullable=True),
        sa.Column('street_number', sa.String(), nullable=True),
        sa.Column('postal_code', sa.String(), nullable=True),
        sa.Column('city', sa.String(), nullable=True),
        sa.Column('country', sa.String(), nullable=True),
        sa.Column('price_per_kwh', sa.Float(), nullable=True),
        sa.Column('charger_external_id', sa.String(), nullable=True),
        sa.Column('charger_metadata', sa.JSON(), nullable=True),
        sa.Column('charger_brand', sa.String(), nullable=True),
        sa.Column('charger_model', sa.String(), nullable=True),
        sa.Column('charger_vendor', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_stations_owner_id', 'stations', ['owner_id'])
    op.create_index('ix_stations_charger_external_id', 'stations', ['charger_external_id'])

    op.create_table('station_memberships',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('station_id', sa.String(36), sa.ForeignKey('stations.id'), nullable=False),
        sa.Column('profile_id', sa.String(36), sa.ForeignKey('profiles.id'), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_station_memberships_station_id', 'station_memberships', ['station_id'])
    op.create_index('ix_station_memberships_profile_id', 'station_memberships', ['profile_id'])
    op.create_index('ix_station_memberships_station_profile', 'station_memberships', ['station_id', 'profile_id'])

    op.create_table('station_slots',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('station_id', sa.String(36), sa.ForeignKey('stations.id'), nullable=False),
        sa.Column('type', sa.String(30), nullable=False),
        sa.Column('start_at', sa.DateTime(), nullable=False),
        sa.Column('end_at', sa.DateTime(), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_station_slots_station_id', 'station_slots', ['station_id'])
    op.create_index('ix_station_slots_station_window', 'station_slots', ['station_id', 'start_at', 'end_at'])

    op.create_table('station_charging_sessions',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('station_id', sa.String(36), sa.ForeignKey('stations.id'), nullable=False),
        sa.Column('driver_profile_id', sa.String(36), sa.ForeignKey('profiles.id'), nullable=False),
        sa.Column('slot_id', sa.String(36), sa.ForeignKey('station_slots.id'), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('start_at', sa.DateTime(), nullable=False),
        sa.Column('end_at', sa.DateTime(), nullable=True),
        sa.Column('energy_kwh', sa.Float(), nullable=True),
        sa.Column('amount', sa.Float(), nullable=True),
        sa.Column('start_action_id', sa.String(), nullable=True),
        sa.Column('stop_action_id', sa.String(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('raw_external_payload', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_station_charging_sessions_station_id', 'station_charging_sessions', ['station_id'])
    op.create_index('ix_station_charging_sessions_driver_profile_id', 'station_charging_sessions', ['driver_profile_id'])
    op.create_index('ix_station_charging_sessions_slot_id', 'station_charging_sessions', ['slot_id'])
    op.create_index('ix_station_charging_sessions_status', 'station_charging_sessions', ['status'])
    # At most one open session per (station, driver)
    op.create_index(
        'uq_charging_sessions_open_per_driver',
        'station_charging_sessions',
        ['station_id', 'driver_profile_id'],
        unique=True,
        sqlite_where=OPEN_SESSION_PREDICATE,
        postgresql_where=OPEN_SESSION_PREDICATE,
    )

    op.create_table('station_booking_payments',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('station_id', sa.String(36), sa.ForeignKey('stations.id'), nullable=False),
        sa.Column('slot_id', sa.String(36), sa.ForeignKey('station_slots.id'), nullable=False),
        sa.Column('membership_id', sa.String(36), sa.ForeignKey('station_memberships.id'), nullable=True),
        sa.Column('driver_profile_id', sa.String(36), sa.ForeignKey('profiles.id'), nullable=False),
        sa.Column('owner_profile_id', sa.String(36), sa.ForeignKey('profiles.id'), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('payment_reference', sa.String(20), nullable=True),
        sa.Column('total_energy_kwh', sa.Float(), nullable=True),
        sa.Column('total_amount', sa.Float(), nullable=True),
        sa.Column('driver_marked_at', sa.DateTime(), nullable=True),
        sa.Column('owner_marked_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('slot_id', name='uq_station_booking_payments_slot_id')
    )
    op.create_index('ix_station_booking_payments_station_id', 'station_booking_payments', ['station_id'])
    op.create_index('ix_station_booking_payments_membership_id', 'station_booking_payments', ['membership_id'])
    op.create_index('ix_station_booking_payments_driver_profile_id', 'station_booking_payments', ['driver_profile_id'])
    op.create_index('ix_station_booking_payments_owner_profile_id', 'station_booking_payments', ['owner_profile_id'])
    op.create_index('ix_station_booking_payments_status', 'station_booking_payments', ['status'])


def downgrade():
    op.drop_table('station_booking_payments')
    op.drop_index('uq_charging_sessions_open_per_driver', 'station_charging_sessions')
    op.drop_table('station_charging_sessions')
    op.drop_table('station_slots')
    op.drop_table('station_memberships')
    op.drop_table('stations')
    op.drop_table('profiles')
