"""scheduling core

Revision ID: 5a2c9e7f1b34
Revises:
Create Date: 2026-10-17 09:12:41.508113

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '5a2c9e7f1b34'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

BLOCKING_STATUSES_SQL = "('reserved', 'requested', 'pending_deposit', 'confirmed', 'checked_in', 'in_progress')"


def _uuid_pk():
    return sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()'))


def _salon_fk():
    return sa.Column('salon_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('salons.id', ondelete='CASCADE'), nullable=False)


def _staff_fk(nullable=False):
    return sa.Column('staff_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('staff_members.id', ondelete='CASCADE'), nullable=nullable)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    op.execute('CREATE EXTENSION IF NOT EXISTS btree_gist')

    # 1. Tenants and rules
    op.create_table(
        'salons',
        _uuid_pk(),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('timezone', sa.String(50), nullable=False, server_default='Europe/Zurich'),
        sa.Column('auto_confirm_bookings', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('require_manual_approval', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        'booking_rules',
        _uuid_pk(),
        sa.Column('salon_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('salons.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('min_lead_time_minutes', sa.Integer, nullable=False, server_default='60'),
        sa.Column('max_booking_horizon_days', sa.Integer, nullable=False, server_default='90'),
        sa.Column('slot_granularity_minutes', sa.Integer, nullable=False, server_default='15'),
        sa.Column('default_buffer_minutes', sa.Integer, nullable=False, server_default='0'),
        sa.Column('reservation_timeout_minutes', sa.Integer, nullable=False, server_default='15'),
        sa.Column('cancellation_cutoff_hours', sa.Integer, nullable=False, server_default='24'),
        sa.Column('allow_customer_cancellation', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('max_bookings_per_day', sa.Integer, nullable=True),
        sa.Column('max_concurrent_reservations_per_customer', sa.Integer, nullable=True, server_default='2'),
        sa.Column('max_services_per_appointment', sa.Integer, nullable=True, server_default='5'),
        sa.Column('deposit_required_percent', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('no_show_policy', sa.String(20), nullable=False, server_default='none'),
        *_timestamps(),
        sa.CheckConstraint('min_lead_time_minutes >= 0', name='booking_rules_lead_time_positive'),
        sa.CheckConstraint('max_booking_horizon_days > 0', name='booking_rules_horizon_positive'),
        sa.CheckConstraint('slot_granularity_minutes IN (5, 10, 15, 30, 60)', name='booking_rules_granularity_valid'),
        sa.CheckConstraint(
            'deposit_required_percent >= 0 AND deposit_required_percent <= 100',
            name='booking_rules_deposit_range',
        ),
        sa.CheckConstraint('reservation_timeout_minutes > 0', name='booking_rules_timeout_positive'),
    )

    # 2. Catalog and staff
    op.create_table(
        'services',
        _uuid_pk(),
        _salon_fk(),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('price_chf', sa.Numeric(10, 2), nullable=False),
        sa.Column('tax_rate_percent', sa.Numeric(5, 2), nullable=True),
        sa.Column('duration_minutes', sa.Integer, nullable=False),
        sa.Column('buffer_before_minutes', sa.Integer, nullable=False, server_default='0'),
        sa.Column('buffer_after_minutes', sa.Integer, nullable=False, server_default='0'),
        sa.Column('requires_deposit', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('deposit_amount_chf', sa.Numeric(10, 2), nullable=True),
        sa.Column('is_active', sa.Boolean, server_default=sa.true()),
        sa.Column('online_bookable', sa.Boolean, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index('ix_services_salon_id', 'services', ['salon_id'])
    op.create_index('ix_services_is_active', 'services', ['is_active'])

    op.create_table(
        'staff_members',
        _uuid_pk(),
        _salon_fk(),
        sa.Column('display_name', sa.String(200), nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('is_bookable', sa.Boolean, nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index('ix_staff_members_salon_id', 'staff_members', ['salon_id'])

    op.create_table(
        'staff_service_skills',
        _uuid_pk(),
        _salon_fk(),
        _staff_fk(),
        sa.Column('service_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('services.id', ondelete='CASCADE'), nullable=False),
        sa.Column('custom_duration_minutes', sa.Integer, nullable=True),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.UniqueConstraint('staff_id', 'service_id', name='staff_skills_unique'),
    )
    op.create_index('ix_staff_service_skills_staff_id', 'staff_service_skills', ['staff_id'])
    op.create_index('ix_staff_service_skills_service_id', 'staff_service_skills', ['service_id'])

    # 3. Schedules
    op.create_table(
        'opening_hours',
        _uuid_pk(),
        _salon_fk(),
        sa.Column('day_of_week', sa.Integer, nullable=False),
        sa.Column('open_minute', sa.Integer, nullable=False),
        sa.Column('close_minute', sa.Integer, nullable=False),
        sa.Column('label', sa.String(100), nullable=True),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.CheckConstraint('day_of_week >= 0 AND day_of_week <= 6', name='opening_hours_day_range'),
        sa.CheckConstraint(
            'open_minute >= 0 AND close_minute <= 1440 AND close_minute > open_minute',
            name='opening_hours_time_order',
        ),
    )
    op.create_index('ix_opening_hours_salon_id', 'opening_hours', ['salon_id'])

    op.create_table(
        'staff_working_hours',
        _uuid_pk(),
        _salon_fk(),
        _staff_fk(),
        sa.Column('day_of_week', sa.Integer, nullable=False),
        sa.Column('start_minute', sa.Integer, nullable=False),
        sa.Column('end_minute', sa.Integer, nullable=False),
        sa.Column('break_start_minute', sa.Integer, nullable=True),
        sa.Column('break_end_minute', sa.Integer, nullable=True),
        sa.Column('valid_from', sa.Date, nullable=True),
        sa.Column('valid_to', sa.Date, nullable=True),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.CheckConstraint('day_of_week >= 0 AND day_of_week <= 6', name='staff_working_hours_day_range'),
        sa.CheckConstraint(
            'start_minute >= 0 AND end_minute <= 1440 AND end_minute > start_minute',
            name='staff_working_hours_time_order',
        ),
        sa.CheckConstraint(
            '(break_start_minute IS NULL AND break_end_minute IS NULL) OR '
            '(break_start_minute >= start_minute AND break_end_minute <= end_minute '
            'AND break_end_minute > break_start_minute)',
            name='staff_working_hours_break_order',
        ),
    )
    op.create_index('ix_staff_working_hours_staff_id', 'staff_working_hours', ['staff_id'])

    op.create_table(
        'staff_working_hours_overrides',
        _uuid_pk(),
        _salon_fk(),
        _staff_fk(),
        sa.Column('valid_from', sa.Date, nullable=False),
        sa.Column('valid_to', sa.Date, nullable=False),
        sa.Column('day_of_week', sa.Integer, nullable=True),
        sa.Column('is_working', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('start_minute', sa.Integer, nullable=True),
        sa.Column('end_minute', sa.Integer, nullable=True),
        sa.Column('break_start_minute', sa.Integer, nullable=True),
        sa.Column('break_end_minute', sa.Integer, nullable=True),
        sa.Column('reason', sa.String, nullable=True),
        sa.CheckConstraint('valid_to >= valid_from', name='staff_overrides_valid_period'),
        sa.CheckConstraint(
            'is_working = false OR (start_minute IS NOT NULL AND end_minute IS NOT NULL '
            'AND end_minute > start_minute)',
            name='staff_overrides_time_order',
        ),
    )
    op.create_index('ix_staff_working_hours_overrides_staff_id', 'staff_working_hours_overrides', ['staff_id'])

    op.create_table(
        'staff_absences',
        _uuid_pk(),
        _salon_fk(),
        _staff_fk(),
        sa.Column('start_date', sa.Date, nullable=False),
        sa.Column('end_date', sa.Date, nullable=False),
        sa.Column('start_minute', sa.Integer, nullable=True),
        sa.Column('end_minute', sa.Integer, nullable=True),
        sa.Column('reason', sa.String(20), nullable=False, server_default='other'),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('end_date >= start_date', name='staff_absences_date_order'),
        sa.CheckConstraint(
            '(start_minute IS NULL AND end_minute IS NULL) OR '
            '(start_minute >= 0 AND end_minute <= 1440 AND end_minute > start_minute)',
            name='staff_absences_time_range',
        ),
    )
    op.create_index('ix_staff_absences_staff_id', 'staff_absences', ['staff_id'])

    op.create_table(
        'blocked_times',
        _uuid_pk(),
        _salon_fk(),
        _staff_fk(nullable=True),
        sa.Column('block_type', sa.String(20), nullable=False, server_default='other'),
        sa.Column('starts_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('ends_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.CheckConstraint('ends_at > starts_at', name='blocked_times_time_order'),
    )
    op.create_index('ix_blocked_times_salon_id', 'blocked_times', ['salon_id'])

    # 4. Appointments
    op.create_table(
        'appointments',
        _uuid_pk(),
        _salon_fk(),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('staff_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('staff_members.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('starts_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('ends_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('buffer_before_minutes', sa.Integer, nullable=False, server_default='0'),
        sa.Column('buffer_after_minutes', sa.Integer, nullable=False, server_default='0'),
        sa.Column('total_duration_minutes', sa.Integer, nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='reserved'),
        sa.Column('reserved_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('booked_via', sa.String(20), server_default='online'),
        sa.Column('confirmation_number', sa.String(12), nullable=False, unique=True),
        sa.Column('total_price_chf', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('total_tax_chf', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('deposit_required', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('deposit_amount_chf', sa.Numeric(10, 2), nullable=True),
        sa.Column('deposit_paid', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('deposit_payment_reference', sa.String(100), nullable=True),
        sa.Column('customer_notes', sa.Text, nullable=True),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('checked_in_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_by', sa.String(64), nullable=True),
        sa.Column('cancellation_reason', sa.Text, nullable=True),
        sa.Column('cancelled_within_cutoff', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('no_show_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('no_show_charged', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('rescheduled_from_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('appointments.id'), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('ends_at > starts_at', name='appointments_time_order'),
        sa.CheckConstraint(
            "(status = 'reserved' AND reserved_until IS NOT NULL) OR "
            "(status != 'reserved' AND reserved_until IS NULL)",
            name='appointments_reserved_until_logic',
        ),
        sa.CheckConstraint(
            'NOT deposit_required OR deposit_amount_chf IS NOT NULL',
            name='appointments_deposit_logic',
        ),
    )
    op.create_index('ix_appointments_customer_id', 'appointments', ['customer_id'])
    op.create_index('idx_appointments_staff_window', 'appointments', ['staff_id', 'starts_at', 'ends_at'])
    op.create_index('idx_appointments_salon_status', 'appointments', ['salon_id', 'status'])
    op.create_index('idx_appointments_reserved_until', 'appointments', ['status', 'reserved_until'])

    # Last line of defence against double booking; the service layer locks the staff row first.
    # Stale holds still count here, the reservation path expires them before inserting.
    op.execute(f"""
        ALTER TABLE appointments
        ADD CONSTRAINT appointments_no_staff_overlap
        EXCLUDE USING gist (
            staff_id WITH =,
            tstzrange(starts_at, ends_at, '[)') WITH &&
        )
        WHERE (status IN {BLOCKING_STATUSES_SQL})
    """)

    op.create_table(
        'appointment_services',
        _uuid_pk(),
        _salon_fk(),
        sa.Column('appointment_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('appointments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('service_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('services.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('snapshot_service_name', sa.String(200), nullable=False),
        sa.Column('snapshot_price_chf', sa.Numeric(10, 2), nullable=False),
        sa.Column('snapshot_tax_rate_percent', sa.Numeric(5, 2), nullable=True),
        sa.Column('snapshot_tax_chf', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('snapshot_duration_minutes', sa.Integer, nullable=False),
        sa.Column('sort_order', sa.Integer, nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('snapshot_price_chf >= 0', name='appointment_services_price_positive'),
        sa.CheckConstraint('snapshot_duration_minutes > 0', name='appointment_services_duration_positive'),
    )
    op.create_index('ix_appointment_services_appointment_id', 'appointment_services', ['appointment_id'])

    # Snapshots are append-only
    op.execute("""
        CREATE OR REPLACE FUNCTION appointment_services_refuse_update() RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'appointment_services rows are append-only';
        END;
        $$ LANGUAGE plpgsql
    """)
    op.execute("""
        CREATE TRIGGER appointment_services_append_only
        BEFORE UPDATE ON appointment_services
        FOR EACH ROW EXECUTE FUNCTION appointment_services_refuse_update()
    """)

    # 5. Waitlist
    op.create_table(
        'waitlist_entries',
        _uuid_pk(),
        _salon_fk(),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('desired_service_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('services.id', ondelete='CASCADE'), nullable=False),
        sa.Column('date_range_start', sa.Date, nullable=True),
        sa.Column('date_range_end', sa.Date, nullable=True),
        sa.Column('preferred_time_of_day', sa.JSON, nullable=False, server_default='[]'),
        sa.Column('preferred_weekdays', sa.JSON, nullable=False, server_default='[]'),
        sa.Column('preferred_staff_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('staff_members.id', ondelete='SET NULL'), nullable=True),
        sa.Column('customer_notes', sa.Text, nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('notified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notification_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('auto_expire_days', sa.Integer, nullable=False, server_default='30'),
        *_timestamps(),
        sa.CheckConstraint(
            'date_range_end IS NULL OR date_range_start IS NULL OR date_range_end >= date_range_start',
            name='waitlist_date_range_order',
        ),
        sa.CheckConstraint('auto_expire_days > 0', name='waitlist_auto_expire_positive'),
    )
    op.create_index('ix_waitlist_entries_customer_id', 'waitlist_entries', ['customer_id'])
    op.create_index('idx_waitlist_salon_status_created', 'waitlist_entries', ['salon_id', 'status', 'created_at'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('waitlist_entries')
    op.execute('DROP TRIGGER IF EXISTS appointment_services_append_only ON appointment_services')
    op.execute('DROP FUNCTION IF EXISTS appointment_services_refuse_update()')
    op.drop_table('appointment_services')
    op.drop_table('appointments')
    op.drop_table('blocked_times')
    op.drop_table('staff_absences')
    op.drop_table('staff_working_hours_overrides')
    op.drop_table('staff_working_hours')
    op.drop_table('opening_hours')
    op.drop_table('staff_service_skills')
    op.drop_table('staff_members')
    op.drop_table('services')
    op.drop_table('booking_rules')
    op.drop_table('salons')
