"""create_booking_and_payment_tables

Revision ID: 3b1f9c2d7a10
Revises:
Create Date: 2026-10-19 15:30:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3b1f9c2d7a10'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    ]


def upgrade() -> None:
    op.create_table(
        'librarians',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('identity_id', sa.String(), unique=True),
        sa.Column('first_name', sa.String(), nullable=False),
        sa.Column('last_name', sa.String()),
        sa.Column('email', sa.String(), nullable=False, unique=True),
        sa.Column('contact_number', sa.String(15)),
        sa.Column('razorpay_contact_id', sa.String()),
        sa.Column('razorpay_account_id', sa.String()),
        sa.Column('is_active', sa.Boolean()),
        *_timestamps(),
    )
    op.create_index('ix_librarians_email', 'librarians', ['email'])

    op.create_table(
        'students',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('identity_id', sa.String(), unique=True),
        sa.Column('first_name', sa.String(), nullable=False),
        sa.Column('last_name', sa.String()),
        sa.Column('email', sa.String(), nullable=False, unique=True),
        sa.Column('phone_number', sa.String(15)),
        sa.Column('is_active', sa.Boolean()),
        *_timestamps(),
    )
    op.create_index('ix_students_email', 'students', ['email'])

    op.create_table(
        'libraries',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('librarian_id', sa.Uuid(), sa.ForeignKey('librarians.id'), nullable=False),
        sa.Column('library_name', sa.String(), nullable=False),
        sa.Column('address', sa.Text()),
        sa.Column('city', sa.String()),
        sa.Column('opening_time', sa.Time()),
        sa.Column('closing_time', sa.Time()),
        sa.Column('is_active', sa.Boolean()),
        *_timestamps(),
    )

    op.create_table(
        'seats',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('library_id', sa.Uuid(), sa.ForeignKey('libraries.id'), nullable=False),
        sa.Column('seat_number', sa.String(), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('is_active', sa.Boolean()),
        *_timestamps(),
    )
    op.create_index('ix_seats_library_id', 'seats', ['library_id'])

    op.create_table(
        'time_slots',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('library_id', sa.Uuid(), sa.ForeignKey('libraries.id'), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column('capacity', sa.Integer(), nullable=False),
        sa.Column('booked_count', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('capacity >= 0', name='ck_time_slots_capacity_non_negative'),
        sa.CheckConstraint('booked_count >= 0 AND booked_count <= capacity', name='ck_time_slots_booked_within_capacity'),
    )
    op.create_index('ix_time_slots_library_date', 'time_slots', ['library_id', 'date'])

    op.create_table(
        'plans',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('library_id', sa.Uuid(), sa.ForeignKey('libraries.id'), nullable=False),
        sa.Column('plan_name', sa.String(), nullable=False),
        sa.Column('days', sa.Integer(), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('is_active', sa.Boolean()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    )
    op.create_index('ix_plans_library_id', 'plans', ['library_id'])

    op.create_table(
        'bookings',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('student_id', sa.Uuid(), sa.ForeignKey('students.id'), nullable=False),
        sa.Column('library_id', sa.Uuid(), sa.ForeignKey('libraries.id'), nullable=False),
        sa.Column('plan_id', sa.Uuid(), sa.ForeignKey('plans.id'), nullable=False),
        sa.Column('time_slot_id', sa.Uuid(), sa.ForeignKey('time_slots.id'), nullable=False),
        sa.Column('seat_id', sa.Uuid(), sa.ForeignKey('seats.id'), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('check_in_time', sa.DateTime(timezone=True)),
        sa.Column('check_out_time', sa.DateTime(timezone=True)),
        sa.Column('valid_from', sa.Date(), nullable=False),
        sa.Column('valid_to', sa.Date(), nullable=False),
        sa.Column('total_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('cancelled_at', sa.DateTime(timezone=True)),
        *_timestamps(),
    )
    op.create_index('ix_bookings_student_id', 'bookings', ['student_id'])
    op.create_index('ix_bookings_time_slot_id', 'bookings', ['time_slot_id'])
    # One live booking per seat and time slot
    op.create_index(
        'uq_bookings_seat_slot_live',
        'bookings',
        ['seat_id', 'time_slot_id'],
        unique=True,
        postgresql_where=sa.text("status IN ('ACTIVE', 'COMPLETED')"),
    )

    op.create_table(
        'booking_status_history',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('booking_id', sa.Uuid(), sa.ForeignKey('bookings.id'), nullable=False),
        sa.Column('from_status', sa.String()),
        sa.Column('to_status', sa.String(), nullable=False),
        sa.Column('reason', sa.Text()),
        sa.Column('changed_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    )
    op.create_index('ix_booking_status_history_booking_id', 'booking_status_history', ['booking_id'])

    op.create_table(
        'payments',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('student_id', sa.Uuid(), sa.ForeignKey('students.id'), nullable=False),
        sa.Column('librarian_id', sa.Uuid(), sa.ForeignKey('librarians.id'), nullable=False),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('platform_fee', sa.Numeric(10, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('razorpay_order_id', sa.String(), nullable=False, unique=True),
        sa.Column('razorpay_payment_id', sa.String()),
        sa.Column('razorpay_signature', sa.String()),
        sa.Column('razorpay_transfer_id', sa.String()),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('payment_date', sa.DateTime(timezone=True)),
        sa.Column('transferred_at', sa.DateTime(timezone=True)),
        sa.Column('failure_reason', sa.Text()),
        sa.Column('failure_recovered_at', sa.DateTime(timezone=True)),
        sa.Column('payout_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('payout_error', sa.Text()),
        sa.Column('library_id', sa.Uuid(), sa.ForeignKey('libraries.id')),
        sa.Column('plan_id', sa.Uuid(), sa.ForeignKey('plans.id')),
        sa.Column('time_slot_id', sa.Uuid(), sa.ForeignKey('time_slots.id')),
        sa.Column('seat_id', sa.Uuid(), sa.ForeignKey('seats.id')),
        sa.Column('booking_id', sa.Uuid(), sa.ForeignKey('bookings.id')),
        sa.Column('booking_error', sa.Text()),
        *_timestamps(),
    )
    op.create_index('ix_payments_student_id', 'payments', ['student_id'])
    op.create_index('ix_payments_librarian_id', 'payments', ['librarian_id'])


def downgrade() -> None:
    op.drop_table('payments')
    op.drop_table('booking_status_history')
    op.drop_index('uq_bookings_seat_slot_live', table_name='bookings')
    op.drop_table('bookings')
    op.drop_table('plans')
    op.drop_table('time_slots')
    op.drop_table('seats')
    op.drop_table('libraries')
    op.drop_table('students')
    op.drop_table('librarians')
