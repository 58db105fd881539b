"""Initial database schema

Revision ID: 0001
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

ID = sa.String(length=25)
MONEY = sa.Numeric(precision=12, scale=2)


def _timestamps(with_updated: bool = True) -> list[sa.Column]:
    columns = [sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False)]
    if with_updated:
        columns.append(
            sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False)
        )
    return columns


def upgrade() -> None:
    """Upgrade database schema."""
    op.create_table('users',
        sa.Column('id', ID, nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('role', sa.String(length=20), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email')
    )
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=False)
    op.create_index(op.f('ix_users_role'), 'users', ['role'], unique=False)

    op.create_table('notification_preferences',
        sa.Column('id', ID, nullable=False),
        sa.Column('user_id', ID, nullable=False),
        sa.Column('email_notifications', sa.Boolean(), nullable=False),
        sa.Column('booking_confirmations', sa.Boolean(), nullable=False),
        sa.Column('tour_reminders', sa.Boolean(), nullable=False),
        sa.Column('payment_updates', sa.Boolean(), nullable=False),
        sa.Column('marketing_emails', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id')
    )

    op.create_table('destinations',
        sa.Column('id', ID, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('country', sa.String(length=120), nullable=False),
        *_timestamps(with_updated=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_destinations_name'), 'destinations', ['name'], unique=False)

    op.create_table('tours',
        sa.Column('id', ID, nullable=False),
        sa.Column('destination_id', ID, nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price_per_person', MONEY, nullable=False),
        sa.Column('max_group_size', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('price_per_person > 0', name='ck_tour_price_positive'),
        sa.CheckConstraint('price_per_person <= 100000', name='ck_tour_price_max'),
        sa.CheckConstraint('max_group_size BETWEEN 1 AND 100', name='ck_tour_group_size_range'),
        sa.ForeignKeyConstraint(['destination_id'], ['destinations.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_tours_destination_id'), 'tours', ['destination_id'], unique=False)
    op.create_index(op.f('ix_tours_title'), 'tours', ['title'], unique=False)
    op.create_index(op.f('ix_tours_status'), 'tours', ['status'], unique=False)

    op.create_table('tour_availabilities',
        sa.Column('id', ID, nullable=False),
        sa.Column('tour_id', ID, nullable=False),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('end_date', sa.DateTime(), nullable=False),
        sa.Column('available_slots', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('available_slots >= 0', name='ck_availability_slots_non_negative'),
        sa.CheckConstraint('end_date >= start_date', name='ck_availability_dates_ordered'),
        sa.ForeignKeyConstraint(['tour_id'], ['tours.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_tour_availabilities_tour_id'), 'tour_availabilities', ['tour_id'], unique=False)
    op.create_index(op.f('ix_tour_availabilities_start_date'), 'tour_availabilities', ['start_date'], unique=False)

    op.create_table('bookings',
        sa.Column('id', ID, nullable=False),
        sa.Column('user_id', ID, nullable=False),
        sa.Column('tour_id', ID, nullable=False),
        sa.Column('availability_id', ID, nullable=False),
        sa.Column('travelers_count', sa.Integer(), nullable=False),
        sa.Column('total_price', MONEY, nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('cancellation_reason', sa.String(length=500), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('travelers_count > 0', name='ck_booking_travelers_positive'),
        sa.CheckConstraint('total_price >= 0', name='ck_booking_total_price_non_negative'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['tour_id'], ['tours.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['availability_id'], ['tour_availabilities.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_bookings_user_id'), 'bookings', ['user_id'], unique=False)
    op.create_index(op.f('ix_bookings_tour_id'), 'bookings', ['tour_id'], unique=False)
    op.create_index(op.f('ix_bookings_availability_id'), 'bookings', ['availability_id'], unique=False)
    op.create_index(op.f('ix_bookings_status'), 'bookings', ['status'], unique=False)

    op.create_table('payments',
        sa.Column('id', ID, nullable=False),
        sa.Column('booking_id', ID, nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('method', sa.String(length=20), nullable=False),
        sa.Column('provider', sa.String(length=20), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('provider_transaction_id', sa.String(length=255), nullable=True),
        sa.Column('payment_url', sa.String(length=1024), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('amount > 0', name='ck_payment_amount_positive'),
        sa.CheckConstraint('length(currency) = 3', name='ck_payment_currency_length'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_payments_booking_id'), 'payments', ['booking_id'], unique=False)
    op.create_index(op.f('ix_payments_provider'), 'payments', ['provider'], unique=False)
    op.create_index(op.f('ix_payments_status'), 'payments', ['status'], unique=False)
    op.create_index(
        op.f('ix_payments_provider_transaction_id'), 'payments', ['provider_transaction_id'], unique=False
    )

    op.create_table('reviews',
        sa.Column('id', ID, nullable=False),
        sa.Column('user_id', ID, nullable=False),
        sa.Column('tour_id', ID, nullable=False),
        sa.Column('rating', sa.Integer(), nullable=False),
        sa.Column('comment', sa.Text(), nullable=False),
        sa.Column('approved', sa.Boolean(), nullable=False),
        *_timestamps(with_updated=False),
        sa.CheckConstraint('rating BETWEEN 1 AND 5', name='ck_review_rating_range'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['tour_id'], ['tours.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'tour_id', name='uq_review_user_tour')
    )
    op.create_index(op.f('ix_reviews_user_id'), 'reviews', ['user_id'], unique=False)
    op.create_index(op.f('ix_reviews_tour_id'), 'reviews', ['tour_id'], unique=False)

    op.create_table('notification_records',
        sa.Column('id', ID, nullable=False),
        sa.Column('type', sa.String(length=40), nullable=False),
        sa.Column('recipient_email', sa.String(length=255), nullable=False),
        sa.Column('subject', sa.String(length=255), nullable=False),
        sa.Column('booking_id', ID, nullable=False),
        sa.Column('payment_id', ID, nullable=True),
        *_timestamps(with_updated=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_notification_records_type'), 'notification_records', ['type'], unique=False)
    op.create_index(
        op.f('ix_notification_records_recipient_email'), 'notification_records', ['recipient_email'], unique=False
    )
    op.create_index(
        op.f('ix_notification_records_booking_id'), 'notification_records', ['booking_id'], unique=False
    )


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_table('notification_records')
    op.drop_table('reviews')
    op.drop_table('payments')
    op.drop_table('bookings')
    op.drop_table('tour_availabilities')
    op.drop_table('tours')
    op.drop_table('destinations')
    op.drop_table('notification_preferences')
    op.drop_table('users')
