"""
Alembic migration: Initial delivery marketplace schema.

Creates users, drivers, orders, the append-only order status history, driver
ratings and per-order settlements, with the enum types, indexes and check
constraints the models declare. Enum columns store member names, matching
the SQLAlchemy Enum defaults used by the models.

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# Revision identifiers, used by Alembic
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


user_role = postgresql.ENUM('CUSTOMER', 'DRIVER', 'ADMIN', name='user_role', create_type=False)
driver_status = postgresql.ENUM(
    'PENDING', 'APPROVED', 'REJECTED', 'SUSPENDED', name='driver_status', create_type=False
)
vehicle_type = postgresql.ENUM('MOTO', 'BICYCLE', 'CAR', 'VAN', name='vehicle_type', create_type=False)
order_status = postgresql.ENUM(
    'PENDING', 'ACCEPTED', 'PICKED_UP', 'IN_TRANSIT', 'DELIVERED', 'CANCELLED',
    name='order_status',
    create_type=False,
)
payment_status = postgresql.ENUM('PENDING', 'PAID', 'FAILED', name='payment_status', create_type=False)
payment_method = postgresql.ENUM('MAKOPAY', 'CASH', 'CARD', name='payment_method', create_type=False)
order_urgency = postgresql.ENUM('STANDARD', 'EXPRESS', 'URGENT', name='order_urgency', create_type=False)
equipment_tier = postgresql.ENUM('STANDARD', 'PREMIUM', name='equipment_tier', create_type=False)
payout_status = postgresql.ENUM('PENDING', 'COMPLETED', 'FAILED', name='payout_status', create_type=False)

ENUM_TYPES = (
    user_role,
    driver_status,
    vehicle_type,
    order_status,
    payment_status,
    payment_method,
    order_urgency,
    equipment_tier,
    payout_status,
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    """
    Create the delivery marketplace schema.
    """
    bind = op.get_bind()
    for enum_type in ENUM_TYPES:
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        'users',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone_number', sa.String(length=32), nullable=True),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=True),
        sa.Column('role', user_role, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.CheckConstraint(
            'email IS NOT NULL OR phone_number IS NOT NULL', name='ck_users_contact_present'
        ),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_phone_number', 'users', ['phone_number'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'])

    op.create_table(
        'drivers',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            'user_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('users.id', ondelete='RESTRICT'),
            nullable=False,
        ),
        sa.Column('full_name', sa.String(length=200), nullable=False),
        sa.Column('age', sa.Integer(), nullable=False),
        sa.Column('vehicle_type', vehicle_type, nullable=False),
        sa.Column('city', sa.String(length=100), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=False),
        sa.Column('makopay_id', sa.String(length=100), nullable=True),
        sa.Column('drivers_license_url', sa.String(length=500), nullable=True),
        sa.Column('vehicle_registration_url', sa.String(length=500), nullable=True),
        sa.Column('insurance_certificate_url', sa.String(length=500), nullable=True),
        sa.Column('medical_certificate_url', sa.String(length=500), nullable=True),
        sa.Column('status', driver_status, nullable=False, server_default='PENDING'),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_online', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('rating', sa.Numeric(precision=3, scale=2), nullable=False, server_default='0'),
        sa.Column('total_deliveries', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('has_gps_equipment', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('has_insurance', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('has_uniform', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.CheckConstraint('age >= 18', name='ck_drivers_adult'),
        sa.CheckConstraint('rating >= 0 AND rating <= 5', name='ck_drivers_rating_range'),
        sa.CheckConstraint('total_deliveries >= 0', name='ck_drivers_deliveries_non_negative'),
    )
    op.create_index('ix_drivers_user_id', 'drivers', ['user_id'], unique=True)
    op.create_index('ix_drivers_status', 'drivers', ['status'])
    op.create_index('ix_drivers_status_online', 'drivers', ['status', 'is_online'])

    op.create_table(
        'orders',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('tracking_number', sa.String(length=32), nullable=False),
        sa.Column(
            'customer_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('users.id', ondelete='RESTRICT'),
            nullable=False,
        ),
        sa.Column(
            'driver_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('drivers.id', ondelete='RESTRICT'),
            nullable=True,
        ),
        sa.Column('pickup_address', sa.Text(), nullable=False),
        sa.Column('delivery_address', sa.Text(), nullable=False),
        sa.Column('package_type', sa.String(length=50), nullable=False),
        sa.Column('weight', sa.String(length=50), nullable=False),
        sa.Column('urgency', order_urgency, nullable=False, server_default='STANDARD'),
        sa.Column('price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('status', order_status, nullable=False, server_default='PENDING'),
        sa.Column('payment_status', payment_status, nullable=False, server_default='PENDING'),
        sa.Column('payment_method', payment_method, nullable=True),
        sa.Column('payment_transaction_id', sa.String(length=100), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('customer_phone', sa.String(length=32), nullable=True),
        sa.Column('delivery_instructions', sa.Text(), nullable=True),
        sa.Column('estimated_delivery_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('price > 0', name='ck_orders_price_positive'),
        sa.CheckConstraint(
            "status = 'PENDING' OR status = 'CANCELLED' OR driver_id IS NOT NULL",
            name='ck_orders_driver_assigned',
        ),
    )
    op.create_index('ix_orders_tracking_number', 'orders', ['tracking_number'], unique=True)
    op.create_index('ix_orders_customer_id', 'orders', ['customer_id'])
    op.create_index('ix_orders_driver_id', 'orders', ['driver_id'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_payment_transaction_id', 'orders', ['payment_transaction_id'])
    op.create_index('ix_orders_customer_created', 'orders', ['customer_id', 'created_at'])
    op.create_index('ix_orders_status_driver', 'orders', ['status', 'driver_id'])

    op.create_table(
        'order_status_history',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            'order_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('orders.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('status', order_status, nullable=False),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        'ix_order_status_history_order_ts',
        'order_status_history',
        ['order_id', 'timestamp', 'id'],
    )

    op.create_table(
        'driver_ratings',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            'order_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('orders.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column(
            'customer_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('users.id', ondelete='RESTRICT'),
            nullable=False,
        ),
        sa.Column(
            'driver_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('drivers.id', ondelete='RESTRICT'),
            nullable=False,
        ),
        sa.Column('rating', sa.Integer(), nullable=False),
        sa.Column('comment', sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('order_id', name='uq_driver_ratings_order'),
        sa.CheckConstraint('rating >= 1 AND rating <= 5', name='ck_driver_ratings_range'),
    )
    op.create_index('ix_driver_ratings_driver_id', 'driver_ratings', ['driver_id'])

    op.create_table(
        'settlements',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            'order_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('orders.id', ondelete='RESTRICT'),
            nullable=False,
            unique=True,
        ),
        sa.Column(
            'driver_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('drivers.id', ondelete='RESTRICT'),
            nullable=False,
        ),
        sa.Column('base_amount', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('commission_rate', sa.Numeric(precision=3, scale=2), nullable=False),
        sa.Column('commission_amount', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('driver_earnings', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('admin_earnings', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('tier', equipment_tier, nullable=False),
        sa.Column('payout_status', payout_status, nullable=False, server_default='PENDING'),
        sa.Column('payout_reference', sa.String(length=120), nullable=False),
        sa.Column('payout_transaction_id', sa.String(length=100), nullable=True),
        sa.Column('payout_message', sa.Text(), nullable=True),
        sa.Column('payout_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('paid_out_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('base_amount >= 0', name='ck_settlements_base_non_negative'),
        sa.CheckConstraint('payout_attempts >= 0', name='ck_settlements_attempts_non_negative'),
    )
    op.create_index('ix_settlements_driver_id', 'settlements', ['driver_id'])
    op.create_index('ix_settlements_payout_status', 'settlements', ['payout_status'])
    op.create_index('ix_settlements_payout_transaction_id', 'settlements', ['payout_transaction_id'])
    op.create_index('ix_settlements_driver_created', 'settlements', ['driver_id', 'created_at'])


def downgrade() -> None:
    """
    Drop the delivery marketplace schema.
    """
    op.drop_table('settlements')
    op.drop_table('driver_ratings')
    op.drop_table('order_status_history')
    op.drop_table('orders')
    op.drop_table('drivers')
    op.drop_table('users')

    bind = op.get_bind()
    for enum_type in reversed(ENUM_TYPES):
        enum_type.drop(bind, checkfirst=True)
