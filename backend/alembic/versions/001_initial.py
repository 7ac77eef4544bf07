"""Initial migration

Revision ID: 001
Revises:
Create Date: 2026-10-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # Create delivery_providers table
    op.create_table(
        'delivery_providers',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('code', sa.String(50), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('provider_type', sa.Enum('API_INTEGRATED', 'MANUAL_COORDINATION', 'AUTO_PICKUP', name='providertype'), nullable=False),
        sa.Column('api_base_url', sa.String(500), nullable=True),
        sa.Column('api_version', sa.String(20), nullable=True),
        sa.Column('auth_method', sa.String(50), nullable=True),
        sa.Column('coverage_provinces', sa.JSON(), nullable=False),
        sa.Column('max_weight_kg', sa.Numeric(10, 2), nullable=False, server_default='30'),
        sa.Column('max_dimensions', sa.JSON(), nullable=True),
        sa.Column('base_rate', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('per_km_rate', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('weight_surcharge_rate', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('same_day_surcharge', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('cod_surcharge', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('standard_delivery_hours', sa.Integer(), nullable=False, server_default='24'),
        sa.Column('express_delivery_hours', sa.Integer(), nullable=True),
        sa.Column('same_day_available', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('cod_available', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('tracking_available', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('insurance_available', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('daily_cutoff_time', sa.Time(), nullable=True),
        sa.Column('weekend_service', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('holiday_service', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('contact_phone', sa.String(50), nullable=True),
        sa.Column('contact_line_id', sa.String(100), nullable=True),
        sa.Column('contact_email', sa.String(255), nullable=True),
        sa.Column('contact_app_name', sa.String(100), nullable=True),
        sa.Column('coordination_notes', sa.Text(), nullable=True),
        sa.Column('average_delivery_hours', sa.Numeric(6, 2), nullable=True),
        sa.Column('success_rate', sa.Numeric(5, 2), nullable=True),
        sa.Column('customer_rating', sa.Numeric(3, 2), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('priority_order', sa.Integer(), nullable=False, server_default='100'),
        sa.Column('auto_assign', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('requires_approval', sa.Boolean(), nullable=False, server_default='false'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_delivery_providers_code', 'delivery_providers', ['code'], unique=True)
    op.create_index('ix_delivery_providers_provider_type', 'delivery_providers', ['provider_type'])
    op.create_index('ix_delivery_providers_is_active', 'delivery_providers', ['is_active'])

    # Create coverage_areas table
    op.create_table(
        'coverage_areas',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('province', sa.String(100), nullable=False),
        sa.Column('district', sa.String(100), nullable=True),
        sa.Column('subdistrict', sa.String(100), nullable=True),
        sa.Column('postal_code', sa.String(10), nullable=True),
        sa.Column('is_self_delivery_area', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('delivery_route', sa.String(50), nullable=True),
        sa.Column('delivery_zone', sa.String(50), nullable=True),
        sa.Column('priority_order', sa.Integer(), nullable=False, server_default='100'),
        sa.Column('base_delivery_fee', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('per_km_rate', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('free_delivery_threshold', sa.Numeric(12, 2), nullable=True),
        sa.Column('standard_delivery_hours', sa.Integer(), nullable=False, server_default='24'),
        sa.Column('express_delivery_hours', sa.Integer(), nullable=True),
        sa.Column('same_day_available', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('max_daily_capacity', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('auto_assign', sa.Boolean(), nullable=False, server_default='true'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_coverage_areas_province', 'coverage_areas', ['province'])
    op.create_index('ix_coverage_areas_postal_code', 'coverage_areas', ['postal_code'])
    op.create_index(
        'ix_coverage_areas_scope', 'coverage_areas',
        ['province', 'district', 'subdistrict', 'postal_code'],
    )

    # Create delivery_vehicles table
    op.create_table(
        'delivery_vehicles',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('license_plate', sa.String(20), nullable=False),
        sa.Column('vehicle_type', sa.Enum('MOTORCYCLE', 'CAR', 'VAN', 'TRUCK', name='vehicletype'), nullable=False),
        sa.Column('brand', sa.String(50), nullable=True),
        sa.Column('model', sa.String(50), nullable=True),
        sa.Column('year', sa.Integer(), nullable=True),
        sa.Column('max_weight_kg', sa.Numeric(10, 2), nullable=False),
        sa.Column('max_volume_m3', sa.Numeric(10, 2), nullable=True),
        sa.Column('fuel_type', sa.String(20), nullable=True),
        sa.Column('driver_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('status', sa.Enum('ACTIVE', 'INACTIVE', 'MAINTENANCE', 'ON_ROUTE', name='vehiclestatus'), nullable=False, server_default='ACTIVE'),
        sa.Column('last_maintenance_date', sa.Date(), nullable=True),
        sa.Column('next_maintenance_date', sa.Date(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('license_plate'),
    )
    op.create_index('ix_delivery_vehicles_status', 'delivery_vehicles', ['status'])

    # Create delivery_routes table
    op.create_table(
        'delivery_routes',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('route_name', sa.String(100), nullable=False),
        sa.Column('route_date', sa.Date(), nullable=False),
        sa.Column('assigned_vehicle_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('assigned_driver_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('planned_start_time', sa.DateTime(), nullable=True),
        sa.Column('planned_end_time', sa.DateTime(), nullable=True),
        sa.Column('total_planned_distance_km', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('total_planned_orders', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.Enum('PLANNED', 'IN_PROGRESS', 'COMPLETED', 'CANCELLED', name='routestatus'), nullable=False, server_default='PLANNED'),
        sa.Column('actual_start_time', sa.DateTime(), nullable=True),
        sa.Column('actual_end_time', sa.DateTime(), nullable=True),
        sa.Column('actual_distance_km', sa.Numeric(10, 2), nullable=True),
        sa.Column('actual_orders_delivered', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('route_optimization_data', sa.JSON(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_delivery_routes_route_date', 'delivery_routes', ['route_date'])
    op.create_index('ix_delivery_routes_assigned_vehicle_id', 'delivery_routes', ['assigned_vehicle_id'])
    op.create_index('ix_delivery_routes_status', 'delivery_routes', ['status'])

    # Create delivery_orders table
    op.create_table(
        'delivery_orders',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('order_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('customer_address_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('delivery_method', sa.Enum('SELF_DELIVERY', 'ON_DEMAND', 'MANUAL_CARRIER', 'SCHEDULED_PICKUP', name='deliverymethod'), nullable=False),
        sa.Column('provider_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('provider_code', sa.String(50), nullable=True),
        sa.Column('vehicle_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('route_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('tracking_number', sa.String(100), nullable=True),
        sa.Column('provider_order_id', sa.String(100), nullable=True),
        sa.Column('scheduled_pickup_time', sa.DateTime(), nullable=True),
        sa.Column('planned_delivery_date', sa.Date(), nullable=True),
        sa.Column('estimated_delivery_time', sa.DateTime(), nullable=True),
        sa.Column('actual_pickup_time', sa.DateTime(), nullable=True),
        sa.Column('actual_delivery_time', sa.DateTime(), nullable=True),
        sa.Column('delivery_fee', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('cod_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('package_weight_kg', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('same_day_required', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('destination_province', sa.String(100), nullable=True),
        sa.Column('status', sa.Enum('PENDING', 'PLANNED', 'DISPATCHED', 'IN_TRANSIT', 'DELIVERED', 'FAILED', 'CANCELLED', name='deliverystatus'), nullable=False, server_default='PENDING'),
        sa.Column('status_reason', sa.String(500), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('delivery_instructions', sa.Text(), nullable=True),
        sa.Column('requires_manual_coordination', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('version', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('delivery_fee >= 0', name='ck_delivery_orders_fee_non_negative'),
        sa.CheckConstraint('cod_amount >= 0', name='ck_delivery_orders_cod_non_negative'),
    )
    op.create_index('ix_delivery_orders_order_id', 'delivery_orders', ['order_id'])
    op.create_index('ix_delivery_orders_customer_id', 'delivery_orders', ['customer_id'])
    op.create_index('ix_delivery_orders_delivery_method', 'delivery_orders', ['delivery_method'])
    op.create_index('ix_delivery_orders_provider_code', 'delivery_orders', ['provider_code'])
    op.create_index('ix_delivery_orders_vehicle_id', 'delivery_orders', ['vehicle_id'])
    op.create_index('ix_delivery_orders_route_id', 'delivery_orders', ['route_id'])
    op.create_index('ix_delivery_orders_tracking_number', 'delivery_orders', ['tracking_number'])
    op.create_index('ix_delivery_orders_destination_province', 'delivery_orders', ['destination_province'])
    op.create_index('ix_delivery_orders_status', 'delivery_orders', ['status'])

    # Create manual_coordination_tasks table
    op.create_table(
        'manual_coordination_tasks',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('delivery_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('provider_code', sa.String(50), nullable=False),
        sa.Column('task_type', sa.Enum('PHONE_COORDINATION', 'APP_BOOKING', 'LINE_MESSAGE', 'EMAIL_COORDINATION', 'PICKUP_SCHEDULE', name='tasktype'), nullable=False),
        sa.Column('task_status', sa.Enum('PENDING', 'IN_PROGRESS', 'COMPLETED', 'FAILED', 'CANCELLED', name='taskstatus'), nullable=False, server_default='PENDING'),
        sa.Column('assigned_to_user_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('task_instructions', sa.Text(), nullable=False),
        sa.Column('contact_information', sa.JSON(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('completion_notes', sa.Text(), nullable=True),
        sa.Column('external_reference', sa.String(100), nullable=True),
        sa.Column('reminder_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_reminder_sent', sa.DateTime(), nullable=True),
        sa.Column('next_reminder_due', sa.DateTime(), nullable=True),
        sa.Column('overdue_notified_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['delivery_id'], ['delivery_orders.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_manual_coordination_tasks_delivery_id', 'manual_coordination_tasks', ['delivery_id'])
    op.create_index('ix_manual_coordination_tasks_provider_code', 'manual_coordination_tasks', ['provider_code'])
    op.create_index('ix_manual_coordination_tasks_task_status', 'manual_coordination_tasks', ['task_status'])
    op.create_index('ix_manual_coordination_tasks_assigned_to_user_id', 'manual_coordination_tasks', ['assigned_to_user_id'])
    op.create_index('ix_manual_coordination_tasks_next_reminder_due', 'manual_coordination_tasks', ['next_reminder_due'])

    # Create delivery_snapshots table
    op.create_table(
        'delivery_snapshots',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('delivery_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('snapshot_type', sa.Enum('CREATED', 'ASSIGNED', 'PICKED_UP', 'IN_TRANSIT', 'DELIVERED', 'FAILED', 'CANCELLED', 'STATUS_UPDATED', 'PROVIDER_UPDATED', name='snapshottype'), nullable=False),
        sa.Column('snapshot_data', sa.JSON(), nullable=False),
        sa.Column('details', sa.JSON(), nullable=False),
        sa.Column('previous_snapshot_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('triggered_by', sa.String(50), nullable=False),
        sa.Column('triggered_by_user_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('triggered_event', sa.String(100), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('order_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('vehicle_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('province', sa.String(100), nullable=True),
        sa.Column('delivery_fee', sa.Numeric(12, 2), nullable=False),
        sa.Column('provider_code', sa.String(50), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('business_date', sa.Date(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['delivery_id'], ['delivery_orders.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('delivery_id', 'sequence', name='uq_delivery_snapshots_sequence'),
    )
    op.create_index('ix_delivery_snapshots_delivery_id', 'delivery_snapshots', ['delivery_id'])
    op.create_index('ix_delivery_snapshots_snapshot_type', 'delivery_snapshots', ['snapshot_type'])
    op.create_index('ix_delivery_snapshots_customer_id', 'delivery_snapshots', ['customer_id'])
    op.create_index('ix_delivery_snapshots_provider_code', 'delivery_snapshots', ['provider_code'])
    op.create_index('ix_delivery_snapshots_business_date', 'delivery_snapshots', ['business_date'])

    # Create carrier_webhook_events table
    op.create_table(
        'carrier_webhook_events',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('provider_code', sa.String(50), nullable=False),
        sa.Column('event_id', sa.String(100), nullable=False),
        sa.Column('delivery_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('tracking_number', sa.String(100), nullable=True),
        sa.Column('reported_status', sa.String(50), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('outcome', sa.Enum('APPLIED', 'NO_CHANGE', 'STALE', 'UNKNOWN_DELIVERY', 'REJECTED', name='webhookoutcome'), nullable=False),
        sa.Column('received_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('provider_code', 'event_id', name='uq_carrier_webhook_events_event'),
    )
    op.create_index('ix_carrier_webhook_events_delivery_id', 'carrier_webhook_events', ['delivery_id'])
    op.create_index('ix_carrier_webhook_events_tracking_number', 'carrier_webhook_events', ['tracking_number'])


def downgrade() -> None:
    op.drop_table('carrier_webhook_events')
    op.drop_table('delivery_snapshots')
    op.drop_table('manual_coordination_tasks')
    op.drop_table('delivery_orders')
    op.drop_table('delivery_routes')
    op.drop_table('delivery_vehicles')
    op.drop_table('coverage_areas')
    op.drop_table('delivery_providers')

    for enum_name in (
        'webhookoutcome', 'snapshottype', 'taskstatus', 'tasktype', 'deliverystatus',
        'deliverymethod', 'routestatus', 'vehiclestatus', 'vehicletype', 'providertype',
    ):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
