"""shipments and purchase order payments

Revision ID: 20261020_shipments
Revises: 20261019_initial
Create Date: 2026-10-20 00:00:00.000000

- shipping_companies: forwarders and their rates
- shipments: one per purchase order, delivery books the receipt
- purchase_orders.paid_amount_cents / payment_status: supplier payments
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261020_shipments'
down_revision = '20261019_initial'
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table('purchase_orders', schema=None) as batch_op:
        batch_op.add_column(sa.Column('paid_amount_cents', sa.Integer(), nullable=False, server_default='0'))
        batch_op.add_column(sa.Column('payment_status', sa.String(length=16), nullable=False,
                                      server_default='pending'))
        batch_op.create_check_constraint(
            op.f('ck_purchase_orders_paid_within_total'),
            'paid_amount_cents >= 0 AND paid_amount_cents <= total_cost_cents',
        )

    op.create_table(
        'shipping_companies',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('contact_name', sa.String(length=200), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('rate_per_kg_cents', sa.Integer(), nullable=True),
        sa.Column('rate_per_cbm_cents', sa.Integer(), nullable=True),
        sa.Column('min_charge_cents', sa.Integer(), nullable=True),
        sa.Column('transit_time', sa.String(length=64), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint(
            '(rate_per_kg_cents IS NULL OR rate_per_kg_cents >= 0) AND '
            '(rate_per_cbm_cents IS NULL OR rate_per_cbm_cents >= 0) AND '
            '(min_charge_cents IS NULL OR min_charge_cents >= 0)',
            name=op.f('ck_shipping_companies_rates_non_negative'),
        ),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_shipping_companies')),
        sa.UniqueConstraint('name', name=op.f('uq_shipping_companies_name')),
        sqlite_autoincrement=True
    )

    # ============================================================================
    # shipments: delivery receives the purchase order into the stock ledger
    # ============================================================================
    op.create_table(
        'shipments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shipment_number', sa.String(length=64), nullable=False),
        sa.Column('purchase_order_id', sa.Integer(), nullable=False),
        sa.Column('shipping_company_id', sa.Integer(), nullable=False),
        sa.Column('method', sa.String(length=16), nullable=False),
        sa.Column('tracking_number', sa.String(length=128), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('departure_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('estimated_arrival', sa.DateTime(timezone=True), nullable=True),
        sa.Column('actual_arrival', sa.DateTime(timezone=True), nullable=True),
        sa.Column('total_weight_kg', sa.Numeric(12, 3), nullable=True),
        sa.Column('total_volume_cbm', sa.Numeric(12, 3), nullable=True),
        sa.Column('shipping_cost_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('customs_duty_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('other_fees_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_cost_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('paid_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('payment_status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(length=128), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint(
            'total_cost_cents = shipping_cost_cents + customs_duty_cents + other_fees_cents',
            name=op.f('ck_shipments_total_identity'),
        ),
        sa.CheckConstraint(
            'paid_amount_cents >= 0 AND paid_amount_cents <= total_cost_cents',
            name=op.f('ck_shipments_paid_within_total'),
        ),
        sa.CheckConstraint(
            'shipping_cost_cents >= 0 AND customs_duty_cents >= 0 AND other_fees_cents >= 0',
            name=op.f('ck_shipments_costs_non_negative'),
        ),
        sa.ForeignKeyConstraint(['purchase_order_id'], ['purchase_orders.id'],
                                name=op.f('fk_shipments_purchase_order_id_purchase_orders')),
        sa.ForeignKeyConstraint(['shipping_company_id'], ['shipping_companies.id'],
                                name=op.f('fk_shipments_shipping_company_id_shipping_companies')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_shipments')),
        sa.UniqueConstraint('shipment_number', name=op.f('uq_shipments_shipment_number')),
        sa.UniqueConstraint('purchase_order_id', name=op.f('uq_shipments_purchase_order_id')),
        sqlite_autoincrement=True
    )
    op.create_index('ix_shipments_shipping_company_id', 'shipments', ['shipping_company_id'])
    op.create_index('ix_shipments_status', 'shipments', ['status'])


def downgrade():
    op.drop_table('shipments')
    op.drop_table('shipping_companies')
    with op.batch_alter_table('purchase_orders', schema=None) as batch_op:
        batch_op.drop_constraint(op.f('ck_purchase_orders_paid_within_total'), type_='check')
        batch_op.drop_column('payment_status')
        batch_op.drop_column('paid_amount_cents')
