"""Create billing tables: quotations, invoices, line items, settings, sequences, roles

Revision ID: 20261019_create_billing_tables
Revises:
Create Date: 2026-10-19

Numbering format: {PREFIX}-{YEAR}-{SEQUENCE}, e.g. QT-2026-0001, INV-2026-0001
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20261019_create_billing_tables'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


MONEY = sa.Numeric(18, 2)
PERCENT = sa.Numeric(7, 3)


def _client_and_pricing_columns():
    return [
        sa.Column('client_name', sa.String(200), nullable=False),
        sa.Column('client_business_name', sa.String(200), nullable=False, server_default=''),
        sa.Column('client_phone', sa.String(20), nullable=False, server_default=''),
        sa.Column('client_email', sa.String(255), nullable=False, server_default=''),
        sa.Column('client_address', sa.String(500), nullable=False, server_default=''),
        sa.Column('subtotal', MONEY, nullable=False, server_default='0'),
        sa.Column('discount_type', sa.String(20), nullable=False, server_default='percentage',
                  comment='percentage, fixed'),
        sa.Column('discount_value', MONEY, nullable=False, server_default='0'),
        sa.Column('discount_amount', MONEY, nullable=False, server_default='0'),
        sa.Column('discount_enabled', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('taxable_amount', MONEY, nullable=False, server_default='0'),
        sa.Column('tax_percentage', PERCENT, nullable=False, server_default='18'),
        sa.Column('tax_amount', MONEY, nullable=False, server_default='0'),
        sa.Column('tax_enabled', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('grand_total', MONEY, nullable=False, server_default='0'),
        sa.Column('payment_terms', sa.Text, nullable=False, server_default=''),
        sa.Column('notes', sa.Text, nullable=False, server_default=''),
        sa.Column('created_by', sa.Uuid, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
    ]


def _item_columns(parent_table: str, parent_column: str):
    return [
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column(parent_column, sa.Uuid,
                  sa.ForeignKey(f'{parent_table}.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('service_name', sa.String(200), nullable=False),
        sa.Column('description', sa.Text, nullable=False, server_default=''),
        sa.Column('quantity', sa.Integer, nullable=False),
        sa.Column('rate', MONEY, nullable=False),
        sa.Column('amount', MONEY, nullable=False, comment='quantity x rate'),
        sa.Column('sort_order', sa.Integer, nullable=False, server_default='0'),
    ]


def upgrade() -> None:
    conn = op.get_bind()
    existing = set(sa.inspect(conn).get_table_names())
    if 'quotations' in existing:
        print("billing tables already exist, skipping...")
        return

    # Quotations
    op.create_table(
        'quotations',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('quotation_number', sa.String(50), nullable=False, unique=True, index=True,
                  comment='Unique quotation number e.g., QT-2026-0001'),
        sa.Column('quotation_date', sa.Date, nullable=False),
        sa.Column('validity_days', sa.Integer, nullable=False, server_default='15'),
        sa.Column('valid_until', sa.Date, nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='draft', index=True,
                  comment='draft, sent, accepted, rejected, expired'),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('accepted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('converted_to_invoice', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('invoice_id', sa.Uuid, nullable=True,
                  comment='Invoice created from this quotation'),
        *_client_and_pricing_columns(),
    )
    op.create_index('ix_quotations_quotation_date', 'quotations', ['quotation_date'])

    op.create_table(
        'quotation_items',
        *_item_columns('quotations', 'quotation_id'),
        sa.UniqueConstraint('quotation_id', 'sort_order', name='uq_quotation_items_sort_order'),
    )

    # Invoices
    op.create_table(
        'invoices',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('invoice_number', sa.String(50), nullable=False, unique=True, index=True,
                  comment='Unique invoice number e.g., INV-2026-0001'),
        sa.Column('invoice_date', sa.Date, nullable=False),
        sa.Column('due_date', sa.Date, nullable=False),
        sa.Column('quotation_id', sa.Uuid,
                  sa.ForeignKey('quotations.id', ondelete='SET NULL'),
                  nullable=True, index=True),
        sa.Column('quotation_number', sa.String(50), nullable=True),
        sa.Column('amount_paid', MONEY, nullable=False, server_default='0'),
        sa.Column('balance_due', MONEY, nullable=False, server_default='0'),
        sa.Column('status', sa.String(20), nullable=False, server_default='draft', index=True,
                  comment='draft, sent, pending, paid, overdue, cancelled'),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        *_client_and_pricing_columns(),
    )
    op.create_index('ix_invoices_invoice_date', 'invoices', ['invoice_date'])
    op.create_index('ix_invoices_due_date', 'invoices', ['due_date'])

    op.create_table(
        'invoice_items',
        *_item_columns('invoices', 'invoice_id'),
        sa.UniqueConstraint('invoice_id', 'sort_order', name='uq_invoice_items_sort_order'),
    )

    # Business settings (single logical row)
    op.create_table(
        'business_settings',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('company_name', sa.String(200), nullable=False, server_default=''),
        sa.Column('company_address', sa.String(500), nullable=False, server_default=''),
        sa.Column('company_phone', sa.String(30), nullable=False, server_default=''),
        sa.Column('company_email', sa.String(255), nullable=False, server_default=''),
        sa.Column('company_website', sa.String(255), nullable=False, server_default=''),
        sa.Column('logo_url', sa.String(500), nullable=True),
        sa.Column('currency', sa.String(10), nullable=False, server_default='₹'),
        sa.Column('currency_code', sa.String(3), nullable=False, server_default='INR'),
        sa.Column('tax_number', sa.String(30), nullable=True, comment='GSTIN / VAT ID'),
        sa.Column('tax_percentage', PERCENT, nullable=False, server_default='18'),
        sa.Column('enable_tax', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('enable_discount', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('default_payment_terms', sa.Text, nullable=False,
                  server_default='50% advance, balance on delivery'),
        sa.Column('default_validity_days', sa.Integer, nullable=False, server_default='15'),
        sa.Column('default_due_days', sa.Integer, nullable=False, server_default='15'),
        sa.Column('bank_name', sa.String(200), nullable=True),
        sa.Column('bank_account_number', sa.String(50), nullable=True),
        sa.Column('bank_ifsc', sa.String(20), nullable=True),
        sa.Column('upi_id', sa.String(100), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
    )

    # Atomic numbering counters
    if 'document_sequences' not in existing:
        op.create_table(
            'document_sequences',
            sa.Column('id', sa.Uuid, primary_key=True),
            sa.Column('document_type', sa.String(20), nullable=False, index=True,
                      comment='quotation, invoice'),
            sa.Column('year', sa.Integer, nullable=False),
            sa.Column('prefix', sa.String(10), nullable=False),
            sa.Column('current_number', sa.Integer, nullable=False, server_default='0',
                      comment='Last used sequence number'),
            sa.Column('padding_length', sa.Integer, nullable=False, server_default='4'),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                      server_default=sa.func.now()),
            sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                      server_default=sa.func.now()),
            sa.UniqueConstraint('document_type', 'year', name='uq_document_sequences_type_year'),
        )

    # Admin capability
    if 'user_roles' not in existing:
        op.create_table(
            'user_roles',
            sa.Column('id', sa.Uuid, primary_key=True),
            sa.Column('user_id', sa.Uuid, nullable=False, index=True),
            sa.Column('role', sa.String(20), nullable=False, server_default='user',
                      comment='admin, user'),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                      server_default=sa.func.now()),
            sa.UniqueConstraint('user_id', 'role', name='uq_user_roles_user_role'),
        )

    print("Created billing tables")


def downgrade() -> None:
    op.drop_table('invoice_items')
    op.drop_table('invoices')
    op.drop_table('quotation_items')
    op.drop_table('quotations')
    op.drop_table('business_settings')
    op.drop_table('document_sequences')
    op.drop_table('user_roles')
