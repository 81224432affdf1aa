"""create fleet ledger tables

Revision ID: 7d1e0c2f4a91
Revises:
Create Date: 2026-10-12 09:30:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '7d1e0c2f4a91'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _audit_columns():
    return [
        sa.Column('created_on', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP'), comment='Row creation timestamp'),
        sa.Column('updated_on', sa.DateTime(timezone=True), nullable=True, comment='Last modification timestamp'),
        sa.Column('created_by', sa.Integer(), nullable=True, comment='User who created the row'),
        sa.Column('modified_by', sa.Integer(), nullable=True, comment='User who last modified the row'),
    ]


def upgrade() -> None:
    """Create customers, vehicles, rentals, ledger, payments, fines and P&L tables"""

    op.create_table(
        'customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False, comment='Full or company name'),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('status', sa.Enum('ACTIVE', 'INACTIVE', name='customerstatus'), nullable=False,
                  comment='Derived from having an active rental'),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_customers_status', 'customers', ['status'])

    op.create_table(
        'vehicles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('reg', sa.String(16), nullable=False, comment='Registration plate'),
        sa.Column('make', sa.String(64), nullable=True),
        sa.Column('model', sa.String(64), nullable=True),
        sa.Column('status', sa.Enum('AVAILABLE', 'RENTED', 'MAINTENANCE', 'SOLD', name='vehiclestatus'),
                  nullable=False),
        sa.Column('purchase_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('acquisition_date', sa.Date(), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_vehicles_reg', 'vehicles', ['reg'], unique=True)
    op.create_index('ix_vehicles_status', 'vehicles', ['status'])

    op.create_table(
        'rentals',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('vehicle_id', sa.Integer(), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=True, comment='Exclusive end; open-ended when null'),
        sa.Column('monthly_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('status', sa.Enum('ACTIVE', 'CLOSED', name='rentalstatus'), nullable=False),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.ForeignKeyConstraint(['vehicle_id'], ['vehicles.id']),
    )
    op.create_index('ix_rentals_customer_id', 'rentals', ['customer_id'])
    op.create_index('ix_rentals_vehicle_id', 'rentals', ['vehicle_id'])
    op.create_index('ix_rentals_status', 'rentals', ['status'])

    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('rental_id', sa.Integer(), nullable=True),
        sa.Column('vehicle_id', sa.Integer(), nullable=True),
        sa.Column('payment_date', sa.Date(), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False, comment='The total amount received from the customer.'),
        sa.Column('payment_type', sa.Enum('RENTAL', 'INITIAL_FEE', 'FINE', name='paymenttype'), nullable=False),
        sa.Column('method', sa.Enum('CASH', 'CARD', 'BANK_TRANSFER', 'OTHER', name='paymentmethod'), nullable=False),
        sa.Column('notes', sa.String(255), nullable=True),
        sa.Column('remaining_amount', sa.Numeric(12, 2), nullable=False, comment='Portion not yet applied to any charge'),
        sa.Column('status', sa.Enum('APPLIED', 'PARTIAL', 'CREDIT', name='paymentstatus'), nullable=False),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.ForeignKeyConstraint(['rental_id'], ['rentals.id']),
        sa.ForeignKeyConstraint(['vehicle_id'], ['vehicles.id']),
        sa.CheckConstraint('remaining_amount >= 0', name='ck_payment_remaining_non_negative'),
    )
    op.create_index('ix_payments_customer_id', 'payments', ['customer_id'])
    op.create_index('ix_payments_payment_date', 'payments', ['payment_date'])
    op.create_index('ix_payments_payment_type', 'payments', ['payment_type'])
    op.create_index('ix_payments_status', 'payments', ['status'])

    op.create_table(
        'ledger_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('vehicle_id', sa.Integer(), nullable=True),
        sa.Column('rental_id', sa.Integer(), nullable=True),
        sa.Column('payment_id', sa.Integer(), nullable=True, comment='Back-reference when this entry mirrors a payment'),
        sa.Column('entry_date', sa.Date(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('type', sa.Enum('CHARGE', 'PAYMENT', name='entrytype'), nullable=False),
        sa.Column('category', sa.Enum('RENTAL', 'INITIAL_FEES', 'FINE', 'OTHER', name='ledgercategory'),
                  nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False,
                  comment='Signed: positive for charges, negative for mirrored payments'),
        sa.Column('remaining_amount', sa.Numeric(12, 2), nullable=False, server_default='0.00',
                  comment='Unsettled portion of a charge; always 0 for payment mirrors'),
        sa.Column('reference', sa.String(128), nullable=True, comment='Idempotency key for generated charges'),
        sa.Column('voided_at', sa.DateTime(timezone=True), nullable=True,
                  comment='Set when the originating fine was waived'),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.ForeignKeyConstraint(['vehicle_id'], ['vehicles.id']),
        sa.ForeignKeyConstraint(['rental_id'], ['rentals.id']),
        sa.ForeignKeyConstraint(['payment_id'], ['payments.id']),
        sa.UniqueConstraint('payment_id'),
        sa.UniqueConstraint('reference'),
        sa.CheckConstraint('remaining_amount >= 0', name='ck_ledger_remaining_non_negative'),
    )
    op.create_index('ix_ledger_entries_customer_id', 'ledger_entries', ['customer_id'])
    op.create_index('ix_ledger_entries_entry_date', 'ledger_entries', ['entry_date'])
    op.create_index('ix_ledger_entries_due_date', 'ledger_entries', ['due_date'])
    op.create_index('idx_ledger_customer_type_remaining', 'ledger_entries',
                    ['customer_id', 'type', 'remaining_amount'])
    op.create_index('idx_ledger_rental_due', 'ledger_entries', ['rental_id', 'due_date'])

    op.create_table(
        'payment_applications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('payment_id', sa.Integer(), nullable=False),
        sa.Column('charge_entry_id', sa.Integer(), nullable=False,
                  comment='The Charge ledger entry this slice settled'),
        sa.Column('amount_applied', sa.Numeric(12, 2), nullable=False),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['payment_id'], ['payments.id']),
        sa.ForeignKeyConstraint(['charge_entry_id'], ['ledger_entries.id']),
        sa.UniqueConstraint('payment_id', 'charge_entry_id', name='uq_payment_application_pair'),
        sa.CheckConstraint('amount_applied > 0', name='ck_application_positive'),
    )
    op.create_index('ix_payment_applications_payment_id', 'payment_applications', ['payment_id'])
    op.create_index('ix_payment_applications_charge_entry_id', 'payment_applications', ['charge_entry_id'])

    op.create_table(
        'fines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('vehicle_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.Enum('PCN', 'SPEEDING', 'OTHER', name='finetype'), nullable=False),
        sa.Column('reference_no', sa.String(100), nullable=True, comment="Authority's notice number"),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('issue_date', sa.Date(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('liability', sa.Enum('CUSTOMER', 'BUSINESS', name='fineliability'), nullable=False),
        sa.Column('status', sa.Enum('OPEN', 'APPEALED', 'APPEAL_SUBMITTED', 'APPEAL_SUCCESSFUL', 'APPEAL_REJECTED',
                                    'CHARGED', 'PAID', 'WAIVED', name='finestatus'), nullable=False),
        sa.Column('charged_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('appealed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('waived_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.ForeignKeyConstraint(['vehicle_id'], ['vehicles.id']),
    )
    op.create_index('ix_fines_customer_id', 'fines', ['customer_id'])
    op.create_index('ix_fines_vehicle_id', 'fines', ['vehicle_id'])
    op.create_index('ix_fines_reference_no', 'fines', ['reference_no'])
    op.create_index('ix_fines_status', 'fines', ['status'])

    op.create_table(
        'authority_payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('fine_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('payment_date', sa.Date(), nullable=False),
        sa.Column('payment_method', sa.String(50), nullable=True),
        sa.Column('notes', sa.String(255), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['fine_id'], ['fines.id']),
    )
    op.create_index('ix_authority_payments_fine_id', 'authority_payments', ['fine_id'])

    op.create_table(
        'pnl_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('vehicle_id', sa.Integer(), nullable=True),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('entry_date', sa.Date(), nullable=False),
        sa.Column('side', sa.Enum('REVENUE', 'COST', name='pnlside'), nullable=False),
        sa.Column('category', sa.Enum('RENTAL', 'INITIAL_FEES', 'FINES', name='pnlcategory'), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False, comment='Negative for reversals'),
        sa.Column('source_ref', sa.String(128), nullable=False,
                  comment='Originating event, e.g. payment:12, application:12:40, fine:7'),
        sa.Column('reference', sa.String(191), nullable=False),
        sa.Column('is_reversal', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['vehicle_id'], ['vehicles.id']),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.UniqueConstraint('reference'),
    )
    op.create_index('ix_pnl_entries_vehicle_id', 'pnl_entries', ['vehicle_id'])
    op.create_index('ix_pnl_entries_customer_id', 'pnl_entries', ['customer_id'])
    op.create_index('ix_pnl_entries_entry_date', 'pnl_entries', ['entry_date'])
    op.create_index('ix_pnl_entries_source_ref', 'pnl_entries', ['source_ref'])
    op.create_index('idx_pnl_vehicle_side_category', 'pnl_entries', ['vehicle_id', 'side', 'category'])


def downgrade() -> None:
    """Drop every fleet ledger table"""
    op.drop_table('pnl_entries')
    op.drop_table('authority_payments')
    op.drop_table('fines')
    op.drop_table('payment_applications')
    op.drop_table('ledger_entries')
    op.drop_table('payments')
    op.drop_table('rentals')
    op.drop_table('vehicles')
    op.drop_table('customers')
