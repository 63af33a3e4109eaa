"""add verification logs

Revision ID: 2026_10_19_0000
Revises:
Create Date: 2026-10-19 08:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '2026_10_19_0000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the append-only verification audit log."""

    # ========================================================================
    # Create verification_logs table
    # ========================================================================
    op.create_table(
        'verification_logs',
        sa.Column('id', sa.BigInteger().with_variant(sa.Integer(), 'sqlite'), primary_key=True, autoincrement=True),
        sa.Column('store_name', sa.String(50), nullable=False),
        sa.Column('validator_route', sa.String(50), nullable=False),
        sa.Column('product_id', sa.String(255), nullable=False, server_default=''),
        sa.Column('bundle_id', sa.String(255), nullable=False, server_default=''),
        sa.Column('transaction_id', sa.String(255), nullable=False, server_default=''),
        sa.Column('developer_payload', sa.Text(), nullable=False, server_default=''),
        sa.Column('token', sa.Text(), nullable=False, server_default=''),
        sa.Column('app_version', sa.String(50), nullable=False, server_default=''),
        sa.Column('environment', sa.String(20), nullable=False, server_default='Unknown'),
        sa.Column('is_valid', sa.Boolean(), nullable=False),
        sa.Column('message', sa.Text(), nullable=False, server_default=''),
        sa.Column('verified_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),

        sa.CheckConstraint("environment IN ('Production', 'Test', 'Unknown')", name='ck_verification_logs_environment'),
    )

    # Indexes for verification_logs
    op.create_index('idx_verification_logs_product_verified', 'verification_logs', ['product_id', 'verified_at'])
    op.create_index('idx_verification_logs_transaction_id', 'verification_logs', ['transaction_id'])


def downgrade() -> None:
    """Drop the verification audit log."""
    op.drop_index('idx_verification_logs_transaction_id', table_name='verification_logs')
    op.drop_index('idx_verification_logs_product_verified', table_name='verification_logs')
    op.drop_table('verification_logs')
