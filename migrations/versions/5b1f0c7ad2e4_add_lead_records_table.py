"""Add lead_records table for the lead record store

Revision ID: 5b1f0c7ad2e4
Revises:
Create Date: 2026-10-19 09:12:41.508113

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '5b1f0c7ad2e4'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    # One JSON document per (store, id)
    op.create_table(
        'lead_records',
        sa.Column('store', sa.Text(), nullable=False, comment='Store namespace'),
        sa.Column('id', sa.Text(), nullable=False, comment='Lead/job id'),
        sa.Column('data', sa.JSON(), nullable=False, comment='Lead record document'),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('store', 'id'),
    )

    op.create_index(
        'ix_lead_records_store_updated_at',
        'lead_records',
        ['store', 'updated_at'],
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_lead_records_store_updated_at', table_name='lead_records')
    op.drop_table('lead_records')
