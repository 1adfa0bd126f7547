"""Create shop_sessions for OAuth access tokens

Revision ID: 001_create_shop_sessions
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_create_shop_sessions'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'shop_sessions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shop', sa.String(length=255), nullable=False),
        sa.Column('access_token', sa.Text(), nullable=False),
        sa.Column('scope', sa.String(length=500), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('shop'),
    )
    op.create_index(op.f('ix_shop_sessions_shop'), 'shop_sessions', ['shop'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_shop_sessions_shop'), table_name='shop_sessions')
    op.drop_table('shop_sessions')
