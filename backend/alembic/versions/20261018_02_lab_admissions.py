"""lab admission requests

Revision ID: 20261018_02
Revises: 20261018_01
Create Date: 2026-10-18 12:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from typing import Sequence, Union

revision: str = '20261018_02'
down_revision: Union[str, Sequence[str], None] = '20261018_01'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'lab_admissions',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('lab_id', sa.Integer(), sa.ForeignKey('labs.id', ondelete='CASCADE'), nullable=False),
        sa.Column('lab_role_id', sa.Integer(), sa.ForeignKey('lab_roles.id'), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='PENDING'),
        sa.Column('is_pci', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True)),
        sa.Column('updated_at', sa.DateTime(timezone=True)),
    )
    for column in ('user_id', 'lab_id', 'status'):
        op.create_index(f'ix_lab_admissions_{column}', 'lab_admissions', [column])


def downgrade() -> None:
    for column in ('status', 'lab_id', 'user_id'):
        op.drop_index(f'ix_lab_admissions_{column}', table_name='lab_admissions')
    op.drop_table('lab_admissions')
