"""create share links and access log

Revision ID: 2b3c4d5e6f7a
Revises: 1a2b3c4d5e6f
Create Date: 2026-10-12 09:05:00.000000

Share links store only the SHA-256 hash of their token. Links go away with
their page, access rows with their link.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
import advanced_alchemy.types


# revision identifiers, used by Alembic.
revision: str = '2b3c4d5e6f7a'
down_revision: Union[str, None] = '1a2b3c4d5e6f'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table('share_links',
        sa.Column('id', advanced_alchemy.types.guid.GUID(length=16), nullable=False),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('page_id', advanced_alchemy.types.guid.GUID(length=16), nullable=False),
        sa.Column('created_by', advanced_alchemy.types.guid.GUID(length=16), nullable=False),
        sa.Column('include_children', sa.Boolean(), nullable=False),
        sa.Column('max_views', sa.Integer(), nullable=True),
        sa.Column('max_unique_ips', sa.Integer(), nullable=True),
        sa.Column('expires_at', advanced_alchemy.types.datetime.DateTimeUTC(timezone=True), nullable=True),
        sa.Column('is_revoked', sa.Boolean(), nullable=False),
        sa.Column('view_count', sa.Integer(), nullable=False),
        sa.Column('sa_orm_sentinel', sa.Integer(), nullable=True),
        sa.Column('created_at', advanced_alchemy.types.datetime.DateTimeUTC(timezone=True), nullable=False),
        sa.Column('updated_at', advanced_alchemy.types.datetime.DateTimeUTC(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['page_id'], ['pages.id'], name=op.f('fk_share_links_page_id_pages'), ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_share_links'))
    )
    op.create_index(op.f('ix_share_links_token_hash'), 'share_links', ['token_hash'], unique=True)
    op.create_index(op.f('ix_share_links_page_id'), 'share_links', ['page_id'], unique=False)
    op.create_index(op.f('ix_share_links_created_by'), 'share_links', ['created_by'], unique=False)

    op.create_table('share_link_access',
        sa.Column('id', advanced_alchemy.types.guid.GUID(length=16), nullable=False),
        sa.Column('share_link_id', advanced_alchemy.types.guid.GUID(length=16), nullable=False),
        sa.Column('ip_address', sa.String(length=45), nullable=False),
        sa.Column('user_agent', sa.String(length=500), nullable=False),
        sa.Column('accessed_at', advanced_alchemy.types.datetime.DateTimeUTC(timezone=True), nullable=False),
        sa.Column('sa_orm_sentinel', sa.Integer(), nullable=True),
        sa.Column('created_at', advanced_alchemy.types.datetime.DateTimeUTC(timezone=True), nullable=False),
        sa.Column('updated_at', advanced_alchemy.types.datetime.DateTimeUTC(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['share_link_id'], ['share_links.id'], name=op.f('fk_share_link_access_share_link_id_share_links'), ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_share_link_access'))
    )
    op.create_index(op.f('ix_share_link_access_share_link_id'), 'share_link_access', ['share_link_id'], unique=False)
    op.create_index('ix_share_link_access_link_ip', 'share_link_access', ['share_link_id', 'ip_address'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_share_link_access_link_ip', table_name='share_link_access')
    op.drop_index(op.f('ix_share_link_access_share_link_id'), table_name='share_link_access')
    op.drop_table('share_link_access')
    op.drop_index(op.f('ix_share_links_created_by'), table_name='share_links')
    op.drop_index(op.f('ix_share_links_page_id'), table_name='share_links')
    op.drop_index(op.f('ix_share_links_token_hash'), table_name='share_links')
    op.drop_table('share_links')
