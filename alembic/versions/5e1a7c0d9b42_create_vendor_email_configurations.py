"""create vendor_email_configurations table

Revision ID: 5e1a7c0d9b42
Revises:
Create Date: 2026-10-16 09:12:44.516203

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '5e1a7c0d9b42'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table('vendor_email_configurations',
    sa.Column('id', sa.UUID(), nullable=False, comment='Unique identifier'),
    sa.Column('vendor_id', sa.Integer(), nullable=False, comment='Owning vendor'),
    sa.Column('location_id', sa.Integer(), nullable=False, comment='Owning vendor location'),
    sa.Column('user_email', sa.String(length=255), nullable=True, comment='Mailbox address reported by the provider after authorization'),
    sa.Column('provider', sa.String(length=20), nullable=False, comment='Provider (google, microsoft)'),
    sa.Column('client_id', sa.String(length=255), nullable=False, comment='OAuth client ID'),
    sa.Column('client_secret', sa.String(length=255), nullable=False, comment='OAuth client secret - never serialized'),
    sa.Column('tenant_id', sa.String(length=255), nullable=True, comment='Azure AD tenant (Microsoft only)'),
    sa.Column('redirect_uri', sa.String(length=500), nullable=False, comment='Redirect URI registered with the provider'),
    sa.Column('access_token', sa.Text(), nullable=True, comment='Bearer access token - never serialized'),
    sa.Column('refresh_token', sa.Text(), nullable=True, comment='Refresh token - never serialized'),
    sa.Column('expires_in', sa.Integer(), nullable=True, comment='Lifetime of the access token in seconds, as issued'),
    sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True, comment='Issue time + expires_in'),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='When this record was created (UTC)'),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='When this record was last updated (UTC)'),
    sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True, comment='When this record was soft-deleted (UTC), None if active'),
    sa.CheckConstraint("provider IN ('google', 'microsoft')", name='ck_vendor_email_configurations_provider'),
    sa.CheckConstraint('vendor_id >= 1 AND location_id >= 1', name='ck_vendor_email_configurations_owner'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_vendor_email_configurations_expires', 'vendor_email_configurations', ['expires_at'], unique=False, postgresql_where=sa.text('deleted_at IS NULL AND access_token IS NOT NULL'))
    op.create_index('idx_vendor_email_configurations_vendor_location', 'vendor_email_configurations', ['vendor_id', 'location_id'], unique=False, postgresql_where=sa.text('deleted_at IS NULL'))
    op.create_index(op.f('ix_vendor_email_configurations_location_id'), 'vendor_email_configurations', ['location_id'], unique=False)
    op.create_index(op.f('ix_vendor_email_configurations_vendor_id'), 'vendor_email_configurations', ['vendor_id'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_vendor_email_configurations_vendor_id'), table_name='vendor_email_configurations')
    op.drop_index(op.f('ix_vendor_email_configurations_location_id'), table_name='vendor_email_configurations')
    op.drop_index('idx_vendor_email_configurations_vendor_location', table_name='vendor_email_configurations', postgresql_where=sa.text('deleted_at IS NULL'))
    op.drop_index('idx_vendor_email_configurations_expires', table_name='vendor_email_configurations', postgresql_where=sa.text('deleted_at IS NULL AND access_token IS NOT NULL'))
    op.drop_table('vendor_email_configurations')
