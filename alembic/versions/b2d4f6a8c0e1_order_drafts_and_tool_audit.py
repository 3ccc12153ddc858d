"""Order drafts and tool call audit tables

Revision ID: b2d4f6a8c0e1
Revises: a1c3e5f7b9d0
Create Date: 2026-10-18 09:30:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = 'b2d4f6a8c0e1'
down_revision: Union[str, None] = 'a1c3e5f7b9d0'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    tables = inspector.get_table_names()

    if 'order_drafts' not in tables:
        op.create_table(
            'order_drafts',
            sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
            sa.Column('conversation_id', sa.String(length=255), nullable=False),
            sa.Column('phase', sa.String(length=20), nullable=False, server_default='PARTY'),
            sa.Column('party_id', sa.String(length=255), nullable=True),
            sa.Column('party_name', sa.String(length=255), nullable=True),
            sa.Column('party_data', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
            sa.Column(
                'line_items',
                postgresql.JSONB(astext_type=sa.Text()),
                nullable=False,
                server_default=sa.text("'[]'::jsonb"),
            ),
            sa.Column('shipping_address', sa.Text(), nullable=True),
            sa.Column('expected_shipping_time', sa.String(length=64), nullable=True),
            sa.Column('notes', sa.Text(), nullable=True),
            sa.Column('version', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
            sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('conversation_id', name='uq_order_drafts_conversation_id')
        )

    if 'tool_call_audit' not in tables:
        op.create_table(
            'tool_call_audit',
            sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
            sa.Column('conversation_id', sa.String(length=255), nullable=False),
            sa.Column('tool_name', sa.String(length=100), nullable=False),
            sa.Column(
                'arguments',
                postgresql.JSONB(astext_type=sa.Text()),
                nullable=False,
                server_default=sa.text("'{}'::jsonb"),
            ),
            sa.Column('success', sa.Boolean(), nullable=False),
            sa.Column('result', sa.Text(), nullable=False),
            sa.Column('duration_ms', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_tool_call_audit_conversation_id', 'tool_call_audit', ['conversation_id'], unique=False)
        op.create_index('ix_tool_call_audit_created_at', 'tool_call_audit', ['created_at'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_tool_call_audit_created_at', table_name='tool_call_audit')
    op.drop_index('ix_tool_call_audit_conversation_id', table_name='tool_call_audit')
    op.drop_table('tool_call_audit')
    op.drop_table('order_drafts')
