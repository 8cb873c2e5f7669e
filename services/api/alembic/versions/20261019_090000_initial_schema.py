"""Initial knowledge base schema.

Revision ID: 20261019_090000
Revises:
Create Date: 2026-10-19 09:00:00.000000

Creates knowledge bases, files, chat history, ratings and the usage ledger.
Row Level Security is enabled on PostgreSQL only; on SQLite (dev) that step
is a no-op.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '20261019_090000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JWT_SUB = "current_setting('request.jwt.claims', true)::json->>'sub'"


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'knowledge_bases',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('gemini_store_id', sa.String(255), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_knowledge_bases_user_id', 'knowledge_bases', ['user_id'])

    op.create_table(
        'files',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column(
            'knowledge_base_id',
            sa.String(36),
            sa.ForeignKey('knowledge_bases.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('file_name', sa.String(255), nullable=False),
        sa.Column('file_size', sa.BigInteger(), nullable=False),
        sa.Column('mime_type', sa.String(255), nullable=True),
        sa.Column('page_count', sa.Integer(), nullable=True),
        sa.Column('gemini_file_id', sa.String(500), nullable=False),
        sa.Column('status', sa.String(10), nullable=False, server_default='uploading'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('uploaded_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('uploading', 'processing', 'ready', 'failed')",
            name='ck_files_status',
        ),
    )
    op.create_index('ix_files_knowledge_base_id', 'files', ['knowledge_base_id'])

    op.create_table(
        'chat_sessions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column(
            'knowledge_base_id',
            sa.String(36),
            sa.ForeignKey('knowledge_bases.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_chat_sessions_knowledge_base_id', 'chat_sessions', ['knowledge_base_id'])
    op.create_index('ix_chat_sessions_user_id', 'chat_sessions', ['user_id'])

    op.create_table(
        'chat_messages',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column(
            'session_id',
            sa.String(36),
            sa.ForeignKey('chat_sessions.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('role', sa.String(9), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("role IN ('user', 'assistant')", name='ck_chat_messages_role'),
    )
    op.create_index('ix_chat_messages_session_id', 'chat_messages', ['session_id'])

    op.create_table(
        'message_ratings',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('message_id', sa.String(255), nullable=False),
        sa.Column(
            'knowledge_base_id',
            sa.String(36),
            sa.ForeignKey('knowledge_bases.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('rating', sa.SmallInteger(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('user_id', 'message_id', name='uq_message_ratings_user_message'),
        sa.CheckConstraint('rating IN (-1, 1)', name='ck_message_ratings_rating'),
    )
    op.create_index('ix_message_ratings_user_id', 'message_ratings', ['user_id'])
    op.create_index('ix_message_ratings_knowledge_base_id', 'message_ratings', ['knowledge_base_id'])

    op.create_table(
        'usage_tracking',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('daily_query_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_query_count', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('file_upload_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('storage_used_bytes', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('query_reset_at', sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_usage_tracking_user_id', 'usage_tracking', ['user_id'], unique=True)

    _enable_rls()


def _enable_rls() -> None:
    # Only run on PostgreSQL - SQLite doesn't support RLS
    conn = op.get_bind()
    if conn.dialect.name != "postgresql":
        return

    # Direct user_id tables
    for table in ("knowledge_bases", "chat_sessions", "message_ratings", "usage_tracking"):
        op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")
        op.execute(
            f"""
            CREATE POLICY "Users see own {table}" ON {table}
            FOR ALL USING (user_id = {JWT_SUB})
            """
        )

    # Via knowledge_base_id
    op.execute("ALTER TABLE files ENABLE ROW LEVEL SECURITY")
    op.execute(
        f"""
        CREATE POLICY "Users see own files" ON files
        FOR ALL USING (
            knowledge_base_id IN (
                SELECT id FROM knowledge_bases WHERE user_id = {JWT_SUB}
            )
        )
        """
    )

    # Via session_id
    op.execute("ALTER TABLE chat_messages ENABLE ROW LEVEL SECURITY")
    op.execute(
        f"""
        CREATE POLICY "Users see own chat messages" ON chat_messages
        FOR ALL USING (
            session_id IN (
                SELECT id FROM chat_sessions WHERE user_id = {JWT_SUB}
            )
        )
        """
    )


def downgrade() -> None:
    op.drop_table('usage_tracking')
    op.drop_table('message_ratings')
    op.drop_table('chat_messages')
    op.drop_table('chat_sessions')
    op.drop_table('files')
    op.drop_table('knowledge_bases')
