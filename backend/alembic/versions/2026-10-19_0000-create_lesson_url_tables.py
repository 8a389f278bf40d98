"""create_lesson_urls_and_url_chunks

Revision ID: 4b1d2f6c8a90
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '4b1d2f6c8a90'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

EMBEDDING_DIMENSION = 1536  # text-embedding-3-small

ingestion_status = postgresql.ENUM(
    'pending', 'processing', 'completed', 'failed',
    name='ingestion_status',
    create_type=False,
)


def upgrade() -> None:
    """
    Create the lesson URL ingestion tables.

    1. lesson_urls - one ingestion job per (lesson, url)
    2. url_chunks - embedded chunks, HNSW-indexed for cosine similarity
    """
    op.execute('CREATE EXTENSION IF NOT EXISTS vector')
    ingestion_status.create(op.get_bind(), checkfirst=True)

    # ================================
    # lesson_urls
    # ================================
    op.create_table(
        'lesson_urls',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False, comment='Auto-incrementing primary key'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, comment='Timestamp when record was created (UTC)'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, comment='Timestamp when record was last updated (UTC)'),
        sa.Column('lesson_id', sa.String(length=255), nullable=False, comment='Owning lesson identifier'),
        sa.Column('url', sa.String(length=2048), nullable=False, comment='Source URL (trimmed, immutable after creation)'),
        sa.Column('title', sa.String(length=255), nullable=True, comment='Page title extracted by the scraper'),
        sa.Column('processing_status', ingestion_status, nullable=False, server_default='pending', comment='pending, processing, completed, failed'),
        sa.Column('processing_progress', sa.Integer(), nullable=False, server_default='0', comment='Progress percentage 0-100'),
        sa.Column('error_message', sa.Text(), nullable=True, comment='User-facing failure message (set only when failed)'),
        sa.Column('chunk_count', sa.Integer(), nullable=False, server_default='0', comment='Number of chunks persisted on completion'),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True, comment='When processing completed (UTC)'),
        sa.Column('scraped_content', sa.Text(), nullable=True, comment='Raw markdown returned by the scraper'),
        sa.Column('cleaned_content', sa.Text(), nullable=True, comment='Sanitized content that was chunked'),
        sa.Column('page_metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=True, comment='Page metadata returned by the scraper'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_lesson_urls')),
        sa.UniqueConstraint('lesson_id', 'url', name='uq_lesson_urls_lesson_id_url'),
        sa.CheckConstraint(
            'processing_progress BETWEEN 0 AND 100',
            name=op.f('ck_lesson_urls_processing_progress_range'),
        ),
    )
    op.create_index('ix_lesson_urls_lesson_id', 'lesson_urls', ['lesson_id'])
    op.create_index('ix_lesson_urls_processing_status', 'lesson_urls', ['processing_status'])

    # ================================
    # url_chunks
    # ================================
    op.create_table(
        'url_chunks',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False, comment='Auto-incrementing primary key'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, comment='Timestamp when record was created (UTC)'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, comment='Timestamp when record was last updated (UTC)'),
        sa.Column('lesson_url_id', sa.Integer(), nullable=False, comment='Foreign key to lesson_urls table'),
        sa.Column('chunk_index', sa.Integer(), nullable=False, comment='Position of this chunk in chunker output (0-indexed)'),
        sa.Column('content', sa.Text(), nullable=False, comment='Chunk text'),
        sa.Column('chunk_metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=True, comment='source_url, title and human-readable chunk position'),
        sa.ForeignKeyConstraint(['lesson_url_id'], ['lesson_urls.id'], name=op.f('fk_url_chunks_lesson_url_id_lesson_urls'), ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_url_chunks')),
        sa.UniqueConstraint('lesson_url_id', 'chunk_index', name='uq_url_chunks_lesson_url_id_chunk_index'),
    )

    op.execute(f'ALTER TABLE url_chunks ADD COLUMN embedding vector({EMBEDDING_DIMENSION}) NOT NULL')

    op.create_index('ix_url_chunks_lesson_url_id', 'url_chunks', ['lesson_url_id'])

    # HNSW index for cosine similarity (m=16, ef_construction=64)
    op.execute("""
        CREATE INDEX ix_url_chunks_embedding_hnsw
        ON url_chunks
        USING hnsw (embedding vector_cosine_ops)
        WITH (m = 16, ef_construction = 64)
    """)


def downgrade() -> None:
    op.drop_table('url_chunks')
    op.drop_table('lesson_urls')
    ingestion_status.drop(op.get_bind(), checkfirst=True)

    # The vector extension stays: other schemas may depend on it
