"""Create voice_transcripts table

Revision ID: 0002
Revises: 0001_profiles_and_templates
Create Date: 2026-10-05

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0002_voice_transcripts'
down_revision: Union[str, None] = '0001_profiles_and_templates'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Voice notes received over WhatsApp and their confirm/retake status."""

    op.create_table(
        'voice_transcripts',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), index=True),
        sa.Column('phone_number', sa.String(20), nullable=False, index=True),
        sa.Column('transcript', sa.Text, nullable=False),
        sa.Column('template_id', postgresql.UUID(as_uuid=True)),
        sa.Column('filled_data', sa.JSON),
        sa.Column('status', sa.String(16), server_default='pending', nullable=False, index=True),
        sa.Column('whatsapp_message_id', sa.String(255), unique=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'retaken')",
            name='ck_voice_transcripts_status',
        ),
    )

    # Latest pending transcript per sender
    op.create_index(
        'ix_voice_transcripts_phone_status_created',
        'voice_transcripts',
        ['phone_number', 'status', 'created_at'],
    )

    op.execute("ALTER TABLE public.voice_transcripts ENABLE ROW LEVEL SECURITY")
    op.execute("""
        CREATE POLICY voice_transcripts_select_policy ON public.voice_transcripts
        FOR SELECT USING (
            user_id = auth.uid()
            OR user_id IN (SELECT id FROM public.profiles WHERE manager_id = auth.uid())
        )
    """)


def downgrade() -> None:
    op.execute("DROP POLICY IF EXISTS voice_transcripts_select_policy ON public.voice_transcripts")
    op.drop_index('ix_voice_transcripts_phone_status_created', table_name='voice_transcripts')
    op.drop_table('voice_transcripts')
