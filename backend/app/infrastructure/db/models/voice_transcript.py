"""
VoiceTranscript SQLModel

One inbound voice note and its confirm/retake lifecycle.
"""

from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy import Column, JSON, Text
from sqlmodel import Field

from app.domain.transcript import TranscriptStatus
from app.infrastructure.db.models.base import TimestampMixin, UUIDMixin


class VoiceTranscript(UUIDMixin, TimestampMixin, table=True):
    """Transcribed voice note awaiting or past confirmation."""

    __tablename__ = "voice_transcripts"

    user_id: Optional[UUID] = Field(default=None, index=True)
    phone_number: str = Field(index=True, max_length=20)
    transcript: str = Field(sa_column=Column(Text, nullable=False))
    template_id: Optional[UUID] = Field(default=None)
    filled_data: Optional[Dict[str, Any]] = Field(
        default=None,
        sa_column=Column(JSON(none_as_null=True)),
    )
    status: str = Field(default=TranscriptStatus.PENDING.value, index=True, max_length=16)
    whatsapp_message_id: Optional[str] = Field(
        default=None,
        unique=True,
        max_length=255,
    )

    @property
    def is_pending(self) -> bool:
        return self.status == TranscriptStatus.PENDING.value
