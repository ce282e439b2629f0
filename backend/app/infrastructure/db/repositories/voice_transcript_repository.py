"""
Voice Transcript Repository

Persistence for voice transcripts. Status changes go through
``transition_status`` so that a transcript leaves ``pending`` exactly once.
"""

import logging
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.domain.transcript import TranscriptStatus
from app.infrastructure.db.models import VoiceTranscript, utc_now
from app.infrastructure.db.repositories.base_repository import BaseRepository


logger = logging.getLogger(__name__)


class VoiceTranscriptRepository(BaseRepository[VoiceTranscript]):
    """Repository for voice transcripts."""

    def __init__(self, session: AsyncSession):
        super().__init__(VoiceTranscript, session)

    async def get_by_whatsapp_message_id(self, message_id: str) -> Optional[VoiceTranscript]:
        stmt = select(VoiceTranscript).where(
            VoiceTranscript.whatsapp_message_id == message_id
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_latest_pending_for_phone(self, phone_number: str) -> Optional[VoiceTranscript]:
        """Most recently created pending transcript for a sender."""
        stmt = (
            select(VoiceTranscript)
            .where(VoiceTranscript.phone_number == phone_number)
            .where(VoiceTranscript.status == TranscriptStatus.PENDING.value)
            .order_by(VoiceTranscript.created_at.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalars().first()

    async def attach_owner(self, transcript: VoiceTranscript, user_id: UUID) -> VoiceTranscript:
        transcript.user_id = user_id
        transcript.updated_at = utc_now()
        self._session.add(transcript)
        await self._session.flush()
        return transcript

    async def transition_status(
        self,
        transcript_id: UUID,
        new_status: TranscriptStatus,
        **fields: Any,
    ) -> bool:
        """
        Move a pending transcript to ``new_status``.

        The update only matches while the row is still pending, so the first
        writer wins and terminal states never revert.

        Returns:
            True if this call performed the transition
        """
        stmt = (
            update(VoiceTranscript)
            .where(VoiceTranscript.id == transcript_id)
            .where(VoiceTranscript.status == TranscriptStatus.PENDING.value)
            .values(status=new_status.value, updated_at=utc_now(), **fields)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount != 1:
            logger.info(f"Transcript {transcript_id} is no longer pending, skipped {new_status.value}")
            return False
        return True

    async def get_for_owner(self, transcript_id: UUID, user_id: UUID) -> Optional[VoiceTranscript]:
        """A transcript only if ``user_id`` owns it."""
        stmt = (
            select(VoiceTranscript)
            .where(VoiceTranscript.id == transcript_id)
            .where(VoiceTranscript.user_id == user_id)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()
