"""
Confirmation Service

Applies confirm/retake replies to pending voice transcripts.

    pending --confirm--> confirmed
    pending --retake---> retaken

Both targets are terminal. The repository's conditional update guarantees a
transcript leaves ``pending`` at most once.
"""

import logging
from typing import Any, Dict, Optional
from uuid import UUID

import httpx

from app.domain.transcript import ReplyAction, TranscriptAction, TranscriptStatus
from app.infrastructure.ai.openai_service import TemplateExtractionService
from app.infrastructure.db.models import VoiceTranscript
from app.infrastructure.db.unit_of_work import Repositories
from app.infrastructure.exceptions import TemplateExtractionError, WhatsAppAPIError
from app.infrastructure.messaging.whatsapp_client import WhatsAppClient


logger = logging.getLogger(__name__)


CONFIRMED_MESSAGE = "Your report has been saved. Thanks!"
NO_TEMPLATE_MESSAGE = (
    "Your transcript has been saved, but you have no default template yet. "
    "Set one up in Crudo so future voice notes are turned into reports."
)
RETAKE_MESSAGE = "No problem. Please send a new voice message."


class ConfirmationService:
    """Confirm/retake handler for one sender's replies."""

    def __init__(
        self,
        repos: Repositories,
        whatsapp: WhatsAppClient,
        extractor: TemplateExtractionService,
    ):
        self._repos = repos
        self._whatsapp = whatsapp
        self._extractor = extractor

    async def handle(self, phone_number: str, reply: ReplyAction) -> Optional[TranscriptStatus]:
        """
        Apply a reply.

        Returns:
            The status the transcript moved to, or None when nothing changed
        """
        transcript = await self._select_target(phone_number, reply)
        if transcript is None:
            logger.info(f"No pending transcript for {phone_number}, ignoring {reply.action.value}")
            return None

        if reply.action == TranscriptAction.CONFIRM:
            return await self._confirm(transcript)
        return await self._retake(transcript)

    async def _select_target(
        self,
        phone_number: str,
        reply: ReplyAction,
    ) -> Optional[VoiceTranscript]:
        # A button carrying an id refers to exactly that transcript.
        if reply.transcript_id:
            transcript = await self._repos.transcripts.get_by_id(reply.transcript_id)
            if transcript and transcript.phone_number == phone_number and transcript.is_pending:
                return transcript
            logger.info(f"Transcript {reply.transcript_id} is not pending for {phone_number}")
            return None

        return await self._repos.transcripts.get_latest_pending_for_phone(phone_number)

    async def _confirm(self, transcript: VoiceTranscript) -> Optional[TranscriptStatus]:
        owner_id = transcript.user_id or await self._repos.profiles.get_user_id_by_phone(
            transcript.phone_number
        )
        template = (
            await self._repos.templates.get_default_for_user(owner_id) if owner_id else None
        )

        fields: Dict[str, Any] = {}
        if owner_id:
            fields["user_id"] = owner_id

        if template is None:
            if not await self._repos.transcripts.transition_status(
                transcript.id, TranscriptStatus.CONFIRMED, **fields
            ):
                return None
            await self._notify(transcript.phone_number, NO_TEMPLATE_MESSAGE)
            return TranscriptStatus.CONFIRMED

        await self._repos.release()
        filled_data = await self._extract(transcript, template.id, template.template_fields())
        if not await self._repos.transcripts.transition_status(
            transcript.id,
            TranscriptStatus.CONFIRMED,
            template_id=template.id,
            filled_data=filled_data,
            **fields,
        ):
            return None

        logger.info(f"Confirmed transcript {transcript.id} with template {template.id}")
        await self._notify(transcript.phone_number, CONFIRMED_MESSAGE)
        return TranscriptStatus.CONFIRMED

    async def _extract(self, transcript: VoiceTranscript, template_id: UUID, template_fields) -> Optional[Dict[str, Any]]:
        try:
            return await self._extractor.extract(transcript.transcript, template_fields)
        except TemplateExtractionError as e:
            logger.error(f"Extraction failed for transcript {transcript.id} (template {template_id}): {e}")
            return None

    async def _retake(self, transcript: VoiceTranscript) -> Optional[TranscriptStatus]:
        if not await self._repos.transcripts.transition_status(
            transcript.id, TranscriptStatus.RETAKEN
        ):
            return None
        logger.info(f"Transcript {transcript.id} marked for retake")
        await self._notify(transcript.phone_number, RETAKE_MESSAGE)
        return TranscriptStatus.RETAKEN

    async def _notify(self, phone_number: str, body: str) -> None:
        try:
            await self._whatsapp.send_text(phone_number, body)
        except (WhatsAppAPIError, httpx.HTTPError) as e:
            logger.error(f"Failed to notify {phone_number}: {e}")
