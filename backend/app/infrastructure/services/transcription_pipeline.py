"""
Transcription Pipeline

Turns an inbound WhatsApp voice note into a pending VoiceTranscript and
echoes it back to the sender with confirm/retake buttons.
"""

import logging
from typing import Optional

import httpx

from app.config.settings import Settings
from app.domain.transcript import (
    TranscriptAction,
    reply_payload,
    truncate_for_echo,
)
from app.domain.whatsapp import InboundMessage
from app.infrastructure.ai.openai_service import TranscriptionService
from app.infrastructure.db.models import VoiceTranscript
from app.infrastructure.db.unit_of_work import Repositories
from app.infrastructure.exceptions import TranscriptionError, WhatsAppAPIError
from app.infrastructure.messaging.whatsapp_client import WhatsAppClient


logger = logging.getLogger(__name__)


class TranscriptionPipeline:
    """
    media id -> media URL -> audio bytes -> transcript -> pending row -> echo.

    A failure before the row is written aborts the message with a logged
    error. Echo failures are logged only.
    """

    def __init__(
        self,
        repos: Repositories,
        whatsapp: WhatsAppClient,
        transcriber: TranscriptionService,
        settings: Settings,
    ):
        self._repos = repos
        self._whatsapp = whatsapp
        self._transcriber = transcriber
        self._settings = settings

    async def process_audio(self, message: InboundMessage) -> Optional[VoiceTranscript]:
        media = message.raw.get(message.type) or message.raw.get("audio") or {}
        media_id = media.get("id")
        mime_type = media.get("mime_type") or "audio/ogg"

        if not media_id:
            logger.warning(f"Audio message {message.message_id} has no media id")
            return None

        if message.message_id:
            existing = await self._repos.transcripts.get_by_whatsapp_message_id(message.message_id)
            if existing:
                logger.info(f"Message {message.message_id} already transcribed as {existing.id}")
                return None

        await self._repos.release()
        try:
            media_url = await self._whatsapp.get_media_url(media_id)
            audio = await self._whatsapp.download_media(media_url)
            text = await self._transcriber.transcribe(audio, mime_type)
        except (WhatsAppAPIError, TranscriptionError, httpx.HTTPError) as e:
            logger.error(f"Aborting voice note {message.message_id} from {message.sender}: {e}")
            return None

        transcript = await self._repos.transcripts.add(
            VoiceTranscript(
                phone_number=message.sender,
                transcript=text,
                whatsapp_message_id=message.message_id,
            )
        )
        logger.info(f"Stored pending transcript {transcript.id} for {message.sender}")

        user_id = await self._repos.profiles.get_user_id_by_phone(message.sender)
        if user_id:
            await self._repos.transcripts.attach_owner(transcript, user_id)
        else:
            logger.info(f"No user mapped to {message.sender}; transcript {transcript.id} left unowned")

        # The row must be visible before the user can press a button.
        await self._repos.release()
        await self._echo(transcript)
        return transcript

    async def _echo(self, transcript: VoiceTranscript) -> None:
        # Template parameters may not contain newlines or runs of spaces.
        preview = truncate_for_echo(
            " ".join(transcript.transcript.split()),
            self._settings.transcript_echo_max_chars,
        )
        try:
            await self._whatsapp.send_template(
                to=transcript.phone_number,
                name=self._settings.whatsapp_transcript_template,
                language=self._settings.whatsapp_template_language,
                body_parameters=[preview],
                button_payloads=[
                    reply_payload(TranscriptAction.CONFIRM, transcript.id),
                    reply_payload(TranscriptAction.RETAKE, transcript.id),
                ],
            )
            return
        except (WhatsAppAPIError, httpx.HTTPError) as e:
            logger.warning(f"Template echo failed for {transcript.id}, falling back to text: {e}")

        try:
            await self._whatsapp.send_text(
                transcript.phone_number,
                f"Here is your transcript:\n\n{preview}\n\n"
                "Reply CONFIRM to save it or RETAKE to record it again.",
            )
        except (WhatsAppAPIError, httpx.HTTPError) as e:
            logger.error(f"Could not echo transcript {transcript.id}: {e}")
