"""
WhatsApp Message Processor

Routes one inbound WhatsApp message to the transcription pipeline or the
confirmation handler, based on the message type.
"""

import logging
from typing import Optional

import httpx

from app.config.settings import Settings
from app.domain.transcript import ReplyAction, parse_reply_action, parse_text_action
from app.domain.whatsapp import InboundMessage
from app.infrastructure.ai.openai_service import TemplateExtractionService, TranscriptionService
from app.infrastructure.db.unit_of_work import Repositories
from app.infrastructure.exceptions import WhatsAppAPIError
from app.infrastructure.messaging.whatsapp_client import WhatsAppClient
from app.infrastructure.services.confirmation_service import ConfirmationService
from app.infrastructure.services.transcription_pipeline import TranscriptionPipeline


logger = logging.getLogger(__name__)


USAGE_HINT = (
    "Send a voice message to create a report. "
    "Reply CONFIRM to save your last transcript or RETAKE to record it again."
)

AUDIO_TYPES = ("audio", "voice")


class WhatsAppMessageProcessor:
    """Dispatches a single inbound message."""

    def __init__(
        self,
        pipeline: TranscriptionPipeline,
        confirmation: ConfirmationService,
        whatsapp: WhatsAppClient,
    ):
        self._pipeline = pipeline
        self._confirmation = confirmation
        self._whatsapp = whatsapp

    async def process(self, message: InboundMessage) -> None:
        if message.type in AUDIO_TYPES:
            await self._pipeline.process_audio(message)
        elif message.type == "interactive":
            await self._handle_reply(message, self._interactive_action(message))
        elif message.type == "button":
            button = message.raw.get("button") or {}
            await self._handle_reply(
                message,
                parse_reply_action(button.get("payload"), button.get("text")),
            )
        elif message.type == "text":
            await self._handle_text(message)
        else:
            logger.info(f"Ignoring {message.type} message {message.message_id} from {message.sender}")

    @staticmethod
    def _interactive_action(message: InboundMessage) -> Optional[ReplyAction]:
        interactive = message.raw.get("interactive") or {}
        reply = interactive.get("button_reply") or interactive.get("list_reply") or {}
        return parse_reply_action(reply.get("id"), reply.get("title"))

    async def _handle_reply(self, message: InboundMessage, action: Optional[ReplyAction]) -> None:
        if action is None:
            logger.info(f"Unrecognised reply {message.message_id} from {message.sender}: {message.raw}")
            return
        await self._confirmation.handle(message.sender, action)

    async def _handle_text(self, message: InboundMessage) -> None:
        body = (message.raw.get("text") or {}).get("body")
        action = parse_text_action(body)
        if action:
            await self._confirmation.handle(message.sender, action)
            return

        try:
            await self._whatsapp.send_text(message.sender, USAGE_HINT)
        except (WhatsAppAPIError, httpx.HTTPError) as e:
            logger.error(f"Failed to send usage hint to {message.sender}: {e}")


def build_message_processor(
    repos: Repositories,
    whatsapp: WhatsAppClient,
    transcriber: TranscriptionService,
    extractor: TemplateExtractionService,
    settings: Settings,
) -> WhatsAppMessageProcessor:
    """Wire a processor onto one unit of work."""
    return WhatsAppMessageProcessor(
        pipeline=TranscriptionPipeline(repos, whatsapp, transcriber, settings),
        confirmation=ConfirmationService(repos, whatsapp, extractor),
        whatsapp=whatsapp,
    )
