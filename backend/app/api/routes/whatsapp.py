"""
WhatsApp API Routes

Cloud API webhook (handshake and event delivery) and the authenticated
outbound send endpoint.
"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from app.api.dependencies import (
    CurrentUserDep,
    ExtractionServiceDep,
    RepositoriesScopeDep,
    TranscriptionServiceDep,
    WhatsAppClientDep,
)
from app.config.settings import get_settings
from app.domain.whatsapp import (
    InboundMessage,
    extract_messages,
    extract_statuses,
    validate_outbound_message,
)
from app.infrastructure.ai.openai_service import TemplateExtractionService, TranscriptionService
from app.infrastructure.db.unit_of_work import RepositoriesScope
from app.infrastructure.exceptions import ValidationError
from app.infrastructure.messaging import WhatsAppClient, verify_webhook_signature
from app.infrastructure.services.message_processor import build_message_processor


logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Webhook
# =============================================================================

@router.get("/whatsapp/webhook")
async def verify_webhook(
    mode: Optional[str] = Query(None, alias="hub.mode"),
    verify_token: Optional[str] = Query(None, alias="hub.verify_token"),
    challenge: Optional[str] = Query(None, alias="hub.challenge"),
):
    """Meta subscription handshake: echo the challenge for a matching token."""
    expected = get_settings().whatsapp_verify_token
    if mode == "subscribe" and expected and verify_token == expected:
        logger.info("WhatsApp webhook verified")
        return PlainTextResponse(challenge or "")

    logger.warning(f"WhatsApp webhook verification failed (mode={mode})")
    return JSONResponse(status_code=403, content={"error": "Verification failed"})


async def _process_message(
    message: InboundMessage,
    scope: RepositoriesScope,
    whatsapp: WhatsAppClient,
    transcriber: TranscriptionService,
    extractor: TemplateExtractionService,
) -> None:
    try:
        async with scope() as repos:
            processor = build_message_processor(
                repos, whatsapp, transcriber, extractor, get_settings()
            )
            await processor.process(message)
    except Exception as e:
        logger.exception(f"Error processing WhatsApp message {message.message_id}: {e}")


@router.post("/whatsapp/webhook")
async def receive_webhook(
    request: Request,
    scope: RepositoriesScopeDep,
    whatsapp: WhatsAppClientDep,
    transcriber: TranscriptionServiceDep,
    extractor: ExtractionServiceDep,
):
    """
    Handle WhatsApp event deliveries.

    Every parsed delivery is acknowledged with 200; each message runs in its
    own unit of work and failures are only logged.
    """
    payload = await request.body()

    app_secret = get_settings().whatsapp_app_secret
    if app_secret and not verify_webhook_signature(
        app_secret, payload, request.headers.get("x-hub-signature-256")
    ):
        logger.warning("Rejected WhatsApp webhook with invalid signature")
        return JSONResponse(status_code=401, content={"error": "Invalid signature"})

    try:
        body = json.loads(payload)
    except ValueError:
        return JSONResponse(status_code=400, content={"error": "Invalid JSON payload"})
    if not isinstance(body, dict):
        return JSONResponse(status_code=400, content={"error": "Invalid JSON payload"})

    for status_update in extract_statuses(body):
        logger.debug(
            f"WhatsApp status {status_update.get('status')} for message {status_update.get('id')}"
        )

    for message in extract_messages(body):
        await _process_message(message, scope, whatsapp, transcriber, extractor)

    return {"success": True}


# =============================================================================
# Outbound Messages
# =============================================================================

@router.post("/whatsapp/messages")
async def send_message(
    request: Request,
    user: CurrentUserDep,
    whatsapp: WhatsAppClientDep,
):
    """
    Send a text, template or interactive message through the Cloud API.

    Vendor errors are returned with the vendor's HTTP status.
    """
    try:
        body = await request.json()
    except ValueError:
        raise ValidationError("Request body must be valid JSON")

    payload = validate_outbound_message(body)
    result = await whatsapp.send_message(payload)

    messages = result.get("messages") or [{}]
    logger.info(f"User {user.id} sent WhatsApp {payload['type']} message to {payload['to']}")
    return {"success": True, "messageId": messages[0].get("id"), "result": result}
