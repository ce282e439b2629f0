"""
WhatsApp Domain Helpers

Outbound message validation and inbound webhook envelope parsing.
Pure functions with no I/O so they can be tested in isolation.
"""

import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from app.infrastructure.exceptions import ValidationError


PHONE_NUMBER_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$")

WHATSAPP_BUSINESS_OBJECT = "whatsapp_business_account"

OUTBOUND_MESSAGE_TYPES = ("text", "template", "interactive")


class InboundMessage(BaseModel):
    """Flattened view of one message from a webhook delivery."""
    message_id: Optional[str] = None
    sender: str
    type: str
    raw: Dict[str, Any]


def is_valid_phone_number(value: Any) -> bool:
    """Check a number against the ``+`` prefixed E.164 pattern."""
    return isinstance(value, str) and bool(PHONE_NUMBER_PATTERN.match(value))


def normalize_phone_number(value: str) -> str:
    """WhatsApp delivers ``wa_id`` digits without the leading ``+``."""
    digits = value.strip()
    return digits if digits.startswith("+") else f"+{digits}"


def validate_outbound_message(body: Any) -> Dict[str, Any]:
    """
    Validate a send-message request and return the Cloud API payload.

    Raises:
        ValidationError: with a field-specific message.
    """
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")

    if not body.get("to"):
        raise ValidationError("Missing required field: 'to'")
    if not body.get("messaging_product"):
        raise ValidationError("Missing required field: 'messaging_product'")
    if not body.get("type"):
        raise ValidationError("Missing required field: 'type'")

    message_type = body["type"]
    if message_type not in OUTBOUND_MESSAGE_TYPES:
        raise ValidationError(
            f"Unsupported message type '{message_type}'",
            details={"allowed": list(OUTBOUND_MESSAGE_TYPES)},
        )

    if message_type == "text":
        text = body.get("text")
        if not isinstance(text, dict) or not text.get("body"):
            raise ValidationError(
                "Missing required field: 'text.body' for text messages"
            )
    elif message_type == "template":
        template = body.get("template")
        if not isinstance(template, dict) or not template.get("name"):
            raise ValidationError(
                "Missing required field: 'template.name' for template messages"
            )
    else:
        interactive = body.get("interactive")
        if not isinstance(interactive, dict) or not interactive.get("type"):
            raise ValidationError(
                "Missing required field: 'interactive.type' for interactive messages"
            )

    if not is_valid_phone_number(body["to"]):
        raise ValidationError(
            "Invalid phone number format. Use format (e.g., +1234567890)"
        )

    return {**body, "recipient_type": body.get("recipient_type") or "individual"}


def extract_messages(payload: Dict[str, Any]) -> List[InboundMessage]:
    """Walk ``entry[].changes[].value.messages[]`` of a webhook delivery."""
    if payload.get("object") != WHATSAPP_BUSINESS_OBJECT:
        return []

    messages: List[InboundMessage] = []
    for entry in payload.get("entry") or []:
        for change in entry.get("changes") or []:
            value = change.get("value") or {}
            for message in value.get("messages") or []:
                sender = message.get("from")
                if not sender:
                    continue
                messages.append(
                    InboundMessage(
                        message_id=message.get("id"),
                        sender=normalize_phone_number(sender),
                        type=message.get("type", "unknown"),
                        raw=message,
                    )
                )
    return messages


def extract_statuses(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Collect delivery status callbacks from a webhook delivery."""
    if payload.get("object") != WHATSAPP_BUSINESS_OBJECT:
        return []
    return [
        status
        for entry in payload.get("entry") or []
        for change in entry.get("changes") or []
        for status in (change.get("value") or {}).get("statuses") or []
    ]
