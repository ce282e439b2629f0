"""
Voice Transcript Domain Models

Enums, value objects and pure helpers for the voice-note lifecycle:
reply-action parsing, template field schema and echo truncation.
"""

from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class TranscriptStatus(str, Enum):
    """Lifecycle status of a voice transcript."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    RETAKEN = "retaken"


class TranscriptAction(str, Enum):
    """Actions a sender can take on a pending transcript."""
    CONFIRM = "confirm"
    RETAKE = "retake"


class FieldType(str, Enum):
    """Type tags a template field may declare."""
    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    EMAIL = "email"
    PHONE = "phone"


class TemplateField(BaseModel):
    """One field of a user template."""
    name: str = Field(..., min_length=1)
    type: str = FieldType.TEXT.value
    required: bool = False


class ReplyAction(BaseModel):
    """A parsed confirm/retake reply, optionally bound to one transcript."""
    action: TranscriptAction
    transcript_id: Optional[UUID] = None


# =============================================================================
# Reply Parsing
# =============================================================================

def _names_transcript(payload: str) -> bool:
    head, sep, _ = payload.strip().partition(":")
    return bool(sep) and head.strip().lower() in {action.value for action in TranscriptAction}


def _parse_payload(payload: str) -> Optional[ReplyAction]:
    """Parse ``confirm:<uuid>`` / ``retake`` style button ids."""
    head, _, tail = payload.strip().partition(":")
    try:
        action = TranscriptAction(head.strip().lower())
    except ValueError:
        return None

    transcript_id = None
    if tail:
        try:
            transcript_id = UUID(tail.strip())
        except ValueError:
            return None
    return ReplyAction(action=action, transcript_id=transcript_id)


def _match_label(label: str) -> Optional[TranscriptAction]:
    lowered = label.lower()
    for action in TranscriptAction:
        if action.value in lowered:
            return action
    return None


def parse_reply_action(
    payload: Optional[str],
    label: Optional[str] = None,
) -> Optional[ReplyAction]:
    """
    Resolve a button reply to an action.

    The button id/payload is tried first; the visible label is used as a
    case-insensitive substring fallback. Returns ``None`` when neither matches.
    A payload naming a transcript (``<action>:<id>``) is never matched by
    label, so a malformed id stays unmatched.
    """
    if payload:
        parsed = _parse_payload(payload)
        if parsed or _names_transcript(payload):
            return parsed
        action = _match_label(payload)
        if action:
            return ReplyAction(action=action)

    if label:
        action = _match_label(label)
        if action:
            return ReplyAction(action=action)

    return None


def parse_text_action(body: Optional[str]) -> Optional[ReplyAction]:
    """Match a typed reply that is exactly a confirm/retake keyword."""
    if not body:
        return None
    try:
        return ReplyAction(action=TranscriptAction(body.strip().lower()))
    except ValueError:
        return None


def reply_payload(action: TranscriptAction, transcript_id: UUID) -> str:
    """Build the quick-reply payload carried by an outbound button."""
    return f"{action.value}:{transcript_id}"


def truncate_for_echo(text: str, max_chars: int) -> str:
    """Fit a transcript into a message-template body parameter."""
    if len(text) <= max_chars:
        return text
    return text[: max_chars - 3].rstrip() + "..."


# =============================================================================
# Request DTOs
# =============================================================================

class FillTemplateRequest(BaseModel):
    """Request DTO for filling a template from a transcript."""
    model_config = ConfigDict(populate_by_name=True)

    transcript: Optional[str] = None
    template_fields: Optional[List[TemplateField]] = Field(None, alias="templateFields")
