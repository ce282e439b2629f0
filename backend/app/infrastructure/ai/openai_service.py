"""
OpenAI Services

Speech-to-text for inbound voice notes and LLM template extraction.
Both services share one ``AsyncOpenAI`` client built by the DI provider.
"""

import json
import logging
from typing import Any, Dict, List

from openai import AsyncOpenAI, APIStatusError, OpenAIError

from app.domain.transcript import TemplateField
from app.infrastructure.exceptions import TemplateExtractionError, TranscriptionError


logger = logging.getLogger(__name__)


EXTRACTION_SYSTEM_PROMPT = (
    "You are a helpful assistant that extracts structured data from voice transcripts. "
    "Given a transcript and a list of template fields, extract the relevant information "
    "and fill in the template fields. Return ONLY a valid JSON object with field names as "
    "keys and extracted values as values. If a field cannot be found in the transcript, "
    "use null for optional fields or make your best inference for required fields. Be "
    "accurate and only extract information that is clearly stated in the transcript."
)

_AUDIO_EXTENSIONS = {
    "audio/ogg": "ogg",
    "audio/mpeg": "mp3",
    "audio/mp4": "m4a",
    "audio/aac": "aac",
    "audio/amr": "amr",
    "audio/wav": "wav",
    "audio/webm": "webm",
}


def audio_filename(mime_type: str) -> str:
    """Filename whose extension tells the transcription API the codec."""
    base = (mime_type or "").split(";")[0].strip().lower()
    return f"voice.{_AUDIO_EXTENSIONS.get(base, 'ogg')}"


def describe_fields(fields: List[TemplateField]) -> str:
    return "\n".join(
        f"- {field.name} ({field.type}, {'required' if field.required else 'optional'})"
        for field in fields
    )


def build_extraction_messages(transcript: str, fields: List[TemplateField]) -> List[Dict[str, str]]:
    """The fixed system + user prompt pair sent to the chat model."""
    user_prompt = (
        f"Transcript:\n{transcript}\n\n"
        f"Template Fields:\n{describe_fields(fields)}\n\n"
        "Extract and fill all template fields from the transcript. "
        "Return a JSON object with field names as keys."
    )
    return [
        {"role": "system", "content": EXTRACTION_SYSTEM_PROMPT},
        {"role": "user", "content": user_prompt},
    ]


class TranscriptionService:
    """Transcribes audio bytes with the configured speech model."""

    def __init__(self, client: AsyncOpenAI, model: str = "whisper-1"):
        self._client = client
        self._model = model

    async def transcribe(self, audio: bytes, mime_type: str) -> str:
        try:
            result = await self._client.audio.transcriptions.create(
                model=self._model,
                file=(audio_filename(mime_type), audio, mime_type or "audio/ogg"),
            )
        except APIStatusError as e:
            logger.error(f"Transcription failed ({e.status_code}): {e.message}")
            raise TranscriptionError(
                "Failed to transcribe audio",
                status_code=e.status_code,
                original_error=e,
            )
        except OpenAIError as e:
            logger.error(f"Transcription failed: {e}")
            raise TranscriptionError("Failed to transcribe audio", original_error=e)

        text = (result.text or "").strip()
        if not text:
            raise TranscriptionError("Transcription returned no text")
        return text


class TemplateExtractionService:
    """
    Fills template fields from a transcript with a chat-completion model.

    The model is asked for a JSON object; its content is parsed exactly once.
    Field types are passed to the model as hints and are not validated.
    """

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str = "gpt-4o-mini",
        temperature: float = 0.3,
    ):
        self._client = client
        self._model = model
        self._temperature = temperature

    async def extract(self, transcript: str, fields: List[TemplateField]) -> Dict[str, Any]:
        """
        Returns:
            Mapping of field name to extracted value

        Raises:
            TemplateExtractionError: model call failed, returned nothing,
                or returned something other than a JSON object
        """
        try:
            completion = await self._client.chat.completions.create(
                model=self._model,
                messages=build_extraction_messages(transcript, fields),
                temperature=self._temperature,
                response_format={"type": "json_object"},
            )
        except OpenAIError as e:
            logger.error(f"Template extraction request failed: {e}")
            raise TemplateExtractionError(
                "Failed to process template with GPT",
                status_code=getattr(e, "status_code", None),
                original_error=e,
            )

        content = completion.choices[0].message.content if completion.choices else None
        if not content:
            raise TemplateExtractionError("No response from GPT")

        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            logger.error(f"GPT returned invalid JSON: {content[:200]}")
            raise TemplateExtractionError(
                "Invalid JSON response from GPT",
                details={"content": content},
                original_error=e,
            )

        if not isinstance(data, dict):
            raise TemplateExtractionError(
                "Invalid JSON response from GPT",
                details={"content": content},
            )
        return data
