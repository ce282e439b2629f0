"""
Unit tests for the confirm/retake state machine.
"""

from uuid import uuid4

import pytest

from app.domain.transcript import ReplyAction, TranscriptAction, TranscriptStatus
from app.infrastructure.db.models import VoiceTranscript
from app.infrastructure.exceptions import TemplateExtractionError, WhatsAppAPIError
from app.infrastructure.services.confirmation_service import (
    CONFIRMED_MESSAGE,
    NO_TEMPLATE_MESSAGE,
    RETAKE_MESSAGE,
    ConfirmationService,
)
from fakes import make_template


PHONE = "+14155550123"
CONFIRM = ReplyAction(action=TranscriptAction.CONFIRM)
RETAKE = ReplyAction(action=TranscriptAction.RETAKE)


@pytest.fixture
def service(fake_repos, mock_whatsapp, mock_extractor):
    return ConfirmationService(fake_repos, mock_whatsapp, mock_extractor)


async def _pending(repos, text="Visited ACME", phone=PHONE, user_id=None):
    transcript = VoiceTranscript(
        phone_number=phone,
        transcript=text,
        whatsapp_message_id=f"wamid.{uuid4()}",
        user_id=user_id,
    )
    return await repos.transcripts.add(transcript)


class TestConfirm:

    @pytest.mark.asyncio
    async def test_confirm_with_default_template(self, service, fake_repos, mock_whatsapp, mock_extractor):
        user_id = uuid4()
        template = fake_repos.templates.add_template(
            make_template(user_id, [{"name": "customer", "type": "text", "required": True}])
        )
        transcript = await _pending(fake_repos, user_id=user_id)

        status = await service.handle(PHONE, CONFIRM)

        assert status == TranscriptStatus.CONFIRMED
        assert transcript.status == "confirmed"
        assert transcript.template_id == template.id
        assert transcript.filled_data == {"customer": "ACME", "units": 20}

        text, fields = mock_extractor.extract.call_args.args
        assert text == "Visited ACME"
        assert [f.name for f in fields] == ["customer"]
        mock_whatsapp.send_text.assert_awaited_once_with(PHONE, CONFIRMED_MESSAGE)

    @pytest.mark.asyncio
    async def test_owner_resolved_from_phone_mapping(self, service, fake_repos):
        user_id = uuid4()
        fake_repos.profiles.map_phone(PHONE, user_id)
        fake_repos.templates.add_template(make_template(user_id, [{"name": "notes"}]))
        transcript = await _pending(fake_repos)

        await service.handle(PHONE, CONFIRM)

        assert transcript.user_id == user_id
        assert transcript.filled_data is not None

    @pytest.mark.asyncio
    async def test_confirm_without_template(self, service, fake_repos, mock_whatsapp, mock_extractor):
        transcript = await _pending(fake_repos, user_id=uuid4())

        status = await service.handle(PHONE, CONFIRM)

        assert status == TranscriptStatus.CONFIRMED
        assert transcript.status == "confirmed"
        assert transcript.template_id is None
        assert transcript.filled_data is None
        mock_extractor.extract.assert_not_awaited()
        mock_whatsapp.send_text.assert_awaited_once_with(PHONE, NO_TEMPLATE_MESSAGE)

    @pytest.mark.asyncio
    async def test_extraction_failure_still_confirms(self, service, fake_repos, mock_extractor):
        user_id = uuid4()
        fake_repos.templates.add_template(make_template(user_id, [{"name": "notes"}]))
        transcript = await _pending(fake_repos, user_id=user_id)
        mock_extractor.extract.side_effect = TemplateExtractionError("Invalid JSON response from GPT")

        status = await service.handle(PHONE, CONFIRM)

        assert status == TranscriptStatus.CONFIRMED
        assert transcript.status == "confirmed"
        assert transcript.filled_data is None

    @pytest.mark.asyncio
    async def test_notification_failure_is_swallowed(self, service, fake_repos, mock_whatsapp):
        transcript = await _pending(fake_repos)
        mock_whatsapp.send_text.side_effect = WhatsAppAPIError("down", status_code=503)

        assert await service.handle(PHONE, CONFIRM) == TranscriptStatus.CONFIRMED
        assert transcript.status == "confirmed"

    @pytest.mark.asyncio
    async def test_connection_released_before_extraction(self, service, fake_repos, mock_extractor):
        user_id = uuid4()
        fake_repos.templates.add_template(make_template(user_id, [{"name": "customer"}]))
        await _pending(fake_repos, user_id=user_id)

        async def extract(text, fields):
            fake_repos.events.append("extract")
            return {"customer": "ACME"}

        mock_extractor.extract.side_effect = extract

        await service.handle(PHONE, CONFIRM)

        assert fake_repos.events == ["release", "extract"]


class TestTargetSelection:

    @pytest.mark.asyncio
    async def test_no_pending_transcript(self, service, mock_whatsapp):
        assert await service.handle(PHONE, CONFIRM) is None
        mock_whatsapp.send_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_latest_pending_wins(self, service, fake_repos):
        older = await _pending(fake_repos, text="first")
        newer = await _pending(fake_repos, text="second")
        newer.created_at = older.created_at

        await service.handle(PHONE, RETAKE)

        assert newer.status == "retaken"
        assert older.status == "pending"

    @pytest.mark.asyncio
    async def test_explicit_id_targets_that_transcript(self, service, fake_repos):
        older = await _pending(fake_repos, text="first")
        newer = await _pending(fake_repos, text="second")

        await service.handle(PHONE, ReplyAction(action=TranscriptAction.RETAKE, transcript_id=older.id))

        assert older.status == "retaken"
        assert newer.status == "pending"

    @pytest.mark.asyncio
    async def test_explicit_id_of_another_sender_is_ignored(self, service, fake_repos):
        other = await _pending(fake_repos, phone="+5511987654321")

        result = await service.handle(
            PHONE, ReplyAction(action=TranscriptAction.CONFIRM, transcript_id=other.id)
        )

        assert result is None
        assert other.status == "pending"

    @pytest.mark.asyncio
    async def test_other_senders_are_untouched(self, service, fake_repos):
        other = await _pending(fake_repos, phone="+5511987654321")
        mine = await _pending(fake_repos)

        await service.handle(PHONE, CONFIRM)

        assert mine.status == "confirmed"
        assert other.status == "pending"


class TestTerminalStates:

    @pytest.mark.asyncio
    async def test_retake(self, service, fake_repos, mock_whatsapp):
        transcript = await _pending(fake_repos)

        assert await service.handle(PHONE, RETAKE) == TranscriptStatus.RETAKEN
        assert transcript.status == "retaken"
        mock_whatsapp.send_text.assert_awaited_once_with(PHONE, RETAKE_MESSAGE)

    @pytest.mark.asyncio
    async def test_confirmed_transcript_cannot_be_retaken(self, service, fake_repos):
        transcript = await _pending(fake_repos)
        await service.handle(PHONE, CONFIRM)

        result = await service.handle(
            PHONE, ReplyAction(action=TranscriptAction.RETAKE, transcript_id=transcript.id)
        )

        assert result is None
        assert transcript.status == "confirmed"

    @pytest.mark.asyncio
    async def test_retake_then_confirm_applies_to_new_recording(self, service, fake_repos):
        first = await _pending(fake_repos, text="first take")
        await service.handle(PHONE, RETAKE)
        second = await _pending(fake_repos, text="second take")

        await service.handle(PHONE, CONFIRM)

        assert first.status == "retaken"
        assert second.status == "confirmed"

    @pytest.mark.asyncio
    async def test_lost_transition_sends_nothing(self, service, fake_repos, mock_whatsapp):
        transcript = await _pending(fake_repos)

        async def lose_race(*args, **kwargs):
            return False

        fake_repos.transcripts.transition_status = lose_race

        assert await service.handle(PHONE, RETAKE) is None
        assert transcript.status == "pending"
        mock_whatsapp.send_text.assert_not_awaited()
