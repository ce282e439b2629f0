"""
Repository tests against a real SQL engine.

An in-memory aiosqlite database stands in for Postgres; the conflict
clauses compile to SQLite's ``ON CONFLICT`` which has the same semantics.
"""

from datetime import datetime, timedelta
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from app.domain.subscription import SubscriptionStatus
from app.domain.transcript import TranscriptStatus
from app.infrastructure.db.models import (
    CreditsWallet,
    CreditTransaction,
    ProcessedWebhookEvent,
    Subscription,
    VoiceTranscript,
)
from app.infrastructure.db.repositories import (
    CreditsRepository,
    SubscriptionRepository,
    VoiceTranscriptRepository,
    WebhookEventRepository,
)


PHONE = "+14155550123"
TABLES = [
    VoiceTranscript.__table__,
    Subscription.__table__,
    CreditsWallet.__table__,
    CreditTransaction.__table__,
    ProcessedWebhookEvent.__table__,
]

# SQLite hands DateTime columns back naive
MAY = datetime(2026, 5, 1)
JUNE = datetime(2026, 6, 1)


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all, tables=TABLES)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session(engine):
    async with AsyncSession(engine, expire_on_commit=False) as session:
        yield session


async def _pending_transcript(session, **values) -> VoiceTranscript:
    values.setdefault("phone_number", PHONE)
    values.setdefault("transcript", "Visited ACME")
    transcript = await VoiceTranscriptRepository(session).add(VoiceTranscript(**values))
    await session.commit()
    return transcript


class TestTranscriptTransitions:

    @pytest.mark.asyncio
    async def test_first_writer_wins(self, session):
        repo = VoiceTranscriptRepository(session)
        transcript = await _pending_transcript(session)

        assert await repo.transition_status(
            transcript.id, TranscriptStatus.CONFIRMED, filled_data={"units": 20}
        ) is True
        assert await repo.transition_status(transcript.id, TranscriptStatus.CONFIRMED) is False
        await session.commit()

        await session.refresh(transcript)
        assert transcript.status == TranscriptStatus.CONFIRMED.value
        assert transcript.filled_data == {"units": 20}

    @pytest.mark.asyncio
    async def test_confirmed_transcript_cannot_be_retaken(self, session):
        repo = VoiceTranscriptRepository(session)
        transcript = await _pending_transcript(session)
        await repo.transition_status(transcript.id, TranscriptStatus.CONFIRMED)

        assert await repo.transition_status(transcript.id, TranscriptStatus.RETAKEN) is False
        await session.refresh(transcript)
        assert transcript.status == TranscriptStatus.CONFIRMED.value

    @pytest.mark.asyncio
    async def test_concurrent_sessions_transition_once(self, engine):
        async with AsyncSession(engine, expire_on_commit=False) as first:
            transcript = await _pending_transcript(first)
            assert await VoiceTranscriptRepository(first).transition_status(
                transcript.id, TranscriptStatus.RETAKEN
            )
            await first.commit()

        async with AsyncSession(engine, expire_on_commit=False) as second:
            assert not await VoiceTranscriptRepository(second).transition_status(
                transcript.id, TranscriptStatus.CONFIRMED
            )

    @pytest.mark.asyncio
    async def test_missing_filled_data_is_stored_as_sql_null(self, session):
        repo = VoiceTranscriptRepository(session)
        transcript = await _pending_transcript(session)
        await repo.transition_status(transcript.id, TranscriptStatus.CONFIRMED, filled_data=None)
        await session.commit()

        result = await session.execute(text("SELECT filled_data IS NULL FROM voice_transcripts"))
        assert result.scalar_one() == 1

    @pytest.mark.asyncio
    async def test_latest_pending_for_phone(self, session):
        repo = VoiceTranscriptRepository(session)
        await _pending_transcript(session, created_at=MAY)
        newest = await _pending_transcript(session, created_at=JUNE)
        confirmed = await _pending_transcript(session, created_at=JUNE + timedelta(days=1))
        await repo.transition_status(confirmed.id, TranscriptStatus.CONFIRMED)

        latest = await repo.get_latest_pending_for_phone(PHONE)
        assert latest.id == newest.id

    @pytest.mark.asyncio
    async def test_get_for_owner_is_scoped_to_the_owner(self, session):
        repo = VoiceTranscriptRepository(session)
        owner_id = uuid4()
        transcript = await _pending_transcript(session, user_id=owner_id)

        assert (await repo.get_for_owner(transcript.id, owner_id)).id == transcript.id
        assert await repo.get_for_owner(transcript.id, uuid4()) is None


class TestUsageLedger:

    @pytest.mark.asyncio
    async def test_replayed_usage_event_is_ignored(self, engine):
        manager_id = uuid4()
        async with AsyncSession(engine, expire_on_commit=False) as first:
            wallet = await CreditsRepository(first).record_usage(
                manager_id, None, 3, "voice report", "evt_1", MAY
            )
            assert wallet.used_credits == 3
            await first.commit()

        async with AsyncSession(engine, expire_on_commit=False) as second:
            repo = CreditsRepository(second)
            assert await repo.record_usage(manager_id, None, 3, "voice report", "evt_1", MAY) is None
            wallet = await repo.get_wallet(manager_id)
            assert (wallet.used_credits, wallet.used_credits_this_month) == (3, 3)

            ledger = await second.execute(text("SELECT COUNT(*) FROM credit_transactions"))
            assert ledger.scalar_one() == 1

    @pytest.mark.asyncio
    async def test_usage_accumulates_within_a_cycle_and_restarts_on_a_new_one(self, session):
        repo = CreditsRepository(session)
        manager_id = uuid4()
        rep_id = uuid4()

        await repo.record_usage(manager_id, rep_id, 1, "voice report", "evt_1", MAY)
        wallet = await repo.record_usage(manager_id, rep_id, 2, "voice report", "evt_2", MAY)
        assert (wallet.used_credits, wallet.used_credits_this_month) == (3, 3)

        wallet = await repo.record_usage(manager_id, rep_id, 4, "voice report", "evt_3", JUNE)
        assert (wallet.used_credits, wallet.used_credits_this_month) == (7, 4)
        assert wallet.billing_cycle_anchor == JUNE


class TestSubscriptionUpsert:

    @pytest.mark.asyncio
    async def test_inserts_then_updates_by_subscription_id(self, session):
        repo = SubscriptionRepository(session)
        user_id = uuid4()

        created = await repo.upsert(
            "sub_1", user_id, SubscriptionStatus.INCOMPLETE,
            stripe_customer_id="cus_1", plan_type="monthly",
        )
        updated = await repo.upsert("sub_1", user_id, SubscriptionStatus.ACTIVE)

        assert updated.id == created.id
        assert updated.status == SubscriptionStatus.ACTIVE.value
        rows = await session.execute(text("SELECT COUNT(*) FROM subscriptions"))
        assert rows.scalar_one() == 1

    @pytest.mark.asyncio
    async def test_none_keeps_stored_values(self, session):
        repo = SubscriptionRepository(session)
        user_id = uuid4()
        await repo.upsert(
            "sub_1", user_id, SubscriptionStatus.ACTIVE,
            stripe_customer_id="cus_1",
            plan_type="annual",
            subscription_role="base",
            credits_subscription_item_id="si_credits",
        )

        row = await repo.upsert(
            "sub_1", user_id, SubscriptionStatus.PAST_DUE,
            stripe_customer_id=None,
            plan_type=None,
        )

        assert row.status == SubscriptionStatus.PAST_DUE.value
        assert row.stripe_customer_id == "cus_1"
        assert row.plan_type == "annual"
        assert row.subscription_role == "base"
        assert row.credits_subscription_item_id == "si_credits"

    @pytest.mark.asyncio
    async def test_given_values_overwrite(self, session):
        repo = SubscriptionRepository(session)
        user_id = uuid4()
        await repo.upsert("sub_1", user_id, SubscriptionStatus.ACTIVE, plan_type="monthly")

        row = await repo.upsert("sub_1", user_id, SubscriptionStatus.ACTIVE, plan_type="annual")
        assert row.plan_type == "annual"


class TestWebhookEvents:

    @pytest.mark.asyncio
    async def test_mark_processed_is_idempotent(self, session):
        repo = WebhookEventRepository(session)
        assert not await repo.is_processed("evt_1")

        await repo.mark_processed("evt_1", "invoice.paid")
        await repo.mark_processed("evt_1", "invoice.paid")
        await session.commit()

        assert await repo.is_processed("evt_1")
        rows = await session.execute(text("SELECT COUNT(*) FROM processed_webhook_events"))
        assert rows.scalar_one() == 1
