"""
In-memory stand-ins for the repositories.

They mirror the query semantics of the SQL repositories closely enough for
service and route tests: ordering, the pending-only status transition and
the replay-safe usage ledger.
"""

import hashlib
import hmac
import itertools
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from app.domain.subscription import (
    BILLABLE_STATUSES,
    SubscriptionStatus,
    roll_monthly_usage,
)
from app.domain.transcript import TranscriptStatus
from app.infrastructure.db.models import (
    CreditsWallet,
    CreditTransaction,
    Profile,
    Subscription,
    UserTemplate,
    VoiceTranscript,
    utc_now,
)
from app.infrastructure.db.unit_of_work import Repositories


_sequence = itertools.count()


class FakeProfileRepository:
    def __init__(self):
        self.profiles: Dict[UUID, Profile] = {}
        self.phone_numbers: Dict[str, UUID] = {}

    def add_profile(self, profile: Profile) -> Profile:
        self.profiles[profile.id] = profile
        return profile

    def map_phone(self, phone_number: str, user_id: UUID) -> None:
        self.phone_numbers[phone_number] = user_id

    async def get_by_id(self, id: UUID) -> Optional[Profile]:
        return self.profiles.get(id)

    async def get_user_id_by_phone(self, phone_number: str) -> Optional[UUID]:
        return self.phone_numbers.get(phone_number)

    async def resolve_billing_owner_id(self, user_id: UUID) -> UUID:
        profile = self.profiles.get(user_id)
        return profile.billing_owner_id if profile else user_id


class FakeTemplateRepository:
    def __init__(self):
        self.templates: List[UserTemplate] = []

    def add_template(self, template: UserTemplate) -> UserTemplate:
        self.templates.append(template)
        return template

    async def get_by_id(self, id: UUID) -> Optional[UserTemplate]:
        return next((template for template in self.templates if template.id == id), None)

    async def get_default_for_user(self, user_id: UUID) -> Optional[UserTemplate]:
        defaults = [
            template for template in self.templates
            if template.user_id == user_id and template.is_default
        ]
        return max(defaults, key=lambda template: template.updated_at, default=None)


class FakeTranscriptRepository:
    def __init__(self):
        self.items: Dict[UUID, VoiceTranscript] = {}
        self._order: Dict[UUID, int] = {}

    async def get_by_id(self, id: UUID) -> Optional[VoiceTranscript]:
        return self.items.get(id)

    async def add(self, transcript: VoiceTranscript) -> VoiceTranscript:
        self.items[transcript.id] = transcript
        self._order[transcript.id] = next(_sequence)
        return transcript

    async def get_for_owner(self, transcript_id: UUID, user_id: UUID) -> Optional[VoiceTranscript]:
        transcript = self.items.get(transcript_id)
        return transcript if transcript is not None and transcript.user_id == user_id else None

    async def get_by_whatsapp_message_id(self, message_id: str) -> Optional[VoiceTranscript]:
        return next(
            (t for t in self.items.values() if t.whatsapp_message_id == message_id),
            None,
        )

    async def get_latest_pending_for_phone(self, phone_number: str) -> Optional[VoiceTranscript]:
        pending = [
            t for t in self.items.values()
            if t.phone_number == phone_number and t.status == TranscriptStatus.PENDING.value
        ]
        return max(
            pending,
            key=lambda t: (t.created_at, self._order[t.id]),
            default=None,
        )

    async def attach_owner(self, transcript: VoiceTranscript, user_id: UUID) -> VoiceTranscript:
        transcript.user_id = user_id
        return transcript

    async def transition_status(
        self,
        transcript_id: UUID,
        new_status: TranscriptStatus,
        **fields: Any,
    ) -> bool:
        transcript = self.items.get(transcript_id)
        if transcript is None or transcript.status != TranscriptStatus.PENDING.value:
            return False
        transcript.status = new_status.value
        for key, value in fields.items():
            setattr(transcript, key, value)
        transcript.updated_at = utc_now()
        return True


class FakeSubscriptionRepository:
    def __init__(self):
        self.rows: Dict[str, Subscription] = {}

    def add_row(self, **values: Any) -> Subscription:
        values.setdefault("status", SubscriptionStatus.ACTIVE.value)
        row = Subscription(**values)
        self.rows[row.subscription_id] = row
        return row

    def _for_user(self, user_id: UUID, billable_only: bool = False) -> List[Subscription]:
        billable = {status.value for status in BILLABLE_STATUSES}
        return [
            row for row in self.rows.values()
            if row.user_id == user_id and (not billable_only or row.status in billable)
        ]

    async def get_by_subscription_id(self, subscription_id: str) -> Optional[Subscription]:
        return self.rows.get(subscription_id)

    async def get_billable_for_user(self, user_id: UUID) -> Optional[Subscription]:
        rows = sorted(self._for_user(user_id, True), key=lambda r: r.updated_at, reverse=True)
        rows.sort(key=lambda r: r.credits_subscription_item_id is None)
        return rows[0] if rows else None

    async def list_billable_for_user(self, user_id: UUID) -> List[Subscription]:
        return sorted(self._for_user(user_id, True), key=lambda r: r.updated_at, reverse=True)

    async def get_latest_for_user(self, user_id: UUID) -> Optional[Subscription]:
        return max(self._for_user(user_id), key=lambda r: r.updated_at, default=None)

    async def list_unsettled(self) -> List[Subscription]:
        return [
            row for row in self.rows.values()
            if row.status != SubscriptionStatus.CANCELED.value
        ]

    async def upsert(
        self,
        subscription_id: str,
        user_id: UUID,
        status: SubscriptionStatus,
        **optional: Any,
    ) -> Subscription:
        row = self.rows.get(subscription_id)
        if row is None:
            row = Subscription(subscription_id=subscription_id, user_id=user_id)
            self.rows[subscription_id] = row
        row.user_id = user_id
        row.status = status.value
        for key, value in optional.items():
            if value is not None:
                setattr(row, key, value)
        row.updated_at = utc_now()
        return row

    async def update_status(self, subscription_id: str, status: SubscriptionStatus) -> bool:
        row = self.rows.get(subscription_id)
        if row is None:
            return False
        row.status = status.value
        row.updated_at = utc_now()
        return True

    async def set_credits_item(self, subscription_id: str, item_id: str) -> None:
        row = self.rows.get(subscription_id)
        if row is not None:
            row.credits_subscription_item_id = item_id


class FakeCreditsRepository:
    def __init__(self):
        self.wallets: Dict[UUID, CreditsWallet] = {}
        self.transactions: Dict[str, CreditTransaction] = {}

    async def get_wallet(self, manager_id: UUID) -> Optional[CreditsWallet]:
        return self.wallets.get(manager_id)

    async def record_usage(
        self,
        manager_id: UUID,
        sales_rep_id: Optional[UUID],
        amount: int,
        reason: str,
        usage_event_id: str,
        cycle_anchor: Optional[datetime],
    ) -> Optional[CreditsWallet]:
        if usage_event_id in self.transactions:
            return None
        self.transactions[usage_event_id] = CreditTransaction(
            manager_id=manager_id,
            sales_rep_id=sales_rep_id,
            amount=amount,
            reason=reason,
            usage_event_id=usage_event_id,
        )

        wallet = self.wallets.get(manager_id)
        if wallet is None:
            wallet = CreditsWallet(
                manager_id=manager_id,
                used_credits=amount,
                used_credits_this_month=amount,
                billing_cycle_anchor=cycle_anchor,
            )
            self.wallets[manager_id] = wallet
        else:
            wallet.used_credits_this_month = roll_monthly_usage(
                wallet.used_credits_this_month,
                wallet.billing_cycle_anchor,
                cycle_anchor,
                amount,
            )
            wallet.used_credits += amount
            wallet.billing_cycle_anchor = cycle_anchor
        return wallet


class FakeWebhookEventRepository:
    def __init__(self):
        self.processed: Dict[str, str] = {}

    async def is_processed(self, event_id: str) -> bool:
        return event_id in self.processed

    async def mark_processed(self, event_id: str, event_type: str) -> None:
        self.processed.setdefault(event_id, event_type)


@dataclass
class FakeRepositories(Repositories):
    savepoints: int = field(default=0)
    events: List[str] = field(default_factory=list)

    @classmethod
    def create(cls) -> "FakeRepositories":
        return cls(
            session=None,
            profiles=FakeProfileRepository(),
            templates=FakeTemplateRepository(),
            transcripts=FakeTranscriptRepository(),
            subscriptions=FakeSubscriptionRepository(),
            credits=FakeCreditsRepository(),
            webhook_events=FakeWebhookEventRepository(),
        )

    @asynccontextmanager
    async def savepoint(self):
        self.savepoints += 1
        yield

    async def release(self) -> None:
        self.events.append("release")


def scope_for(repos: FakeRepositories):
    """A repositories_scope replacement that always yields ``repos``."""

    @asynccontextmanager
    async def scope():
        yield repos

    return scope


def make_profile(role: str = "manager", manager_id: Optional[UUID] = None, **values: Any) -> Profile:
    return Profile(id=values.pop("id", uuid4()), role=role, manager_id=manager_id, **values)


def make_template(user_id: UUID, fields: List[Dict[str, Any]], **values: Any) -> UserTemplate:
    values.setdefault("name", "Visit report")
    values.setdefault("is_default", True)
    return UserTemplate(user_id=user_id, fields=fields, **values)


def whatsapp_signature(body: bytes, secret: str) -> str:
    """``X-Hub-Signature-256`` value Meta would send for ``body``."""
    return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
