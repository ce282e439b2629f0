"""
SQLModel ORM Models for Crudo

Exports all database models for Alembic autogenerate and application use.
Import models here to register them with SQLModel.metadata.
"""

from app.infrastructure.db.models.base import (
    TimestampMixin,
    UUIDMixin,
    utc_now,
)
from app.infrastructure.db.models.profile import (
    Profile,
    PhoneNumberMapping,
)
from app.infrastructure.db.models.user_template import UserTemplate
from app.infrastructure.db.models.voice_transcript import VoiceTranscript
from app.infrastructure.db.models.subscription import Subscription
from app.infrastructure.db.models.credits import (
    CreditsWallet,
    CreditTransaction,
)
from app.infrastructure.db.models.webhook_event import ProcessedWebhookEvent


__all__ = [
    # Base
    "TimestampMixin",
    "UUIDMixin",
    "utc_now",
    # Users
    "Profile",
    "PhoneNumberMapping",
    # Voice notes
    "UserTemplate",
    "VoiceTranscript",
    # Billing
    "Subscription",
    "CreditsWallet",
    "CreditTransaction",
    "ProcessedWebhookEvent",
]
