"""
Repository Layer for Crudo

Exports all repository classes for dependency injection.
"""

from app.infrastructure.db.repositories.base_repository import BaseRepository
from app.infrastructure.db.repositories.profile_repository import (
    ProfileRepository,
    UserTemplateRepository,
)
from app.infrastructure.db.repositories.voice_transcript_repository import (
    VoiceTranscriptRepository,
)
from app.infrastructure.db.repositories.subscription_repository import (
    SubscriptionRepository,
)
from app.infrastructure.db.repositories.credits_repository import (
    CreditsRepository,
)
from app.infrastructure.db.repositories.webhook_event_repository import (
    WebhookEventRepository,
)


__all__ = [
    # Base
    "BaseRepository",
    # Repositories
    "ProfileRepository",
    "UserTemplateRepository",
    "VoiceTranscriptRepository",
    "SubscriptionRepository",
    "CreditsRepository",
    "WebhookEventRepository",
]
