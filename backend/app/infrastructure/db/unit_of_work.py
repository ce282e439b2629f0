"""
Repository bundle bound to one database session.

Request handlers receive a ``Repositories`` built on the request session;
webhook handlers open one ``repositories_scope()`` per message or event so
that a failure rolls back only that unit of work.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncContextManager, AsyncGenerator, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from app.infrastructure.db.database import get_session_context
from app.infrastructure.db.repositories import (
    CreditsRepository,
    ProfileRepository,
    SubscriptionRepository,
    UserTemplateRepository,
    VoiceTranscriptRepository,
    WebhookEventRepository,
)


@dataclass
class Repositories:
    session: AsyncSession
    profiles: ProfileRepository
    templates: UserTemplateRepository
    transcripts: VoiceTranscriptRepository
    subscriptions: SubscriptionRepository
    credits: CreditsRepository
    webhook_events: WebhookEventRepository

    @classmethod
    def from_session(cls, session: AsyncSession) -> "Repositories":
        return cls(
            session=session,
            profiles=ProfileRepository(session),
            templates=UserTemplateRepository(session),
            transcripts=VoiceTranscriptRepository(session),
            subscriptions=SubscriptionRepository(session),
            credits=CreditsRepository(session),
            webhook_events=WebhookEventRepository(session),
        )

    def savepoint(self) -> AsyncContextManager:
        """
        Nested transaction for best-effort writes.

        A failure inside rolls back to the savepoint and leaves the outer
        transaction usable.
        """
        return self.session.begin_nested()

    async def release(self) -> None:
        """
        Commit the work so far and return the connection to the pool.

        Call before awaiting anything slow (vendor calls, sleeps); the
        session checks a connection out again on its next query.
        """
        await self.session.commit()


@asynccontextmanager
async def repositories_scope() -> AsyncGenerator[Repositories, None]:
    """Open a session, yield its repositories, commit on success."""
    async with get_session_context() as session:
        yield Repositories.from_session(session)


RepositoriesScope = Callable[[], AsyncContextManager[Repositories]]
