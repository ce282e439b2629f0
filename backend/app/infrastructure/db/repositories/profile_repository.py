"""
Profile Repository

Read access to profiles, phone mappings and default templates.
"""

from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.infrastructure.db.models import PhoneNumberMapping, Profile, UserTemplate
from app.infrastructure.db.repositories.base_repository import BaseRepository


class ProfileRepository(BaseRepository[Profile]):
    """Repository for profiles and the phone-number lookup."""

    def __init__(self, session: AsyncSession):
        super().__init__(Profile, session)

    async def get_user_id_by_phone(self, phone_number: str) -> Optional[UUID]:
        """Resolve the user a WhatsApp sender number belongs to."""
        stmt = select(PhoneNumberMapping.user_id).where(
            PhoneNumberMapping.phone_number == phone_number
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def resolve_billing_owner_id(self, user_id: UUID) -> UUID:
        """
        The manager a user's usage and billing are attributed to.

        Users without a profile bill to themselves.
        """
        profile = await self.get_by_id(user_id)
        if profile is None:
            return user_id
        return profile.billing_owner_id


class UserTemplateRepository(BaseRepository[UserTemplate]):
    """Read-only repository for user templates."""

    def __init__(self, session: AsyncSession):
        super().__init__(UserTemplate, session)

    async def get_default_for_user(self, user_id: UUID) -> Optional[UserTemplate]:
        """
        The user's default template.

        Defaults are not unique in the schema; the most recently updated wins.
        """
        stmt = (
            select(UserTemplate)
            .where(UserTemplate.user_id == user_id)
            .where(UserTemplate.is_default.is_(True))
            .order_by(UserTemplate.updated_at.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalars().first()
