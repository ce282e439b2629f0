"""
Profile and Phone Mapping SQLModels

Application user records and the phone-number lookup used to attribute
inbound voice notes to a user.
"""

from typing import Optional
from uuid import UUID

from sqlmodel import Field

from app.domain.subscription import ProfileRole
from app.infrastructure.db.models.base import TimestampMixin, UUIDMixin


class Profile(TimestampMixin, table=True):
    """
    Application user record.

    ``id`` equals the Supabase auth user id. Sales representatives point at
    their manager through ``manager_id``.
    """

    __tablename__ = "profiles"

    id: UUID = Field(primary_key=True, nullable=False)
    role: str = Field(default=ProfileRole.MANAGER.value, max_length=32)
    manager_id: Optional[UUID] = Field(default=None, index=True)
    full_name: Optional[str] = Field(default=None, max_length=255)
    email: Optional[str] = Field(default=None, max_length=320)
    company_name: Optional[str] = Field(default=None, max_length=255)

    @property
    def billing_owner_id(self) -> UUID:
        """The manager whose wallet and subscription this user bills to."""
        if self.role == ProfileRole.SALES_REPRESENTATIVE.value and self.manager_id:
            return self.manager_id
        return self.id


class PhoneNumberMapping(UUIDMixin, TimestampMixin, table=True):
    """Maps a WhatsApp sender number (E.164) to a user."""

    __tablename__ = "phone_number_mappings"

    phone_number: str = Field(unique=True, index=True, max_length=20)
    user_id: UUID = Field(index=True, nullable=False)
