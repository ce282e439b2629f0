"""
Subscription Database Model

SQLModel table mirroring Stripe subscriptions.
"""

from typing import Optional
from uuid import UUID

from sqlmodel import Field

from app.domain.subscription import SubscriptionStatus
from app.infrastructure.db.models.base import TimestampMixin, UUIDMixin


class Subscription(UUIDMixin, TimestampMixin, table=True):
    """
    Local mirror of a Stripe subscription.

    Maps to the 'subscriptions' table in PostgreSQL. Upserted from Stripe
    webhooks keyed on ``subscription_id``.
    """

    __tablename__ = "subscriptions"

    subscription_id: str = Field(unique=True, index=True, max_length=255)
    user_id: UUID = Field(index=True, nullable=False)
    stripe_customer_id: Optional[str] = Field(default=None, index=True, max_length=255)

    plan_type: Optional[str] = Field(default=None, max_length=32)
    subscription_role: Optional[str] = Field(default=None, max_length=32)
    credits_subscription_item_id: Optional[str] = Field(default=None, max_length=255)
    status: str = Field(default=SubscriptionStatus.INCOMPLETE.value, max_length=32)
