"""
Subscription Repository

Data access layer for the local mirror of Stripe subscriptions.
Follows Repository pattern for Clean Architecture.
"""

import logging
from typing import List, Optional
from uuid import UUID, uuid4

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.domain.subscription import BILLABLE_STATUSES, SubscriptionStatus
from app.infrastructure.db.models import Subscription, utc_now
from app.infrastructure.db.repositories.base_repository import BaseRepository


logger = logging.getLogger(__name__)

_BILLABLE_VALUES = [status.value for status in BILLABLE_STATUSES]


class SubscriptionRepository(BaseRepository[Subscription]):
    """
    Repository for subscription data access.

    Rows are keyed by the Stripe subscription id; status is whatever Stripe
    last reported.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(Subscription, session)

    # =========================================================================
    # Query Methods
    # =========================================================================

    async def get_by_subscription_id(self, subscription_id: str) -> Optional[Subscription]:
        statement = (
            select(Subscription)
            .where(Subscription.subscription_id == subscription_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(statement)
        return result.scalar_one_or_none()

    async def get_billable_for_user(self, user_id: UUID) -> Optional[Subscription]:
        """
        The subscription usage should be reported against.

        Prefers a row with a cached metered item, then the most recently
        updated billable row.
        """
        statement = (
            select(Subscription)
            .where(Subscription.user_id == user_id)
            .where(Subscription.status.in_(_BILLABLE_VALUES))
            .order_by(
                Subscription.credits_subscription_item_id.is_(None),
                Subscription.updated_at.desc(),
            )
            .limit(1)
        )
        result = await self._session.execute(statement)
        return result.scalars().first()

    async def list_billable_for_user(self, user_id: UUID) -> List[Subscription]:
        statement = (
            select(Subscription)
            .where(Subscription.user_id == user_id)
            .where(Subscription.status.in_(_BILLABLE_VALUES))
            .order_by(Subscription.updated_at.desc())
        )
        result = await self._session.execute(statement)
        return list(result.scalars().all())

    async def get_latest_for_user(self, user_id: UUID) -> Optional[Subscription]:
        """Newest row for a user, re-read from the database on every call."""
        statement = (
            select(Subscription)
            .where(Subscription.user_id == user_id)
            .order_by(Subscription.updated_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(statement)
        return result.scalars().first()

    async def list_unsettled(self) -> List[Subscription]:
        """Every row Stripe has not reported as canceled."""
        statement = select(Subscription).where(
            Subscription.status != SubscriptionStatus.CANCELED.value
        )
        result = await self._session.execute(statement)
        return list(result.scalars().all())

    # =========================================================================
    # Command Methods
    # =========================================================================

    async def upsert(
        self,
        subscription_id: str,
        user_id: UUID,
        status: SubscriptionStatus,
        stripe_customer_id: Optional[str] = None,
        plan_type: Optional[str] = None,
        subscription_role: Optional[str] = None,
        credits_subscription_item_id: Optional[str] = None,
    ) -> Optional[Subscription]:
        """
        Create or update a subscription by Stripe subscription id.

        Uses PostgreSQL upsert for atomicity. Optional attributes left as
        ``None`` keep their stored value.
        """
        now = utc_now()
        values = {
            "subscription_id": subscription_id,
            "user_id": user_id,
            "status": status.value,
        }
        optional = {
            "stripe_customer_id": stripe_customer_id,
            "plan_type": plan_type,
            "subscription_role": subscription_role,
            "credits_subscription_item_id": credits_subscription_item_id,
        }
        values.update({key: value for key, value in optional.items() if value is not None})

        stmt = self.upsert_insert(Subscription).values(
            id=uuid4(), created_at=now, updated_at=now, **values
        )
        set_ = {
            key: stmt.excluded[key]
            for key in values
            if key != "subscription_id"
        }
        set_["updated_at"] = now
        stmt = stmt.on_conflict_do_update(
            index_elements=["subscription_id"],
            set_=set_,
        )

        await self._session.execute(stmt)
        logger.info(f"Upserted subscription {subscription_id} for user {user_id} ({status.value})")

        # Fetch the result
        return await self.get_by_subscription_id(subscription_id)

    async def update_status(self, subscription_id: str, status: SubscriptionStatus) -> bool:
        stmt = (
            update(Subscription)
            .where(Subscription.subscription_id == subscription_id)
            .values(status=status.value, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def set_credits_item(self, subscription_id: str, item_id: str) -> None:
        stmt = (
            update(Subscription)
            .where(Subscription.subscription_id == subscription_id)
            .values(credits_subscription_item_id=item_id, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        await self._session.execute(stmt)
