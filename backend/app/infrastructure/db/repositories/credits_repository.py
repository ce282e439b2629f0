"""
Credits Repository

Credits wallet and usage ledger. A usage report is applied to the wallet
only when its ledger row is new, which makes replays harmless.
"""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.domain.subscription import roll_monthly_usage
from app.infrastructure.db.models import CreditsWallet, CreditTransaction, utc_now
from app.infrastructure.db.repositories.base_repository import BaseRepository


logger = logging.getLogger(__name__)


class CreditsRepository(BaseRepository[CreditsWallet]):
    """Repository for credits wallets and transactions."""

    def __init__(self, session: AsyncSession):
        super().__init__(CreditsWallet, session)

    async def get_wallet(self, manager_id: UUID) -> Optional[CreditsWallet]:
        return await self.get_by_id(manager_id)

    async def record_usage(
        self,
        manager_id: UUID,
        sales_rep_id: Optional[UUID],
        amount: int,
        reason: str,
        usage_event_id: str,
        cycle_anchor: Optional[datetime],
    ) -> Optional[CreditsWallet]:
        """
        Ledger a usage report and apply it to the manager's wallet.

        Returns:
            The updated wallet, or None when ``usage_event_id`` was
            already recorded.
        """
        insert_stmt = (
            self.upsert_insert(CreditTransaction)
            .values(
                id=uuid4(),
                manager_id=manager_id,
                sales_rep_id=sales_rep_id,
                amount=amount,
                reason=reason,
                usage_event_id=usage_event_id,
                created_at=utc_now(),
            )
            .on_conflict_do_nothing(index_elements=["usage_event_id"])
            .returning(CreditTransaction.id)
        )
        inserted = (await self._session.execute(insert_stmt)).scalar_one_or_none()
        if inserted is None:
            logger.info(f"Usage event {usage_event_id} already recorded")
            return None

        statement = (
            select(CreditsWallet)
            .where(CreditsWallet.manager_id == manager_id)
            .with_for_update()
        )
        wallet = (await self._session.execute(statement)).scalar_one_or_none()

        if wallet is None:
            wallet = CreditsWallet(
                manager_id=manager_id,
                used_credits=amount,
                used_credits_this_month=amount,
                billing_cycle_anchor=cycle_anchor,
            )
            self._session.add(wallet)
        else:
            wallet.used_credits_this_month = roll_monthly_usage(
                wallet.used_credits_this_month,
                wallet.billing_cycle_anchor,
                cycle_anchor,
                amount,
            )
            wallet.used_credits = (wallet.used_credits or 0) + amount
            wallet.billing_cycle_anchor = cycle_anchor
            wallet.updated_at = utc_now()

        await self._session.flush()
        return wallet
