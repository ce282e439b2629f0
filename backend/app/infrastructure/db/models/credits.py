"""
Credits SQLModels

Per-manager usage wallet and the ledger of individual usage reports.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from app.infrastructure.db.models.base import UUIDMixin, utc_now


class CreditsWallet(SQLModel, table=True):
    """Aggregate metered usage for one manager."""

    __tablename__ = "credits_wallet"

    manager_id: UUID = Field(primary_key=True, nullable=False)
    total_credits: int = Field(default=0)
    used_credits: int = Field(default=0)
    used_credits_this_month: int = Field(default=0)
    # Stripe current_period_start last seen; a change means a new cycle.
    billing_cycle_anchor: Optional[datetime] = Field(
        default=None,
        sa_type=DateTime(timezone=True),
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        nullable=False,
        sa_type=DateTime(timezone=True),
    )


class CreditTransaction(UUIDMixin, table=True):
    """One usage report, keyed by the Stripe meter-event identifier."""

    __tablename__ = "credit_transactions"

    manager_id: UUID = Field(index=True, nullable=False)
    sales_rep_id: Optional[UUID] = Field(default=None, index=True)
    amount: int = Field(nullable=False)
    reason: str = Field(max_length=255)
    usage_event_id: Optional[str] = Field(default=None, unique=True, max_length=255)
    created_at: datetime = Field(
        default_factory=utc_now,
        nullable=False,
        sa_type=DateTime(timezone=True),
    )
