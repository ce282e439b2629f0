"""
Subscription Domain Models

Domain models for billing following Clean Architecture.
Enums, DTOs and pure business rules for the billing bounded context.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class SubscriptionStatus(str, Enum):
    """Subscription lifecycle status, mirrored from Stripe."""
    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    UNPAID = "unpaid"


class PlanType(str, Enum):
    """Purchasable plans."""
    MONTHLY = "monthly"
    ANNUAL = "annual"


class SubscriptionRole(str, Enum):
    """Which part of the product a Stripe subscription pays for."""
    PLATFORM = "platform"
    USAGE = "usage"


class ProfileRole(str, Enum):
    """Application roles."""
    MANAGER = "manager"
    SALES_REPRESENTATIVE = "sales_representative"


# Statuses that still entitle the owner to report usage.
BILLABLE_STATUSES = (
    SubscriptionStatus.ACTIVE,
    SubscriptionStatus.TRIALING,
    SubscriptionStatus.PAST_DUE,
)

# Stripe statuses that a cancel request acts on.
CANCELLABLE_STATUSES = (
    SubscriptionStatus.ACTIVE,
    SubscriptionStatus.TRIALING,
    SubscriptionStatus.PAST_DUE,
    SubscriptionStatus.UNPAID,
)

ACTIVATED_STATUSES = (
    SubscriptionStatus.ACTIVE,
    SubscriptionStatus.TRIALING,
)

CREDITS_ITEM_ROLE = "credits"
CREDIT_USAGE_REASON = "Voice transcript credit usage"


def parse_status(value: Optional[str]) -> SubscriptionStatus:
    """Map a Stripe status string to the local enum."""
    try:
        return SubscriptionStatus(value)
    except ValueError:
        return SubscriptionStatus.INCOMPLETE


# =============================================================================
# Request/Response DTOs
# =============================================================================

class CreateCheckoutRequest(BaseModel):
    """Request DTO for creating a checkout session."""
    plan_type: str = Field(..., description="monthly or annual")
    success_url: Optional[str] = Field(None, description="Redirect URL after successful payment")
    cancel_url: Optional[str] = Field(None, description="Redirect URL after cancelled payment")


class CheckoutResponse(BaseModel):
    """Response DTO for checkout session creation."""
    url: str
    session_id: str


class PortalSessionRequest(BaseModel):
    """Request DTO for creating a billing portal session."""
    return_url: Optional[str] = Field(None, description="URL to return to after portal session")


class PortalResponse(BaseModel):
    """Response DTO for portal session creation."""
    url: str


class IncrementCreditsRequest(BaseModel):
    """Request DTO for reporting metered usage."""
    amount: int = Field(default=1, ge=1, description="Credits consumed")


class IncrementCreditsResponse(BaseModel):
    """Response DTO for a usage report."""
    success: bool = True
    data: Dict[str, Any]
    total_usage: int


class CancelResult(BaseModel):
    """Outcome of cancelling one Stripe subscription."""
    id: str
    success: bool
    error: Optional[str] = None


class CancelResponse(BaseModel):
    """Response DTO for a cancel request."""
    message: str
    results: List[CancelResult] = []


class SubscriptionDetailsResponse(BaseModel):
    """Response DTO for the current billing cycle."""
    next_billing_date: Optional[datetime] = None
    usage_credits: int = 0
    plan_type: Optional[str] = None
    status: SubscriptionStatus


class ActivationResponse(BaseModel):
    """Response DTO for the post-checkout activation wait."""
    active: bool
    status: Optional[SubscriptionStatus] = None


# =============================================================================
# Business Rules
# =============================================================================

def roll_monthly_usage(
    used_this_month: int,
    stored_anchor: Optional[datetime],
    cycle_anchor: Optional[datetime],
    amount: int,
) -> int:
    """
    Apply an increment to the billing-cycle counter.

    A cycle start that differs from the stored anchor means a new cycle
    began, so the counter restarts at ``amount``.
    """
    if stored_anchor != cycle_anchor:
        return amount
    return (used_this_month or 0) + amount


def cancel_summary(results: List[CancelResult]) -> str:
    succeeded = sum(1 for result in results if result.success)
    return f"Successfully processed {succeeded} of {len(results)} subscriptions."
