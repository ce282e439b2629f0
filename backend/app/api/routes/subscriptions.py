"""
Subscription API Routes

REST API endpoints for billing: checkout, portal, details, metered usage,
cancellation and the post-checkout activation wait.
"""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query

from app.api.dependencies import (
    ActivationNotifierDep,
    CurrentUserDep,
    RepositoriesDep,
    StripeServiceDep,
)
from app.config.settings import get_settings
from app.domain.subscription import (
    ActivationResponse,
    CancelResponse,
    CheckoutResponse,
    CreateCheckoutRequest,
    IncrementCreditsRequest,
    IncrementCreditsResponse,
    PortalResponse,
    PortalSessionRequest,
    SubscriptionDetailsResponse,
)
from app.infrastructure.services.billing_service import BillingService


logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Dependencies
# =============================================================================

def get_billing_service(
    repos: RepositoriesDep,
    stripe_service: StripeServiceDep,
    notifier: ActivationNotifierDep,
) -> BillingService:
    return BillingService(repos, stripe_service, get_settings(), notifier)


BillingServiceDep = Annotated[BillingService, Depends(get_billing_service)]


# =============================================================================
# Checkout / Portal
# =============================================================================

@router.post("/subscriptions/checkout", response_model=CheckoutResponse)
async def create_checkout_session(
    request: CreateCheckoutRequest,
    user: CurrentUserDep,
    billing: BillingServiceDep,
):
    """
    Create a Stripe Checkout session for the base plan plus metered credits.

    Returns:
        CheckoutResponse with the hosted checkout URL and session ID
    """
    return await billing.create_checkout(user.id, user.email, request)


@router.post("/subscriptions/portal", response_model=PortalResponse)
async def create_portal_session(
    user: CurrentUserDep,
    billing: BillingServiceDep,
    request: Optional[PortalSessionRequest] = None,
):
    """Create a Stripe Customer Portal session for the billing owner."""
    return await billing.create_portal(user.id, request.return_url if request else None)


# =============================================================================
# Current Cycle
# =============================================================================

@router.get("/subscriptions/details", response_model=SubscriptionDetailsResponse)
async def get_subscription_details(
    user: CurrentUserDep,
    billing: BillingServiceDep,
):
    return await billing.get_details(user.id)


@router.post("/subscriptions/credits/increment", response_model=IncrementCreditsResponse)
async def increment_credits(
    user: CurrentUserDep,
    billing: BillingServiceDep,
    request: Optional[IncrementCreditsRequest] = None,
):
    """
    Report consumed credits to the billing meter.

    ``total_usage`` is the billing owner's usage in the current cycle, or 0
    when the local wallet could not be updated.
    """
    amount = request.amount if request else 1
    return await billing.increment_usage(user.id, amount)


# =============================================================================
# Cancellation / Activation
# =============================================================================

@router.post("/subscriptions/cancel", response_model=CancelResponse, response_model_exclude_none=True)
async def cancel_subscriptions(
    user: CurrentUserDep,
    billing: BillingServiceDep,
):
    """Cancel every open subscription of the caller, invoicing accrued usage."""
    return await billing.cancel_all(user.id, user.email)


@router.get("/subscriptions/activation", response_model=ActivationResponse)
async def wait_for_activation(
    user: CurrentUserDep,
    billing: BillingServiceDep,
    timeout: Optional[float] = Query(None, ge=0),
):
    """Wait for a freshly purchased subscription to become active."""
    return await billing.wait_for_activation(user.id, timeout)
