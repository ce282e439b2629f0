"""
Stripe Webhook Handler

Reconciles the local subscription mirror with Stripe events.
Implements idempotent event processing backed by the database (survives restarts).

Handled events:
- checkout.session.completed: create the subscription row, tag the credits item
- customer.subscription.created / updated: sync status, plan and credits item
- customer.subscription.deleted: mark canceled
- invoice.payment_succeeded: mark active
- invoice.payment_failed: mark past_due
"""

import logging
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Request, status

from app.api.dependencies import (
    ActivationNotifierDep,
    RepositoriesScopeDep,
    StripeServiceDep,
)
from app.config.settings import get_settings
from app.domain.subscription import (
    ACTIVATED_STATUSES,
    CREDITS_ITEM_ROLE,
    SubscriptionRole,
    SubscriptionStatus,
    parse_status,
)
from app.infrastructure.db.models import Subscription
from app.infrastructure.db.unit_of_work import Repositories
from app.infrastructure.exceptions import StripeServiceError
from app.infrastructure.payments.stripe_service import (
    StripeService,
    invoice_subscription_id,
    object_id,
    select_metered_item,
)


logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Webhook Endpoint
# =============================================================================

@router.post("/webhooks/stripe")
async def stripe_webhook(
    request: Request,
    stripe_service: StripeServiceDep,
    scope: RepositoriesScopeDep,
    notifier: ActivationNotifierDep,
):
    """
    Handle Stripe webhook events.

    Verifies the signature, skips already-processed events and acknowledges
    everything else with 200, including events whose processing failed.
    """
    payload = await request.body()
    signature = request.headers.get("stripe-signature")

    if not signature:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing Stripe signature"
        )

    try:
        event = stripe_service.verify_webhook_signature(payload, signature)
    except StripeServiceError as e:
        logger.error(f"Webhook signature verification failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid signature"
        )

    event_id = event.get("id")
    event_type = event.get("type")

    async with scope() as repos:
        if await repos.webhook_events.is_processed(event_id):
            logger.info(f"Event {event_id} already processed, skipping")
            return {"status": "already_processed"}

    logger.info(f"Processing webhook event: {event_type} ({event_id})")

    try:
        async with scope() as repos:
            subscription = await dispatch_event(
                event_type, event["data"]["object"], repos, stripe_service
            )
            await repos.webhook_events.mark_processed(event_id, event_type)
    except Exception as e:
        logger.error(f"Error processing webhook {event_type} ({event_id}): {e}")
        return {"status": "error", "message": str(e)}

    if subscription is not None and parse_status(subscription.status) in ACTIVATED_STATUSES:
        notifier.notify(str(subscription.user_id))

    return {"status": "success"}


async def dispatch_event(
    event_type: str,
    data: Dict[str, Any],
    repos: Repositories,
    stripe_service: StripeService,
) -> Optional[Subscription]:
    """
    Route an event to its handler.

    Returns:
        The subscription row the event touched, when there is one
    """
    if event_type == "checkout.session.completed":
        return await handle_checkout_completed(data, repos, stripe_service)
    if event_type in ("customer.subscription.created", "customer.subscription.updated"):
        return await handle_subscription_upserted(data, repos)
    if event_type == "customer.subscription.deleted":
        return await handle_subscription_deleted(data, repos)
    if event_type == "invoice.payment_succeeded":
        return await handle_invoice_payment_succeeded(data, repos)
    if event_type == "invoice.payment_failed":
        return await handle_invoice_payment_failed(data, repos)

    logger.info(f"Unhandled event type: {event_type}")
    return None


# =============================================================================
# Event Handlers
# =============================================================================

async def handle_checkout_completed(
    session: Dict[str, Any],
    repos: Repositories,
    stripe_service: StripeService,
) -> Optional[Subscription]:
    """
    Handle successful checkout session completion.

    Creates the local row from the session metadata and marks the metered
    line item as the credits item.
    """
    metadata = session.get("metadata") or {}
    user_id = metadata.get("user_id")
    plan_type = metadata.get("plan_type")

    if not user_id:
        logger.error(f"Checkout {session.get('id')} completed without user_id in metadata")
        return None

    subscription_id = object_id(session.get("subscription"))
    if not subscription_id:
        logger.error(f"Checkout {session.get('id')} completed without a subscription")
        return None

    stripe_sub = await stripe_service.get_subscription(subscription_id)
    if stripe_sub is None:
        raise StripeServiceError(f"Could not retrieve subscription {subscription_id}")

    item = select_metered_item(stripe_sub, get_settings().stripe_price_metered)
    subscription = await repos.subscriptions.upsert(
        subscription_id=subscription_id,
        user_id=UUID(str(user_id)),
        status=parse_status(stripe_sub.get("status")),
        stripe_customer_id=object_id(session.get("customer")) or object_id(stripe_sub.get("customer")),
        plan_type=plan_type,
        subscription_role=SubscriptionRole.PLATFORM.value,
        credits_subscription_item_id=item["id"] if item else None,
    )

    if item is not None and (item.get("metadata") or {}).get("line_role") != CREDITS_ITEM_ROLE:
        try:
            await stripe_service.tag_credits_item(item["id"])
        except StripeServiceError as e:
            logger.warning(f"Could not tag credits item {item['id']}: {e}")

    logger.info(f"Checkout completed: subscription {subscription_id} for user {user_id} ({plan_type})")
    return subscription


async def handle_subscription_upserted(
    subscription_data: Dict[str, Any],
    repos: Repositories,
) -> Optional[Subscription]:
    """
    Handle subscription creation and updates from Stripe.

    The owner comes from the subscription metadata or an existing row;
    subscriptions with neither are skipped.
    """
    subscription_id = subscription_data.get("id")
    metadata = subscription_data.get("metadata") or {}

    existing = await repos.subscriptions.get_by_subscription_id(subscription_id)
    user_id = metadata.get("user_id") or (existing.user_id if existing else None)
    if not user_id:
        logger.info(f"Subscription {subscription_id} has no known owner, skipping")
        return None

    item = select_metered_item(subscription_data, get_settings().stripe_price_metered)
    return await repos.subscriptions.upsert(
        subscription_id=subscription_id,
        user_id=UUID(str(user_id)),
        status=parse_status(subscription_data.get("status")),
        stripe_customer_id=object_id(subscription_data.get("customer")),
        plan_type=metadata.get("plan_type"),
        credits_subscription_item_id=item["id"] if item else None,
    )


async def handle_subscription_deleted(
    subscription_data: Dict[str, Any],
    repos: Repositories,
) -> Optional[Subscription]:
    subscription_id = subscription_data.get("id")
    if await repos.subscriptions.update_status(subscription_id, SubscriptionStatus.CANCELED):
        logger.info(f"Subscription {subscription_id} canceled")
    return None


async def handle_invoice_payment_succeeded(
    invoice: Dict[str, Any],
    repos: Repositories,
) -> Optional[Subscription]:
    subscription_id = invoice_subscription_id(invoice)
    if not subscription_id:
        return None

    if not await repos.subscriptions.update_status(subscription_id, SubscriptionStatus.ACTIVE):
        logger.info(f"Paid invoice for unknown subscription {subscription_id}")
        return None
    return await repos.subscriptions.get_by_subscription_id(subscription_id)


async def handle_invoice_payment_failed(
    invoice: Dict[str, Any],
    repos: Repositories,
) -> Optional[Subscription]:
    subscription_id = invoice_subscription_id(invoice)
    if not subscription_id:
        return None

    if await repos.subscriptions.update_status(subscription_id, SubscriptionStatus.PAST_DUE):
        logger.warning(f"Payment failed for subscription {subscription_id}, set to past_due")
    return None
