"""
Stripe Payment Service

Clean Architecture infrastructure service for Stripe billing.
Handles hosted checkout, the billing portal, metered usage, cancellation
and webhook verification.

The API key is passed on every call instead of being assigned to the
``stripe`` module, so several services (and tests) can coexist.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import stripe
from stripe import StripeError

from app.domain.subscription import CREDITS_ITEM_ROLE
from app.infrastructure.exceptions import StripeServiceError


logger = logging.getLogger(__name__)


# =============================================================================
# Stripe Object Helpers
# =============================================================================

def _timestamp(value: Optional[int]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def object_id(value: Any) -> Optional[str]:
    """Stripe expandable field: either an id string or an expanded object."""
    if value is None or isinstance(value, str):
        return value
    return value.get("id")


def subscription_items(subscription: Dict[str, Any]) -> List[Dict[str, Any]]:
    items = subscription.get("items") or {}
    return list(items.get("data") or [])


def select_metered_item(
    subscription: Dict[str, Any],
    metered_price_id: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    """
    Pick the credits line item of a subscription.

    Selection order: an item tagged ``metadata.line_role = credits``, an item
    on the configured metered price, an item whose price is metered. Item
    position is never used.
    """
    items = subscription_items(subscription)

    for item in items:
        if (item.get("metadata") or {}).get("line_role") == CREDITS_ITEM_ROLE:
            return item

    if metered_price_id:
        for item in items:
            if (item.get("price") or {}).get("id") == metered_price_id:
                return item

    for item in items:
        recurring = (item.get("price") or {}).get("recurring") or {}
        if recurring.get("usage_type") == "metered":
            return item

    return None


def price_meter(item: Dict[str, Any]) -> Optional[str]:
    """Billing meter id the item's price reports to, if any."""
    recurring = (item.get("price") or {}).get("recurring") or {}
    return recurring.get("meter")


def subscription_period_start(subscription: Dict[str, Any]) -> Optional[datetime]:
    """
    Start of the current billing cycle.

    Newer API versions moved the period fields from the subscription onto
    its items.
    """
    start = subscription.get("current_period_start")
    if not start:
        items = subscription_items(subscription)
        start = items[0].get("current_period_start") if items else None
    return _timestamp(start)


def subscription_period_end(subscription: Dict[str, Any]) -> Optional[datetime]:
    end = subscription.get("current_period_end")
    if not end:
        items = subscription_items(subscription)
        end = items[0].get("current_period_end") if items else None
    return _timestamp(end)


def invoice_subscription_id(invoice: Dict[str, Any]) -> Optional[str]:
    """Subscription an invoice belongs to, across API versions."""
    subscription = object_id(invoice.get("subscription"))
    if subscription:
        return subscription

    parent = invoice.get("parent") or {}
    details = parent.get("subscription_details") or {}
    return object_id(details.get("subscription"))


class StripeService:
    """
    Stripe payment processing service.

    Methods are thin wrappers that translate ``StripeError`` into
    ``StripeServiceError`` carrying Stripe's HTTP status.
    """

    def __init__(self, api_key: str, webhook_secret: Optional[str] = None):
        self._api_key = api_key
        self._webhook_secret = webhook_secret

    @staticmethod
    def _error(action: str, error: StripeError) -> StripeServiceError:
        detail = error.user_message or str(error)
        logger.error(f"Stripe {action} failed: {error}")
        return StripeServiceError(
            f"Failed to {action}: {detail}",
            status_code=error.http_status,
            original_error=error,
        )

    # =========================================================================
    # Checkout Session (Subscription Flow)
    # =========================================================================

    async def create_checkout_session(
        self,
        user_id: str,
        plan_type: str,
        base_price_id: str,
        metered_price_id: str,
        success_url: str,
        cancel_url: str,
        customer_email: Optional[str] = None,
    ) -> stripe.checkout.Session:
        """
        Create a hosted Checkout Session for the base plan plus credits.

        ``user_id`` and ``plan_type`` are written to both the session and
        the resulting subscription so webhooks can be reconciled without a
        prior local row.
        """
        metadata = {"user_id": user_id, "plan_type": plan_type}
        params: Dict[str, Any] = {
            "mode": "subscription",
            "line_items": [
                {"price": base_price_id, "quantity": 1},
                {"price": metered_price_id},
            ],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
            "subscription_data": {"metadata": metadata},
        }
        if customer_email:
            params["customer_email"] = customer_email

        try:
            session = stripe.checkout.Session.create(api_key=self._api_key, **params)
        except StripeError as e:
            raise self._error("create checkout", e)

        logger.info(f"Created checkout session {session.id} for user {user_id}, plan={plan_type}")
        return session

    # =========================================================================
    # Customer Portal
    # =========================================================================

    async def create_portal_session(
        self,
        customer_id: str,
        return_url: str,
    ) -> stripe.billing_portal.Session:
        try:
            session = stripe.billing_portal.Session.create(
                customer=customer_id,
                return_url=return_url,
                api_key=self._api_key,
            )
        except StripeError as e:
            raise self._error("create portal", e)

        logger.info(f"Created portal session for customer {customer_id}")
        return session

    # =========================================================================
    # Customers and Subscriptions
    # =========================================================================

    async def find_customer_by_email(self, email: str) -> Optional[stripe.Customer]:
        try:
            result = stripe.Customer.search(
                query=f"email:'{email}'",
                limit=1,
                api_key=self._api_key,
            )
        except StripeError as e:
            raise self._error("search customers", e)
        return result.data[0] if result.data else None

    async def get_subscription(self, subscription_id: str) -> Optional[stripe.Subscription]:
        """
        Retrieve a subscription by ID.

        Returns:
            stripe.Subscription or None if it cannot be retrieved
        """
        try:
            return stripe.Subscription.retrieve(subscription_id, api_key=self._api_key)
        except StripeError as e:
            logger.warning(f"Failed to retrieve subscription {subscription_id}: {e}")
            return None

    async def list_customer_subscriptions(
        self,
        customer_id: str,
        status: str = "all",
        limit: int = 10,
    ) -> List[stripe.Subscription]:
        try:
            result = stripe.Subscription.list(
                customer=customer_id,
                status=status,
                limit=limit,
                api_key=self._api_key,
            )
        except StripeError as e:
            raise self._error("list subscriptions", e)
        return list(result.data)

    async def cancel_subscription(self, subscription_id: str) -> stripe.Subscription:
        """Cancel immediately, invoicing outstanding usage with proration."""
        try:
            subscription = stripe.Subscription.cancel(
                subscription_id,
                invoice_now=True,
                prorate=True,
                api_key=self._api_key,
            )
        except StripeError as e:
            raise self._error(f"cancel {subscription_id}", e)

        logger.info(f"Cancelled subscription {subscription_id}")
        return subscription

    # =========================================================================
    # Metered Usage
    # =========================================================================

    async def get_subscription_item(self, item_id: str) -> stripe.SubscriptionItem:
        try:
            return stripe.SubscriptionItem.retrieve(item_id, api_key=self._api_key)
        except StripeError as e:
            raise self._error(f"retrieve subscription item {item_id}", e)

    async def tag_credits_item(self, item_id: str) -> None:
        """Mark a subscription item as the credits line for later selection."""
        try:
            stripe.SubscriptionItem.modify(
                item_id,
                metadata={"line_role": CREDITS_ITEM_ROLE},
                api_key=self._api_key,
            )
        except StripeError as e:
            raise self._error(f"tag subscription item {item_id}", e)

    async def report_meter_event(
        self,
        event_name: str,
        customer_id: str,
        value: int,
        identifier: str,
    ) -> stripe.billing.MeterEvent:
        """
        Report usage to a billing meter.

        ``identifier`` deduplicates the event on Stripe's side.
        """
        try:
            event = stripe.billing.MeterEvent.create(
                event_name=event_name,
                payload={"value": str(value), "stripe_customer_id": customer_id},
                identifier=identifier,
                timestamp=int(time.time()),
                api_key=self._api_key,
            )
        except StripeError as e:
            raise self._error("report usage", e)

        logger.info(f"Reported {value} credits for customer {customer_id} ({identifier})")
        return event

    async def create_invoice_item(
        self,
        customer_id: str,
        subscription_id: str,
        amount: int,
        currency: str,
        description: str,
    ) -> stripe.InvoiceItem:
        try:
            return stripe.InvoiceItem.create(
                customer=customer_id,
                subscription=subscription_id,
                amount=amount,
                currency=currency,
                description=description,
                api_key=self._api_key,
            )
        except StripeError as e:
            raise self._error("create invoice item", e)

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    def verify_webhook_signature(
        self,
        payload: bytes,
        signature: str,
    ) -> stripe.Event:
        """
        Verify webhook signature and construct event.

        Raises:
            StripeServiceError if payload or signature invalid
        """
        if not self._webhook_secret:
            raise StripeServiceError("Stripe webhook secret is not configured")
        try:
            return stripe.Webhook.construct_event(
                payload,
                signature,
                self._webhook_secret,
            )
        except ValueError as e:
            raise StripeServiceError(f"Invalid payload: {e}")
        except stripe.SignatureVerificationError as e:
            raise StripeServiceError(f"Invalid signature: {e}")
