"""
Billing Service

Orchestrates Stripe and the local billing tables for the subscription
endpoints: checkout, portal, details, usage increments, cancellation and
the post-checkout activation wait.

Stripe is always written first. Local writes that follow a successful
Stripe call run in a savepoint and are logged, never surfaced.
"""

import asyncio
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError

from app.config.settings import Settings
from app.domain.subscription import (
    ACTIVATED_STATUSES,
    CANCELLABLE_STATUSES,
    CREDIT_USAGE_REASON,
    PlanType,
    SubscriptionStatus,
    ActivationResponse,
    CancelResponse,
    CancelResult,
    CheckoutResponse,
    CreateCheckoutRequest,
    IncrementCreditsResponse,
    PortalResponse,
    SubscriptionDetailsResponse,
    cancel_summary,
    parse_status,
)
from app.infrastructure.db.models import CreditsWallet, Subscription
from app.infrastructure.db.unit_of_work import Repositories
from app.infrastructure.exceptions import (
    ConfigurationError,
    NotFoundError,
    StripeServiceError,
    ValidationError,
)
from app.infrastructure.payments.stripe_service import (
    StripeService,
    object_id,
    price_meter,
    select_metered_item,
    subscription_period_end,
    subscription_period_start,
)
from app.infrastructure.services.activation_notifier import SubscriptionActivationNotifier


logger = logging.getLogger(__name__)


NO_ACTIVE_SUBSCRIPTION = "No active subscription found"
NOTHING_TO_CANCEL = "No active subscriptions found to cancel."

_CANCELLABLE_VALUES = [status.value for status in CANCELLABLE_STATUSES]


def usage_charge(price: Dict[str, Any], credits: int) -> Optional[int]:
    """Amount in minor units for ``credits`` at the price's unit amount."""
    unit_amount = price.get("unit_amount")
    if unit_amount is not None:
        return int(unit_amount) * credits
    decimal_amount = price.get("unit_amount_decimal")
    if decimal_amount is not None:
        return int((Decimal(str(decimal_amount)) * credits).to_integral_value())
    return None


class BillingService:
    """Billing use cases for one request's unit of work."""

    def __init__(
        self,
        repos: Repositories,
        stripe_service: StripeService,
        settings: Settings,
        notifier: SubscriptionActivationNotifier,
    ):
        self._repos = repos
        self._stripe = stripe_service
        self._settings = settings
        self._notifier = notifier

    # =========================================================================
    # Lookups
    # =========================================================================

    async def _resolve_email(self, user_id: UUID, email: Optional[str]) -> Optional[str]:
        if email:
            return email
        profile = await self._repos.profiles.get_by_id(user_id)
        return profile.email if profile else None

    async def _billable_subscription(self, user_id: UUID) -> Subscription:
        owner_id = await self._repos.profiles.resolve_billing_owner_id(user_id)
        subscription = await self._repos.subscriptions.get_billable_for_user(owner_id)
        if subscription is None:
            raise NotFoundError(NO_ACTIVE_SUBSCRIPTION, details={"user_id": str(user_id)})
        return subscription

    # =========================================================================
    # Checkout / Portal / Details
    # =========================================================================

    async def create_checkout(
        self,
        user_id: UUID,
        email: Optional[str],
        request: CreateCheckoutRequest,
    ) -> CheckoutResponse:
        try:
            plan = PlanType(request.plan_type)
        except ValueError:
            raise ValidationError(
                "plan_type must be monthly or annual",
                details={"plan_type": request.plan_type},
            )

        base_price_id = (
            self._settings.stripe_price_monthly
            if plan == PlanType.MONTHLY
            else self._settings.stripe_price_annual
        )
        missing = [
            key
            for key, value in (
                (f"STRIPE_PRICE_{plan.value.upper()}", base_price_id),
                ("STRIPE_PRICE_METERED", self._settings.stripe_price_metered),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError("Stripe prices are not configured", missing_keys=missing)

        frontend = self._settings.frontend_url
        session = await self._stripe.create_checkout_session(
            user_id=str(user_id),
            plan_type=plan.value,
            base_price_id=base_price_id,
            metered_price_id=self._settings.stripe_price_metered,
            success_url=request.success_url
            or f"{frontend}/dashboard?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=request.cancel_url or f"{frontend}/subscription",
            customer_email=await self._resolve_email(user_id, email),
        )
        return CheckoutResponse(url=session.url, session_id=session.id)

    async def create_portal(self, user_id: UUID, return_url: Optional[str]) -> PortalResponse:
        subscription = await self._billable_subscription(user_id)

        customer_id = subscription.stripe_customer_id
        if not customer_id:
            stripe_sub = await self._stripe.get_subscription(subscription.subscription_id)
            customer_id = object_id(stripe_sub.get("customer")) if stripe_sub else None
        if not customer_id:
            raise NotFoundError(NO_ACTIVE_SUBSCRIPTION, details={"user_id": str(user_id)})

        session = await self._stripe.create_portal_session(
            customer_id=customer_id,
            return_url=return_url or f"{self._settings.frontend_url}/settings",
        )
        return PortalResponse(url=session.url)

    async def get_details(self, user_id: UUID) -> SubscriptionDetailsResponse:
        subscription = await self._billable_subscription(user_id)
        stripe_sub = await self._stripe.get_subscription(subscription.subscription_id)

        cycle_start = subscription_period_start(stripe_sub) if stripe_sub else None
        wallet = await self._repos.credits.get_wallet(subscription.user_id)
        usage = 0
        if wallet and (cycle_start is None or wallet.billing_cycle_anchor == cycle_start):
            usage = wallet.used_credits_this_month

        return SubscriptionDetailsResponse(
            next_billing_date=subscription_period_end(stripe_sub) if stripe_sub else None,
            usage_credits=usage,
            plan_type=subscription.plan_type,
            status=parse_status(stripe_sub.get("status") if stripe_sub else subscription.status),
        )

    # =========================================================================
    # Metered Usage
    # =========================================================================

    async def _find_metered_item_id(self, subscription: Subscription) -> Optional[str]:
        """Locate the credits item on Stripe when none is cached locally."""
        metered_price_id = self._settings.stripe_price_metered
        stripe_sub = await self._stripe.get_subscription(subscription.subscription_id)
        if stripe_sub is None:
            return None

        item = select_metered_item(stripe_sub, metered_price_id)
        if item is not None:
            await self._cache_credits_item(subscription.subscription_id, item["id"])
            return item["id"]

        customer_id = object_id(stripe_sub.get("customer"))
        if not customer_id:
            return None
        for other in await self._stripe.list_customer_subscriptions(customer_id, status="active"):
            item = select_metered_item(other, metered_price_id)
            if item is not None:
                return item["id"]
        return None

    async def _cache_credits_item(self, subscription_id: str, item_id: str) -> None:
        try:
            async with self._repos.savepoint():
                await self._repos.subscriptions.set_credits_item(subscription_id, item_id)
        except SQLAlchemyError as e:
            logger.warning(f"Could not cache credits item for {subscription_id}: {e}")

    async def increment_usage(self, user_id: UUID, amount: int) -> IncrementCreditsResponse:
        """
        Report ``amount`` credits to the billing meter and mirror them in
        the billing owner's wallet.

        Raises:
            NotFoundError: no billable subscription
            ValidationError: no metered item, or the item has no meter
            StripeServiceError: Stripe rejected a call
        """
        subscription = await self._billable_subscription(user_id)
        owner_id = subscription.user_id

        item_id = subscription.credits_subscription_item_id
        if not item_id:
            item_id = await self._find_metered_item_id(subscription)
        if not item_id:
            raise ValidationError("No metered subscription item found")

        item = await self._stripe.get_subscription_item(item_id)
        if not price_meter(item):
            raise ValidationError(
                "Subscription item is not attached to a billing meter",
                details={"subscription_item_id": item_id},
            )

        item_subscription_id = object_id(item.get("subscription")) or subscription.subscription_id
        stripe_sub = await self._stripe.get_subscription(item_subscription_id)
        customer_id = (
            object_id(stripe_sub.get("customer")) if stripe_sub else None
        ) or subscription.stripe_customer_id
        if not customer_id:
            raise ValidationError("Subscription has no Stripe customer")

        usage_event_id = str(uuid4())
        await self._stripe.report_meter_event(
            event_name=self._settings.stripe_meter_event_name,
            customer_id=customer_id,
            value=amount,
            identifier=usage_event_id,
        )

        total_usage = await self._record_usage(
            owner_id=owner_id,
            user_id=user_id,
            amount=amount,
            usage_event_id=usage_event_id,
            stripe_sub=stripe_sub,
        )

        return IncrementCreditsResponse(
            data={"id": usage_event_id, "quantity": amount, "object": "billing.meter_event"},
            total_usage=total_usage,
        )

    async def _record_usage(
        self,
        owner_id: UUID,
        user_id: UUID,
        amount: int,
        usage_event_id: str,
        stripe_sub: Optional[Dict[str, Any]],
    ) -> int:
        cycle_anchor = subscription_period_start(stripe_sub) if stripe_sub else None
        try:
            async with self._repos.savepoint():
                wallet = await self._repos.credits.record_usage(
                    manager_id=owner_id,
                    sales_rep_id=user_id,
                    amount=amount,
                    reason=CREDIT_USAGE_REASON,
                    usage_event_id=usage_event_id,
                    cycle_anchor=cycle_anchor,
                )
        except SQLAlchemyError as e:
            logger.error(f"Usage {usage_event_id} reported to Stripe but wallet update failed: {e}")
            return 0

        if wallet is None:
            wallet = await self._repos.credits.get_wallet(owner_id)
        return wallet.used_credits_this_month if wallet else 0

    # =========================================================================
    # Cancellation
    # =========================================================================

    async def _usage_wallet(self, user_id: UUID) -> Optional[CreditsWallet]:
        wallet = await self._repos.credits.get_wallet(user_id)
        if wallet is None:
            owner_id = await self._repos.profiles.resolve_billing_owner_id(user_id)
            if owner_id != user_id:
                wallet = await self._repos.credits.get_wallet(owner_id)
        return wallet

    @staticmethod
    def _unbilled_usage(wallet: Optional[CreditsWallet], subscription: Dict[str, Any]) -> int:
        """Credits of the subscription's current cycle; earlier cycles were invoiced already."""
        if wallet is None:
            return 0
        cycle_start = subscription_period_start(subscription)
        if cycle_start is not None and wallet.billing_cycle_anchor != cycle_start:
            return 0
        return wallet.used_credits_this_month

    async def _cancellation_targets(
        self,
        user_id: UUID,
        email: Optional[str],
    ) -> List[Dict[str, Any]]:
        customer = await self._stripe.find_customer_by_email(email) if email else None
        if customer is not None:
            subscriptions = await self._stripe.list_customer_subscriptions(customer["id"])
            return [sub for sub in subscriptions if sub.get("status") in _CANCELLABLE_VALUES]

        logger.warning(f"No Stripe customer for {email}, falling back to local subscriptions")
        targets: List[Dict[str, Any]] = []
        for row in await self._repos.subscriptions.list_billable_for_user(user_id):
            stripe_sub = await self._stripe.get_subscription(row.subscription_id)
            targets.append(
                stripe_sub
                if stripe_sub is not None
                else {"id": row.subscription_id, "customer": row.stripe_customer_id}
            )
        return targets

    async def cancel_all(self, user_id: UUID, email: Optional[str]) -> CancelResponse:
        """
        Cancel every open subscription of the caller.

        Each subscription is processed independently; one failure does not
        stop the others.
        """
        email = await self._resolve_email(user_id, email)
        targets = await self._cancellation_targets(user_id, email)
        if not targets:
            return CancelResponse(message=NOTHING_TO_CANCEL, results=[])

        wallet = await self._usage_wallet(user_id)
        invoiced = False
        results: List[CancelResult] = []
        for subscription in targets:
            if not invoiced:
                credits = self._unbilled_usage(wallet, subscription)
                invoiced = bool(credits) and await self._invoice_usage(subscription, credits)
            results.append(await self._cancel_one(subscription["id"]))

        return CancelResponse(message=cancel_summary(results), results=results)

    async def _invoice_usage(self, subscription: Dict[str, Any], credits: int) -> bool:
        """Bill accrued credits before the subscription disappears."""
        item = select_metered_item(subscription, self._settings.stripe_price_metered)
        customer_id = object_id(subscription.get("customer"))
        if item is None or not customer_id:
            return False

        price = item.get("price") or {}
        amount = usage_charge(price, credits)
        if not amount:
            return False

        try:
            await self._stripe.create_invoice_item(
                customer_id=customer_id,
                subscription_id=subscription["id"],
                amount=amount,
                currency=price.get("currency") or "eur",
                description=f"{CREDIT_USAGE_REASON} ({credits} credits)",
            )
        except StripeServiceError as e:
            logger.error(f"Could not invoice {credits} credits on {subscription['id']}: {e}")
            return False
        return True

    async def _cancel_one(self, subscription_id: str) -> CancelResult:
        try:
            await self._stripe.cancel_subscription(subscription_id)
            result = CancelResult(id=subscription_id, success=True)
        except StripeServiceError as e:
            result = CancelResult(id=subscription_id, success=False, error=e.message)

        try:
            async with self._repos.savepoint():
                await self._repos.subscriptions.update_status(
                    subscription_id, SubscriptionStatus.CANCELED
                )
        except SQLAlchemyError as e:
            logger.error(f"Error updating subscription {subscription_id} locally: {e}")
        return result

    # =========================================================================
    # Activation
    # =========================================================================

    async def _activation_status(self, user_id: UUID) -> Optional[SubscriptionStatus]:
        subscription = await self._repos.subscriptions.get_latest_for_user(user_id)
        # Waiters must not hold a pooled connection the activating webhook needs.
        await self._repos.release()
        return parse_status(subscription.status) if subscription else None

    async def wait_for_activation(
        self,
        user_id: UUID,
        timeout: Optional[float] = None,
    ) -> ActivationResponse:
        """
        Block until the caller's newest subscription is active or trialing.

        Waits for the webhook handler's signal, then polls the local row a
        bounded number of times.
        """
        status = await self._activation_status(user_id)
        if status in ACTIVATED_STATUSES:
            return ActivationResponse(active=True, status=status)

        limit = self._settings.activation_wait_timeout_seconds
        timeout = limit if timeout is None else max(0.0, min(timeout, limit))
        if timeout:
            await self._notifier.wait(str(user_id), timeout)

        attempts = self._settings.activation_poll_attempts
        for attempt in range(attempts):
            status = await self._activation_status(user_id)
            if status in ACTIVATED_STATUSES:
                return ActivationResponse(active=True, status=status)
            if attempt < attempts - 1:
                await asyncio.sleep(self._settings.activation_poll_interval_seconds)

        return ActivationResponse(active=False, status=status)
