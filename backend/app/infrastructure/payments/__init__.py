"""
Payments Infrastructure Module

Stripe billing service and helpers for reading Stripe objects.
"""

from app.infrastructure.payments.stripe_service import (
    StripeService,
    select_metered_item,
)

__all__ = ["StripeService", "select_metered_item"]
