#!/usr/bin/env python3
"""
Subscription Reconciliation Script

Re-reads every non-canceled local subscription from Stripe and rewrites its
status and credits item, repairing drift left by missed webhooks.
Run as a cron job or manually: python -m scripts.reconcile_subscriptions

Usage:
    python -m scripts.reconcile_subscriptions            # Apply fixes
    python -m scripts.reconcile_subscriptions --dry-run  # Only report drift
"""

import asyncio
import argparse
import logging
from typing import Optional

# Add parent directory to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.config.settings import settings
from app.domain.subscription import parse_status
from app.infrastructure.db.database import close_db, init_db
from app.infrastructure.db.unit_of_work import Repositories, repositories_scope
from app.infrastructure.payments.stripe_service import StripeService, select_metered_item

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def reconcile_subscriptions(
    repos: Repositories,
    stripe_service: StripeService,
    metered_price_id: Optional[str] = None,
    dry_run: bool = False,
) -> dict:
    """
    Align local subscription rows with Stripe.

    Returns:
        Dict with reconciliation statistics
    """
    stats = {"checked": 0, "updated": 0, "unchanged": 0, "missing": 0}

    for row in await repos.subscriptions.list_unsettled():
        stats["checked"] += 1

        stripe_sub = await stripe_service.get_subscription(row.subscription_id)
        if stripe_sub is None:
            logger.warning(f"Subscription {row.subscription_id} not found on Stripe")
            stats["missing"] += 1
            continue

        status = parse_status(stripe_sub.get("status"))
        item = select_metered_item(stripe_sub, metered_price_id)
        item_id = item["id"] if item else row.credits_subscription_item_id

        if status.value == row.status and item_id == row.credits_subscription_item_id:
            stats["unchanged"] += 1
            continue

        logger.info(
            f"Subscription {row.subscription_id}: status {row.status} -> {status.value}, "
            f"credits item {row.credits_subscription_item_id} -> {item_id}"
        )
        stats["updated"] += 1
        if dry_run:
            continue

        await repos.subscriptions.update_status(row.subscription_id, status)
        if item_id and item_id != row.credits_subscription_item_id:
            await repos.subscriptions.set_credits_item(row.subscription_id, item_id)

    return stats


async def main():
    parser = argparse.ArgumentParser(description="Reconcile local subscriptions with Stripe")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report drift without writing changes"
    )
    args = parser.parse_args()

    if not settings.stripe_secret_key:
        logger.error("STRIPE_SECRET_KEY is required")
        sys.exit(1)

    stripe_service = StripeService(api_key=settings.stripe_secret_key)

    await init_db()
    try:
        async with repositories_scope() as repos:
            stats = await reconcile_subscriptions(
                repos,
                stripe_service,
                metered_price_id=settings.stripe_price_metered,
                dry_run=args.dry_run,
            )
    finally:
        await close_db()

    print("\n=== Reconciliation Complete ===")
    print(f"Checked: {stats['checked']}")
    print(f"Updated: {stats['updated']}{' (dry run)' if args.dry_run else ''}")
    print(f"Unchanged: {stats['unchanged']}")
    print(f"Missing on Stripe: {stats['missing']}")


if __name__ == "__main__":
    asyncio.run(main())
