"""
Unit tests for the subscription reconciliation script.
"""

from uuid import uuid4

import pytest

from scripts.reconcile_subscriptions import reconcile_subscriptions


def _stripe_sub(sub_id, status, item_id=None):
    items = []
    if item_id:
        items.append({
            "id": item_id,
            "price": {"id": "price_metered", "recurring": {"usage_type": "metered"}},
        })
    return {"id": sub_id, "status": status, "items": {"data": items}}


@pytest.fixture
def rows(fake_repos):
    user_id = uuid4()
    subs = fake_repos.subscriptions
    subs.add_row(subscription_id="sub_same", user_id=user_id, credits_subscription_item_id="si_same")
    subs.add_row(subscription_id="sub_drift", user_id=user_id, status="incomplete")
    subs.add_row(subscription_id="sub_gone", user_id=user_id)
    subs.add_row(subscription_id="sub_closed", user_id=user_id, status="canceled")
    return subs


@pytest.fixture
def stripe_state(mock_stripe):
    remote = {
        "sub_same": _stripe_sub("sub_same", "active", "si_same"),
        "sub_drift": _stripe_sub("sub_drift", "past_due", "si_new"),
    }

    async def get_subscription(subscription_id):
        return remote.get(subscription_id)

    mock_stripe.get_subscription.side_effect = get_subscription
    return remote


class TestReconcile:

    @pytest.mark.asyncio
    async def test_repairs_drift(self, fake_repos, mock_stripe, rows, stripe_state):
        stats = await reconcile_subscriptions(fake_repos, mock_stripe, metered_price_id="price_metered")

        assert stats == {"checked": 3, "updated": 1, "unchanged": 1, "missing": 1}
        drift = await rows.get_by_subscription_id("sub_drift")
        assert drift.status == "past_due"
        assert drift.credits_subscription_item_id == "si_new"

    @pytest.mark.asyncio
    async def test_dry_run_writes_nothing(self, fake_repos, mock_stripe, rows, stripe_state):
        stats = await reconcile_subscriptions(fake_repos, mock_stripe, dry_run=True)

        assert stats["updated"] == 1
        drift = await rows.get_by_subscription_id("sub_drift")
        assert drift.status == "incomplete"
        assert drift.credits_subscription_item_id is None
