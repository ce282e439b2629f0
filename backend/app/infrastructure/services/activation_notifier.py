"""
Subscription Activation Notifier

In-process signal from the Stripe webhook handler to requests waiting for
a freshly purchased subscription to become active.
"""

import asyncio
import logging
from typing import Dict


logger = logging.getLogger(__name__)


class SubscriptionActivationNotifier:
    """
    One ``asyncio.Event`` per waiting user.

    Signals for users nobody is waiting on are dropped; waiters check the
    database before and after waiting, so a missed signal only costs the
    timeout.
    """

    def __init__(self):
        self._events: Dict[str, asyncio.Event] = {}
        self._waiters: Dict[str, int] = {}

    def notify(self, user_id: str) -> None:
        event = self._events.get(str(user_id))
        if event is not None:
            logger.debug(f"Waking activation waiters for user {user_id}")
            event.set()

    async def wait(self, user_id: str, timeout: float) -> bool:
        """
        Wait for an activation signal.

        Returns:
            True if signalled before ``timeout`` seconds elapsed
        """
        key = str(user_id)
        event = self._events.setdefault(key, asyncio.Event())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            await asyncio.wait_for(event.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                self._events.pop(key, None)

    def waiting(self, user_id: str) -> bool:
        return str(user_id) in self._events
