"""
Real-time subscription bookkeeping
"""
import logging
from typing import Callable, Dict, Optional, Tuple

from ..domain.repositories import Subscription

logger = logging.getLogger(__name__)


class SubscriptionRegistry:
    """
    At most one live subscription per (view, resource).

    Subscribing again for the same pair returns the live listener;
    releasing a view cancels every listener it owns.
    """

    def __init__(self):
        self._subscriptions: Dict[Tuple[str, str], Subscription] = {}

    def subscribe(self, view_id: str, resource: str, factory: Callable[[], Subscription]) -> Subscription:
        key = (view_id, resource)
        existing = self._subscriptions.get(key)
        if existing is not None and existing.active:
            return existing
        subscription = factory()
        self._subscriptions[key] = subscription
        logger.debug(f"Subscribed {view_id} to {resource}")
        return subscription

    def unsubscribe(self, view_id: str, resource: str) -> None:
        subscription = self._subscriptions.pop((view_id, resource), None)
        if subscription is not None:
            subscription.cancel()

    def release_view(self, view_id: str) -> int:
        """Cancel everything a view holds; returns the number cancelled"""
        keys = [k for k in self._subscriptions if k[0] == view_id]
        for key in keys:
            self._subscriptions.pop(key).cancel()
        if keys:
            logger.debug(f"Released {len(keys)} subscriptions for {view_id}")
        return len(keys)

    def count(self, view_id: Optional[str] = None) -> int:
        if view_id is None:
            return len(self._subscriptions)
        return sum(1 for k in self._subscriptions if k[0] == view_id)

    def close(self) -> None:
        for subscription in self._subscriptions.values():
            subscription.cancel()
        self._subscriptions.clear()
