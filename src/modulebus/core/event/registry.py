"""
SubscriptionRegistry: storage and lookup for EventBus subscriptions.

Purpose
-------
Holds every live ``Subscription`` for one engine (or one external surface),
split into the per-topic direct path and the single broadcast channel.

Responsibilities
----------------
- Store exact subscriptions per topic, in registration order
- Store universal and segment subscriptions on the broadcast channel
- Track whether broadcast forwarding is installed (at least one broadcast
  subscription exists)
- Remove exactly the entry created for a subscription id
- Return snapshots for delivery and introspection

Design Decisions
----------------
- **No async/await**: every mutation runs to completion between awaits on
  the owning loop, so no locking is needed.
- **Snapshots for delivery**: lookups return new lists, so a handler that
  subscribes or unsubscribes mid-delivery does not change the current round.
- **Explicit forwarding flag**: flips on with the first broadcast entry and
  off with the last, instead of being inferred at emit time.

Dependencies
------------
- modulebus.core.event.types (Subscription)
"""

from __future__ import annotations

from typing import Callable, Optional

from modulebus.core.event.types import Subscription


class SubscriptionRegistry:
    """
    Registry of direct and broadcast subscriptions.

    Not thread-safe; designed for single-loop asyncio usage.

    Examples
    --------
    >>> registry = SubscriptionRegistry()
    >>> registry.add(subscription)
    >>> registry.direct_for("order.created")
    [Subscription(...)]
    """

    def __init__(self) -> None:
        self._by_id: dict[str, Subscription] = {}
        self._direct: dict[str, list[Subscription]] = {}
        self._broadcast: list[Subscription] = []
        self._forwarding_installed: bool = False

    # ------------------------------------------------------------------ #
    # Modification
    # ------------------------------------------------------------------ #

    def add(self, subscription: Subscription) -> None:
        """
        Register a subscription on the path its matcher selects.

        Parameters
        ----------
        subscription:
            Record built by the engine; its id must not be registered yet.
        """
        self._by_id[subscription.id] = subscription

        if subscription.is_broadcast:
            self._broadcast.append(subscription)
            self._forwarding_installed = True
            return

        self._direct.setdefault(subscription.matcher.topic, []).append(subscription)

    def remove(self, subscription_id: str) -> Optional[Subscription]:
        """
        Detach the entry created for ``subscription_id``.

        Returns
        -------
        Optional[Subscription]:
            The removed record, or ``None`` when the id is unknown.
        """
        subscription = self._by_id.pop(subscription_id, None)
        if subscription is None:
            return None

        if subscription.is_broadcast:
            self._broadcast = [
                entry for entry in self._broadcast if entry.id != subscription_id
            ]
            if not self._broadcast:
                self._forwarding_installed = False
            return subscription

        topic = subscription.matcher.topic
        remaining = [
            entry for entry in self._direct.get(topic, []) if entry.id != subscription_id
        ]
        if remaining:
            self._direct[topic] = remaining
        else:
            self._direct.pop(topic, None)
        return subscription

    def remove_where(self, predicate: Callable[[Subscription], bool]) -> list[Subscription]:
        """
        Remove every subscription for which ``predicate`` returns True.

        Returns
        -------
        list[Subscription]:
            The removed records, in registration order.
        """
        doomed = [sub for sub in self._by_id.values() if predicate(sub)]
        for subscription in doomed:
            self.remove(subscription.id)
        return doomed

    # ------------------------------------------------------------------ #
    # Lookup
    # ------------------------------------------------------------------ #

    @property
    def forwarding_installed(self) -> bool:
        return self._forwarding_installed

    def __contains__(self, subscription_id: object) -> bool:
        return subscription_id in self._by_id

    def __len__(self) -> int:
        return len(self._by_id)

    def direct_for(self, topic: str) -> list[Subscription]:
        """Snapshot of the exact subscribers of ``topic`` in registration order."""
        return list(self._direct.get(topic, ()))

    def broadcast_snapshot(self) -> list[Subscription]:
        """Snapshot of the broadcast channel in registration order."""
        return list(self._broadcast)

    def matching(self, topic: str) -> list[Subscription]:
        """
        Every subscription that should receive ``topic``.

        Direct subscribers come first, then matching broadcast entries.
        """
        result = self.direct_for(topic)
        if self._forwarding_installed:
            result.extend(sub for sub in self._broadcast if sub.matcher.matches(topic))
        return result

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    @property
    def broadcast_count(self) -> int:
        return len(self._broadcast)

    def patterns(self) -> list[str]:
        """Sorted, deduplicated list of registered patterns."""
        return sorted({sub.pattern for sub in self._by_id.values()})

    def all(self) -> list[Subscription]:
        return list(self._by_id.values())


__all__ = ["SubscriptionRegistry"]
