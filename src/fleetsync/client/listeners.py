"""Listener registry keyed by event kind.

Callbacks run synchronously, in registration order. A callback that raises is
logged and skipped; the remaining callbacks still run.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from fleetsync.exceptions import FleetListenerError

_logger = logging.getLogger(__name__)

Listener = Callable[[Any], None]


class Subscription:
    """Handle returned by :meth:`ListenerRegistry.add`; call :meth:`unsubscribe` to remove."""

    def __init__(self, registry: ListenerRegistry, kind: str, callback: Listener) -> None:
        self._registry = registry
        self.kind = kind
        self.callback = callback
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        self._registry._discard(self)  # noqa: SLF001

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.unsubscribe()


class ListenerRegistry:
    def __init__(self) -> None:
        self._subscriptions: dict[str, list[Subscription]] = {}

    def add(self, kind: str, callback: Listener) -> Subscription:
        subscription = Subscription(self, str(kind), callback)
        self._subscriptions.setdefault(subscription.kind, []).append(subscription)
        return subscription

    def remove(self, kind: str, callback: Listener) -> bool:
        """Remove the first subscription of *callback* for *kind*."""
        for subscription in self._subscriptions.get(str(kind), []):
            if subscription.callback == callback:
                subscription.unsubscribe()
                return True
        return False

    def _discard(self, subscription: Subscription) -> None:
        subs = self._subscriptions.get(subscription.kind)
        if not subs:
            return
        self._subscriptions[subscription.kind] = [s for s in subs if s is not subscription]
        if not self._subscriptions[subscription.kind]:
            self._subscriptions.pop(subscription.kind, None)

    def count(self, kind: str | None = None) -> int:
        if kind is None:
            return sum(len(subs) for subs in self._subscriptions.values())
        return len(self._subscriptions.get(str(kind), []))

    def clear(self) -> None:
        for subs in self._subscriptions.values():
            for subscription in subs:
                subscription._active = False  # noqa: SLF001
        self._subscriptions.clear()

    def dispatch(self, kind: str, payload: Any) -> list[FleetListenerError]:
        """Call every listener for *kind* with *payload*.

        Returns one :class:`FleetListenerError` per callback that raised.
        """
        failures: list[FleetListenerError] = []
        for subscription in list(self._subscriptions.get(str(kind), [])):
            if not subscription.active:
                continue
            try:
                subscription.callback(payload)
            except Exception as exc:
                failure = FleetListenerError(str(kind), subscription.callback)
                failure.__cause__ = exc
                failures.append(failure)
                _logger.warning("%s", failure, exc_info=exc)
        return failures
