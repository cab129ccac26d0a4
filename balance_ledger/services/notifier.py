"""In-process observer for balance change events."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from balance_ledger.schemas.balance import BalanceUpdate

logger = logging.getLogger(__name__)

BALANCE_UPDATE_EVENT = "balance:update"

BalanceListener = Callable[[BalanceUpdate], None]


class BalanceNotifier:
    """Fan out ``balance:update`` events to subscribed listeners.

    Listeners run synchronously after a committed mutation. A failing
    listener is logged and skipped; it never affects the mutation or the
    other listeners.
    """

    def __init__(self) -> None:
        self._listeners: list[BalanceListener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: BalanceListener) -> Callable[[], None]:
        """Register ``listener`` and return a callable that removes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: BalanceUpdate) -> None:
        """Deliver ``event`` to every listener."""
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:  # noqa: BLE001
                logger.warning(
                    "Failed to deliver %s for %s",
                    BALANCE_UPDATE_EVENT,
                    event.user_id,
                    exc_info=True,
                )

    @property
    def listener_count(self) -> int:
        return len(self._listeners)
