"""Event registry: single-clap callback and multi-clap subscriptions.

Callbacks run synchronously on the listener's consumer task, in
registration order, right after the clap has been recorded in history.
A callback that raises is logged and skipped; the others still run.
"""

import logging
from collections.abc import Callable

from clapsense.detection.history import ClapHistory
from clapsense.detection.patterns import MultiClapCallback, MultiClapSubscription, evaluate

logger = logging.getLogger(__name__)

ClapCallback = Callable[[], object]


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class EventRegistry:
    """Holds who wants to hear about claps."""

    def __init__(self) -> None:
        self._clap_callback: ClapCallback | None = None
        self._subscriptions: list[MultiClapSubscription] = []

    def on_clap(self, callback: ClapCallback | None) -> None:
        """Set the single-clap callback, replacing any previous one."""
        if not callback:
            logger.debug("on_clap ignored: no callback given")
            return
        self._clap_callback = callback

    def on_claps(
        self,
        count: int | None,
        max_delay_ms: int | None,
        callback: MultiClapCallback | None,
    ) -> None:
        """Subscribe *callback* to *count* claps within *max_delay_ms*.

        Subscriptions are independent and cannot be removed.
        """
        if not (count and max_delay_ms and callback):
            logger.debug(
                "on_claps ignored: count=%r max_delay_ms=%r callback=%r",
                count, max_delay_ms, callback,
            )
            return
        if not _is_int(count) or not _is_int(max_delay_ms) or count < 1 or max_delay_ms <= 0:
            logger.debug("on_claps ignored: count=%r max_delay_ms=%r", count, max_delay_ms)
            return
        self._subscriptions.append(MultiClapSubscription(count, max_delay_ms, callback))
        logger.info("Subscribed to %d claps within %dms", count, max_delay_ms)

    @property
    def subscriptions(self) -> list[MultiClapSubscription]:
        """Registered multi-clap subscriptions, oldest first."""
        return list(self._subscriptions)

    @property
    def has_clap_callback(self) -> bool:
        return self._clap_callback is not None

    def fire_clap(self) -> None:
        """Invoke the single-clap callback, if any."""
        if self._clap_callback is None:
            return
        try:
            self._clap_callback()
        except Exception:
            logger.exception("Clap callback failed")

    def fire_patterns(self, history: ClapHistory) -> list[int]:
        """Evaluate every subscription against *history* and notify matches.

        Returns:
            The delays (ms) of the subscriptions that matched, in order.
        """
        delays: list[int] = []
        for sub in list(self._subscriptions):
            try:
                delay = evaluate(sub, history)
                if delay is None:
                    continue
                delays.append(delay)
                logger.info("%d claps detected within %dms", sub.required_count, delay)
                sub.callback(delay)
            except Exception:
                logger.exception("Multi-clap subscription failed (count=%r)", sub.required_count)
        return delays
