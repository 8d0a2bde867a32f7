"""Multi-clap pattern matching over the clap history."""

from collections.abc import Callable
from dataclasses import dataclass

from clapsense.detection.history import ClapHistory

MultiClapCallback = Callable[[int], object]


@dataclass(frozen=True)
class MultiClapSubscription:
    """N claps within a deadline, and who to tell about it."""

    required_count: int
    max_delay_ms: int
    callback: MultiClapCallback


def evaluate(subscription: MultiClapSubscription, history: ClapHistory) -> int | None:
    """Check whether the latest claps satisfy *subscription*.

    Takes the last ``required_count`` events; if that many exist and the
    span between the first and the last is strictly below
    ``max_delay_ms``, returns that span in milliseconds. Otherwise
    returns None. The history is only read, so one event can satisfy
    several subscriptions.
    """
    latest = history.last_n(subscription.required_count)
    if len(latest) < subscription.required_count:
        return None

    delay = latest[-1].timestamp_ms - latest[0].timestamp_ms
    if delay < subscription.max_delay_ms:
        return delay
    return None
