"""Tests for EventRegistry: registration rules and dispatch order."""

from unittest.mock import MagicMock

from clapsense.detection.history import ClapEvent, ClapHistory
from clapsense.detection.patterns import MultiClapSubscription
from clapsense.events import EventRegistry


def _history(*stamps: int) -> ClapHistory:
    history = ClapHistory()
    for t in stamps:
        history.append(ClapEvent(t))
    return history


class TestOnClap:
    def test_last_registration_wins(self):
        registry = EventRegistry()
        first, second = MagicMock(), MagicMock()
        registry.on_clap(first)
        registry.on_clap(second)

        registry.fire_clap()

        first.assert_not_called()
        second.assert_called_once_with()

    def test_missing_callback_is_noop(self):
        registry = EventRegistry()
        kept = MagicMock()
        registry.on_clap(kept)
        registry.on_clap(None)

        registry.fire_clap()

        kept.assert_called_once()

    def test_fire_without_callback(self):
        registry = EventRegistry()
        assert registry.has_clap_callback is False
        registry.fire_clap()  # should not raise

    def test_raising_callback_is_contained(self):
        registry = EventRegistry()
        registry.on_clap(MagicMock(side_effect=ValueError("boom")))
        registry.fire_clap()  # should not raise


class TestOnClaps:
    def test_subscriptions_accumulate(self):
        registry = EventRegistry()
        cb = MagicMock()
        registry.on_claps(2, 500, cb)
        registry.on_claps(2, 500, cb)

        assert len(registry.subscriptions) == 2

    def test_falsy_arguments_are_noop(self):
        registry = EventRegistry()
        registry.on_claps(0, 500, MagicMock())
        registry.on_claps(2, 0, MagicMock())
        registry.on_claps(2, 500, None)
        registry.on_claps(None, None, None)
        registry.on_claps(-1, 500, MagicMock())

        assert registry.subscriptions == []

    def test_matching_subscriptions_fire_in_registration_order(self):
        registry = EventRegistry()
        calls = []
        registry.on_claps(2, 1000, lambda d: calls.append(("double", d)))
        registry.on_claps(3, 1000, lambda d: calls.append(("triple", d)))
        registry.on_claps(2, 100, lambda d: calls.append(("fast", d)))

        delays = registry.fire_patterns(_history(0, 300, 700))

        assert calls == [("double", 400), ("triple", 700)]
        assert delays == [400, 700]

    def test_raising_subscription_does_not_block_others(self):
        registry = EventRegistry()
        later = MagicMock()
        registry.on_claps(2, 1000, MagicMock(side_effect=RuntimeError("boom")))
        registry.on_claps(2, 1000, later)

        registry.fire_patterns(_history(0, 100))

        later.assert_called_once_with(100)

    def test_no_match_no_callback(self):
        registry = EventRegistry()
        cb = MagicMock()
        registry.on_claps(2, 500, cb)

        assert registry.fire_patterns(_history(0)) == []
        cb.assert_not_called()

    def test_non_integer_arguments_are_noop(self):
        registry = EventRegistry()
        registry.on_claps(2.0, 500, MagicMock())
        registry.on_claps(True, 500, MagicMock())
        registry.on_claps(2, "500", MagicMock())

        assert registry.subscriptions == []

    def test_float_count_does_not_starve_later_subscriptions(self):
        registry = EventRegistry()
        bad, good = MagicMock(), MagicMock()
        registry.on_claps(2.0, 500, bad)
        registry.on_claps(1, 500, good)

        delays = registry.fire_patterns(_history(0, 100))

        assert len(registry.subscriptions) == 1
        bad.assert_not_called()
        good.assert_called_once_with(0)
        assert delays == [0]

    def test_failing_evaluation_is_contained(self):
        registry = EventRegistry()
        good = MagicMock()
        registry.on_claps(2, 1000, MagicMock())
        registry.on_claps(2, 1000, good)
        # A subscription built outside on_claps with an unusable count
        registry._subscriptions.insert(
            0, MultiClapSubscription(2.5, 1000, MagicMock())  # type: ignore[arg-type]
        )

        delays = registry.fire_patterns(_history(0, 100))

        good.assert_called_once_with(100)
        assert delays == [100, 100]
