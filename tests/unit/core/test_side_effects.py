"""Tests for deferred side effects."""

import logging
from unittest.mock import Mock

from formflow.core.workflow.effects import SideEffects


def test_effects_run_in_order_with_arguments():
    calls = []
    effects = SideEffects()
    effects.add("first", calls.append, 1)
    effects.add("second", lambda value, extra=None: calls.append((value, extra)), 2, extra="x")

    assert len(effects) == 2
    assert effects.run() == 0
    assert calls == [1, (2, "x")]
    assert len(effects) == 0


def test_failure_is_logged_and_remaining_effects_still_run(caplog):
    after = Mock()
    effects = SideEffects()
    effects.add("explode", Mock(side_effect=RuntimeError("boom")))
    effects.add("after", after)

    with caplog.at_level(logging.ERROR, logger="formflow.core.workflow.effects"):
        failures = effects.run()

    assert failures == 1
    after.assert_called_once_with()
    assert "Side effect failed: explode" in caplog.text


def test_run_twice_does_not_repeat():
    func = Mock()
    effects = SideEffects()
    effects.add("once", func)

    effects.run()
    effects.run()

    func.assert_called_once()
