"""
tests/test_context.py — Unit of Work, Locks & Notification Dispatch
=====================================================================
"""

from __future__ import annotations

import threading
import time

import pytest
from sqlalchemy.orm.exc import StaleDataError

from mypts.errors import ConcurrencyConflict, ValidationError
from mypts.services import ledger_service
from mypts.services.context import read_only, run_unit
from mypts.services.locks import KeyedLock
from mypts.services.notifications import Notification, dispatch, reward_issued


class ExplodingNotifier:
    def badge_earned(self, **kwargs) -> None:
        raise RuntimeError("notification service down")

    milestone_achieved = badge_earned
    reward_issued = badge_earned


class TestRunUnit:
    def test_retries_stale_data_then_succeeds(self, ctx):
        attempts = []

        def work(session, outbox):
            attempts.append(1)
            if len(attempts) < 3:
                raise StaleDataError("hub version moved")
            return "ok"

        assert run_unit(ctx, "p1", work) == "ok"
        assert len(attempts) == 3

    def test_exhausted_retries_become_conflict(self, ctx):
        def work(session, outbox):
            raise StaleDataError("hub version moved")

        with pytest.raises(ConcurrencyConflict):
            run_unit(ctx, "p1", work)

    def test_domain_errors_not_retried(self, ctx):
        attempts = []

        def work(session, outbox):
            attempts.append(1)
            raise ValidationError("bad")

        with pytest.raises(ValidationError):
            run_unit(ctx, "p1", work)
        assert len(attempts) == 1

    def test_notifications_only_after_commit(self, ctx, notifier):
        def work(session, outbox):
            outbox.append(reward_issued("p1", 5, "x", 1))
            raise ValidationError("rolled back")

        with pytest.raises(ValidationError):
            run_unit(ctx, "p1", work)
        assert notifier.calls == []

    def test_outbox_cleared_between_attempts(self, ctx, notifier):
        attempts = []

        def work(session, outbox):
            attempts.append(1)
            outbox.append(reward_issued("p1", 5, "x", 1))
            if len(attempts) == 1:
                raise StaleDataError("retry me")

        run_unit(ctx, "p1", work)
        assert len(notifier.calls) == 1

    def test_read_only(self, ctx):
        assert read_only(ctx, lambda session: 41 + 1) == 42


class TestNotifierFailures:
    def test_failing_notifier_does_not_roll_back(self, ctx, caplog):
        ctx.notifier = ExplodingNotifier()
        with caplog.at_level("ERROR", logger="mypts.services.notifications"):
            txn = ledger_service.credit(ctx, "p1", 100)
        assert txn.id is not None
        assert ledger_service.get_balance(ctx, "p1") == 100
        assert "Notifier failed" in caplog.text

    def test_dispatch_continues_after_failure(self):
        class Flaky:
            def __init__(self):
                self.delivered = []

            def badge_earned(self, **kwargs):
                raise RuntimeError("boom")

            def reward_issued(self, **kwargs):
                self.delivered.append(kwargs)

        flaky = Flaky()
        dispatch(flaky, [
            Notification("badge_earned", {"profile_id": "p", "badge_id": 1, "badge_name": "b"}),
            reward_issued("p", 1, "x", 9),
        ])
        assert flaky.delivered == [
            {"profile_id": "p", "amount": 1, "description": "x", "transaction_id": 9}
        ]


class TestKeyedLock:
    def test_same_key_serializes(self):
        locks = KeyedLock()
        active = []
        overlaps = []

        def worker():
            with locks.hold("acct"):
                active.append(1)
                if len(active) > 1:
                    overlaps.append(1)
                time.sleep(0.01)
                active.pop()

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert overlaps == []
        assert len(locks) == 0

    def test_none_key_takes_no_lock(self):
        locks = KeyedLock()
        with locks.hold(None):
            assert len(locks) == 0

    def test_released_on_error(self):
        locks = KeyedLock()
        with pytest.raises(RuntimeError):
            with locks.hold("acct"):
                raise RuntimeError("fail")
        assert len(locks) == 0
        with locks.hold("acct"):
            assert len(locks) == 1
