"""
Concurrent login for the same user from independent handlers.

Two managers share nothing but the store. Both resolve "no fresh session",
both insert, and convergence must leave exactly one record whichever insert
lands first.
"""

import threading

import pytest

from campus_sessions.services.session_lifecycle import SessionLifecycleManager
from campus_sessions.services.session_store import SessionFilter
from tests.utils.factories import ProfileFactory, SessionPayloadFactory

pytestmark = [pytest.mark.unit, pytest.mark.critical]


class BarrierStore:
    """Store wrapper that holds every insert until all racers are ready to insert"""

    def __init__(self, inner, parties: int):
        self._inner = inner
        self._barrier = threading.Barrier(parties, timeout=10)

    def insert(self, record):
        self._barrier.wait()
        return self._inner.insert(record)

    def __getattr__(self, name):
        return getattr(self._inner, name)


def _race(store, cipher, clock, user_id: str, parties: int = 2):
    racing_store = BarrierStore(store, parties)
    results, errors = [], []

    def handler():
        manager = SessionLifecycleManager(racing_store, cipher, clock=clock)
        try:
            results.append(
                manager.upsert(user_id, ProfileFactory.create(), SessionPayloadFactory.new_token())
            )
        except Exception as e:  # surfaced to the test thread below
            errors.append(e)

    threads = [threading.Thread(target=handler) for _ in range(parties)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    return results, errors


class TestConcurrentUpsert:
    """Test convergence under racing upserts"""

    def test_two_racing_logins_converge_to_one_record(self, store, cipher, frozen_clock):
        results, errors = _race(store, cipher, frozen_clock, "racer")

        assert errors == []
        assert len(results) == 2
        assert all(result.created for result in results)

        SessionLifecycleManager(store, cipher, clock=frozen_clock).converge("racer")

        remaining = store.find_all_by_user("racer")
        assert len(remaining) == 1
        assert remaining[0].session_id in {result.session_id for result in results}

    def test_survivor_is_deterministic(self, store, cipher, frozen_clock):
        """Equal createdAt under a frozen clock: the greater sessionId survives"""
        results, errors = _race(store, cipher, frozen_clock, "racer")
        assert errors == []

        SessionLifecycleManager(store, cipher, clock=frozen_clock).converge("racer")

        expected = max(result.session_id for result in results)
        assert [r.session_id for r in store.find_all_by_user("racer")] == [expected]

    def test_racing_logins_never_touch_other_users(self, store, cipher, frozen_clock):
        bystander = SessionLifecycleManager(store, cipher, clock=frozen_clock)
        bystander.upsert("bystander", ProfileFactory.create(), SessionPayloadFactory.new_token())

        _, errors = _race(store, cipher, frozen_clock, "racer")

        assert errors == []
        assert store.count(SessionFilter(user_id="bystander")) == 1
