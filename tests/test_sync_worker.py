from datetime import timedelta

import pytest

from database.models import Session
from errors import UpstreamError
from sessions.store import SessionStore
from sessions.tokens import decode_token
from sync_worker import EventSyncWorker
from utils import utcnow

from conftest import SECRET, GUEST


@pytest.fixture
def worker(database, ledger):
    return EventSyncWorker(database, ledger, SECRET, lookback_blocks=50, pending_ttl_hours=72)


def all_sessions(database):
    with database.session_scope() as db:
        return [(s.session_id, s.network_id, s.guest, s.duration, s.status, s.token, s.start_time)
                for s in db.query(Session).order_by(Session.session_id).all()]


def cursor(database):
    with database.session_scope() as db:
        return SessionStore().get_cursor(db)


def test_sync_creates_pending_session_with_token(database, ledger, worker):
    ledger.emit("1", network_id="9", guest="0x00000000000000000000000000000000000000AA", duration=7200)

    result = worker.sync()

    assert result["created"] == 1
    assert result["status"] == "Events synced"
    [(session_id, network_id, guest, duration, status, token, start_time)] = all_sessions(database)
    assert (session_id, network_id, guest) == ("1", "9", GUEST)
    assert duration == 2
    assert status == "pending"
    assert start_time is None
    assert decode_token(token, SECRET) == {"sessionId": "1", "networkId": "9", "guest": GUEST}


def test_first_sync_looks_back_from_head(database, ledger, worker):
    ledger.head = 500
    worker.sync()
    assert ledger.queries == [(450, 500)]
    assert cursor(database) == 500


def test_lookback_never_goes_below_genesis(database, ledger):
    ledger.head = 10
    EventSyncWorker(database, ledger, SECRET, lookback_blocks=1000).sync()
    assert ledger.queries == [(0, 10)]


def test_sync_resumes_after_cursor(database, ledger, worker):
    worker.sync()
    ledger.head = 120
    ledger.emit("2", block=110)

    result = worker.sync()

    assert ledger.queries[-1] == (101, 120)
    assert result["created"] == 1
    assert cursor(database) == 120


def test_sync_with_no_new_blocks_does_not_query(database, ledger, worker):
    worker.sync()
    worker.sync()
    assert len(ledger.queries) == 1


def test_replayed_event_is_not_duplicated(database, ledger, worker):
    ledger.emit("1")
    worker.sync()
    token_before = all_sessions(database)[0][5]

    with database.session_scope() as db:
        SessionStore().set_cursor(db, 0)
    result = worker.sync()

    assert result["created"] == 0
    assert result["skipped"] == 1
    sessions = all_sessions(database)
    assert len(sessions) == 1
    assert sessions[0][5] == token_before


def test_duplicate_events_in_one_batch(database, ledger, worker):
    ledger.emit("1", block=90)
    ledger.emit("1", block=95)
    result = worker.sync()
    assert result["created"] == 1
    assert result["skipped"] == 1
    assert len(all_sessions(database)) == 1


def test_ledger_failure_leaves_cursor_untouched(database, ledger, worker):
    ledger.emit("1")
    ledger.fail = True

    with pytest.raises(UpstreamError) as exc:
        worker.sync()

    assert exc.value.message == "Failed to sync events"
    assert cursor(database) is None
    assert all_sessions(database) == []

    ledger.fail = False
    assert worker.sync()["created"] == 1


def test_stale_pending_sessions_are_reaped(database, ledger, worker):
    ledger.emit("1")
    worker.sync()

    result = worker.sync(now=utcnow() + timedelta(hours=73))

    assert result["reaped"] == 1
    assert all_sessions(database)[0][4] == "expired"


def test_fresh_pending_sessions_survive_reaper(database, ledger, worker):
    ledger.emit("1")
    worker.sync()
    assert worker.sync(now=utcnow() + timedelta(hours=1))["reaped"] == 0
    assert all_sessions(database)[0][4] == "pending"


def test_background_loop_start_and_stop(database, ledger, worker):
    assert worker.start(interval_minutes=60) is True
    assert worker.is_running()
    assert worker.start(interval_minutes=60) is False
    worker.stop()
    assert not worker.is_running()


def test_restart_leaves_a_single_loop(database, ledger, worker):
    worker.start(interval_minutes=60)
    first = worker._thread
    worker.stop()
    worker.start(interval_minutes=60)
    try:
        first.join(timeout=2)
        assert not first.is_alive()
        assert worker._thread is not first
        assert worker.is_running()
    finally:
        worker.stop()
    assert not worker._thread.is_alive()


def test_programming_errors_are_not_reported_as_ledger_errors(database, ledger, worker):
    ledger.error = KeyError("sessionId")
    with pytest.raises(KeyError):
        worker.sync()
    assert cursor(database) is None
