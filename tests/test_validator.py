from datetime import timedelta

import pytest

from errors import InvalidTokenError, NotFoundError, SessionExpiredError
from sessions.store import SessionStore
from sessions.tokens import issue_token
from sessions.validator import TokenValidator
from sync_worker import EventSyncWorker

from conftest import SECRET, GUEST


@pytest.fixture
def validator(database):
    return TokenValidator(database, SECRET)


@pytest.fixture
def token(database, ledger):
    """A pending one-hour session created through the sync path."""
    ledger.emit("1", network_id="7", duration=3600)
    EventSyncWorker(database, ledger, SECRET).sync()
    return TokenValidator(database, SECRET).get_token("1")


def stored(database, session_id="1"):
    with database.session_scope() as db:
        session = SessionStore().get(db, session_id)
        return session.status, session.start_time, session.active


def test_first_use_starts_the_clock(database, validator, token, now):
    view = validator.validate(token, "10.0.0.5", now=now)

    assert view["status"] == "active"
    assert view["active"] is True
    assert view["startTime"] == now.isoformat() + "Z"
    assert view["expiresAt"] == (now + timedelta(hours=1)).isoformat() + "Z"
    assert view["ips"] == ["10.0.0.5"]
    assert stored(database) == ("active", now, True)


def test_duration_runs_from_first_validation_not_creation(database, validator, token, now):
    t0 = now
    validator.validate(token, "10.0.0.5", now=t0 + timedelta(minutes=30))

    still_valid = validator.validate(token, "10.0.0.5", now=t0 + timedelta(minutes=89))
    assert still_valid["status"] == "active"

    with pytest.raises(SessionExpiredError):
        validator.validate(token, "10.0.0.5", now=t0 + timedelta(minutes=90))
    assert stored(database)[0] == "expired"
    assert stored(database)[2] is False


def test_second_validation_keeps_start_time(database, validator, token, now):
    validator.validate(token, "10.0.0.5", now=now)
    view = validator.validate(token, "10.0.0.5", now=now + timedelta(minutes=10))
    assert view["startTime"] == now.isoformat() + "Z"


def test_expired_session_stays_expired(database, validator, token, now):
    validator.validate(token, "10.0.0.5", now=now)
    with pytest.raises(SessionExpiredError):
        validator.validate(token, "10.0.0.5", now=now + timedelta(hours=2))
    # even a clock that runs backwards cannot revive it
    with pytest.raises(SessionExpiredError):
        validator.validate(token, "10.0.0.5", now=now)


def test_bad_signature_is_invalid_token(validator, token, now):
    with pytest.raises(InvalidTokenError):
        validator.validate(token[:-3] + "abc", "10.0.0.5", now=now)


def test_unknown_session_is_not_found(validator, now):
    orphan = issue_token("999", "7", GUEST, SECRET)
    with pytest.raises(NotFoundError):
        validator.validate(orphan, "10.0.0.5", now=now)


def test_ips_behave_as_a_set(database, validator, token, now):
    validator.validate(token, "10.0.0.5", now=now)
    validator.validate(token, "10.0.0.5", now=now + timedelta(minutes=1))
    view = validator.validate(token, "10.0.0.6", now=now + timedelta(minutes=2))
    assert sorted(view["ips"]) == ["10.0.0.5", "10.0.0.6"]


def test_second_ip_is_logged(validator, token, now, caplog):
    validator.validate(token, "10.0.0.5", now=now)
    with caplog.at_level("WARNING", logger="sessions.validator"):
        validator.validate(token, "10.0.0.6", now=now)
    assert "Multiple IPs detected" in caplog.text


def test_get_token_returns_stored_token(validator, token):
    assert validator.get_token("1") == token


def test_get_token_unknown_or_expired(validator, token, now):
    with pytest.raises(NotFoundError):
        validator.get_token("999")
    validator.validate(token, None, now=now)
    with pytest.raises(SessionExpiredError):
        validator.validate(token, None, now=now + timedelta(hours=1))
    with pytest.raises(NotFoundError):
        validator.get_token("1")


def test_has_active_session(validator, token, now):
    assert validator.has_active_session("7", GUEST, now=now) is False
    validator.validate(token, "10.0.0.5", now=now)
    assert validator.has_active_session("7", GUEST.upper().replace("0X", "0x"), now=now) is True
    assert validator.has_active_session("8", GUEST, now=now) is False
    assert validator.has_active_session("7", GUEST, now=now + timedelta(hours=2)) is False
