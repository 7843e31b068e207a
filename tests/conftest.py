"""Shared fixtures: in-memory database, fake ledger and a Flask test client."""
from datetime import timedelta

import pytest

from api.routes import create_app
from database.db import Database
from database.models import SystemMetrics, SpeedTestHistory, DataUsageSnapshot, SessionAnalytics, NetworkConfig
from ledger.data_models import SessionStartedEvent
from utils import utcnow

SECRET = "test-secret"
GUEST = "0x00000000000000000000000000000000000000aa"


class FakeLedger:
    """Stands in for the contract: a list of events and a movable chain head."""

    def __init__(self, head=100):
        self.head = head
        self.events = []
        self.queries = []
        self.fail = False
        self.error = None

    def emit(self, session_id, network_id="1", guest=GUEST, duration=3600, block=None, amount=10):
        block = block if block is not None else self.head
        self.events.append(SessionStartedEvent(
            session_id=str(session_id),
            network_id=str(network_id),
            guest=guest.lower(),
            duration=duration,
            amount=amount,
            expiry=0,
            block_number=block,
        ))

    def block_number(self):
        return self.head

    def session_started_events(self, from_block, to_block):
        self.queries.append((from_block, to_block))
        if self.fail:
            raise ConnectionError("rpc unavailable")
        if self.error is not None:
            raise self.error
        return [e for e in self.events if from_block <= e.block_number <= to_block]


@pytest.fixture
def database():
    db = Database("sqlite://")
    db.init_db()
    return db


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def app(database, ledger):
    app = create_app(
        database=database,
        ledger=ledger,
        secret=SECRET,
        ipfs_gateway="https://ipfs.io/ipfs",
        admin_allowed_ips=["127.0.0.1"],
    )
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def now():
    return utcnow().replace(microsecond=0)


@pytest.fixture
def add_metric(database):
    def _add(network_id, timestamp, **values):
        fields = dict(cpu_usage=20, memory_usage=30, temperature=45, disk_usage=40, active_users=1)
        fields.update(values)
        with database.session_scope() as db:
            db.add(SystemMetrics(network_id=network_id, timestamp=timestamp, **fields))
    return _add


@pytest.fixture
def add_speed_test(database):
    def _add(network_id, timestamp, download=50, upload=10, latency=20):
        with database.session_scope() as db:
            db.add(SpeedTestHistory(
                network_id=network_id, session_id="s1", user_ip="10.0.0.2", timestamp=timestamp,
                download_mbps=download, upload_mbps=upload, latency_ms=latency,
                test_type="auto", concurrent_users=1,
            ))
    return _add


@pytest.fixture
def add_usage(database):
    def _add(network_id, timestamp, download=0, upload=0, users=0, devices=None, top_users=None):
        with database.session_scope() as db:
            db.add(DataUsageSnapshot(
                network_id=network_id, timestamp=timestamp, hour=timestamp.hour,
                date=timestamp.strftime("%Y-%m-%d"), total_users=users,
                total_download_bytes=download, total_upload_bytes=upload, total_bytes=download + upload,
                device_breakdown=devices or {}, top_users=top_users or [],
            ))
    return _add


@pytest.fixture
def add_analytics(database):
    def _add(network_id, timestamp, **values):
        fields = dict(total_sessions=0, active_sessions=0, completed_sessions=0, total_speed_tests=0)
        fields.update(values)
        with database.session_scope() as db:
            db.add(SessionAnalytics(
                network_id=network_id, timestamp=timestamp, hour=timestamp.hour,
                date=timestamp.strftime("%Y-%m-%d"), **fields,
            ))
    return _add


@pytest.fixture
def add_network(database, now):
    def _add(network_id, status="active", ssid=None, image="", last_seen=None):
        with database.session_scope() as db:
            db.add(NetworkConfig(
                network_id=network_id, ssid=ssid or f"net-{network_id}", price=1.0, description="test",
                image=image, country="GH", region="Accra", city="Accra", area="Osu",
                owner_name="Owner", owner_email="owner@example.com", status=status,
                last_seen=last_seen or now - timedelta(hours=2),
            ))
    return _add
