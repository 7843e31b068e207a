from sqlalchemy import Column, Integer, BigInteger, String, Float, Boolean, DateTime, ForeignKey, JSON, UniqueConstraint, Index
from sqlalchemy.orm import declarative_base, relationship

from utils import utcnow

Base = declarative_base()


class Session(Base):
    __tablename__ = 'sessions'

    id = Column(Integer, primary_key=True)
    session_id = Column(String(78), unique=True, nullable=False, index=True)
    network_id = Column(String(78), nullable=False, index=True)
    guest = Column(String(42), nullable=False, index=True)
    token = Column(String, nullable=False)
    duration = Column(Float, nullable=False)  # in hours
    start_time = Column(DateTime, nullable=True)
    active = Column(Boolean, nullable=False, default=False)
    status = Column(String(16), nullable=False, default="pending", index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    ips = relationship("SessionIP", back_populates="session", order_by="SessionIP.id", cascade="all, delete-orphan")

    @property
    def ip_list(self):
        return [row.ip for row in self.ips]


class SessionIP(Base):
    __tablename__ = 'session_ips'

    id = Column(Integer, primary_key=True)
    session_id = Column(String(78), ForeignKey('sessions.session_id'), nullable=False)
    ip = Column(String(45), nullable=False)
    first_seen = Column(DateTime, nullable=False, default=utcnow)

    session = relationship("Session", back_populates="ips")

    __table_args__ = (
        UniqueConstraint("session_id", "ip", name="uq_session_ip"),
    )


class Metadata(Base):
    __tablename__ = 'metadata'

    id = Column(Integer, primary_key=True)
    key = Column(String(64), unique=True, nullable=False)
    value = Column(BigInteger, nullable=False)


class NetworkConfig(Base):
    __tablename__ = 'network_configs'

    id = Column(Integer, primary_key=True)
    network_id = Column(String(78), unique=True, nullable=False, index=True)
    ssid = Column(String(64), nullable=False)
    host = Column(String(42))
    price = Column(Float, nullable=False)
    description = Column(String, nullable=False)
    image = Column(String, default="")
    rating_count = Column(Integer, default=0)
    total_rating = Column(Integer, default=0)
    successful_sessions = Column(Integer, default=0)

    country = Column(String(64), nullable=False)
    region = Column(String(64), nullable=False)
    city = Column(String(64), nullable=False)
    area = Column(String(64), nullable=False)
    latitude = Column(Float, default=0)
    longitude = Column(Float, default=0)

    owner_name = Column(String(128), nullable=False)
    owner_email = Column(String(254), nullable=False)
    admin_emails = Column(JSON, default=list)

    device_type = Column(String(32), default="raspberry-pi-4")
    hardware_cpu = Column(String(64), default="")
    hardware_memory = Column(String(64), default="")
    hardware_storage = Column(String(64), default="")

    status = Column(String(16), nullable=False, default="offline")
    created_at = Column(DateTime, nullable=False, default=utcnow)
    last_seen = Column(DateTime, nullable=False, default=utcnow)


class SystemMetrics(Base):
    __tablename__ = 'system_metrics'

    id = Column(Integer, primary_key=True)
    network_id = Column(String(78), nullable=False)
    timestamp = Column(DateTime, nullable=False, index=True)
    active_users = Column(Integer, nullable=False, default=0)
    cpu_usage = Column(Float, nullable=False, default=0)
    memory_usage = Column(Float, nullable=False, default=0)
    temperature = Column(Float, nullable=False, default=0)
    rx_bytes = Column(BigInteger, default=0)
    tx_bytes = Column(BigInteger, default=0)
    disk_usage = Column(Float, nullable=False, default=0)
    source = Column(String(8), default="pi")
    collected_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        Index("ix_system_metrics_network_ts", "network_id", "timestamp"),
    )


class SpeedTestHistory(Base):
    __tablename__ = 'speed_test_history'

    id = Column(Integer, primary_key=True)
    network_id = Column(String(78), nullable=False)
    session_id = Column(String(78), nullable=False, index=True)
    user_ip = Column(String(45), nullable=False)
    timestamp = Column(DateTime, nullable=False, index=True)
    download_mbps = Column(Float, nullable=False)
    upload_mbps = Column(Float, nullable=False)
    latency_ms = Column(Float, nullable=False)
    test_type = Column(String(16), nullable=False, default="auto")
    concurrent_users = Column(Integer, nullable=False, default=0)
    device_type = Column(String(16), default="mobile")
    device_os = Column(String(64), default="")
    device_browser = Column(String(64), default="")
    country = Column(String(64))
    region = Column(String(64))
    city = Column(String(64))

    __table_args__ = (
        Index("ix_speed_test_network_ts", "network_id", "timestamp"),
    )


class DataUsageSnapshot(Base):
    __tablename__ = 'data_usage_snapshots'

    id = Column(Integer, primary_key=True)
    network_id = Column(String(78), nullable=False)
    timestamp = Column(DateTime, nullable=False, index=True)
    hour = Column(Integer, nullable=False)
    date = Column(String(10), nullable=False, index=True)
    total_users = Column(Integer, nullable=False, default=0)
    total_download_bytes = Column(BigInteger, nullable=False, default=0)
    total_upload_bytes = Column(BigInteger, nullable=False, default=0)
    total_bytes = Column(BigInteger, nullable=False, default=0)
    avg_download_bytes_per_user = Column(Float, default=0)
    avg_upload_bytes_per_user = Column(Float, default=0)
    device_breakdown = Column(JSON, default=dict)  # {mobile, desktop, tablet, unknown}
    top_users = Column(JSON, default=list)  # [{hashedIP, totalBytes, downloadBytes, uploadBytes, deviceType}]

    __table_args__ = (
        Index("ix_data_usage_network_ts", "network_id", "timestamp"),
    )


class SessionAnalytics(Base):
    __tablename__ = 'session_analytics'

    id = Column(Integer, primary_key=True)
    network_id = Column(String(78), nullable=False)
    date = Column(String(10), index=True)
    hour = Column(Integer)
    timestamp = Column(DateTime, nullable=False, index=True)
    total_sessions = Column(Integer, default=0)
    active_sessions = Column(Integer, default=0)
    completed_sessions = Column(Integer, default=0)
    average_duration = Column(Float, default=0)  # in seconds
    total_speed_tests = Column(Integer, default=0)
    download_gb = Column(Float, default=0)
    upload_gb = Column(Float, default=0)
    device_breakdown = Column(JSON, default=dict)
    hourly_activity = Column(JSON, default=list)  # [{hour, sessions, averageSpeed: {download, upload}}]
    average_completion_rate = Column(Float, default=0)
    average_speed_tests_per_session = Column(Float, default=0)
    average_data_per_session = Column(Float, default=0)

    __table_args__ = (
        Index("ix_session_analytics_network_ts", "network_id", "timestamp"),
    )


class UserInfo(Base):
    __tablename__ = 'user_info'

    id = Column(Integer, primary_key=True)
    wallet_address = Column(String(42), unique=True, nullable=False)
    name = Column(String(128), nullable=False)
    email = Column(String(254))
    created_at = Column(DateTime, nullable=False, default=utcnow)
