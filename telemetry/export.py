import logging

from sqlalchemy.exc import SQLAlchemyError

from database.models import SystemMetrics, SpeedTestHistory, DataUsageSnapshot, SessionAnalytics
from errors import UpstreamError, ValidationError
from utils import to_z, rows_to_csv

logger = logging.getLogger(__name__)

# data type -> (section title, model, row cap, column -> attribute)
SECTIONS = {
    "metrics": ("System Metrics", SystemMetrics, 10000, {
        "networkId": "network_id", "timestamp": "timestamp", "cpuUsage": "cpu_usage",
        "memoryUsage": "memory_usage", "temperature": "temperature", "diskUsage": "disk_usage",
        "activeUsers": "active_users",
    }),
    "sessions": ("Session Analytics", SessionAnalytics, None, {
        "networkId": "network_id", "timestamp": "timestamp", "totalSessions": "total_sessions",
        "activeSessions": "active_sessions", "completedSessions": "completed_sessions",
        "totalSpeedTests": "total_speed_tests",
    }),
    "usage": ("Data Usage", DataUsageSnapshot, None, {
        "networkId": "network_id", "timestamp": "timestamp", "totalUsers": "total_users",
        "totalDownloadBytes": "total_download_bytes", "totalUploadBytes": "total_upload_bytes",
        "totalBytes": "total_bytes",
    }),
    "speed": ("Speed Tests", SpeedTestHistory, 5000, {
        "networkId": "network_id", "timestamp": "timestamp", "downloadMbps": "download_mbps",
        "uploadMbps": "upload_mbps", "latencyMs": "latency_ms",
    }),
}
RESULT_KEYS = {"metrics": "systemMetrics", "sessions": "sessionAnalytics", "usage": "dataUsage", "speed": "speedTests"}
DEFAULT_DATA_TYPES = ["metrics", "sessions", "usage"]


def _row(record, columns) -> dict:
    out = {}
    for column, attr in columns.items():
        value = getattr(record, attr)
        out[column] = to_z(value) if attr == "timestamp" else value
    return out


def export_telemetry(database, window, networks=None, data_types=None) -> dict:
    data_types = data_types or DEFAULT_DATA_TYPES
    unknown = [t for t in data_types if t not in SECTIONS]
    if unknown:
        raise ValidationError(f"Unknown data type(s): {', '.join(unknown)}")

    export = {
        "metadata": {
            "exportedAt": to_z(window.end),
            "timeRange": {"start": to_z(window.start), "end": to_z(window.end)},
            "networks": networks or "all",
            "dataTypes": data_types,
        }
    }
    try:
        with database.session_scope() as db:
            for data_type in data_types:
                _, model, cap, columns = SECTIONS[data_type]
                query = db.query(model).filter(model.timestamp >= window.start, model.timestamp <= window.end)
                if networks:
                    query = query.filter(model.network_id.in_(networks))
                query = query.order_by(model.timestamp.desc())
                if cap:
                    query = query.limit(cap)
                export[RESULT_KEYS[data_type]] = [_row(r, columns) for r in query.all()]
    except SQLAlchemyError as exc:
        logger.exception("Error exporting telemetry")
        raise UpstreamError("Failed to export data") from exc
    return export


def export_to_csv(export: dict) -> str:
    """Concatenate one titled CSV block per exported section."""
    blocks = []
    for data_type, key in RESULT_KEYS.items():
        if key not in export:
            continue
        title, _, _, columns = SECTIONS[data_type]
        blocks.append(title + "\n" + rows_to_csv(export[key], list(columns)))
    return "\n".join(blocks)
