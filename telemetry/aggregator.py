"""Dashboard aggregation over the raw telemetry tables.

Everything here is read-only and recomputed on each call. Missing data folds
to zeros or empty lists instead of raising, so one empty collection never
takes down a whole dashboard response.
"""
import logging
from collections import defaultdict
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError

from database.models import NetworkConfig, SystemMetrics, SpeedTestHistory, DataUsageSnapshot, SessionAnalytics
from errors import UpstreamError
from networks.registry import network_view
from utils import utcnow, to_z, to_gb, mean, peak
from .alerts import derive_alerts, offline_alert, is_online, OFFLINE_AFTER_SECONDS
from .timerange import Window, resolve_window

logger = logging.getLogger(__name__)

TREND_BUCKETS = 24
EMPTY_DEVICES = {"mobile": 0, "desktop": 0, "tablet": 0, "unknown": 0}


def summarize(values, current=None) -> dict:
    return {
        "current": current if current is not None else 0,
        "average": round(mean(values), 2),
        "peak": peak(values),
    }


def hourly_trends(samples, speed_tests, now) -> list[dict]:
    """24 one-hour buckets ending at ``now``; empty buckets report zeros."""
    origin = now - timedelta(hours=TREND_BUCKETS)
    buckets = [{"system": [], "speed": []} for _ in range(TREND_BUCKETS)]

    def index_of(ts):
        if ts < origin or ts > now:
            return None
        return min(int((ts - origin).total_seconds() // 3600), TREND_BUCKETS - 1)

    for sample in samples:
        idx = index_of(sample.timestamp)
        if idx is not None:
            buckets[idx]["system"].append(sample)
    for test in speed_tests:
        idx = index_of(test.timestamp)
        if idx is not None:
            buckets[idx]["speed"].append(test)

    trends = []
    for i, bucket in enumerate(buckets):
        start = origin + timedelta(hours=i)
        system = bucket["system"]
        speed = bucket["speed"]
        trends.append({
            "start": to_z(start),
            "end": to_z(start + timedelta(hours=1)),
            "samples": len(system),
            "cpu": round(mean([s.cpu_usage for s in system]), 2),
            "memory": round(mean([s.memory_usage for s in system]), 2),
            "temperature": round(mean([s.temperature for s in system]), 2),
            "activeUsers": peak([s.active_users for s in system]),
            "speedTests": len(speed),
            "download": round(mean([t.download_mbps for t in speed]), 2),
            "upload": round(mean([t.upload_mbps for t in speed]), 2),
        })
    return trends


def sum_devices(breakdowns) -> dict:
    total = dict(EMPTY_DEVICES)
    for breakdown in breakdowns:
        for key in total:
            total[key] += (breakdown or {}).get(key, 0) or 0
    return total


def device_percentages(breakdown) -> dict:
    total = sum(breakdown.values())
    if not total:
        return dict(EMPTY_DEVICES)
    return {key: round(count / total * 100) for key, count in breakdown.items()}


def average_speed(tests) -> dict:
    return {
        "download": round(mean([t.download_mbps for t in tests]), 2),
        "upload": round(mean([t.upload_mbps for t in tests]), 2),
        "latency": round(mean([t.latency_ms for t in tests]), 2),
    }


def system_health_view(sample) -> dict:
    if sample is None:
        return {"cpu": 0, "memory": 0, "temperature": 0, "diskUsage": 0}
    return {
        "cpu": sample.cpu_usage,
        "memory": sample.memory_usage,
        "temperature": sample.temperature,
        "diskUsage": sample.disk_usage,
    }


class TelemetryAggregator:
    def __init__(self, database, ipfs_gateway=None):
        self.database = database
        self.ipfs_gateway = ipfs_gateway

    def _run(self, fn, *args):
        try:
            with self.database.session_scope() as db:
                return fn(db, *args)
        except SQLAlchemyError as exc:
            logger.exception("Database error during telemetry aggregation")
            raise UpstreamError("Failed to fetch telemetry") from exc

    @staticmethod
    def _in_window(db, model, network_id, window: Window, ascending=True):
        query = db.query(model).filter(model.timestamp >= window.start, model.timestamp <= window.end)
        if network_id is not None:
            query = query.filter(model.network_id == network_id)
        order = model.timestamp.asc() if ascending else model.timestamp.desc()
        return query.order_by(order).all()

    @staticmethod
    def _latest(db, model, network_id, since=None, until=None):
        query = db.query(model).filter(model.network_id == network_id)
        if since is not None:
            query = query.filter(model.timestamp >= since)
        if until is not None:
            query = query.filter(model.timestamp <= until)
        return query.order_by(model.timestamp.desc()).first()

    # -- per-network views -------------------------------------------------

    def system_health(self, network_id, now=None) -> dict:
        now = now or utcnow()
        return self._run(self._system_health, network_id, now)

    def _system_health(self, db, network_id, now):
        latest = self._latest(db, SystemMetrics, network_id)
        online = is_online(latest, now)
        alerts = derive_alerts(latest) if online else []
        if not online:
            alerts.append(offline_alert(network_id, latest.timestamp if latest else None))
        return {
            "networkId": network_id,
            "systemHealth": system_health_view(latest),
            "networkStatus": "online" if online else "offline",
            "lastSeen": to_z(latest.timestamp) if latest else None,
            "alerts": alerts,
            "timestamp": to_z(latest.timestamp) if latest else None,
        }

    def dashboard(self, network_id, window: Window = None, now=None) -> dict:
        """Dashboard over ``window``. Current values only when the window reaches the present."""
        now = now or utcnow()
        window = window or resolve_window("1h", now=now)
        return self._run(self._dashboard, network_id, window, now)

    def _dashboard(self, db, network_id, window, now):
        samples = self._in_window(db, SystemMetrics, network_id, window)
        tests = self._in_window(db, SpeedTestHistory, network_id, window)
        latest = self._latest(db, SystemMetrics, network_id, until=window.end)
        latest_usage = self._latest(db, DataUsageSnapshot, network_id, since=window.start, until=window.end)
        latest_sessions = self._latest(db, SessionAnalytics, network_id, since=window.start, until=window.end)

        trend_window = Window(start=window.end - timedelta(hours=TREND_BUCKETS), end=window.end, label="24h")
        trend_samples = self._in_window(db, SystemMetrics, network_id, trend_window)
        trend_tests = self._in_window(db, SpeedTestHistory, network_id, trend_window)

        online = is_online(latest, now)
        alerts = derive_alerts(latest) if online else [
            offline_alert(network_id, latest.timestamp if latest else None)
        ]

        current = latest if online else None
        return {
            "networkId": network_id,
            "status": "online" if online else "offline",
            "overview": {
                "activeUsers": current.active_users if current else 0,
                "totalSessions": latest_sessions.total_sessions if latest_sessions else 0,
                "systemHealth": system_health_view(current),
            },
            "system": {
                "cpu": summarize([s.cpu_usage for s in samples], current.cpu_usage if current else None),
                "memory": summarize([s.memory_usage for s in samples], current.memory_usage if current else None),
                "temperature": summarize([s.temperature for s in samples], current.temperature if current else None),
                "diskUsage": summarize([s.disk_usage for s in samples], current.disk_usage if current else None),
                "activeUsers": summarize([s.active_users for s in samples], current.active_users if current else None),
                "samples": len(samples),
            },
            "performance": {
                "averageSpeed": average_speed(tests),
                "peakSpeed": {
                    "download": peak([t.download_mbps for t in tests]),
                    "upload": peak([t.upload_mbps for t in tests]),
                },
                "totalSpeedTests": len(tests),
            },
            "traffic": {
                "totalDataTransfer": {
                    "downloadGB": to_gb(latest_usage.total_download_bytes if latest_usage else 0),
                    "uploadGB": to_gb(latest_usage.total_upload_bytes if latest_usage else 0),
                },
                "networkTraffic": {
                    "rxBytes": current.rx_bytes if current else 0,
                    "txBytes": current.tx_bytes if current else 0,
                },
            },
            "trends": hourly_trends(trend_samples, trend_tests, window.end),
            "alerts": alerts,
            "window": {"timeRange": window.label, "start": to_z(window.start), "end": to_z(window.end)},
        }

    def performance(self, network_id, window: Window = None) -> dict:
        window = window or resolve_window("1h")
        return self._run(self._performance, network_id, window)

    def _performance(self, db, network_id, window):
        tests = self._in_window(db, SpeedTestHistory, network_id, window)
        samples = self._in_window(db, SystemMetrics, network_id, window)
        return {
            "speedData": [
                {"timestamp": to_z(t.timestamp), "download": t.download_mbps,
                 "upload": t.upload_mbps, "latency": t.latency_ms}
                for t in tests
            ],
            "systemMetrics": [
                {"timestamp": to_z(s.timestamp), "cpu": s.cpu_usage,
                 "memory": s.memory_usage, "temperature": s.temperature}
                for s in samples
            ],
            "averageSpeed": average_speed(tests),
            "peakSpeed": {
                "download": peak([t.download_mbps for t in tests]),
                "upload": peak([t.upload_mbps for t in tests]),
            },
            "totalSpeedTests": len(tests),
        }

    def data_usage(self, network_id, window: Window = None) -> dict:
        window = window or resolve_window("24h")
        return self._run(self._data_usage, network_id, window)

    def _data_usage(self, db, network_id, window):
        latest = self._latest(db, DataUsageSnapshot, network_id)
        historical = self._in_window(db, DataUsageSnapshot, network_id, window, ascending=False)

        if latest is None:
            return {
                "current": {
                    "totalUsers": 0, "totalDownloadBytes": 0, "totalUploadBytes": 0, "totalBytes": 0,
                    "totalDownloadGB": 0, "totalUploadGB": 0, "totalGB": 0,
                    "averageUsagePerUser": {"downloadBytes": 0, "uploadBytes": 0},
                    "deviceBreakdown": dict(EMPTY_DEVICES),
                    "timestamp": None,
                },
                "historical": {
                    "totalDownloadGB": 0, "totalUploadGB": 0, "totalGB": 0,
                    "peakUsers": 0, "averageUsers": 0, "trends": [],
                },
                "topUsers": [],
                "metadata": {"timeRange": window.label, "dataPoints": 0, "lastUpdated": None},
            }

        download = sum(s.total_download_bytes or 0 for s in historical)
        upload = sum(s.total_upload_bytes or 0 for s in historical)
        users = [s.total_users or 0 for s in historical]

        return {
            "current": {
                "totalUsers": latest.total_users or 0,
                "totalDownloadBytes": latest.total_download_bytes or 0,
                "totalUploadBytes": latest.total_upload_bytes or 0,
                "totalBytes": latest.total_bytes or 0,
                "totalDownloadGB": to_gb(latest.total_download_bytes),
                "totalUploadGB": to_gb(latest.total_upload_bytes),
                "totalGB": to_gb(latest.total_bytes),
                "averageUsagePerUser": {
                    "downloadBytes": latest.avg_download_bytes_per_user or 0,
                    "uploadBytes": latest.avg_upload_bytes_per_user or 0,
                },
                "deviceBreakdown": sum_devices([latest.device_breakdown]),
                "timestamp": to_z(latest.timestamp),
            },
            "historical": {
                "totalDownloadGB": to_gb(download),
                "totalUploadGB": to_gb(upload),
                "totalGB": to_gb(download + upload),
                "peakUsers": peak(users),
                "averageUsers": round(mean(users)),
                "trends": [
                    {
                        "timestamp": to_z(s.timestamp),
                        "date": s.date,
                        "hour": s.hour,
                        "downloadGB": to_gb(s.total_download_bytes),
                        "uploadGB": to_gb(s.total_upload_bytes),
                        "totalGB": to_gb(s.total_bytes),
                        "users": s.total_users or 0,
                        "deviceBreakdown": sum_devices([s.device_breakdown]),
                    }
                    for s in historical[:TREND_BUCKETS]
                ],
            },
            "topUsers": [
                {
                    "hashedIP": user.get("hashedIP"),
                    "totalBytes": user.get("totalBytes", 0),
                    "totalGB": to_gb(user.get("totalBytes", 0)),
                    "downloadBytes": user.get("downloadBytes", 0),
                    "uploadBytes": user.get("uploadBytes", 0),
                    "deviceType": user.get("deviceType"),
                }
                for user in (latest.top_users or [])
            ],
            "metadata": {
                "timeRange": window.label,
                "dataPoints": len(historical),
                "lastUpdated": to_z(latest.timestamp),
            },
        }

    def session_analytics(self, network_id, window: Window = None) -> dict:
        return self._run(self._session_analytics, network_id, window)

    def _session_analytics(self, db, network_id, window):
        if window is not None:
            rows = self._in_window(db, SessionAnalytics, network_id, window, ascending=False)
        else:
            rows = db.query(SessionAnalytics).filter(
                SessionAnalytics.network_id == network_id
            ).order_by(SessionAnalytics.timestamp.desc()).all()

        empty_hours = [
            {"hour": hour, "sessions": 0, "averageSpeed": {"download": 0, "upload": 0}}
            for hour in range(24)
        ]
        if not rows:
            return {
                "total": 0, "active": 0, "completed": 0, "completionRate": 0,
                "averageDuration": 0, "totalSpeedTests": 0, "speedTestsPerSession": 0,
                "totalDataTransfer": {"downloadGB": 0, "uploadGB": 0, "totalGB": 0},
                "deviceBreakdown": dict(EMPTY_DEVICES),
                "devicePercentages": dict(EMPTY_DEVICES),
                "hourlyActivity": empty_hours,
                "sessionQuality": {"completionRate": 0, "avgTestsPerSession": 0, "avgDataPerSession": 0},
                "trends": [],
                "metadata": {"dataPoints": 0, "lastUpdated": None},
            }

        # cumulative counters: the newest snapshot already carries the totals
        latest = rows[0]
        total = latest.total_sessions or 0
        completed = latest.completed_sessions or 0
        speed_tests = latest.total_speed_tests or 0
        download_gb = latest.download_gb or 0
        upload_gb = latest.upload_gb or 0
        devices = sum_devices([latest.device_breakdown])

        return {
            "total": total,
            "active": latest.active_sessions or 0,
            "completed": completed,
            "completionRate": round(completed / total * 100) if total else 0,
            "averageDuration": latest.average_duration or 0,
            "totalSpeedTests": speed_tests,
            "speedTestsPerSession": round(speed_tests / total, 1) if total else 0,
            "totalDataTransfer": {
                "downloadGB": round(download_gb, 2),
                "uploadGB": round(upload_gb, 2),
                "totalGB": round(download_gb + upload_gb, 2),
            },
            "deviceBreakdown": devices,
            "devicePercentages": device_percentages(devices),
            "hourlyActivity": latest.hourly_activity or empty_hours,
            "sessionQuality": {
                "completionRate": latest.average_completion_rate or 0,
                "avgTestsPerSession": latest.average_speed_tests_per_session or 0,
                "avgDataPerSession": latest.average_data_per_session or 0,
            },
            "trends": [
                {
                    "timestamp": to_z(row.timestamp),
                    "totalSessions": row.total_sessions or 0,
                    "activeSessions": row.active_sessions or 0,
                    "completedSessions": row.completed_sessions or 0,
                    "averageDuration": row.average_duration or 0,
                }
                for row in rows[:20]
            ],
            "metadata": {"dataPoints": len(rows), "lastUpdated": to_z(latest.timestamp)},
        }

    def report(self, network_id, report_type="hourly", start=None, end=None, now=None) -> dict:
        now = now or utcnow()
        if start or end:
            window = resolve_window(start=start, end=end, now=now)
        else:
            window = resolve_window("24h" if report_type == "daily" else "1h", now=now)
        return self._run(self._report, network_id, report_type, window)

    def _report(self, db, network_id, report_type, window):
        samples = self._in_window(db, SystemMetrics, network_id, window)
        tests = self._in_window(db, SpeedTestHistory, network_id, window)
        analytics = self._in_window(db, SessionAnalytics, network_id, window)

        return {
            "networkId": network_id,
            "reportType": report_type,
            "timeRange": {"start": to_z(window.start), "end": to_z(window.end)},
            "summary": {
                "totalSessions": sum(a.total_sessions or 0 for a in analytics),
                "activeSessions": analytics[-1].active_sessions or 0 if analytics else 0,
                "completedSessions": sum(a.completed_sessions or 0 for a in analytics),
                "testDuration": window.minutes,
                "peakConcurrentUsers": peak([s.active_users for s in samples]),
            },
            "performance": {
                "averageSpeed": {
                    "download": round(mean([t.download_mbps for t in tests]), 2),
                    "upload": round(mean([t.upload_mbps for t in tests]), 2),
                },
                "peakSpeed": {
                    "download": peak([t.download_mbps for t in tests]),
                    "upload": peak([t.upload_mbps for t in tests]),
                },
                "systemHealth": {
                    "averageCPU": round(mean([s.cpu_usage for s in samples]), 2),
                    "averageMemory": round(mean([s.memory_usage for s in samples]), 2),
                    "maxTemperature": peak([s.temperature for s in samples]),
                    "averageDiskUsage": round(mean([s.disk_usage for s in samples]), 2),
                },
            },
        }

    # -- cross-network views -----------------------------------------------

    def global_dashboard(self, window: Window = None, now=None) -> dict:
        now = now or utcnow()
        window = window or resolve_window("1h", now=now)
        return self._run(self._global_dashboard, window, now)

    def _global_dashboard(self, db, window, now):
        network_count = db.query(NetworkConfig).count()
        samples = self._in_window(db, SystemMetrics, None, window)
        tests = self._in_window(db, SpeedTestHistory, None, window)
        usage = self._in_window(db, DataUsageSnapshot, None, window)
        analytics = self._in_window(db, SessionAnalytics, None, window)

        by_network = defaultdict(list)
        for sample in samples:
            by_network[sample.network_id].append(sample)

        breakdown = []
        for network_id, rows in sorted(by_network.items()):
            latest = rows[-1]
            breakdown.append({
                "networkId": network_id,
                "activeUsers": latest.active_users or 0,
                "avgCPU": round(mean([r.cpu_usage for r in rows]), 2),
                "avgMemory": round(mean([r.memory_usage for r in rows]), 2),
                "maxTemp": peak([r.temperature for r in rows]),
                "status": "online" if is_online(latest, now) else "offline",
            })

        download = sum(u.total_download_bytes or 0 for u in usage)
        upload = sum(u.total_upload_bytes or 0 for u in usage)
        return {
            "networks": {
                "total": network_count,
                "reporting": len(breakdown),
                "online": len([n for n in breakdown if n["status"] == "online"]),
            },
            "overview": {
                "totalActiveUsers": sum(n["activeUsers"] for n in breakdown),
                "totalSessions": sum(a.total_sessions or 0 for a in analytics),
                "activeSessions": sum(a.active_sessions or 0 for a in analytics),
                "completedSessions": sum(a.completed_sessions or 0 for a in analytics),
                "systemHealth": {
                    "cpu": round(mean([n["avgCPU"] for n in breakdown]), 2),
                    "memory": round(mean([n["avgMemory"] for n in breakdown]), 2),
                    "temperature": peak([n["maxTemp"] for n in breakdown]),
                    "diskUsage": round(mean([s.disk_usage for s in samples]), 2),
                },
            },
            "performance": {
                "averageSpeed": average_speed(tests),
                "totalSpeedTests": len(tests),
            },
            "dataUsage": {
                "totalDownloadGB": to_gb(download),
                "totalUploadGB": to_gb(upload),
                "totalUsers": sum(u.total_users or 0 for u in usage),
            },
            "networkBreakdown": breakdown,
            "timestamp": to_z(now),
        }

    def global_stats(self, window: Window = None) -> dict:
        window = window or resolve_window("24h")
        return self._run(self._global_stats, window)

    def _global_stats(self, db, window):
        samples = self._in_window(db, SystemMetrics, None, window)
        tests = self._in_window(db, SpeedTestHistory, None, window)
        usage = self._in_window(db, DataUsageSnapshot, None, window)
        analytics = self._in_window(db, SessionAnalytics, None, window)

        system_by_network = defaultdict(list)
        for s in samples:
            system_by_network[s.network_id].append(s)
        network_performance = [
            {
                "networkId": network_id,
                "avgCPU": round(mean([r.cpu_usage for r in rows]), 2),
                "maxCPU": peak([r.cpu_usage for r in rows]),
                "avgMemory": round(mean([r.memory_usage for r in rows]), 2),
                "maxMemory": peak([r.memory_usage for r in rows]),
                "avgTemp": round(mean([r.temperature for r in rows]), 2),
                "maxTemp": peak([r.temperature for r in rows]),
                "peakActiveUsers": peak([r.active_users for r in rows]),
                "dataPoints": len(rows),
            }
            for network_id, rows in sorted(system_by_network.items())
        ]

        speed_by_network = defaultdict(lambda: defaultdict(list))
        for t in tests:
            speed_by_network[t.network_id][t.timestamp.hour].append(t)
        speed_breakdown = []
        for network_id, hours in sorted(speed_by_network.items()):
            all_tests = [t for rows in hours.values() for t in rows]
            speed_breakdown.append({
                "networkId": network_id,
                "avgDownload": round(mean([t.download_mbps for t in all_tests]), 2),
                "avgUpload": round(mean([t.upload_mbps for t in all_tests]), 2),
                "totalTests": len(all_tests),
                "hourlyPerformance": [
                    {
                        "hour": hour,
                        "avgDownload": round(mean([t.download_mbps for t in rows]), 2),
                        "avgUpload": round(mean([t.upload_mbps for t in rows]), 2),
                        "avgLatency": round(mean([t.latency_ms for t in rows]), 2),
                        "testCount": len(rows),
                    }
                    for hour, rows in sorted(hours.items())
                ],
            })

        usage_by_network = defaultdict(lambda: defaultdict(list))
        for u in usage:
            usage_by_network[u.network_id][u.timestamp.strftime("%Y-%m-%d")].append(u)
        usage_breakdown = []
        for network_id, days in sorted(usage_by_network.items()):
            daily = [
                {
                    "date": day,
                    "downloadGB": to_gb(sum(r.total_download_bytes or 0 for r in rows)),
                    "uploadGB": to_gb(sum(r.total_upload_bytes or 0 for r in rows)),
                    "avgUsers": round(mean([r.total_users for r in rows]), 2),
                    "maxUsers": peak([r.total_users for r in rows]),
                }
                for day, rows in sorted(days.items())
            ]
            usage_breakdown.append({
                "networkId": network_id,
                "downloadGB": round(sum(d["downloadGB"] for d in daily), 2),
                "uploadGB": round(sum(d["uploadGB"] for d in daily), 2),
                "dailyUsage": daily,
            })

        return {
            "timeRange": window.label,
            "period": {"start": to_z(window.start), "end": to_z(window.end)},
            "summary": {
                "totalNetworks": len(network_performance),
                "totalSessions": sum(a.total_sessions or 0 for a in analytics),
                "completedSessions": sum(a.completed_sessions or 0 for a in analytics),
                "totalSpeedTests": sum(a.total_speed_tests or 0 for a in analytics),
                "totalDataGB": round(sum(n["downloadGB"] + n["uploadGB"] for n in usage_breakdown), 2),
            },
            "performance": {
                "avgCPU": round(mean([n["avgCPU"] for n in network_performance]), 2),
                "maxCPU": peak([n["maxCPU"] for n in network_performance]),
                "avgMemory": round(mean([n["avgMemory"] for n in network_performance]), 2),
                "maxMemory": peak([n["maxMemory"] for n in network_performance]),
                "avgTemperature": round(mean([n["avgTemp"] for n in network_performance]), 2),
                "maxTemperature": peak([n["maxTemp"] for n in network_performance]),
            },
            "speed": {
                "globalAverage": {
                    "download": round(mean([n["avgDownload"] for n in speed_breakdown]), 2),
                    "upload": round(mean([n["avgUpload"] for n in speed_breakdown]), 2),
                },
                "networkBreakdown": speed_breakdown,
            },
            "usage": {
                "totalDownloadGB": round(sum(n["downloadGB"] for n in usage_breakdown), 2),
                "totalUploadGB": round(sum(n["uploadGB"] for n in usage_breakdown), 2),
                "networkBreakdown": usage_breakdown,
            },
            "devices": sum_devices([a.device_breakdown for a in analytics]),
            "networkPerformance": network_performance,
        }

    def global_alerts(self, now=None) -> dict:
        now = now or utcnow()
        return self._run(self._global_alerts, now)

    def _global_alerts(self, db, now):
        window = Window(start=now - timedelta(hours=1), end=now, label="1h")
        samples = self._in_window(db, SystemMetrics, None, window, ascending=False)

        critical, warning = [], []
        for sample in samples:
            for alert in derive_alerts(sample):
                (critical if alert["severity"] == "critical" else warning).append(alert)

        recent_cutoff = now - timedelta(seconds=OFFLINE_AFTER_SECONDS)
        reporting = {
            row[0] for row in db.query(SystemMetrics.network_id).filter(
                SystemMetrics.timestamp >= recent_cutoff, SystemMetrics.timestamp <= now
            ).distinct()
        }
        active_networks = db.query(NetworkConfig).filter(NetworkConfig.status == "active").all()
        offline = [
            offline_alert(network.network_id, network.last_seen, network.ssid)
            for network in active_networks
            if network.network_id not in reporting
        ]

        return {
            "alerts": {"critical": critical, "warning": warning, "offline": offline},
            "summary": {
                "total": len(critical) + len(warning) + len(offline),
                "critical": len(critical),
                "warning": len(warning),
                "offline": len(offline),
            },
            "timestamp": to_z(now),
        }

    def networks_overview(self, now=None) -> dict:
        now = now or utcnow()
        return self._run(self._networks_overview, now)

    def _networks_overview(self, db, now):
        recent = Window(start=now - timedelta(seconds=OFFLINE_AFTER_SECONDS), end=now, label="5m")
        last_hour = Window(start=now - timedelta(hours=1), end=now, label="1h")
        networks = db.query(NetworkConfig).order_by(NetworkConfig.created_at.desc()).all()

        latest_metric = {}
        for sample in self._in_window(db, SystemMetrics, None, recent):
            latest_metric[sample.network_id] = sample
        tests_by_network = defaultdict(list)
        for test in self._in_window(db, SpeedTestHistory, None, last_hour):
            tests_by_network[test.network_id].append(test)
        usage_by_network = defaultdict(list)
        for snapshot in self._in_window(db, DataUsageSnapshot, None, last_hour):
            usage_by_network[snapshot.network_id].append(snapshot)
        analytics_by_network = {}
        for row in self._in_window(db, SessionAnalytics, None, last_hour):
            analytics_by_network[row.network_id] = row

        entries = []
        for network in networks:
            metric = latest_metric.get(network.network_id)
            tests = tests_by_network.get(network.network_id, [])
            usage = usage_by_network.get(network.network_id, [])
            analytics = analytics_by_network.get(network.network_id)
            online = metric is not None

            alerts = derive_alerts(metric) if online else [
                offline_alert(network.network_id, network.last_seen, network.ssid)
            ]
            download = sum(u.total_download_bytes or 0 for u in usage)
            upload = sum(u.total_upload_bytes or 0 for u in usage)
            last_seen = metric.timestamp if online else network.last_seen

            entry = network_view(network, self.ipfs_gateway)
            entry.update({
                "lifecycleStatus": network.status,
                "status": "online" if online else "offline",
                "lastSeen": to_z(last_seen),
                "currentMetrics": {
                    "activeUsers": metric.active_users or 0,
                    "cpuUsage": round(metric.cpu_usage or 0, 1),
                    "memoryUsage": round(metric.memory_usage or 0, 1),
                    "temperature": round(metric.temperature or 0, 1),
                    "diskUsage": round(metric.disk_usage or 0, 1),
                    "networkTraffic": {"rxBytes": metric.rx_bytes or 0, "txBytes": metric.tx_bytes or 0},
                    "timestamp": to_z(metric.timestamp),
                } if online else None,
                "performance": {
                    "averageSpeed": average_speed(tests),
                    "totalSpeedTests": len(tests),
                },
                "analytics": {
                    "totalSessions": analytics.total_sessions or 0 if analytics else 0,
                    "activeSessions": analytics.active_sessions or 0 if analytics else 0,
                    "completedSessions": analytics.completed_sessions or 0 if analytics else 0,
                    "averageDuration": round(analytics.average_duration or 0) if analytics else 0,
                },
                "dataUsage": {
                    "totalUsers": peak([u.total_users for u in usage]),
                    "totalDownloadGB": to_gb(download),
                    "totalUploadGB": to_gb(upload),
                    "deviceBreakdown": sum_devices([u.device_breakdown for u in usage]),
                },
                "health": {
                    "status": "online" if online else "offline",
                    "dataQuality": {
                        "hasRecentMetrics": online,
                        "hasSessionData": analytics is not None,
                        "hasSpeedTests": bool(tests),
                        "hasDataUsage": bool(usage),
                    },
                    "alerts": alerts,
                },
            })
            entries.append((last_seen, entry))

        # online first, then most recently seen
        entries.sort(key=lambda pair: pair[0] or datetime.min, reverse=True)
        entries = [entry for _, entry in sorted(entries, key=lambda pair: pair[1]["status"] != "online")]

        return {
            "summary": {
                "total": len(entries),
                "online": len([e for e in entries if e["status"] == "online"]),
                "offline": len([e for e in entries if e["status"] == "offline"]),
                "withAlerts": len([e for e in entries if e["health"]["alerts"]]),
                "totalActiveUsers": sum(
                    e["currentMetrics"]["activeUsers"] for e in entries if e["currentMetrics"]
                ),
                "totalSessions": sum(e["analytics"]["totalSessions"] for e in entries),
            },
            "networks": entries,
            "metadata": {
                "lastUpdated": to_z(now),
                "dataRange": {"from": to_z(recent.start), "to": to_z(now)},
            },
        }
