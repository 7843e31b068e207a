from utils import to_z

OFFLINE_AFTER_SECONDS = 300

# metric attribute -> (label, warning above, critical above or None)
THRESHOLDS = {
    "cpu_usage": ("CPU", 85, 90),
    "memory_usage": ("Memory", 90, 95),
    "temperature": ("Temperature", 70, 80),
    "disk_usage": ("Disk", 85, None),
}

UNITS = {"temperature": "°C"}


def classify(metric: str, value):
    """Return 'critical', 'warning' or None for one metric value."""
    if value is None:
        return None
    _, warning, critical = THRESHOLDS[metric]
    if critical is not None and value > critical:
        return "critical"
    if value > warning:
        return "warning"
    return None


def derive_alerts(sample) -> list[dict]:
    """One alert per metric over its threshold, critical superseding warning."""
    if sample is None:
        return []
    alerts = []
    for metric, (label, warning, critical) in THRESHOLDS.items():
        value = getattr(sample, metric)
        severity = classify(metric, value)
        if severity is None:
            continue
        threshold = critical if severity == "critical" else warning
        unit = UNITS.get(metric, "%")
        alerts.append({
            "type": f"system_{severity}",
            "severity": severity,
            "metric": metric,
            "networkId": sample.network_id,
            "value": value,
            "threshold": threshold,
            "message": f"{label} at {value}{unit} (threshold {threshold}{unit})",
            "timestamp": to_z(sample.timestamp),
        })
    return alerts


def offline_alert(network_id: str, last_seen=None, name=None) -> dict:
    return {
        "type": "network_offline",
        "severity": "critical",
        "metric": None,
        "networkId": network_id,
        "value": None,
        "threshold": OFFLINE_AFTER_SECONDS,
        "message": f"Network {name or network_id} has not reported in the last 5 minutes",
        "timestamp": to_z(last_seen),
    }


def is_online(latest_sample, now) -> bool:
    if latest_sample is None:
        return False
    return (now - latest_sample.timestamp).total_seconds() <= OFFLINE_AFTER_SECONDS
