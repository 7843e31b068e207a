from datetime import timedelta
from types import SimpleNamespace

import pytest

from telemetry.alerts import classify, derive_alerts, offline_alert, is_online


def sample(now, **values):
    fields = dict(network_id="n1", timestamp=now, cpu_usage=10, memory_usage=10, temperature=40, disk_usage=10)
    fields.update(values)
    return SimpleNamespace(**fields)


@pytest.mark.parametrize("metric,value,expected", [
    ("cpu_usage", 85, None),
    ("cpu_usage", 86, "warning"),
    ("cpu_usage", 90, "warning"),
    ("cpu_usage", 91, "critical"),
    ("memory_usage", 91, "warning"),
    ("memory_usage", 96, "critical"),
    ("temperature", 71, "warning"),
    ("temperature", 81, "critical"),
    ("disk_usage", 99, "warning"),
    ("cpu_usage", None, None),
])
def test_classify(metric, value, expected):
    assert classify(metric, value) == expected


def test_cpu_86_is_one_warning(now):
    alerts = derive_alerts(sample(now, cpu_usage=86))
    assert [a["severity"] for a in alerts] == ["warning"]
    assert alerts[0]["metric"] == "cpu_usage"
    assert alerts[0]["threshold"] == 85
    assert alerts[0]["type"] == "system_warning"


def test_cpu_91_is_one_critical_without_warning(now):
    alerts = derive_alerts(sample(now, cpu_usage=91))
    assert len(alerts) == 1
    assert alerts[0]["severity"] == "critical"
    assert alerts[0]["threshold"] == 90


def test_several_metrics_alert_independently(now):
    alerts = derive_alerts(sample(now, cpu_usage=95, temperature=75, disk_usage=90))
    assert {(a["metric"], a["severity"]) for a in alerts} == {
        ("cpu_usage", "critical"), ("temperature", "warning"), ("disk_usage", "warning"),
    }


def test_healthy_sample_has_no_alerts(now):
    assert derive_alerts(sample(now)) == []
    assert derive_alerts(None) == []


def test_offline_alert_shape(now):
    alert = offline_alert("n1", now, "Cafe WiFi")
    assert alert["type"] == "network_offline"
    assert alert["severity"] == "critical"
    assert "Cafe WiFi" in alert["message"]


def test_is_online_uses_five_minute_window(now):
    assert is_online(sample(now - timedelta(minutes=4)), now)
    assert not is_online(sample(now - timedelta(minutes=6)), now)
    assert not is_online(None, now)
