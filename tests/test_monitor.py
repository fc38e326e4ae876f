import time
from datetime import timedelta

import pytest

from ishikura.metrics import NetworkMetrics
from ishikura.monitor import MetricsMonitor, MonitorConfig


def _quiet_monitor(metrics, **kwargs):
    config = MonitorConfig(enable_console_output=False, **kwargs)
    return MetricsMonitor(metrics, config)


def test_none_metrics_rejected():
    with pytest.raises(ValueError):
        MetricsMonitor(None)


def test_default_config_values():
    monitor = MetricsMonitor(NetworkMetrics())
    assert monitor.config.enable_file_output is False
    assert monitor.config.enable_console_output is True


def test_report_frame():
    report = _quiet_monitor(NetworkMetrics()).generate_report()
    assert report.startswith("┌─────────────────────────────────────────┐\n")
    assert report.endswith("└─────────────────────────────────────────┘")
    assert "│           Network Metrics               │" in report
    assert "│ Connections" in report
    assert "│ Requests" in report
    assert "│ Bandwidth" in report


def test_report_connection_line_pinned():
    metrics = NetworkMetrics()
    for _ in range(5):
        metrics.record_connection_start()
    report = _quiet_monitor(metrics).generate_report()
    assert "│  Total:          5 Active:        5 │\n" in report


def test_report_lines_have_equal_width():
    metrics = NetworkMetrics()
    metrics.record_connection_start()
    metrics.record_request_start()
    metrics.record_request_end(1500, True)
    report = _quiet_monitor(metrics).generate_report()
    widths = {len(line) for line in report.split("\n")}
    assert len(widths) == 1


def test_error_section_only_when_errors():
    metrics = NetworkMetrics()
    monitor = _quiet_monitor(metrics)
    assert "Errors (Total:" not in monitor.generate_report()
    metrics.record_protocol_error()
    metrics.record_rate_limit_violation()
    report = monitor.generate_report()
    assert "│ Errors (Total: " in report
    assert "Rate Limit: " in report


def test_session_section_only_when_sessions():
    metrics = NetworkMetrics()
    monitor = _quiet_monitor(metrics)
    assert "│ Sessions" not in monitor.generate_report()
    metrics.record_session_created()
    report = monitor.generate_report()
    assert "│ Sessions" in report
    assert "Avg Duration:" in report


def test_compression_line_only_when_compressed():
    metrics = NetworkMetrics()
    monitor = _quiet_monitor(metrics)
    assert "Compression:" not in monitor.generate_report()
    metrics.record_compression(200, 100)
    assert "Compression:  50.0%" in monitor.generate_report()


def test_report_now_writes_file(tmp_path):
    path = tmp_path / "metrics.log"
    monitor = _quiet_monitor(
        NetworkMetrics(), enable_file_output=True, log_file_path=str(path)
    )
    monitor.report_now()
    monitor.report_now()
    content = path.read_text(encoding="utf-8")
    assert content.startswith("=== ")
    assert content.count("Network Metrics") == 2
    assert content.endswith("┘\n\n")


def test_update_config_switches_output(tmp_path):
    path = tmp_path / "metrics.log"
    monitor = _quiet_monitor(NetworkMetrics())
    monitor.report_now()
    assert not path.exists()
    monitor.update_config(
        MonitorConfig(
            enable_console_output=False,
            enable_file_output=True,
            log_file_path=str(path),
        )
    )
    monitor.report_now()
    assert "Network Metrics" in path.read_text(encoding="utf-8")


def test_background_thread_reports(tmp_path):
    path = tmp_path / "metrics.log"
    monitor = _quiet_monitor(
        NetworkMetrics(),
        enable_file_output=True,
        log_file_path=str(path),
        report_interval=timedelta(milliseconds=20),
    )
    monitor.start()
    monitor.start()
    deadline = time.monotonic() + 5
    while time.monotonic() < deadline:
        if path.exists() and "Network Metrics" in path.read_text(encoding="utf-8"):
            break
        time.sleep(0.01)
    monitor.stop()
    monitor.stop()
    written = path.read_text(encoding="utf-8")
    assert "Network Metrics" in written
    time.sleep(0.1)
    assert path.read_text(encoding="utf-8") == written


def test_context_manager_stops_thread(tmp_path):
    path = tmp_path / "metrics.log"
    monitor = _quiet_monitor(
        NetworkMetrics(),
        enable_file_output=True,
        log_file_path=str(path),
        report_interval=timedelta(seconds=30),
    )
    with monitor:
        deadline = time.monotonic() + 5
        while not path.exists() and time.monotonic() < deadline:
            time.sleep(0.01)
    content = path.read_text(encoding="utf-8")
    assert content.count("Network Metrics") == 1