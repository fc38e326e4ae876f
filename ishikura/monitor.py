"""Periodic reporting of network metrics to the log and to a file."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from ishikura.metrics import NetworkMetrics

logger = logging.getLogger(__name__)

_BORDER = "├─────────────────────────────────────────┤\n"


@dataclass
class MonitorConfig:
    """How often and where metrics reports are written."""

    report_interval: timedelta = timedelta(seconds=60)
    enable_console_output: bool = True
    enable_file_output: bool = False
    log_file_path: str = "network_metrics.log"


class MetricsMonitor:
    """Writes a formatted metrics report at a fixed interval on a background thread."""

    def __init__(
        self, metrics: NetworkMetrics, config: Optional[MonitorConfig] = None
    ) -> None:
        if metrics is None:
            raise ValueError("NetworkMetrics cannot be null")
        self._metrics = metrics
        self._config = config if config is not None else MonitorConfig()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._state_lock = threading.Lock()
        logger.debug(
            "MetricsMonitor initialized with %s second intervals",
            self._config.report_interval.total_seconds(),
        )

    @property
    def config(self) -> MonitorConfig:
        return self._config

    def __enter__(self) -> "MetricsMonitor":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def start(self) -> None:
        """Start the background reporting thread; does nothing if already running."""
        with self._state_lock:
            if self._thread is not None:
                logger.warning("MetricsMonitor already running")
                return
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._monitor_loop, name="metrics-monitor", daemon=True
            )
            self._thread.start()
        logger.info("MetricsMonitor started")

    def stop(self) -> None:
        """Stop the reporting thread and wait for it to finish."""
        with self._state_lock:
            thread = self._thread
            if thread is None:
                return
            self._stop_event.set()
            self._thread = None
        thread.join()
        logger.info("MetricsMonitor stopped")

    def report_now(self) -> None:
        """Write a report immediately to the configured outputs."""
        self._write_metrics_report()

    def update_config(self, config: MonitorConfig) -> None:
        """Replace the monitor configuration."""
        self._config = config
        logger.debug("MetricsMonitor config updated")

    def _monitor_loop(self) -> None:
        while not self._stop_event.is_set():
            self._write_metrics_report()
            interval = self._config.report_interval.total_seconds()
            if self._stop_event.wait(max(interval, 0.0)):
                break

    def _write_metrics_report(self) -> None:
        report = self.generate_report()
        config = self._config
        if config.enable_console_output:
            logger.info("Network Metrics Report:\n%s", report)
        if config.enable_file_output:
            self._write_to_file(report, config.log_file_path)

    @staticmethod
    def _write_to_file(report: str, path: str) -> None:
        stamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        try:
            with open(path, "a", encoding="utf-8") as handle:
                handle.write(f"=== {stamp} ===\n")
                handle.write(f"{report}\n\n")
        except OSError as exc:
            logger.error("Failed to write metrics to file %s: %s", path, exc)

    def generate_report(self) -> str:
        """Return the boxed, human-readable metrics report."""
        metrics = self._metrics
        conn = metrics.connection_metrics
        req = metrics.request_metrics
        bw = metrics.bandwidth_metrics
        err = metrics.error_metrics
        sess = metrics.session_metrics

        lines: List[str] = [
            "┌─────────────────────────────────────────┐\n",
            "│           Network Metrics               │\n",
            _BORDER,
            "│ Connections                             │\n",
            f"│  Total: {conn.total_connections:>10}"
            f" Active: {conn.active_connections:>8} │\n",
            f"│  Failed: {conn.failed_connections:>9}"
            f" Rejected: {conn.rejected_connections:>6} │\n",
            f"│  Rate: {conn.connections_per_second:>10} conn/s           │\n",
            _BORDER,
            "│ Requests                                │\n",
            f"│  Total: {req.total_requests:>10}"
            f" Success: {req.successful_requests:>8} │\n",
            f"│  Failed: {req.failed_requests:>9}"
            f" Rate: {req.requests_per_second:>9} req/s │\n",
            f"│  Avg Response: {metrics.get_average_response_time_ms():>6.2f} ms          │\n",
            f"│  Error Rate: {metrics.get_error_rate():>8.2f} %             │\n",
            f"│  PUT: {req.put_requests:>8} GET: {req.get_requests:>8}"
            f" DEL: {req.delete_requests:>5} │\n",
            f"│  QUERY: {req.query_requests:>6} BATCH: {req.batch_requests:>6}"
            f" PING: {req.ping_requests:>5} │\n",
            _BORDER,
            "│ Bandwidth                               │\n",
            f"│  Sent: {bw.bytes_sent:>10} B  Rate: {bw.bytes_per_second_sent:>6} B/s │\n",
            f"│  Recv: {bw.bytes_received:>10} B  Rate: {bw.bytes_per_second_received:>6} B/s │\n",
            f"│  Msgs Sent: {bw.messages_sent:>7} Recv: {bw.messages_received:>7} │\n",
        ]

        if bw.compressed_messages > 0:
            lines.append(
                f"│  Compression: {metrics.get_average_compression_ratio():>5.1f}%              │\n"
            )

        total_errors = (
            err.protocol_errors
            + err.timeout_errors
            + err.network_errors
            + err.serialization_errors
            + err.rate_limit_violations
        )
        if total_errors > 0:
            lines += [
                _BORDER,
                f"│ Errors (Total: {total_errors:>8})           │\n",
                f"│  Protocol: {err.protocol_errors:>6} Timeout: {err.timeout_errors:>8} │\n",
                f"│  Network: {err.network_errors:>7} Serial: {err.serialization_errors:>9} │\n",
                f"│  Rate Limit: {err.rate_limit_violations:>6}                  │\n",
            ]

        if sess.active_sessions > 0 or sess.expired_sessions > 0:
            average_s = sess.average_session_duration_us / 1_000_000.0
            lines += [
                _BORDER,
                "│ Sessions                                │\n",
                f"│  Active: {sess.active_sessions:>8} Expired: {sess.expired_sessions:>8} │\n",
                f"│  Renewals: {sess.session_renewals:>6}                  │\n",
                f"│  Avg Duration: {average_s:>6.2f} s          │\n",
            ]

        lines.append("└─────────────────────────────────────────┘")
        return "".join(lines)