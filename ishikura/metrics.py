"""Network server metrics: counters, rates and a latency histogram."""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)

UINT64_MAX = 2**64 - 1

DEFAULT_LATENCY_BUCKETS_US = (
    100,
    250,
    500,
    1_000,
    2_500,
    5_000,
    10_000,
    25_000,
    50_000,
    100_000,
    250_000,
    500_000,
    1_000_000,
)


class LatencyHistogram:
    """Counts latencies into buckets by exclusive upper bound, in microseconds."""

    def __init__(self, buckets_us: Optional[Sequence[int]] = None) -> None:
        bounds = tuple(buckets_us) if buckets_us is not None else DEFAULT_LATENCY_BUCKETS_US
        if not bounds or list(bounds) != sorted(bounds):
            raise ValueError("bucket bounds must be a non-empty ascending sequence")
        self.BUCKETS = bounds
        self._lock = threading.Lock()
        self._counts: List[int] = [0] * len(bounds)

    def record(self, latency_us: int) -> None:
        """Count ``latency_us`` in the first bucket whose bound exceeds it.

        Latencies at or above the largest bound are not counted.
        """
        for index, bound in enumerate(self.BUCKETS):
            if latency_us < bound:
                with self._lock:
                    self._counts[index] += 1
                return

    def get_buckets(self) -> List[int]:
        """Return a copy of the bucket counts."""
        with self._lock:
            return list(self._counts)

    def reset(self) -> None:
        """Set every bucket count back to zero."""
        with self._lock:
            self._counts = [0] * len(self.BUCKETS)


@dataclass
class ConnectionMetrics:
    total_connections: int = 0
    active_connections: int = 0
    rejected_connections: int = 0
    failed_connections: int = 0
    connections_per_second: int = 0
    total_connection_time_us: int = 0
    min_connection_time_us: int = UINT64_MAX
    max_connection_time_us: int = 0


@dataclass
class RequestMetrics:
    total_requests: int = 0
    requests_per_second: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    put_requests: int = 0
    get_requests: int = 0
    delete_requests: int = 0
    query_requests: int = 0
    batch_requests: int = 0
    ping_requests: int = 0
    total_response_time_us: int = 0
    min_response_time_us: int = UINT64_MAX
    max_response_time_us: int = 0


@dataclass
class BandwidthMetrics:
    bytes_sent: int = 0
    bytes_received: int = 0
    bytes_per_second_sent: int = 0
    bytes_per_second_received: int = 0
    messages_sent: int = 0
    messages_received: int = 0
    compressed_messages: int = 0
    compression_ratio_total: int = 0


@dataclass
class ErrorMetrics:
    protocol_errors: int = 0
    timeout_errors: int = 0
    network_errors: int = 0
    serialization_errors: int = 0
    rate_limit_violations: int = 0
    errors_per_second: int = 0


@dataclass
class SessionMetrics:
    active_sessions: int = 0
    expired_sessions: int = 0
    cleaned_sessions: int = 0
    session_renewals: int = 0
    total_session_duration_us: int = 0
    average_session_duration_us: int = 0


_REQUEST_TYPE_FIELDS = {
    "PUT": "put_requests",
    "GET": "get_requests",
    "DELETE": "delete_requests",
    "QUERY": "query_requests",
    "BATCH": "batch_requests",
    "PING": "ping_requests",
}


class NetworkMetrics:
    """Thread-safe collection of connection, request, bandwidth, error and session metrics."""

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        histogram: Optional[LatencyHistogram] = None,
    ) -> None:
        self._clock = clock
        self._lock = threading.RLock()
        self.latency_histogram = histogram if histogram is not None else LatencyHistogram()
        self.connection_metrics = ConnectionMetrics()
        self.request_metrics = RequestMetrics()
        self.bandwidth_metrics = BandwidthMetrics()
        self.error_metrics = ErrorMetrics()
        self.session_metrics = SessionMetrics()
        self._reset_rate_baselines()
        logger.debug("NetworkMetrics initialized")

    def _reset_rate_baselines(self) -> None:
        self._last_rate_calculation = self._clock()
        self._last_connections = 0
        self._last_requests = 0
        self._last_errors = 0
        self._last_sent = 0
        self._last_received = 0

    # Connections

    def record_connection_start(self) -> None:
        with self._lock:
            self.connection_metrics.total_connections += 1
            self.connection_metrics.active_connections += 1
            self._update_rates()

    def record_connection_end(self, duration_us: int) -> None:
        with self._lock:
            conn = self.connection_metrics
            conn.active_connections -= 1
            conn.total_connection_time_us += duration_us
            conn.min_connection_time_us = min(conn.min_connection_time_us, duration_us)
            conn.max_connection_time_us = max(conn.max_connection_time_us, duration_us)

    def record_connection_rejected(self) -> None:
        with self._lock:
            self.connection_metrics.rejected_connections += 1

    def record_connection_failed(self) -> None:
        with self._lock:
            self.connection_metrics.failed_connections += 1

    # Requests

    def record_request_start(self) -> None:
        with self._lock:
            self.request_metrics.total_requests += 1
            self._update_rates()

    def record_request_end(self, response_time_us: int, success: bool) -> None:
        with self._lock:
            req = self.request_metrics
            if success:
                req.successful_requests += 1
            else:
                req.failed_requests += 1
            req.total_response_time_us += response_time_us
            req.min_response_time_us = min(req.min_response_time_us, response_time_us)
            req.max_response_time_us = max(req.max_response_time_us, response_time_us)
        self.latency_histogram.record(response_time_us)

    def record_request_by_type(self, request_type: str) -> None:
        """Count a request of type PUT, GET, DELETE, QUERY, BATCH or PING; others are ignored."""
        field_name = _REQUEST_TYPE_FIELDS.get(request_type)
        if field_name is None:
            return
        with self._lock:
            setattr(
                self.request_metrics,
                field_name,
                getattr(self.request_metrics, field_name) + 1,
            )

    # Bandwidth

    def record_bytes_sent(self, count: int) -> None:
        with self._lock:
            self.bandwidth_metrics.bytes_sent += count

    def record_bytes_received(self, count: int) -> None:
        with self._lock:
            self.bandwidth_metrics.bytes_received += count

    def record_message_sent(self) -> None:
        with self._lock:
            self.bandwidth_metrics.messages_sent += 1

    def record_message_received(self) -> None:
        with self._lock:
            self.bandwidth_metrics.messages_received += 1

    def record_compression(self, original_size: int, compressed_size: int) -> None:
        with self._lock:
            self.bandwidth_metrics.compressed_messages += 1
            if original_size > 0:
                ratio = (compressed_size * 100) // original_size
                self.bandwidth_metrics.compression_ratio_total += ratio

    # Errors

    def record_protocol_error(self) -> None:
        with self._lock:
            self.error_metrics.protocol_errors += 1

    def record_timeout_error(self) -> None:
        with self._lock:
            self.error_metrics.timeout_errors += 1

    def record_network_error(self) -> None:
        with self._lock:
            self.error_metrics.network_errors += 1

    def record_serialization_error(self) -> None:
        with self._lock:
            self.error_metrics.serialization_errors += 1

    def record_rate_limit_violation(self) -> None:
        with self._lock:
            self.error_metrics.rate_limit_violations += 1

    # Sessions

    def record_session_created(self) -> None:
        with self._lock:
            self.session_metrics.active_sessions += 1

    def record_session_expired(self, duration_us: int) -> None:
        with self._lock:
            sess = self.session_metrics
            sess.active_sessions -= 1
            sess.expired_sessions += 1
            sess.total_session_duration_us += duration_us
            if sess.expired_sessions > 0:
                sess.average_session_duration_us = (
                    sess.total_session_duration_us // sess.expired_sessions
                )

    def record_session_renewed(self) -> None:
        with self._lock:
            self.session_metrics.session_renewals += 1

    # Derived values

    def get_average_response_time_ms(self) -> float:
        """Mean response time in milliseconds over all started requests."""
        with self._lock:
            total = self.request_metrics.total_requests
            if total == 0:
                return 0.0
            return self.request_metrics.total_response_time_us / total / 1000.0

    def get_error_rate(self) -> float:
        """Failed requests as a percentage of started requests."""
        with self._lock:
            total = self.request_metrics.total_requests
            if total == 0:
                return 0.0
            return self.request_metrics.failed_requests / total * 100.0

    def get_requests_per_second(self) -> float:
        with self._lock:
            return float(self.request_metrics.requests_per_second)

    def get_average_compression_ratio(self) -> float:
        """Mean compressed size as a percentage of the original size."""
        with self._lock:
            count = self.bandwidth_metrics.compressed_messages
            if count == 0:
                return 0.0
            return self.bandwidth_metrics.compression_ratio_total / count

    def reset_metrics(self) -> None:
        """Zero every counter, the histogram and the rate baselines."""
        with self._lock:
            self.connection_metrics = ConnectionMetrics()
            self.request_metrics = RequestMetrics()
            self.bandwidth_metrics = BandwidthMetrics()
            self.error_metrics = ErrorMetrics()
            self.session_metrics = SessionMetrics()
            self.latency_histogram.reset()
            self._reset_rate_baselines()
        logger.debug("NetworkMetrics reset")

    # Export

    def to_json(self) -> str:
        """Return all metrics as an indented JSON document."""
        with self._lock:
            conn = self.connection_metrics
            req = self.request_metrics
            bw = self.bandwidth_metrics
            err = self.error_metrics
            sess = self.session_metrics
            document = {
                "connections": {
                    "total": conn.total_connections,
                    "active": conn.active_connections,
                    "rejected": conn.rejected_connections,
                    "failed": conn.failed_connections,
                    "per_second": conn.connections_per_second,
                },
                "requests": {
                    "total": req.total_requests,
                    "per_second": req.requests_per_second,
                    "successful": req.successful_requests,
                    "failed": req.failed_requests,
                    "average_response_time_ms": self.get_average_response_time_ms(),
                    "error_rate_percent": self.get_error_rate(),
                    "by_type": {
                        "put": req.put_requests,
                        "get": req.get_requests,
                        "delete": req.delete_requests,
                        "query": req.query_requests,
                        "batch": req.batch_requests,
                        "ping": req.ping_requests,
                    },
                },
                "bandwidth": {
                    "bytes_sent": bw.bytes_sent,
                    "bytes_received": bw.bytes_received,
                    "messages_sent": bw.messages_sent,
                    "messages_received": bw.messages_received,
                    "compression_ratio": self.get_average_compression_ratio(),
                },
                "errors": {
                    "protocol": err.protocol_errors,
                    "timeout": err.timeout_errors,
                    "network": err.network_errors,
                    "serialization": err.serialization_errors,
                    "rate_limit": err.rate_limit_violations,
                },
                "sessions": {
                    "active": sess.active_sessions,
                    "expired": sess.expired_sessions,
                    "renewals": sess.session_renewals,
                    "average_duration_ms": sess.average_session_duration_us / 1000.0,
                },
                "latency": {"histogram": self.latency_histogram.get_buckets()},
            }
        return json.dumps(document, indent=2, sort_keys=True)

    def to_key_value_map(self) -> Dict[str, int]:
        """Return the counters as a flat mapping of dotted names to values."""
        with self._lock:
            conn = self.connection_metrics
            req = self.request_metrics
            bw = self.bandwidth_metrics
            err = self.error_metrics
            sess = self.session_metrics
            return {
                "connections.total": conn.total_connections,
                "connections.active": conn.active_connections,
                "connections.rejected": conn.rejected_connections,
                "connections.failed": conn.failed_connections,
                "connections.per_second": conn.connections_per_second,
                "requests.total": req.total_requests,
                "requests.per_second": req.requests_per_second,
                "requests.successful": req.successful_requests,
                "requests.failed": req.failed_requests,
                "requests.put": req.put_requests,
                "requests.get": req.get_requests,
                "requests.delete": req.delete_requests,
                "requests.query": req.query_requests,
                "requests.batch": req.batch_requests,
                "requests.ping": req.ping_requests,
                "bandwidth.bytes_sent": bw.bytes_sent,
                "bandwidth.bytes_received": bw.bytes_received,
                "bandwidth.messages_sent": bw.messages_sent,
                "bandwidth.messages_received": bw.messages_received,
                "errors.protocol": err.protocol_errors,
                "errors.timeout": err.timeout_errors,
                "errors.network": err.network_errors,
                "errors.serialization": err.serialization_errors,
                "errors.rate_limit": err.rate_limit_violations,
                "sessions.active": sess.active_sessions,
                "sessions.expired": sess.expired_sessions,
                "sessions.renewals": sess.session_renewals,
            }

    def _update_rates(self) -> None:
        # Caller holds the lock.
        current_time = self._clock()
        elapsed = int(current_time - self._last_rate_calculation)
        if elapsed < 1:
            return

        conn = self.connection_metrics
        req = self.request_metrics
        err = self.error_metrics
        bw = self.bandwidth_metrics

        conn.connections_per_second = (conn.total_connections - self._last_connections) // elapsed
        self._last_connections = conn.total_connections

        req.requests_per_second = (req.total_requests - self._last_requests) // elapsed
        self._last_requests = req.total_requests

        current_errors = (
            err.protocol_errors
            + err.timeout_errors
            + err.network_errors
            + err.serialization_errors
        )
        err.errors_per_second = (current_errors - self._last_errors) // elapsed
        self._last_errors = current_errors

        bw.bytes_per_second_sent = (bw.bytes_sent - self._last_sent) // elapsed
        bw.bytes_per_second_received = (bw.bytes_received - self._last_received) // elapsed
        self._last_sent = bw.bytes_sent
        self._last_received = bw.bytes_received

        self._last_rate_calculation = current_time