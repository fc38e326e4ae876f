"""Buffered data streams and batched storage operations."""

from __future__ import annotations

import enum
import itertools
import logging
import threading
import time
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable, Deque, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

logger = logging.getLogger(__name__)

TOMBSTONE = "__DELETED__"

KeyValue = Tuple[str, str]


class StreamState(enum.Enum):
    """Lifecycle state of a streaming session."""

    IDLE = "idle"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass
class StreamConfig:
    """Batching and buffering settings of a streaming session."""

    batch_size: int = 100
    max_buffer_size: int = 10000
    flush_interval: timedelta = timedelta(milliseconds=100)
    enable_compression: bool = False


@dataclass
class StreamBatch:
    """A batch of key/value pairs delivered to a stream's data callback."""

    stream_id: int
    items: List[KeyValue] = field(default_factory=list)
    compressed: bool = False

    @property
    def total_size(self) -> int:
        """Payload size in bytes: the UTF-8 lengths of all keys and values."""
        return sum(len(key.encode("utf-8")) + len(value.encode("utf-8")) for key, value in self.items)


@dataclass
class StreamStats:
    """Counters of one streaming session."""

    items_buffered: int = 0
    total_items_sent: int = 0
    total_batches_sent: int = 0
    total_bytes_sent: int = 0
    flush_count: int = 0


DataCallback = Callable[[StreamBatch], bool]


class StreamingSession:
    """Buffers key/value pairs and delivers them in batches from a background thread."""

    def __init__(self, stream_id: int, config: Optional[StreamConfig] = None) -> None:
        self.stream_id = stream_id
        self.config = config if config is not None else StreamConfig()
        self.stats = StreamStats()
        self._cond = threading.Condition()
        self._queue: Deque[KeyValue] = deque()
        self._state = StreamState.IDLE
        self._stop_requested = False
        self._thread: Optional[threading.Thread] = None
        self._callback: Optional[DataCallback] = None
        logger.debug(
            "StreamingSession %s created with batch_size: %s, max_buffer: %s",
            stream_id,
            self.config.batch_size,
            self.config.max_buffer_size,
        )

    @property
    def state(self) -> StreamState:
        with self._cond:
            return self._state

    @property
    def pending_count(self) -> int:
        """Number of buffered items not yet delivered."""
        with self._cond:
            return len(self._queue)

    def set_data_callback(self, callback: Optional[DataCallback]) -> None:
        """Set the function that receives each batch; it returns True on success."""
        self._callback = callback

    def is_active(self) -> bool:
        return self.state is StreamState.ACTIVE

    def __enter__(self) -> "StreamingSession":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def start(self) -> bool:
        """Start delivering; only an idle session can be started."""
        with self._cond:
            if self._state is not StreamState.IDLE:
                return False
            self._state = StreamState.ACTIVE
            self._stop_requested = False
            self._thread = threading.Thread(
                target=self._stream_worker, name=f"stream-{self.stream_id}", daemon=True
            )
            self._thread.start()
        logger.debug("StreamingSession %s started", self.stream_id)
        return True

    def pause(self) -> bool:
        """Suspend delivery of an active session."""
        with self._cond:
            if self._state is not StreamState.ACTIVE:
                return False
            self._state = StreamState.PAUSED
            return True

    def resume(self) -> bool:
        """Resume delivery of a paused session."""
        with self._cond:
            if self._state is not StreamState.PAUSED:
                return False
            self._state = StreamState.ACTIVE
            self._cond.notify_all()
            return True

    def stop(self) -> bool:
        """Stop the session, delivering whatever is still buffered."""
        with self._cond:
            if self._state in (StreamState.COMPLETED, StreamState.IDLE):
                return True
            self._stop_requested = True
            self._state = StreamState.COMPLETED
            self._cond.notify_all()
            thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()
        logger.debug("StreamingSession %s stopped", self.stream_id)
        return True

    def _accepts_data(self) -> bool:
        return self._state not in (StreamState.COMPLETED, StreamState.ERROR)

    def add_data(self, key: str, value: str) -> bool:
        """Buffer one pair; False when the session is finished or the buffer is full."""
        with self._cond:
            if not self._accepts_data():
                return False
            if len(self._queue) >= self.config.max_buffer_size:
                logger.warning("StreamingSession %s buffer full, dropping data", self.stream_id)
                return False
            self._queue.append((key, value))
            self.stats.items_buffered += 1
            self._cond.notify()
        return True

    def add_batch(self, items: Iterable[KeyValue]) -> bool:
        """Buffer all pairs or none; False when they do not fit or the session is finished."""
        batch = [(key, value) for key, value in items]
        with self._cond:
            if not self._accepts_data():
                return False
            if len(self._queue) + len(batch) > self.config.max_buffer_size:
                logger.warning(
                    "StreamingSession %s cannot fit batch of %d items", self.stream_id, len(batch)
                )
                return False
            self._queue.extend(batch)
            self.stats.items_buffered += len(batch)
            self._cond.notify()
        return True

    def _stream_worker(self) -> None:
        logger.debug("Stream worker %s started", self.stream_id)
        interval = max(self.config.flush_interval.total_seconds(), 0.0)
        last_flush = time.monotonic()
        while True:
            with self._cond:
                while not self._stop_requested:
                    if self._state is StreamState.PAUSED:
                        self._cond.wait()
                        continue
                    elapsed = time.monotonic() - last_flush
                    if len(self._queue) >= self.config.batch_size:
                        break
                    if self._queue and elapsed >= interval:
                        break
                    timeout = interval if not self._queue else interval - elapsed
                    self._cond.wait(max(timeout, 0.0))
                if self._stop_requested:
                    break
            if self._flush_batch():
                last_flush = time.monotonic()

        while self._flush_batch():
            pass
        logger.debug("Stream worker %s finished", self.stream_id)

    def _flush_batch(self) -> bool:
        with self._cond:
            count = min(len(self._queue), self.config.batch_size)
            items = [self._queue.popleft() for _ in range(count)]
        if not items:
            return False

        batch = StreamBatch(
            stream_id=self.stream_id,
            items=items,
            compressed=self.config.enable_compression,
        )
        callback = self._callback
        if callback is None:
            return True

        try:
            delivered = bool(callback(batch))
        except Exception:
            logger.exception("StreamingSession %s data callback raised", self.stream_id)
            delivered = False

        with self._cond:
            if delivered:
                self.stats.total_items_sent += len(items)
                self.stats.total_batches_sent += 1
                self.stats.total_bytes_sent += batch.total_size
                self.stats.flush_count += 1
                return True
            logger.error("StreamingSession %s data callback failed", self.stream_id)
            self._state = StreamState.ERROR
            return False


@dataclass
class StreamingStats:
    """Counters across all streams of a manager."""

    total_streams_created: int = 0
    active_streams: int = 0
    completed_streams: int = 0
    total_items_streamed: int = 0


class StreamingManager:
    """Creates, runs and tracks streaming sessions by numeric id."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._streams: Dict[int, StreamingSession] = {}
        self._ids = itertools.count(1)
        self.stats = StreamingStats()
        logger.debug("StreamingManager initialized")

    def __enter__(self) -> "StreamingManager":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def create_stream(self, config: Optional[StreamConfig] = None) -> int:
        """Create an idle stream and return its id."""
        with self._lock:
            stream_id = next(self._ids)
            self._streams[stream_id] = StreamingSession(stream_id, config)
            self.stats.total_streams_created += 1
        logger.debug("Created stream %s", stream_id)
        return stream_id

    def get_stream(self, stream_id: int) -> Optional[StreamingSession]:
        with self._lock:
            return self._streams.get(stream_id)

    def start_stream(self, stream_id: int) -> bool:
        stream = self.get_stream(stream_id)
        if stream is None or not stream.start():
            return False
        with self._lock:
            self.stats.active_streams += 1
        return True

    def stop_stream(self, stream_id: int) -> bool:
        stream = self.get_stream(stream_id)
        if stream is None:
            return False
        was_running = stream.state in (StreamState.ACTIVE, StreamState.PAUSED, StreamState.ERROR)
        stream.stop()
        if was_running:
            with self._lock:
                self.stats.active_streams -= 1
                self.stats.completed_streams += 1
        return True

    def remove_stream(self, stream_id: int) -> bool:
        """Stop and forget a stream; False when the id is unknown."""
        self.stop_stream(stream_id)
        with self._lock:
            removed = self._streams.pop(stream_id, None) is not None
        if removed:
            logger.debug("Removed stream %s", stream_id)
        return removed

    def add_to_stream(self, stream_id: int, key: str, value: str) -> bool:
        stream = self.get_stream(stream_id)
        if stream is None or not stream.add_data(key, value):
            return False
        with self._lock:
            self.stats.total_items_streamed += 1
        return True

    def add_batch_to_stream(self, stream_id: int, items: Sequence[KeyValue]) -> bool:
        stream = self.get_stream(stream_id)
        if stream is None or not stream.add_batch(items):
            return False
        with self._lock:
            self.stats.total_items_streamed += len(items)
        return True

    def get_active_stream_ids(self) -> List[int]:
        with self._lock:
            streams = list(self._streams.items())
        return [stream_id for stream_id, stream in streams if stream.is_active()]

    def active_stream_count(self) -> int:
        with self._lock:
            return self.stats.active_streams

    def close(self) -> None:
        """Stop every stream."""
        with self._lock:
            ids = list(self._streams)
        for stream_id in ids:
            self.stop_stream(stream_id)


class Storage(Protocol):
    def put(self, key: str, value: str) -> bool: ...

    def get(self, key: str) -> Optional[str]: ...

    def delete_key(self, key: str) -> bool: ...


class BatchStatus(enum.Enum):
    """Outcome of one batch item."""

    SUCCESS = "success"
    KEY_NOT_FOUND = "key_not_found"
    STORAGE_ERROR = "storage_error"
    SERVER_ERROR = "server_error"


class BatchOp(enum.Enum):
    PUT = "put"
    GET = "get"
    DELETE = "delete"


@dataclass
class BatchItem:
    op: BatchOp
    key: str
    value: str = ""


@dataclass
class BatchResult:
    status: BatchStatus = BatchStatus.SUCCESS
    value: Optional[str] = None
    execution_time_us: int = 0


@dataclass
class BatchConfig:
    enable_parallelization: bool = True
    worker_threads: int = 4
    preserve_order: bool = True


@dataclass
class BatchStats:
    batches_executed: int = 0
    items_processed: int = 0
    total_execution_time_us: int = 0
    cache_hits: int = 0
    cache_misses: int = 0


BatchCallback = Callable[[List[BatchResult]], None]

_PARALLEL_THRESHOLD = 10


class BatchProcessor:
    """Runs batches of put, get and delete operations against a storage engine."""

    def __init__(self, storage: Storage, config: Optional[BatchConfig] = None) -> None:
        if storage is None:
            raise ValueError("Storage engine cannot be null")
        self.storage = storage
        self.config = config if config is not None else BatchConfig()
        self.stats = BatchStats()
        self._lock = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None
        if self.config.enable_parallelization and self.config.worker_threads > 0:
            self._executor = ThreadPoolExecutor(
                max_workers=self.config.worker_threads, thread_name_prefix="batch-worker"
            )
        logger.debug(
            "BatchProcessor initialized with %d worker threads",
            self.config.worker_threads if self._executor else 0,
        )

    def __enter__(self) -> "BatchProcessor":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Shut down the worker threads."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def execute_batch(self, items: Sequence[BatchItem]) -> List[BatchResult]:
        """Execute every item and return the results in the items' order."""
        start = time.perf_counter_ns()
        executor = self._executor
        if executor is not None and len(items) > _PARALLEL_THRESHOLD:
            results = list(executor.map(self._execute_single_item, items))
        else:
            results = [self._execute_single_item(item) for item in items]
        elapsed_us = (time.perf_counter_ns() - start) // 1000
        with self._lock:
            self.stats.batches_executed += 1
            self.stats.items_processed += len(items)
            self.stats.total_execution_time_us += elapsed_us
        return results

    def execute_batch_async(self, items: Sequence[BatchItem], callback: BatchCallback) -> bool:
        """Execute the batch on a background thread and pass the results to ``callback``."""
        if callback is None:
            raise ValueError("callback is required")
        items = list(items)

        def run() -> None:
            callback(self.execute_batch(items))

        threading.Thread(target=run, name="batch-async", daemon=True).start()
        return True

    def reset_stats(self) -> None:
        with self._lock:
            self.stats = BatchStats()

    def _execute_single_item(self, item: BatchItem) -> BatchResult:
        start = time.perf_counter_ns()
        result = BatchResult()
        try:
            if item.op is BatchOp.PUT:
                ok = self.storage.put(item.key, item.value)
                result.status = BatchStatus.SUCCESS if ok else BatchStatus.STORAGE_ERROR
            elif item.op is BatchOp.GET:
                value = self.storage.get(item.key)
                if value == TOMBSTONE:
                    value = None
                with self._lock:
                    if value is not None:
                        self.stats.cache_hits += 1
                    else:
                        self.stats.cache_misses += 1
                if value is not None:
                    result.status = BatchStatus.SUCCESS
                    result.value = value
                else:
                    result.status = BatchStatus.KEY_NOT_FOUND
            elif item.op is BatchOp.DELETE:
                ok = self.storage.delete_key(item.key)
                result.status = BatchStatus.SUCCESS if ok else BatchStatus.KEY_NOT_FOUND
        except Exception as exc:
            logger.error("BatchProcessor error processing item %s: %s", item.key, exc)
            result.status = BatchStatus.SERVER_ERROR
        result.execution_time_us = (time.perf_counter_ns() - start) // 1000
        return result