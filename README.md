# ishikura

Building blocks for a key-value database server:

- **Crypto helpers** (`ishikura.crypto_utils`): `generate_random_bytes`, `generate_random_string` (alphanumeric), `sha256_hash` (hex digest), `base64_encode` / `base64_decode` (raises `ValueError` on malformed input), `pbkdf2` (PBKDF2-HMAC-SHA256), `secure_memory_compare` (constant time), and `calculate_crc32` / `verify_integrity`.
- **Network metrics** (`ishikura.metrics`): `NetworkMetrics` counts connections, requests (also by type: PUT, GET, DELETE, QUERY, BATCH, PING), bandwidth, errors and sessions, computes per-second rates, averages and an error rate, and exports everything with `to_json()` or `to_key_value_map()`. `LatencyHistogram` counts response times into microsecond buckets.
- **Metrics monitor** (`ishikura.monitor`): `MetricsMonitor` builds a boxed text report with `generate_report()` and, once started, writes it at the interval set in `MonitorConfig` to the `logging` log and/or appends it to a file. It can be used as a context manager.
- **TLS utilities** (`ishikura.tls_utils`): `generate_self_signed_certificate` writes an RSA key and a self-signed certificate as PEM files (the key file is created with mode 0600); `validate_certificate_file`, `validate_private_key_file` and `validate_certificate_key_pair` check them; `get_certificate_expiry`, `get_certificate_subject`, `get_certificate_issuer` and `get_certificate_san_list` inspect a certificate; `tls_version_to_string`, `string_to_tls_version` and `get_supported_ciphers` deal with protocol versions and an `ssl.SSLContext`'s ciphers.
- **Streaming and batches** (`ishikura.streaming`): `StreamingSession` buffers key/value pairs and hands them in `StreamBatch` objects to a callback from a background thread, by batch size or flush interval; `StreamingManager` creates and tracks sessions by id. `BatchProcessor` runs lists of `BatchItem` (PUT, GET, DELETE) against any storage object with `put`, `get` and `delete_key` methods, in parallel on worker threads for batches of more than ten items, returning `BatchResult`s in order. A stored value of `"__DELETED__"` is reported as `KEY_NOT_FOUND`.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Examples

Checksums and key derivation:

```python
from ishikura.crypto_utils import calculate_crc32, pbkdf2, verify_integrity

crc = calculate_crc32(b"payload")
assert verify_integrity(b"payload", crc)
derived = pbkdf2("password", "salt", 100_000, 32)
```

Record metrics and print a report:

```python
from ishikura.metrics import NetworkMetrics
from ishikura.monitor import MetricsMonitor

metrics = NetworkMetrics()
metrics.record_request_start()
metrics.record_request_end(1500, True)
metrics.record_request_by_type("GET")
print(metrics.to_json())
print(MetricsMonitor(metrics).generate_report())
```

Make a self-signed certificate and inspect it:

```python
from ishikura.tls_utils import (
    CertificateInfo,
    generate_self_signed_certificate,
    get_certificate_san_list,
    validate_certificate_key_pair,
)

generate_self_signed_certificate("server.crt", "server.key", CertificateInfo(common_name="db.example.com"))
assert validate_certificate_key_pair("server.crt", "server.key")
print(get_certificate_san_list("server.crt"))  # ['db.example.com', 'localhost', '127.0.0.1']
```

Stream data in batches:

```python
from ishikura.streaming import StreamConfig, StreamingManager

manager = StreamingManager()
stream_id = manager.create_stream(StreamConfig(batch_size=100))
manager.get_stream(stream_id).set_data_callback(lambda batch: True)
manager.start_stream(stream_id)
manager.add_to_stream(stream_id, "k1", "v1")
manager.close()
```

Run a batch against a storage object:

```python
from ishikura.streaming import BatchItem, BatchOp, BatchProcessor

class DictStorage:
    def __init__(self):
        self.data = {}
    def put(self, key, value):
        self.data[key] = value
        return True
    def get(self, key):
        return self.data.get(key)
    def delete_key(self, key):
        return self.data.pop(key, None) is not None

with BatchProcessor(DictStorage()) as processor:
    results = processor.execute_batch([
        BatchItem(BatchOp.PUT, "a", "1"),
        BatchItem(BatchOp.GET, "a"),
    ])
```

## What this package does not do

It is a set of components, not a database. It has no server or client, no network protocol, no storage engine of its own, no API key management, no audit log and no encryption of stored data. The TLS utilities create and check certificate files; they do not open TLS connections.