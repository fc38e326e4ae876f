"""Metrics, monitoring, streaming, batch, crypto and TLS certificate utilities for a key-value database server."""

__version__ = "1.0.0"