"""Logging handler that labels, batches and pushes records to a Loki endpoint."""

__version__ = "0.5.1"