"""Delivery observability primitives.

This package provides a minimal, modular foundation for:
- Recording every flush outcome (delivered, retried, dropped) as a durable record.
- Capturing both "occurred at" and "logged at" timestamps.
- Persisting records to a sink (DuckDB or in-memory) without ever failing delivery.
"""

from .models import DeliveryRecord
from .recorder import DeliveryRecorder
from .sinks import DeliverySink, DuckDBDeliverySink, InMemoryDeliverySink

__all__ = [
    "DeliveryRecord",
    "DeliveryRecorder",
    "DeliverySink",
    "DuckDBDeliverySink",
    "InMemoryDeliverySink",
]
