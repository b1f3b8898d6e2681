"""Monitoring module.

Provides Prometheus metrics for relay requests and transcoder processes.
"""

from .metrics import RelayMetrics

__all__ = [
    "RelayMetrics",
]

__version__ = "1.0.0"
