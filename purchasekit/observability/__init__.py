"""
Observability module - Logging and Metrics.
"""

from purchasekit.observability.logging import log_context, setup_logging
from purchasekit.observability.metrics import metrics

__all__ = [
    "log_context",
    "setup_logging",
    "metrics",
]
