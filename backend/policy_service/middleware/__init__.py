"""Middleware modules for production-ready features"""
from policy_service.middleware.monitoring import (
    MonitoringMiddleware,
    record_event_delivery,
    record_policy_operation,
)

__all__ = [
    "MonitoringMiddleware",
    "record_event_delivery",
    "record_policy_operation",
]
