"""Shared Pydantic models for the login server."""

from .common import HealthReport, HealthStatus, ReadinessReport

__all__ = [
    "HealthReport",
    "HealthStatus",
    "ReadinessReport",
]
