"""Common Pydantic models shared across services."""

from enum import Enum
from typing import Dict

from pydantic import BaseModel, ConfigDict, Field


class HealthStatus(str, Enum):
    """Health status enum."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class HealthReport(BaseModel):
    """Liveness response body."""

    model_config = ConfigDict(use_enum_values=True)

    status: HealthStatus = Field(..., description="Service health status")
    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")
    environment: str = Field(..., description="Deployment environment")


class ReadinessReport(BaseModel):
    """Readiness response body."""

    model_config = ConfigDict(use_enum_values=True)

    status: str = Field(..., description="ready|not_ready")
    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")
    checks: Dict[str, HealthStatus] = Field(
        default_factory=dict, description="Dependency health status"
    )
