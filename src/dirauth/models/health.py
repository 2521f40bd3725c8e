"""Models for the health check route."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

__all__ = [
    "HealthCheck",
    "HealthStatus",
]


class HealthStatus(str, Enum):
    """Status of the service.

    A failing check raises an exception and results in an HTTP 500 error, so
    healthy is the only status reported in a response body.
    """

    HEALTHY = "healthy"


class HealthCheck(BaseModel):
    """Result of checking that the account database is reachable."""

    status: HealthStatus = Field(..., title="Health status")
