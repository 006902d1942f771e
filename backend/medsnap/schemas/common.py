"""
MedSnap Backend — Shared Response Schemas
===========================================

What:  Error and health response shapes used by every route module.
"""

from typing import Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    Standardized error response format for all API errors.

    Fields:
        error: Human-readable description (the frontend shows it inline)
        code: Machine-readable error code (e.g., "validation_error")
        details: Optional extra context (e.g., which field failed validation)
        request_id: Correlation ID for tracing this error in server logs

    Example:
        {
            "error": "Stripe not configured",
            "code": "configuration_error",
            "request_id": "1a2b3c4d"
        }
    """
    error: str = Field(description="Human-readable error description")
    code: str = Field(description="Machine-readable error code")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    storage: str = Field(description="Blob backend: available, unavailable, not_configured")
    payments: str = Field(description="Stripe configuration: configured, not_configured")
    uptime_seconds: float = Field(description="Seconds since service started")
