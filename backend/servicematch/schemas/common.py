"""
ServiceMatch Backend - Shared Response Schemas
===============================================

Error and health payloads shared by every router.
"""

from typing import Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    What:  Standardized error response format for all API errors.
    Why:   Clients need a consistent structure to parse errors programmatically.

    Example:
        {
            "error": "vector_missing",
            "message": "The Service has not been indexed for semantic matching yet. ...",
            "details": {"resource": "Service", "resource_id": "6b1f..."},
            "request_id": "550e8400-e29b-41d4-a716-446655440000"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """
    What:  Health check response showing service and dependency status.
    Who:   Returned by GET /health for monitoring and load balancer health checks.
    """
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    embeddings: str = Field(
        description="Embedding provider status: available, unavailable, circuit_open"
    )
    embedding_provider: str = Field(description="Configured provider: gemini or hashing")
    notifications: str = Field(
        description="Notification queue status: connected, disconnected, logging_only"
    )
    embedding_quota_remaining: Optional[int] = Field(
        default=None, description="Embedding calls left in the current daily window"
    )
    uptime_seconds: float = Field(description="Seconds since service started")
