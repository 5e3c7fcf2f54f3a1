"""Pydantic schemas for request/response validation."""

from smart_cart_recovery.schemas.common import HealthResponse, PaginatedResponse, StatusResponse

__all__ = [
    "HealthResponse",
    "PaginatedResponse",
    "StatusResponse",
]
