"""Lectern API layer: routes, schemas, and middleware."""

from src.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from src.api.routes import router
from src.api.schemas import (
    CreateMaterialRequest,
    EnqueueResponse,
    ErrorResponse,
    HealthResponse,
    RAGQueryRequest,
)

__all__ = [
    "ErrorHandlingMiddleware",
    "RequestLoggingMiddleware",
    "configure_cors",
    "router",
    "CreateMaterialRequest",
    "EnqueueResponse",
    "ErrorResponse",
    "HealthResponse",
    "RAGQueryRequest",
]
