"""API middleware package."""

from src.storesync.api.middleware.logging import LoggingMiddleware

__all__ = ["LoggingMiddleware"]
