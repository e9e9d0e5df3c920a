"""
Middleware Package
==================

FastAPI middleware for security headers and request correlation.
"""

from .correlation import CorrelationMiddleware
from .security import SecurityHeadersMiddleware

__all__ = [
    "CorrelationMiddleware",
    "SecurityHeadersMiddleware",
]
