"""
Middleware package for FastAPI application.
"""

from .internal_auth import InternalSecretMiddleware
from .request_context import RequestContextMiddleware

__all__ = ["InternalSecretMiddleware", "RequestContextMiddleware"]
