"""
Shared-secret guard for the internal job endpoints.
"""

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
import hmac
import logging
from typing import Optional

from keytao.config.settings import SyncSettings, get_settings
from keytao.core.exceptions import ErrorCode

logger = logging.getLogger(__name__)


class InternalSecretMiddleware(BaseHTTPMiddleware):
    """
    Rejects requests to internal paths that lack the sync secret header.

    With no secret configured the internal endpoints are closed outright.
    """

    def __init__(self, app, settings: Optional[SyncSettings] = None, prefix: str = "/internal/"):
        super().__init__(app)
        self._settings = settings
        self.prefix = prefix

    @property
    def settings(self) -> SyncSettings:
        return self._settings or get_settings().sync

    def _reject(self, request: Request, status_code: int, error_code: ErrorCode, message: str) -> JSONResponse:
        request_id = getattr(request.state, 'request_id', 'unknown')
        logger.warning(
            f"Rejected internal request {request_id}: {message}",
            extra={
                'request_id': request_id,
                'path': request.url.path,
                'client_ip': request.client.host if request.client else 'unknown',
            }
        )
        return JSONResponse(
            status_code=status_code,
            content={
                "status": "error",
                "data": None,
                "error": message,
                "error_code": error_code.value,
                "request_id": request_id,
            }
        )

    async def dispatch(self, request: Request, call_next):
        if not request.url.path.startswith(self.prefix):
            return await call_next(request)

        expected = self.settings.continuation_secret
        if not expected:
            return self._reject(request, 403, ErrorCode.PERMISSION_DENIED, "Internal endpoints are disabled")

        provided = request.headers.get(self.settings.secret_header)
        if not provided:
            return self._reject(
                request, 401, ErrorCode.AUTHENTICATION_REQUIRED,
                f"Secret required in {self.settings.secret_header} header",
            )
        if not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
            return self._reject(request, 403, ErrorCode.PERMISSION_DENIED, "Invalid internal secret")

        return await call_next(request)
