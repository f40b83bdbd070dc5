"""Response headers added to every request: basic hardening plus the API version."""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

HSTS_VALUE = "max-age=31536000; includeSubDomains"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Stamp security and version headers on every response.

    Args:
        app: The ASGI application.
        api_version: Value for the `X-API-Version` header.
        enable_hsts: Send `Strict-Transport-Security` (production only).
    """

    def __init__(self, app, api_version: str, enable_hsts: bool = False):
        super().__init__(app)
        self.api_version = api_version
        self.enable_hsts = enable_hsts

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        response.headers["X-API-Version"] = self.api_version
        if self.enable_hsts:
            response.headers["Strict-Transport-Security"] = HSTS_VALUE
        return response
