"""
Response envelope applied to every reply leaving the edge gateway.
"""

from typing import Any, Dict, Optional

from fastapi import Response
from fastapi.responses import JSONResponse

from shared.config import EdgeConfig
from shared.errors import ErrorResponse, GatewayError


PUBLIC_METHODS = "GET, POST, OPTIONS"
PROXY_METHODS = "GET, HEAD, OPTIONS"
RESTRICTED_METHODS = "POST, OPTIONS"

INTERNAL_ERROR_MESSAGE = "Internal server error"


class ResponseEnvelope:
    """Builds CORS-decorated JSON, passthrough and error responses."""

    def __init__(self, config: EdgeConfig):
        self.config = config

    def is_restricted(self, path: str) -> bool:
        return path == self.config.contact_path

    def cors_headers(self, path: str) -> Dict[str, str]:
        """CORS header set for ``path``.

        Public read paths get a wildcard origin; the contact relay writes to a
        third-party service and only answers its configured origin.
        """
        if self.is_restricted(path):
            return {
                "Access-Control-Allow-Origin": self.config.allowed_origin or "null",
                "Access-Control-Allow-Methods": RESTRICTED_METHODS,
                "Access-Control-Allow-Headers": "Content-Type, Authorization",
                "Vary": "Origin",
            }
        methods = PROXY_METHODS if path == self.config.cache_proxy_path else PUBLIC_METHODS
        return {
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Methods": methods,
            "Access-Control-Allow-Headers": "Content-Type",
        }

    def json(
        self,
        path: str,
        data: Any,
        status_code: int = 200,
        cache_control: Optional[str] = None,
    ) -> JSONResponse:
        headers = self.cors_headers(path)
        if cache_control:
            headers["Cache-Control"] = cache_control
        return JSONResponse(content=data, status_code=status_code, headers=headers)

    def passthrough(
        self,
        path: str,
        body: bytes,
        status_code: int,
        content_type: Optional[str],
        extra_headers: Optional[Dict[str, str]] = None,
    ) -> Response:
        """Wrap opaque upstream bytes without re-encoding them."""
        headers = self.cors_headers(path)
        if extra_headers:
            headers.update(extra_headers)
        return Response(
            content=body,
            status_code=status_code,
            headers=headers,
            media_type=content_type or "application/octet-stream",
        )

    def preflight(self, path: str) -> Response:
        return Response(status_code=204, headers=self.cors_headers(path))

    def error(self, path: str, exc: GatewayError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_response().model_dump(),
            headers=self.cors_headers(path),
        )

    def internal_error(self, path: str) -> JSONResponse:
        body = ErrorResponse(error=INTERNAL_ERROR_MESSAGE, code="INTERNAL_ERROR")
        return JSONResponse(
            status_code=500,
            content=body.model_dump(),
            headers=self.cors_headers(path),
        )
