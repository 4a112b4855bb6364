"""
CORS Middleware for the browser-based video player.

The player runs on a different origin than the API during development, so
browsers need preflight answers and Access-Control headers on responses.

Configuration:
- CORS_ALLOWED_ORIGINS lists the exact origins allowed
- A "*" entry reflects any request origin back (credentials still allowed),
  which matches how the player is served in local development

Usage:
    app.add_middleware(
        CORSMiddleware,
        allowed_origins=settings.CORS_ALLOWED_ORIGINS,
        allow_credentials=True,
    )
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

WILDCARD = "*"
DEFAULT_METHODS = ["GET", "POST", "OPTIONS"]
DEFAULT_HEADERS = ["Accept", "Content-Type", "X-Request-ID"]


class CORSMiddleware(BaseHTTPMiddleware):
    """Answers preflight requests and decorates responses for allowed origins."""

    def __init__(
        self,
        app,
        allowed_origins: list[str] | None = None,
        allow_credentials: bool = True,
        allow_methods: list[str] | None = None,
        allow_headers: list[str] | None = None,
        max_age: int = 600,
    ):
        super().__init__(app)
        origins = allowed_origins or []
        self.allow_any_origin = WILDCARD in origins
        self.allowed_origins = [origin for origin in origins if origin != WILDCARD]
        self.allow_credentials = allow_credentials
        self.allow_methods = allow_methods or DEFAULT_METHODS
        self.allow_headers = allow_headers or DEFAULT_HEADERS
        self.max_age = max_age

        logger.info(
            "CORS middleware initialized",
            allowed_origins=self.allowed_origins,
            allow_any_origin=self.allow_any_origin,
        )

    def is_allowed(self, origin: str | None) -> bool:
        if not origin:
            return False
        return self.allow_any_origin or origin in self.allowed_origins

    async def dispatch(self, request, call_next):
        origin = request.headers.get("origin")
        allowed = self.is_allowed(origin)

        is_preflight = (
            request.method == "OPTIONS" and "access-control-request-method" in request.headers
        )
        if is_preflight:
            if not allowed:
                logger.warning("CORS preflight rejected", origin=origin)
                return Response(status_code=403, content="Origin not allowed")
            return self._preflight_response(origin)

        response = await call_next(request)

        if allowed:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            if self.allow_credentials:
                response.headers["Access-Control-Allow-Credentials"] = "true"
        elif origin:
            logger.warning("CORS request from disallowed origin", origin=origin, path=request.url.path)

        return response

    def _preflight_response(self, origin: str) -> Response:
        headers = {
            "Access-Control-Allow-Origin": origin,
            "Access-Control-Allow-Methods": ", ".join(self.allow_methods),
            "Access-Control-Allow-Headers": ", ".join(self.allow_headers),
            "Access-Control-Max-Age": str(self.max_age),
            "Vary": "Origin",
        }
        if self.allow_credentials:
            headers["Access-Control-Allow-Credentials"] = "true"

        return Response(status_code=204, headers=headers)
