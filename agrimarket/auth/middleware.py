import logging
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from agrimarket.auth.security import build_principal, decode_access_token
from agrimarket.core.config import Settings
from agrimarket.core.exceptions import TokenInvalid

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


def extract_bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization")
    if header and header.startswith(BEARER_PREFIX):
        return header[len(BEARER_PREFIX):].strip() or None
    return None


class JWTAuthenticationMiddleware(BaseHTTPMiddleware):
    """
    Binds the bearer token's principal to ``request.state.principal``.

    Verification failures never reject the request here: the principal is
    cleared, the reason is logged and stored on ``request.state.auth_error``,
    and route dependencies decide whether anonymous access is allowed.
    """

    def __init__(self, app, settings: Settings):
        super().__init__(app)
        self.settings = settings

    async def dispatch(self, request: Request, call_next):
        token = extract_bearer_token(request)

        if token is not None and getattr(request.state, "principal", None) is None:
            try:
                claims = decode_access_token(token, self.settings)
                principal = build_principal(claims)
                request.state.principal = principal
                logger.debug(
                    "Authenticated %s as %s with authorities %s",
                    principal.actor_id, principal.role, principal.authorities,
                )
            except TokenInvalid as e:
                request.state.principal = None
                request.state.auth_error = e.message
                logger.warning("JWT authentication failed for %s %s: %s", request.method, request.url.path, e.message)

        return await call_next(request)
