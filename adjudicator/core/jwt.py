"""JWT verification utilities.

Access tokens are issued elsewhere and signed with a shared HS256 secret;
this module only decodes and validates them with PyJWT.
"""

from typing import Optional

import jwt
from pydantic import BaseModel

from adjudicator.core.config import settings
from adjudicator.utils.logging import get_logger

LOGGER = get_logger(__name__)


class JWTClaims(BaseModel):
    """Decoded JWT claims."""

    sub: str  # User ID
    email: Optional[str] = None
    role: Optional[str] = None
    exp: int  # Expiry timestamp
    iat: Optional[int] = None
    iss: Optional[str] = None
    aud: Optional[str] = None


class JWTVerifier:
    """JWT verifier for bearer access tokens.

    This class handles:
    - HS256 signature verification with the shared secret
    - Expiry, audience and (optional) issuer validation
    """

    def __init__(self, secret: str, audience: str = "", issuer: str = "", leeway: int = 0):
        """Initialize JWT verifier.

        Args:
            secret: Shared HS256 signing secret
            audience: Expected ``aud`` claim, skipped when empty
            issuer: Expected ``iss`` claim, skipped when empty
            leeway: Clock skew tolerance in seconds
        """
        self.secret = secret
        self.audience = audience
        self.issuer = issuer
        self.leeway = leeway

    def verify_token(self, token: str) -> JWTClaims:
        """Verify and decode an access token.

        Args:
            token: JWT access token from Authorization header

        Returns:
            Decoded and validated JWT claims

        Raises:
            jwt.InvalidTokenError: If token is invalid or expired
        """
        if not self.secret:
            raise jwt.InvalidTokenError("JWT_SECRET is not configured")

        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=["HS256"],
                audience=self.audience or None,
                issuer=self.issuer or None,
                leeway=self.leeway,
                options={
                    "verify_aud": bool(self.audience),
                    "require": ["sub", "exp"],
                },
            )
        except jwt.ExpiredSignatureError as e:
            LOGGER.warning(f"Token expired: {e}")
            raise jwt.InvalidTokenError("Token has expired") from e
        except jwt.InvalidIssuerError as e:
            LOGGER.warning(f"Invalid issuer: {e}")
            raise jwt.InvalidTokenError("Invalid token issuer") from e
        except jwt.InvalidSignatureError as e:
            LOGGER.warning(f"Invalid signature: {e}")
            raise jwt.InvalidTokenError("Invalid token signature") from e

        if isinstance(payload.get("aud"), list):
            payload["aud"] = payload["aud"][0] if payload["aud"] else None

        claims = JWTClaims(**payload)
        LOGGER.debug(f"Successfully verified token for user: {claims.sub}")
        return claims


jwt_verifier = JWTVerifier(
    secret=settings.auth.jwt_secret,
    audience=settings.auth.jwt_audience,
    issuer=settings.auth.jwt_issuer,
    leeway=settings.auth.leeway_seconds,
)
