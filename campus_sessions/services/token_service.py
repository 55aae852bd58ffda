"""
Signed bearer tokens for clients that cannot hold the session cookie.

The token only wraps ``{principal, sessionToken}``; whether the session is
still valid is always decided by the session record, never by the token.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import uuid4

from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError

from campus_sessions.core.config import settings
from campus_sessions.core.exceptions import SessionNotFound
from campus_sessions.core.types.session import Role
from campus_sessions.core.utils.time_helpers import Clock, utcnow

logger = logging.getLogger(__name__)

TOKEN_TYPE = "access"


@dataclass(frozen=True)
class TokenPayload:
    user_id: str
    session_token: str
    role: Optional[Role]
    expires_at: datetime


class TokenService:
    """Issues and verifies HMAC-signed access tokens."""

    def __init__(
        self,
        secret_key: Optional[str] = None,
        algorithm: Optional[str] = None,
        expire_minutes: Optional[int] = None,
        clock: Clock = utcnow,
    ):
        self.algorithm = algorithm or settings.JWT_ALGORITHM
        if not self.algorithm.upper().startswith("HS"):
            raise ValueError(f"Unsupported JWT algorithm: {self.algorithm}")
        self._key = secret_key or settings.jwt_secret_key
        self.expire_minutes = expire_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES
        self.clock = clock

    def issue(self, user_id: str, session_token: str, role: Optional[Role] = None) -> str:
        """
        Create an access token embedding the principal and its session token.

        Args:
            user_id: Principal the token speaks for
            session_token: Opaque session secret the record is keyed on
            role: Role snapshot, informational only

        Returns:
            Encoded JWT
        """
        now = self.clock()
        payload = {
            "sub": user_id,
            "stk": session_token,
            "type": TOKEN_TYPE,
            "iat": now,
            "exp": now + timedelta(minutes=self.expire_minutes),
            "jti": str(uuid4()),
        }
        if role is not None:
            payload["role"] = Role(role).value
        return jwt.encode(payload, self._key, algorithm=self.algorithm)

    def verify(self, token: str) -> TokenPayload:
        """
        Decode and check a token.

        Raises:
            SessionNotFound: Signature, expiry or claims are not acceptable.
        """
        if not token:
            raise SessionNotFound("Bearer token is empty")
        try:
            claims = jwt.decode(token, self._key, algorithms=[self.algorithm])
        except ExpiredSignatureError:
            logger.info("Rejected expired bearer token")
            raise SessionNotFound("Bearer token has expired")
        except JWTError as e:
            logger.info(f"Rejected bearer token: {type(e).__name__}")
            raise SessionNotFound("Bearer token is invalid")

        user_id = claims.get("sub")
        session_token = claims.get("stk")
        if claims.get("type") != TOKEN_TYPE or not user_id or not session_token:
            raise SessionNotFound("Bearer token is missing required claims")

        try:
            role = Role(claims["role"]) if claims.get("role") else None
        except ValueError:
            role = None

        return TokenPayload(
            user_id=user_id,
            session_token=session_token,
            role=role,
            expires_at=datetime.fromtimestamp(claims["exp"], tz=timezone.utc).replace(tzinfo=None),
        )
