"""
Session Tokens - HS256 JWT signing and verification for users and admins.

Admin tokens carry ``is_admin`` and the flattened permission list captured at
login. Expired and otherwise invalid tokens are logged differently but both
surface as UnauthorizedError.
"""

from collections.abc import Sequence
from datetime import UTC, datetime, timedelta

import jwt
from structlog import get_logger

from app.exceptions import UnauthorizedError
from app.models.domain import IssuedToken, TokenClaims, TokenRole

logger = get_logger(__name__)


class TokenService:
    """Signs and verifies session tokens."""

    def __init__(self, secret: str, algorithm: str = "HS256", expire_hours: int = 24) -> None:
        self.secret = secret
        self.algorithm = algorithm
        self.expire_hours = expire_hours

    def sign(
        self,
        subject_id: int,
        email: str,
        role: TokenRole,
        is_admin: bool = False,
        permissions: Sequence[str] = (),
        now: datetime | None = None,
    ) -> IssuedToken:
        now = now or datetime.now(UTC)
        expires_at = now + timedelta(hours=self.expire_hours)
        payload: dict[str, object] = {
            "sub": str(subject_id),
            "email": email,
            "role": role.value,
            "iat": now,
            "exp": expires_at,
        }
        if role == TokenRole.ADMIN:
            payload["is_admin"] = is_admin
            payload["permissions"] = list(permissions)

        token = jwt.encode(payload, self.secret, algorithm=self.algorithm)
        return IssuedToken(
            access_token=token,
            subject_id=subject_id,
            email=email,
            role=role,
            expires_at=expires_at,
            is_admin=is_admin,
            permissions=tuple(permissions),
        )

    def verify(self, token: str) -> TokenClaims:
        """
        Verify signature and expiry.

        Raises:
            UnauthorizedError: expired, tampered or malformed token
        """
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"require": ["sub", "exp", "iat"]},
            )
        except jwt.ExpiredSignatureError:
            logger.warning("jwt_token_expired")
            raise UnauthorizedError("Token expired") from None
        except jwt.InvalidTokenError as e:
            logger.warning("jwt_token_invalid", error=str(e))
            raise UnauthorizedError("Invalid token") from None

        try:
            subject_id = int(payload["sub"])
            role = TokenRole(payload.get("role", TokenRole.USER.value))
        except (TypeError, ValueError):
            logger.warning("jwt_token_malformed_claims")
            raise UnauthorizedError("Invalid token") from None

        permissions = payload.get("permissions") or []
        if not isinstance(permissions, list):
            permissions = []

        return TokenClaims(
            subject_id=subject_id,
            email=str(payload.get("email", "")),
            role=role,
            is_admin=bool(payload.get("is_admin", False)),
            permissions=tuple(str(p) for p in permissions),
            issued_at=datetime.fromtimestamp(payload["iat"], UTC),
            expires_at=datetime.fromtimestamp(payload["exp"], UTC),
        )
