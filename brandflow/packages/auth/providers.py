from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

import jwt as pyjwt
from pydantic import BaseModel


class TokenUser(BaseModel):
    """User information extracted from a validated access token.

    Only `id` (the `sub` claim) is guaranteed; the rest depends on what the
    identity platform puts in its tokens.
    """

    id: str
    email: str | None = None
    full_name: str | None = None
    role: str | None = None


class AuthProvider(ABC):
    @abstractmethod
    async def validate_token(self, token: str) -> TokenUser: ...


class JwtAuthProvider(AuthProvider):
    """
    Validates access tokens issued by the hosted auth platform.

    The platform signs its tokens with a shared secret (HS256 by default) and
    sets the `authenticated` audience for signed-in users.
    """

    def __init__(
        self,
        jwt_secret: str,
        jwt_algorithm: str = "HS256",
        audience: str | None = None,
        token_lifetime: timedelta = timedelta(hours=1),
    ):
        self.jwt_secret = jwt_secret
        self.jwt_algorithm = jwt_algorithm
        self.audience = audience
        self.token_lifetime = token_lifetime

    async def validate_token(self, token: str) -> TokenUser:
        """
        Raises:
            jwt.InvalidTokenError: If the token is invalid or expired
        """
        decoded = pyjwt.decode(
            token,
            self.jwt_secret,
            algorithms=[self.jwt_algorithm],
            audience=self.audience,
            options={
                "verify_signature": True,
                "verify_exp": True,
                "verify_aud": self.audience is not None,
            },
        )
        metadata = decoded.get("user_metadata") or {}
        return TokenUser(
            id=decoded["sub"],
            email=decoded.get("email"),
            full_name=metadata.get("full_name"),
            role=decoded.get("role"),
        )

    def create_token(self, subject: str, email: str | None = None) -> str:
        """Issue a token the way the platform does. Used by tooling and tests."""
        now = datetime.now(timezone.utc)
        payload = {
            "sub": subject,
            "iat": now,
            "exp": now + self.token_lifetime,
        }
        if email:
            payload["email"] = email
        if self.audience:
            payload["aud"] = self.audience
        return pyjwt.encode(payload, self.jwt_secret, algorithm=self.jwt_algorithm)
