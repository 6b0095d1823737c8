"""Bearer token issuance and verification for the PolicyVault API."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

import jwt
from fastapi import Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import DEFAULT_TOKEN_TTL
from .errors import InvalidCredential, Unauthenticated
from .models import Account, OwnerContext


class TokenIssuer:
    """Sign and verify short-lived JWT access tokens.

    Tokens carry the account identifier and email. There is no refresh or
    revocation: once a token expires the user must log in again.
    """

    def __init__(
        self,
        secret: str,
        *,
        algorithm: str = "HS256",
        ttl: timedelta = DEFAULT_TOKEN_TTL,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if not secret:
            raise ValueError("A signing secret must be provided")
        self._secret = secret
        self._algorithm = algorithm
        self._ttl = ttl
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def issue(self, account: Account) -> str:
        now = self._clock()
        payload: Dict[str, object] = {
            "userId": account.id,
            "email": account.email,
            "iat": now,
            "exp": now + self._ttl,
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def verify(self, token: str) -> OwnerContext:
        """Decode ``token`` or raise :class:`InvalidCredential`."""

        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": ["exp", "userId"]},
            )
        except jwt.InvalidTokenError as exc:
            raise InvalidCredential() from exc

        owner_id = claims.get("userId")
        if not isinstance(owner_id, str) or not owner_id:
            raise InvalidCredential()
        return OwnerContext(owner_id=owner_id, email=str(claims.get("email") or ""))


class BearerAuth:
    """FastAPI dependency that resolves the caller's :class:`OwnerContext`."""

    def __init__(self, issuer: TokenIssuer):
        self._issuer = issuer
        self._bearer = HTTPBearer(auto_error=False)

    async def __call__(self, request: Request) -> OwnerContext:
        credentials: HTTPAuthorizationCredentials | None = await self._bearer(request)  # type: ignore[assignment]
        if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
            raise Unauthenticated()

        return self._issuer.verify(credentials.credentials.strip())


__all__ = ["BearerAuth", "TokenIssuer"]
