"""
core/tokens.py
--------------
JWT access / refresh token service.

Design decisions:
  - The payload carries sub (user_id), tenant_id, tenant_slug, role and the
    effective permission map, so most checks need no extra lookup. The
    request resolver still reloads the user and tenant on every request.
  - `token_type` is signed into the payload. verify() does not look at it;
    callers compare it with the use they expect (access vs refresh).
  - Access and refresh tokens use different audiences under one issuer.
  - Refresh tokens carry only identity + tenant and a random `jti` so a
    logout can revoke them.
  - HS256 by default; swap to RS256 for multi-service setups.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from pydantic import BaseModel, ValidationError

from notes_saas.core.config import Settings, settings
from notes_saas.core.errors import InvalidTokenError


class TokenType(str, Enum):
    access = "access"
    refresh = "refresh"


@dataclass(frozen=True)
class TokenClaims:
    """Identity claims a caller asks to have signed."""

    user_id: str
    tenant_id: str
    email: Optional[str] = None
    tenant_slug: Optional[str] = None
    role: Optional[str] = None
    permissions: Dict[str, bool] = field(default_factory=dict)


class TokenPayload(BaseModel):
    """A verified, decoded token."""

    sub: str
    tenant_id: str
    token_type: TokenType
    email: Optional[str] = None
    tenant_slug: Optional[str] = None
    role: Optional[str] = None
    permissions: Dict[str, bool] = {}
    jti: Optional[str] = None
    iss: str
    aud: str
    iat: int
    exp: int

    @property
    def claims(self) -> TokenClaims:
        return TokenClaims(
            user_id=self.sub,
            tenant_id=self.tenant_id,
            email=self.email,
            tenant_slug=self.tenant_slug,
            role=self.role,
            permissions=dict(self.permissions),
        )

    @property
    def expires_at(self) -> datetime:
        return datetime.fromtimestamp(self.exp, tz=timezone.utc)


class TokenService:

    def __init__(
        self,
        secret_key: str,
        *,
        algorithm: str = "HS256",
        issuer: str = "notes-saas",
        access_audience: str = "notes-saas-users",
        refresh_audience: str = "notes-saas-refresh",
        access_ttl: timedelta = timedelta(days=7),
        refresh_ttl: timedelta = timedelta(days=30),
    ) -> None:
        self._secret_key = secret_key
        self._algorithm = algorithm
        self.issuer = issuer
        self.access_audience = access_audience
        self.refresh_audience = refresh_audience
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "TokenService":
        return cls(
            config.SECRET_KEY,
            algorithm=config.ALGORITHM,
            issuer=config.JWT_ISSUER,
            access_audience=config.JWT_ACCESS_AUDIENCE,
            refresh_audience=config.JWT_REFRESH_AUDIENCE,
            access_ttl=timedelta(days=config.ACCESS_TOKEN_EXPIRE_DAYS),
            refresh_ttl=timedelta(days=config.REFRESH_TOKEN_EXPIRE_DAYS),
        )

    # ── Issue ─────────────────────────────────────────────────────────────────

    def issue_access(
        self, claims: TokenClaims, expires_delta: Optional[timedelta] = None
    ) -> str:
        """
        Mint an access token.

        Args:
            claims: Identity, tenant, role and permission claims.
            expires_delta: Optional custom lifetime; defaults to access_ttl.

        Returns:
            Signed JWT string.
        """
        payload: Dict[str, Any] = {
            "sub": claims.user_id,
            "email": claims.email,
            "tenant_id": claims.tenant_id,
            "tenant_slug": claims.tenant_slug,
            "role": claims.role,
            "permissions": dict(claims.permissions),
            "token_type": TokenType.access.value,
        }
        return self._sign(payload, self.access_audience, expires_delta or self.access_ttl)

    def issue_refresh(
        self, claims: TokenClaims, expires_delta: Optional[timedelta] = None
    ) -> str:
        """Mint a refresh token carrying a fresh revocation id (jti)."""
        payload: Dict[str, Any] = {
            "sub": claims.user_id,
            "tenant_id": claims.tenant_id,
            "token_type": TokenType.refresh.value,
            "jti": str(uuid.uuid4()),
        }
        return self._sign(payload, self.refresh_audience, expires_delta or self.refresh_ttl)

    def _sign(self, payload: Dict[str, Any], audience: str, lifetime: timedelta) -> str:
        now = datetime.now(timezone.utc)
        payload.update(
            {
                "iss": self.issuer,
                "aud": audience,
                "iat": now,
                "exp": now + lifetime,
            }
        )
        return jwt.encode(payload, self._secret_key, algorithm=self._algorithm)

    # ── Verify ────────────────────────────────────────────────────────────────

    def verify(self, token: str) -> TokenPayload:
        """
        Decode and validate a token of either type.

        Raises:
            InvalidTokenError: bad signature, expired, wrong issuer/audience,
                or a payload that does not have the expected shape.
        """
        try:
            raw = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
                issuer=self.issuer,
                # jose only matches a single audience; checked below instead
                options={"verify_aud": False},
            )
            payload = TokenPayload.model_validate(raw)
        except (JWTError, ValidationError) as exc:
            raise InvalidTokenError() from exc

        if payload.aud not in (self.access_audience, self.refresh_audience):
            raise InvalidTokenError()
        return payload


def extract_bearer_token(auth_header: Optional[str]) -> Optional[str]:
    """Return the token from an `Authorization: Bearer <token>` header, else None."""
    if not auth_header:
        return None
    parts = auth_header.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
        return None
    return parts[1]


token_service = TokenService.from_settings()
