"""
schemas/auth.py
---------------
Request / response bodies for the /auth endpoints.

Passwords only ever appear in request models. Tokens appear in responses
(and in cookies) but never in logs.
"""

from typing import Optional

from pydantic import Field, field_validator

from notes_saas.models.tenant import slugify
from notes_saas.schemas.base import CamelModel, EmailAddress, check_password_strength
from notes_saas.schemas.tenant import TenantDetailView, TenantView
from notes_saas.schemas.user import UserView


class RegisterRequest(CamelModel):
    """Creates a new tenant with the caller as its first admin."""
    email: EmailAddress
    password: str = Field(..., min_length=6, max_length=128)
    tenant_name: str = Field(..., min_length=2, max_length=100, examples=["Acme Corp"])
    first_name: Optional[str] = Field(None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(None, min_length=1, max_length=50)

    check_password = field_validator("password")(check_password_strength)

    @field_validator("tenant_name")
    @classmethod
    def check_tenant_name(cls, v: str) -> str:
        v = v.strip()
        if len(slugify(v)) < 2:
            raise ValueError("Organization name must contain at least 2 letters or digits")
        return v

    @field_validator("first_name", "last_name")
    @classmethod
    def strip_names(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v is not None else v


class LoginRequest(CamelModel):
    email: EmailAddress
    password: str = Field(..., min_length=1, max_length=128)
    # Picks the account when one email exists in several tenants
    tenant_slug: Optional[str] = None


class RefreshRequest(CamelModel):
    refresh_token: Optional[str] = None


class ForgotPasswordRequest(CamelModel):
    email: EmailAddress
    tenant_slug: Optional[str] = None


class ResetPasswordRequest(CamelModel):
    token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=6, max_length=128)

    check_password = field_validator("password")(check_password_strength)


class TokenBundle(CamelModel):
    access_token: str
    refresh_token: str
    expires_in: str


class AuthResponse(CamelModel):
    message: str
    user: UserView
    tenant: TenantView
    tokens: TokenBundle


class RefreshResponse(CamelModel):
    access_token: str
    expires_in: str


class MeResponse(CamelModel):
    user: UserView
    tenant: TenantDetailView


class MessageResponse(CamelModel):
    message: str


class ForgotPasswordResponse(CamelModel):
    message: str
    # Only populated when DEBUG is on; production delivers it out of band
    reset_token: Optional[str] = None


class VerifyEmailRequest(CamelModel):
    token: str = Field(..., min_length=1)


class EmailVerificationResponse(CamelModel):
    message: str
    # Same DEBUG-only echo as ForgotPasswordResponse.reset_token
    verification_token: Optional[str] = None
