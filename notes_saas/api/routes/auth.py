"""
api/routes/auth.py
------------------
Authentication endpoints.

POST /auth/register              Create a tenant and its first admin.
POST /auth/login                 Exchange credentials for access + refresh tokens.
POST /auth/refresh               Exchange a refresh token for a new access token.
POST /auth/logout                Revoke the refresh token and clear cookies.
GET  /auth/me                    The authenticated user and their tenant.
POST /auth/forgot-password       Issue a password reset token.
POST /auth/reset-password        Consume a reset token and set a new password.
POST /auth/verify-email/request  Issue an email verification token.
POST /auth/verify-email          Consume a verification token.

Tokens are returned in the body and also set as httpOnly cookies, so both
SPA (Authorization header) and cookie clients work.
"""

from typing import Annotated, Optional

from fastapi import APIRouter, Body, Request, Response, status

from notes_saas.core.config import settings
from notes_saas.dependencies import CurrentPrincipal, StoreDep
from notes_saas.schemas.auth import (
    AuthResponse,
    EmailVerificationResponse,
    ForgotPasswordRequest,
    ForgotPasswordResponse,
    LoginRequest,
    MeResponse,
    MessageResponse,
    RefreshRequest,
    RefreshResponse,
    RegisterRequest,
    ResetPasswordRequest,
    TokenBundle,
    VerifyEmailRequest,
)
from notes_saas.schemas.tenant import TenantDetailView, TenantView
from notes_saas.schemas.user import UserView
from notes_saas.services.auth_service import AuthResult, AuthService
from notes_saas.services.tenant_service import TenantService
from notes_saas.services.user_service import UserService

router = APIRouter(prefix="/auth", tags=["Authentication"])

FORGOT_PASSWORD_MESSAGE = "If an account with that email exists, a reset link has been sent"
VERIFICATION_SENT_MESSAGE = "Verification email sent"


def _echo_tokens() -> bool:
    return settings.DEBUG and not settings.is_production


def _expires_in() -> str:
    return f"{settings.ACCESS_TOKEN_EXPIRE_DAYS}d"


def set_auth_cookies(response: Response, access_token: str, refresh_token: Optional[str]) -> None:
    options = dict(httponly=True, secure=settings.is_production, samesite="strict")
    response.set_cookie(
        settings.AUTH_COOKIE_NAME,
        access_token,
        max_age=settings.ACCESS_TOKEN_EXPIRE_DAYS * 24 * 3600,
        **options,
    )
    if refresh_token:
        response.set_cookie(
            settings.REFRESH_COOKIE_NAME,
            refresh_token,
            max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 3600,
            **options,
        )


def clear_auth_cookies(response: Response) -> None:
    for name in (settings.AUTH_COOKIE_NAME, settings.REFRESH_COOKIE_NAME):
        response.delete_cookie(
            name, httponly=True, secure=settings.is_production, samesite="strict"
        )


def _auth_response(message: str, result: AuthResult) -> AuthResponse:
    return AuthResponse(
        message=message,
        user=UserView.from_user(result.user),
        tenant=TenantView.from_tenant(result.tenant),
        tokens=TokenBundle(
            access_token=result.access_token,
            refresh_token=result.refresh_token,
            expires_in=_expires_in(),
        ),
    )


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new organisation and its admin account",
)
async def register(body: RegisterRequest, response: Response, store: StoreDep) -> AuthResponse:
    """
    Creates a free-plan tenant named after tenantName and an admin user
    holding every permission, then signs the admin in.
    """
    result = await AuthService.register(store, body)
    set_auth_cookies(response, result.access_token, result.refresh_token)
    return _auth_response("Registration successful", result)


@router.post(
    "/login",
    response_model=AuthResponse,
    summary="Login and receive access + refresh tokens",
)
async def login(body: LoginRequest, response: Response, store: StoreDep) -> AuthResponse:
    """
    Authenticate with email + password.

    If the same email exists in several organisations, pass tenantSlug to
    pick one; otherwise the login is rejected as invalid credentials.
    """
    result = await AuthService.login(store, body.email, body.password, body.tenant_slug)
    set_auth_cookies(response, result.access_token, result.refresh_token)
    return _auth_response("Login successful", result)


@router.post(
    "/refresh",
    response_model=RefreshResponse,
    summary="Mint a new access token from a refresh token",
)
async def refresh(
    request: Request,
    response: Response,
    store: StoreDep,
    body: Annotated[Optional[RefreshRequest], Body()] = None,
) -> RefreshResponse:
    token = (body.refresh_token if body else None) or request.cookies.get(
        settings.REFRESH_COOKIE_NAME
    )
    result = await AuthService.refresh(store, token)
    set_auth_cookies(response, result.access_token, None)
    return RefreshResponse(access_token=result.access_token, expires_in=_expires_in())


@router.post(
    "/logout",
    response_model=MessageResponse,
    summary="Revoke the refresh token and clear auth cookies",
)
async def logout(
    request: Request,
    response: Response,
    principal: CurrentPrincipal,
    body: Annotated[Optional[RefreshRequest], Body()] = None,
) -> MessageResponse:
    token = (body.refresh_token if body else None) or request.cookies.get(
        settings.REFRESH_COOKIE_NAME
    )
    AuthService.logout(token)
    clear_auth_cookies(response)
    return MessageResponse(message="Logout successful")


@router.get(
    "/me",
    response_model=MeResponse,
    summary="Get the currently authenticated user and tenant",
)
async def get_me(principal: CurrentPrincipal, store: StoreDep) -> MeResponse:
    user = await UserService.get_user_in_tenant(store, principal, principal.user_id)
    tenant = await TenantService.get_current(store, principal)
    return MeResponse(user=UserView.from_user(user), tenant=TenantDetailView.from_tenant(tenant))


@router.post(
    "/forgot-password",
    response_model=ForgotPasswordResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Request a password reset token",
)
async def forgot_password(body: ForgotPasswordRequest, store: StoreDep) -> ForgotPasswordResponse:
    """
    Always answers 202 with the same message, whether or not the account
    exists. The token is only echoed back when DEBUG is enabled.
    """
    token = await AuthService.request_password_reset(store, body.email, body.tenant_slug)
    return ForgotPasswordResponse(
        message=FORGOT_PASSWORD_MESSAGE,
        reset_token=token if _echo_tokens() else None,
    )


@router.post(
    "/reset-password",
    response_model=MessageResponse,
    summary="Set a new password using a reset token",
)
async def reset_password(body: ResetPasswordRequest, store: StoreDep) -> MessageResponse:
    await AuthService.reset_password(store, body.token, body.password)
    return MessageResponse(message="Password reset successfully")


@router.post(
    "/verify-email/request",
    response_model=EmailVerificationResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Request an email verification token",
)
async def request_email_verification(
    principal: CurrentPrincipal, store: StoreDep
) -> EmailVerificationResponse:
    token = await AuthService.request_email_verification(store, principal.user_id)
    if token is None:
        return EmailVerificationResponse(message="Email already verified")
    return EmailVerificationResponse(
        message=VERIFICATION_SENT_MESSAGE,
        verification_token=token if _echo_tokens() else None,
    )


@router.post(
    "/verify-email",
    response_model=MessageResponse,
    summary="Verify an email address using a verification token",
)
async def verify_email(body: VerifyEmailRequest, store: StoreDep) -> MessageResponse:
    await AuthService.verify_email(store, body.token)
    return MessageResponse(message="Email verified successfully")
