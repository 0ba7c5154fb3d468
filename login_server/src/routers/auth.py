"""
Authentication router.

Provides the form-encoded endpoints:
- POST /auth/register
- POST /auth/login
- POST /auth/session
- POST /auth/logout

Every endpoint answers HTTP 200 with a JSON body whose "status" field carries
the outcome. Undecodable base64 fields are answered with HTTP 400 by the
FieldDecodeError handler registered in main.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Form, Request, status

from login_server.src.dependencies import get_auth_service
from login_server.src.models.auth import (
    ErrorResponse, LoginForm, LoginResponse, LogoutForm, LogoutResponse,
    RegisterForm, RegisterResponse, SessionForm, SessionResponse
)
from login_server.src.rate_limit import auth_rate_limit, limiter
from login_server.src.services.auth_service import AuthService

auth_router = APIRouter(
    prefix="/auth",
    tags=["Authentication"],
    responses={
        400: {"description": "Form field is not base64 encoded UTF-8"},
        422: {"description": "Missing form field"},
        500: {"model": ErrorResponse, "description": "Internal server error"}
    }
)


@auth_router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_200_OK,
    summary="Register",
    description="""
    Create an account and log it in.

    **Form fields:** email_base64, password_base64

    **Body status:**
    - 200: account created; session_id and expiry are set
    - 400: invalid E-mail address
    - 409: account already exists
    """
)
@limiter.limit(auth_rate_limit)
async def register(
    request: Request,
    form: Annotated[RegisterForm, Form()],
    auth_service: AuthService = Depends(get_auth_service)
) -> RegisterResponse:
    """Register a new account."""
    return await auth_service.register(form)


@auth_router.post(
    "/login",
    response_model=LoginResponse,
    status_code=status.HTTP_200_OK,
    summary="Login",
    description="""
    Log in with E-mail address and password.

    **Form fields:** username_base64, password_base64

    **Body status:**
    - 200: session_id and expiry are set
    - 401: unknown account or wrong password
    """
)
@limiter.limit(auth_rate_limit)
async def login(
    request: Request,
    form: Annotated[LoginForm, Form()],
    auth_service: AuthService = Depends(get_auth_service)
) -> LoginResponse:
    """Create a session for valid credentials."""
    return await auth_service.login(form)


@auth_router.post(
    "/session",
    response_model=SessionResponse,
    status_code=status.HTTP_200_OK,
    summary="Session lookup",
    description="""
    Resolve a session ID to its user.

    **Body status:**
    - 200: user_id and email are set
    - 401: session ID not found or expired
    """
)
async def session(
    form: Annotated[SessionForm, Form()],
    auth_service: AuthService = Depends(get_auth_service)
) -> SessionResponse:
    """Look up the user behind a session."""
    return await auth_service.get_session(form)


@auth_router.post(
    "/logout",
    response_model=LogoutResponse,
    status_code=status.HTTP_200_OK,
    summary="Logout",
    description="""
    Invalidate a session.

    **Body status:**
    - 200: session removed
    - 401: session ID not found
    """
)
async def logout(
    form: Annotated[LogoutForm, Form()],
    auth_service: AuthService = Depends(get_auth_service)
) -> LogoutResponse:
    """Delete a session."""
    return await auth_service.logout(form)
