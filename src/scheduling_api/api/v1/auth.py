"""Authentication endpoints."""

import logging

from fastapi import APIRouter, Depends, status

from scheduling_api.auth.dependencies import auth_service, get_current_user
from scheduling_api.config import get_settings
from scheduling_api.models.auth import (
    ForgotPasswordRequest,
    ForgotPasswordResponse,
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    ResetPasswordRequest,
    UserResponse,
)
from scheduling_api.models.common import ApiResponse
from scheduling_api.services.auth_service import AuthService, CurrentUser

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])

FORGOT_PASSWORD_MESSAGE = "If an account with that email exists, a password reset link has been sent"


@router.post(
    "/register",
    response_model=ApiResponse[UserResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Register",
)
async def register(
    request: RegisterRequest,
    service: AuthService = Depends(auth_service),
) -> ApiResponse[UserResponse]:
    """Create a Manager or Developer account."""
    user = await service.register(
        first_name=request.first_name,
        last_name=request.last_name,
        email=request.email,
        password=request.password,
        role=request.role,
        phone=request.phone,
        department=request.department,
    )
    return ApiResponse(
        message="User registered successfully", data=UserResponse.model_validate(user)
    )


@router.post("/login", response_model=ApiResponse[LoginResponse], summary="Login")
async def login(
    request: LoginRequest,
    service: AuthService = Depends(auth_service),
) -> ApiResponse[LoginResponse]:
    """
    Login with email and password.

    Returns a bearer token valid for the configured lifetime; the token is
    stored server side so it can be revoked by logout or a password reset.
    """
    user, token, expires_at = await service.login(request.email, request.password)
    return ApiResponse(
        message="Login successful",
        data=LoginResponse(
            token=token, expires_at=expires_at, user=UserResponse.model_validate(user)
        ),
    )


@router.post("/logout", response_model=ApiResponse[None], summary="Logout")
async def logout(
    current_user: CurrentUser = Depends(get_current_user),
    service: AuthService = Depends(auth_service),
) -> ApiResponse[None]:
    """Revoke the presented token."""
    await service.logout(current_user.token)
    return ApiResponse(message="Logged out successfully")


@router.post(
    "/forgot-password",
    response_model=ApiResponse[ForgotPasswordResponse],
    summary="Request password reset",
)
async def forgot_password(
    request: ForgotPasswordRequest,
    service: AuthService = Depends(auth_service),
) -> ApiResponse[ForgotPasswordResponse]:
    """Always answers the same way so account existence is not disclosed."""
    token = await service.request_password_reset(request.email)
    data = ForgotPasswordResponse(reset_token=token if get_settings().debug else None)
    return ApiResponse(message=FORGOT_PASSWORD_MESSAGE, data=data)


@router.post("/reset-password", response_model=ApiResponse[None], summary="Reset password")
async def reset_password(
    request: ResetPasswordRequest,
    service: AuthService = Depends(auth_service),
) -> ApiResponse[None]:
    await service.reset_password(request.token, request.password)
    return ApiResponse(message="Password has been reset successfully")
