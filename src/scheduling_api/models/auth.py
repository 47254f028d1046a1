"""Authentication request/response models."""

from datetime import datetime
from typing import Optional

from pydantic import EmailStr, Field

from scheduling_api.models.common import CamelModel


class RegisterRequest(CamelModel):
    """Account registration request."""

    first_name: str = Field(..., min_length=1, max_length=100, description="First name")
    last_name: str = Field(..., min_length=1, max_length=100, description="Last name")
    email: EmailStr = Field(..., description="User email address")
    password: str = Field(..., description="Password (minimum 8 characters)")
    role: str = Field(..., description="Manager or Developer")
    phone: Optional[str] = Field(None, max_length=30, description="Phone number")
    department: Optional[str] = Field(None, max_length=100, description="Department")


class LoginRequest(CamelModel):
    """Login request model."""

    email: EmailStr = Field(..., description="User email address")
    password: str = Field(..., min_length=1, description="User password")


class ForgotPasswordRequest(CamelModel):
    email: EmailStr = Field(..., description="User email address")


class ResetPasswordRequest(CamelModel):
    """Password reset with a previously issued token."""

    token: str = Field(..., min_length=1, description="Reset token")
    password: str = Field(..., description="New password (minimum 8 characters)")


class UserResponse(CamelModel):
    """User profile; the password hash is never serialized."""

    id: str = Field(..., description="User ID")
    first_name: str
    last_name: str
    email: str
    role: str
    phone: Optional[str] = None
    department: Optional[str] = None
    created_at: datetime


class LoginResponse(CamelModel):
    token: str = Field(..., description="Bearer access token")
    expires_at: datetime = Field(..., description="Token expiry")
    user: UserResponse


class ForgotPasswordResponse(CamelModel):
    reset_token: Optional[str] = Field(None, description="Only returned in debug mode")
