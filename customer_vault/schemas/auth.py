"""
Pydantic schemas for authentication endpoints.

Pydantic validates incoming data automatically — if a required field is
missing or the wrong type, FastAPI returns a 422 error before our code
even runs. hashed_password and reset codes never appear in a response.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, EmailStr, Field


class SignupRequest(BaseModel):
    """Request body for POST /auth/signup."""
    name: str = Field(min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""
    email: EmailStr
    password: str = Field(min_length=1)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetForgottenPasswordRequest(BaseModel):
    """Request body for POST /auth/reset-forgot-password."""
    email: EmailStr
    reset_code: str = Field(min_length=6, max_length=6)
    new_password: str = Field(min_length=8, max_length=128)


class ChangePasswordRequest(BaseModel):
    """Request body for POST /auth/reset-password (knows the current password)."""
    email: EmailStr
    password: str = Field(min_length=1)
    new_password: str = Field(min_length=8, max_length=128)


class TokenClaims(BaseModel):
    """Verified bearer token claims — the authorized principal."""
    user_id: uuid.UUID
    email: str
    name: str


class UserResponse(BaseModel):
    id: uuid.UUID
    name: str
    email: EmailStr
    created_at: datetime

    model_config = {"from_attributes": True}


class CurrentUserResponse(UserResponse):
    """Response body for GET /auth/user."""
    updated_at: datetime
    total_customers: int


class AuthResponse(BaseModel):
    """Response body for successful login/signup — user info + bearer token."""
    user: UserResponse
    token: str
    token_type: str = "bearer"


class MessageResponse(BaseModel):
    message: str
