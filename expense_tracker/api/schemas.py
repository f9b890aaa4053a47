"""
Pydantic schemas for the auth API.
"""
from typing import Optional
from pydantic import BaseModel, ConfigDict, EmailStr, Field


class SignUpRequest(BaseModel):
    name: str = Field(..., min_length=2, description="Display name")
    email: EmailStr
    password: str = Field(..., min_length=6, description="At least 6 characters")


class SignInRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)


class AuthResult(BaseModel):
    success: bool
    error: Optional[str] = None


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    name: str
