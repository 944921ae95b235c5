"""
Admin user / token model definitions.
The admin API has no user table of its own: PocketBase superusers log in.
"""

from pydantic import BaseModel, Field


class UserLogin(BaseModel):
    """Schema for admin login."""
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=6)


class UserResponse(BaseModel):
    """Admin identity returned in API responses."""
    id: str
    email: str
    role: str = "admin"


class TokenResponse(BaseModel):
    """JWT token response after successful login."""
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse
