from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


# --- Users ---

class UserCreate(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(min_length=6, max_length=128)


class UserUpdate(BaseModel):
    """Partial update: omitted or empty fields leave the stored value unchanged."""

    name: str | None = Field(None, min_length=2, max_length=100)
    email: EmailStr | None = None
    password: str | None = Field(None, min_length=6, max_length=128)

    @field_validator("name", "email", "password", mode="before")
    @classmethod
    def _blank_means_unchanged(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class UserResponse(BaseModel):
    """Public projection of a user. The password digest is never included."""

    id: int
    name: str
    email: str
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


# --- Auth ---

class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class LoginResponse(BaseModel):
    token: str
    user: UserResponse


# --- Pagination ---

class PaginatedResponse(BaseModel):
    items: list[UserResponse]
    page: int
    per_page: int
    total: int
    total_pages: int


# --- Envelope ---

class BaseResponse(BaseModel):
    """Uniform JSON envelope returned by every endpoint."""

    success: bool
    message: str
    data: Any = None
    error: str | None = None
