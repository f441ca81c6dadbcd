from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator

from backend.depot.core.security import validate_password_strength
from backend.depot.models.user import RoleEnum


def _validate_pw(v: str) -> str:
    error = validate_password_strength(v)
    if error:
        raise ValueError(error)
    return v


class UserOut(BaseModel):
    id: UUID
    username: str
    email: str | None
    full_name: str | None
    phone: str | None
    role: RoleEnum
    is_active: bool
    last_login: datetime | None
    created_at: datetime

    class Config:
        from_attributes = True


class MeOut(UserOut):
    permissions: list[str] = []


class UserCreate(BaseModel):
    username: str = Field(..., min_length=3, max_length=150)
    password: str = Field(..., min_length=12, max_length=128)
    email: EmailStr | None = None
    full_name: str | None = Field(None, max_length=255)
    phone: str | None = Field(None, max_length=50)
    role: RoleEnum

    @field_validator("password")
    @classmethod
    def check_password_strength(cls, v: str) -> str:
        return _validate_pw(v)


class UserUpdate(BaseModel):
    email: EmailStr | None = None
    full_name: str | None = Field(None, max_length=255)
    phone: str | None = Field(None, max_length=50)
    role: RoleEnum | None = None


class ResetPasswordIn(BaseModel):
    new_password: str = Field(..., min_length=12, max_length=128)

    @field_validator("new_password")
    @classmethod
    def check_password_strength(cls, v: str) -> str:
        return _validate_pw(v)


class ChangePasswordIn(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=12, max_length=128)

    @field_validator("new_password")
    @classmethod
    def check_password_strength(cls, v: str) -> str:
        return _validate_pw(v)
