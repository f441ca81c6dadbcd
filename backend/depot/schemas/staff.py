from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from backend.depot.models.permission import RoleType


# ─── Roles ────────────────────────────────────────────────────────────────────


class RoleCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    description: str = Field("", max_length=255)
    type: RoleType = RoleType.USER


class RoleUpdate(BaseModel):
    name: str | None = Field(None, min_length=2, max_length=100)
    description: str | None = Field(None, max_length=255)


class RolePermissionsIn(BaseModel):
    codes: list[str]


class RoleOut(BaseModel):
    id: UUID
    name: str
    description: str
    type: RoleType
    is_system: bool
    permissions: list[str] = []
    created_at: datetime


# ─── Employees ────────────────────────────────────────────────────────────────


class EmployeeCreate(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    phone: str | None = Field(None, max_length=50)
    role_id: UUID


class EmployeeUpdate(BaseModel):
    first_name: str | None = Field(None, min_length=1, max_length=100)
    last_name: str | None = Field(None, min_length=1, max_length=100)
    phone: str | None = Field(None, max_length=50)
    role_id: UUID | None = None


class EmployeeOut(BaseModel):
    id: UUID
    first_name: str
    last_name: str
    full_name: str
    phone: str | None
    role_id: UUID
    role_name: str
    created_at: datetime
