from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from backend.depot.models.project import ProjectStatus, ProjectUserRole


class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=255)
    description: str | None = None
    status: ProjectStatus = ProjectStatus.ACTIVE
    start_date: date | None = None
    end_date: date | None = None

    @model_validator(mode="after")
    def dates_ordered(self) -> ProjectCreate:
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class ProjectUpdate(BaseModel):
    name: str | None = Field(None, min_length=2, max_length=255)
    description: str | None = None
    status: ProjectStatus | None = None
    start_date: date | None = None
    end_date: date | None = None


class ProjectOut(BaseModel):
    id: UUID
    name: str
    description: str | None
    status: ProjectStatus
    start_date: date | None
    end_date: date | None
    engineer_count: int = 0
    contractor_count: int = 0
    created_at: datetime


class ProjectUserIn(BaseModel):
    user_id: UUID
    role: ProjectUserRole


class ProjectUserOut(BaseModel):
    user_id: UUID
    username: str
    full_name: str | None
    role: ProjectUserRole
    created_at: datetime


class ProjectEmployeeIn(BaseModel):
    employee_id: UUID
    role_id: UUID | None = None


class ProjectEmployeeOut(BaseModel):
    employee_id: UUID
    full_name: str
    role_id: UUID | None
    role_name: str | None
    created_at: datetime
