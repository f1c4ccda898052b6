"""Core HR Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Update  → request bodies (write)
  - *Response          → response bodies (read)
  - *Brief / *Summary  → compact embedded representations
"""


import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from leavedesk.common.constants import UserRole


# ═════════════════════════════════════════════════════════════════════
# Shared / embedded
# ═════════════════════════════════════════════════════════════════════


class DepartmentBrief(BaseModel):
    """Minimal department info embedded in other responses."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str


class EmployeeSummary(BaseModel):
    """Minimal employee info (manager, coordinator) embedded in other responses."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_code: str
    name: str
    email: str


# ═════════════════════════════════════════════════════════════════════
# Department
# ═════════════════════════════════════════════════════════════════════


class DepartmentCreate(BaseModel):
    """Payload for creating a department."""

    name: str = Field(..., min_length=1, max_length=150)
    description: Optional[str] = None
    coordinator_id: Optional[uuid.UUID] = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Department name is required.")
        return v


class DepartmentUpdate(BaseModel):
    """Partial update — only supplied fields are changed."""

    name: Optional[str] = Field(None, min_length=1, max_length=150)
    description: Optional[str] = None
    coordinator_id: Optional[uuid.UUID] = None


class DepartmentResponse(BaseModel):
    """Full department representation."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    description: Optional[str] = None
    coordinator_id: Optional[uuid.UUID] = None
    is_active: bool = True
    created_at: datetime
    updated_at: datetime
    # Enriched fields (set by service layer)
    coordinator: Optional[EmployeeSummary] = None
    employee_count: int = 0


# ═════════════════════════════════════════════════════════════════════
# User (employee account)
# ═════════════════════════════════════════════════════════════════════


class UserCreate(BaseModel):
    """Payload for creating an employee account (admin only).

    Login credentials live with the identity provider; only the record is
    created here.
    """

    employee_code: str = Field(..., min_length=1, max_length=20)
    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    role: UserRole = UserRole.employee
    department_id: Optional[uuid.UUID] = None
    manager_id: Optional[uuid.UUID] = None
    phone: Optional[str] = Field(None, max_length=20)
    position: Optional[str] = Field(None, max_length=150)

    @field_validator("employee_code", "name")
    @classmethod
    def strip_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class ProfileUpdate(BaseModel):
    """Fields a user may change on their own profile."""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    phone: Optional[str] = Field(None, max_length=20)
    position: Optional[str] = Field(None, max_length=150)


class UserUpdate(BaseModel):
    """Partial update — only supplied fields are changed.

    ``manager_id`` may be sent as ``null`` to clear the reporting line.
    """

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    email: Optional[EmailStr] = None
    role: Optional[UserRole] = None
    department_id: Optional[uuid.UUID] = None
    manager_id: Optional[uuid.UUID] = None
    phone: Optional[str] = Field(None, max_length=20)
    position: Optional[str] = Field(None, max_length=150)
    is_active: Optional[bool] = None


class UserResponse(BaseModel):
    """User representation with department and manager embedded."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_code: str
    name: str
    email: str
    phone: Optional[str] = None
    position: Optional[str] = None
    role: UserRole
    department_id: Optional[uuid.UUID] = None
    manager_id: Optional[uuid.UUID] = None
    is_active: bool = True
    created_at: datetime
    updated_at: datetime
    department: Optional[DepartmentBrief] = None
    manager: Optional[EmployeeSummary] = None
