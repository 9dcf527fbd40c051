from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from kas.auth.schemas import check_password_bytes
from kas.core.enums import Role


class UserCreate(BaseModel):
    """Admin provisioning of a student or admin account."""

    username: str = Field(..., min_length=3, max_length=100)
    password: str = Field(..., min_length=6, max_length=72)
    full_name: str = Field(..., min_length=1, max_length=255, alias="fullName")
    role: Role = Role.USER
    kelas: Optional[str] = Field(None, max_length=50)
    nis: Optional[str] = Field(None, max_length=50)

    model_config = {"populate_by_name": True}

    validate_password_bytes = field_validator("password")(check_password_bytes)

    @model_validator(mode="after")
    def validate_profile_for_role(self) -> "UserCreate":
        if self.role == Role.USER and not (self.kelas and self.nis):
            raise ValueError("kelas and nis are required for student accounts")
        if self.role == Role.ADMIN and (self.kelas or self.nis):
            raise ValueError("admin accounts cannot have kelas or nis")
        return self


class AdminCreate(BaseModel):
    username: str = Field(..., min_length=3, max_length=100)
    password: str = Field(..., min_length=6, max_length=72)
    full_name: str = Field(..., min_length=1, max_length=255, alias="fullName")

    model_config = {"populate_by_name": True}

    validate_password_bytes = field_validator("password")(check_password_bytes)
