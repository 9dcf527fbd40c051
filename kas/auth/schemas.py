from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from kas.core.enums import Role

# bcrypt only looks at the first 72 bytes; longer inputs are refused, not truncated
MAX_PASSWORD_BYTES = 72


def check_password_bytes(value: str) -> str:
    if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"password cannot be longer than {MAX_PASSWORD_BYTES} bytes")
    return value


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=1, max_length=72)
    remember_me: bool = Field(False, alias="rememberMe")

    model_config = {"populate_by_name": True}

    validate_password_bytes = field_validator("password")(check_password_bytes)


class AdminLoginRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=1, max_length=72)

    validate_password_bytes = field_validator("password")(check_password_bytes)


class UserInfo(BaseModel):
    id: UUID
    username: str
    full_name: str
    role: Role
    kelas: Optional[str] = None
    nis: Optional[str] = None

    class Config:
        from_attributes = True


class LoginResponse(BaseModel):
    success: bool = True
    message: str = "Login successful"
    token: str
    token_type: str = "bearer"
    expires_at: datetime
    user: UserInfo


class MeResponse(BaseModel):
    success: bool = True
    user: UserInfo


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class RegisterRequest(BaseModel):
    """Student self-registration. Role is always `user`."""

    username: str = Field(..., min_length=3, max_length=100)
    password: str = Field(..., min_length=6, max_length=72)
    full_name: str = Field(..., min_length=1, max_length=255, alias="fullName")
    kelas: str = Field(..., min_length=1, max_length=50)
    nis: str = Field(..., min_length=1, max_length=50)

    model_config = {"populate_by_name": True}

    validate_password_bytes = field_validator("password")(check_password_bytes)


class RegisterResponse(BaseModel):
    success: bool
    message: str
    user: UserInfo


class ChangeUsernameRequest(BaseModel):
    new_username: str = Field(..., min_length=3, max_length=100)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1, max_length=72)
    new_password: str = Field(..., min_length=6, max_length=72)
    confirm_password: str = Field(..., min_length=6, max_length=72)

    validate_password_bytes = field_validator(
        "current_password", "new_password", "confirm_password"
    )(check_password_bytes)

    @model_validator(mode="after")
    def validate_passwords_match(self) -> "ChangePasswordRequest":
        if self.new_password != self.confirm_password:
            raise ValueError("new_password and confirm_password do not match")
        return self


class CurrentUser(BaseModel):
    """The authenticated principal as currently stored, not as claimed by the token."""

    id: UUID
    username: str
    full_name: str
    role: Role
    kelas: Optional[str] = None
    nis: Optional[str] = None
    session_id: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN
