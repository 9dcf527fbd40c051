from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(..., alias="DATABASE_URL")

    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    # Admin surface tokens are short lived; student tokens follow the remember-me flag
    admin_token_expire_hours: int = Field(24, alias="ADMIN_TOKEN_EXPIRE_HOURS")
    session_expire_days: int = Field(3, alias="SESSION_EXPIRE_DAYS")
    remember_me_expire_days: int = Field(30, alias="REMEMBER_ME_EXPIRE_DAYS")
    bcrypt_rounds: int = Field(10, alias="BCRYPT_ROUNDS")

    # Every weekly dues payment must be a multiple of this amount (Rupiah)
    weekly_unit: int = Field(5000, alias="WEEKLY_UNIT")

    # Self-registration is a development convenience; admins provision accounts in production
    allow_self_registration: bool = Field(False, alias="ALLOW_SELF_REGISTRATION")

    auth_cookie_name: str = Field("auth_token", alias="AUTH_COOKIE_NAME")
    session_cookie_name: str = Field("session_id", alias="SESSION_COOKIE_NAME")
    cookie_secure: bool = Field(False, alias="COOKIE_SECURE")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"], alias="CORS_ORIGINS")

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    initial_admin_username: Optional[str] = Field(None, alias="INITIAL_ADMIN_USERNAME")
    initial_admin_password: Optional[str] = Field(None, alias="INITIAL_ADMIN_PASSWORD")
    initial_admin_full_name: str = Field("Administrator", alias="INITIAL_ADMIN_FULL_NAME")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
