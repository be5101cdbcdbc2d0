"""
Pydantic schemas for the unauthenticated auth endpoints.
"""
from pydantic import EmailStr, Field, field_validator, model_validator

from panodesk.core import config
from panodesk.core.schemas import CamelModel


def _normalize_email(value):
    if isinstance(value, str):
        return value.strip().lower()
    return value


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=72)

    _email = field_validator("email", mode="before")(_normalize_email)


class RegisterRequest(CamelModel):
    """Self-service signup; new accounts are reviewers until promoted."""
    email: EmailStr
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=config.PASSWORD_MIN_LENGTH, max_length=72)
    confirm_password: str | None = Field(None, max_length=72)

    _email = field_validator("email", mode="before")(_normalize_email)

    @field_validator("first_name", "last_name", mode="before")
    @classmethod
    def strip_names(cls, value):
        return value.strip() if isinstance(value, str) else value

    @model_validator(mode="after")
    def passwords_match(self):
        if self.confirm_password is not None and self.confirm_password != self.password:
            raise ValueError("Passwords do not match")
        return self


class ForgotPasswordRequest(CamelModel):
    email: EmailStr

    _email = field_validator("email", mode="before")(_normalize_email)


class ResetPasswordRequest(CamelModel):
    token: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=config.PASSWORD_MIN_LENGTH, max_length=72)
    confirm_password: str | None = Field(None, max_length=72)

    @model_validator(mode="after")
    def passwords_match(self):
        if self.confirm_password is not None and self.confirm_password != self.password:
            raise ValueError("Passwords do not match")
        return self
