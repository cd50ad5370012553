from typing import Optional

from pydantic import BaseModel, Field, field_validator

from schemas.validators import ensure_password_fits, normalize_optional_text


class LoginRequest(BaseModel):
    """
    Login request.

    Fields are optional at the schema level so that a missing field produces
    the same 400 message as an empty one.
    """

    email: Optional[str] = Field(default=None, max_length=320)
    password: Optional[str] = None

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value):
        return normalize_optional_text(value, strip_invisible=True)

    @field_validator("password", mode="before")
    @classmethod
    def check_password(cls, value):
        return ensure_password_fits(value)


class RegisterRequest(LoginRequest):
    name: Optional[str] = Field(default=None, max_length=200)

    @field_validator("name", mode="before")
    @classmethod
    def normalize_name(cls, value):
        return normalize_optional_text(value, strip_invisible=True)


class UserPublic(BaseModel):
    """User fields exposed by the API"""

    id: str
    email: str
    name: str
    isPro: bool


class AuthUserResponse(BaseModel):
    message: Optional[str] = None
    user: UserPublic


class MessageResponse(BaseModel):
    message: str
