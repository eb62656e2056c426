import re
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

# At least one upper case letter, one lower case letter, and a digit or symbol
PASSWORD_PATTERN = re.compile(r"^(?=.*[A-Z])(?=.*[a-z])(?=.*[\d\W]).*$")


def check_password_strength(value: Optional[str]) -> Optional[str]:
    if value is not None and not PASSWORD_PATTERN.match(value):
        raise ValueError("Password is too weak")
    return value


class RequestModel(BaseModel):
    """Base for request bodies: accepts camelCase aliases and normalizes email."""

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("email", mode="before", check_fields=False)
    @classmethod
    def normalize_email(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("name", "image", mode="before", check_fields=False)
    @classmethod
    def strip_text(cls, value):
        return value.strip() if isinstance(value, str) else value


class ResponseModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# Users
class UserCreate(RequestModel):
    email: EmailStr
    name: str = Field(min_length=2, max_length=50)
    password: str = Field(min_length=8, max_length=32)
    image: Optional[str] = None

    @field_validator("password")
    @classmethod
    def validate_password(cls, value):
        return check_password_strength(value)


class UserUpdate(RequestModel):
    email: Optional[EmailStr] = None
    name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    password: Optional[str] = Field(default=None, min_length=8, max_length=32)
    image: Optional[str] = None

    @field_validator("password")
    @classmethod
    def validate_password(cls, value):
        return check_password_strength(value)


class UserResponse(ResponseModel):
    id: str
    email: str
    name: str
    image: Optional[str] = None
    is_verified: bool = Field(serialization_alias="isVerified")
    created_at: datetime = Field(serialization_alias="createdAt")

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


# Authentication
class SignInRequest(RequestModel):
    email: EmailStr
    password: str


class TokenPair(ResponseModel):
    token: str
    refresh_token: str = Field(alias="refreshToken")


class VerifyOtpRequest(RequestModel):
    email: EmailStr
    otp_code: str = Field(alias="otpCode", min_length=1)
    type: Literal["verify", "reset"] = "verify"


class VerifyOtpResponse(ResponseModel):
    message: str
    token: Optional[str] = None
    refresh_token: Optional[str] = Field(default=None, alias="refreshToken")
    reset_token: Optional[str] = Field(default=None, alias="resetToken")


class EmailRequest(RequestModel):
    email: EmailStr


class ResendOtpResponse(BaseModel):
    success: bool
    message: str


class RefreshTokenRequest(RequestModel):
    refresh_token: str = Field(alias="refreshToken")


class ResetPasswordRequest(RequestModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=32)
    reset_token: str = Field(alias="resetToken")

    @field_validator("password")
    @classmethod
    def validate_password(cls, value):
        return check_password_strength(value)


class MessageResponse(BaseModel):
    message: str


# Uploads
class FileUploadResponse(ResponseModel):
    file_path: str = Field(alias="filePath")
    filename: str
