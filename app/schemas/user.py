from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from typing import Optional
from datetime import datetime
import re

from app.models.user import Role

NAME_PATTERN = r"^[a-zA-Z\s]+$"
OTP_PATTERN = r"^\d{6}$"
PASSWORD_RULE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)")


def check_password_strength(value: str) -> str:
    if not PASSWORD_RULE.match(value):
        raise ValueError(
            "Password must contain at least one uppercase letter, one lowercase letter, and one number"
        )
    return value


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class UserBase(CamelModel):
    email: EmailStr

    @field_validator("email")
    @classmethod
    def lower_email(cls, value: str) -> str:
        return value.lower()


class UserCreate(UserBase):
    name: str = Field(min_length=2, max_length=50, pattern=NAME_PATTERN)
    password: str = Field(min_length=6, max_length=100)
    role: Role = Role.USER

    @field_validator("password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        return check_password_strength(value)


class UserLogin(UserBase):
    password: str = Field(min_length=1)


class UserOTP(UserBase):
    pass


class OTPVerify(UserBase):
    otp_code: str = Field(alias="otpCode", pattern=OTP_PATTERN)


class PasswordReset(UserBase):
    otp_code: str = Field(alias="otpCode", pattern=OTP_PATTERN)
    new_password: str = Field(alias="newPassword", min_length=6, max_length=100)

    @field_validator("new_password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        return check_password_strength(value)


class UserPublic(CamelModel):
    id: str
    name: str
    email: str
    role: Role
    is_verified: bool = Field(alias="isVerified")

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class UserProfile(UserPublic):
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")


class SignupResult(CamelModel):
    account_id: str = Field(alias="accountId")
    email: str
    name: str
    message: str = "User registered successfully. Please check your email for verification code."


class AuthResult(CamelModel):
    token: str
    token_type: str = "bearer"
    user: UserPublic
    message: str


class MessageResult(BaseModel):
    message: str
