from pydantic import EmailStr, Field, model_validator
from typing import Optional
from datetime import datetime
from enum import Enum
from natours.models.tour_model import CamelModel


class UserRole(str, Enum):
    USER = "user"
    GUIDE = "guide"
    LEAD_GUIDE = "lead-guide"
    ADMIN = "admin"


class User(CamelModel):
    id: int
    name: str
    email: EmailStr
    photo: str = "default.jpg"
    role: UserRole = UserRole.USER
    created_at: datetime


class SignupRequest(CamelModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=8)
    password_confirm: str

    @model_validator(mode="after")
    def check_passwords_match(self):
        if self.password != self.password_confirm:
            raise ValueError("Passwords are not the same!")
        return self


class LoginRequest(CamelModel):
    email: Optional[str] = None
    password: Optional[str] = None


class ForgotPasswordRequest(CamelModel):
    email: EmailStr


class ResetPasswordRequest(CamelModel):
    password: str = Field(..., min_length=8)
    password_confirm: str

    @model_validator(mode="after")
    def check_passwords_match(self):
        if self.password != self.password_confirm:
            raise ValueError("Passwords are not the same!")
        return self


class UpdatePasswordRequest(ResetPasswordRequest):
    password_current: str


class UpdateMeRequest(CamelModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    password: Optional[str] = None
    password_confirm: Optional[str] = None


class UserUpdate(CamelModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    role: Optional[UserRole] = None
    photo: Optional[str] = None
