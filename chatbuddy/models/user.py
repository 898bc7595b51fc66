"""Dashboard user and session Pydantic models"""
from pydantic import BaseModel, EmailStr, Field
from typing import Optional


class UserCreateRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=6)
    email: Optional[EmailStr] = None
    role: str = "user"


class LoginRequest(BaseModel):
    username: str
    password: str
