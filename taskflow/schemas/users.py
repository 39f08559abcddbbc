"""Schemas for user endpoints."""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class UserCreate(BaseModel):
    """Input schema for user registration."""
    name: str = Field(min_length=1, max_length=255)
    email: EmailStr


class UserRead(BaseModel):
    """Output schema for user info."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: EmailStr


class UserCreated(BaseModel):
    user: UserRead
    message: str = "User created successfully"


class UsersList(BaseModel):
    users: list[UserRead]
    message: str = "Users fetched successfully"
