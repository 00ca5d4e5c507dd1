from datetime import datetime
from typing import List

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from compliance.auth.models.admin_user import AdminRole


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str
    user_id: int
    user_name: str
    user_role: str


class AdminUserCreate(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    password: str = Field(min_length=8)
    role: AdminRole


class AdminUserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    role: AdminRole
    is_active: bool
    created_at: datetime


class AdminUserListResponse(BaseModel):
    users: List[AdminUserResponse]
    total: int
