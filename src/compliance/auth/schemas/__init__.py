from .auth_schemas import (
    AdminUserCreate, AdminUserListResponse, AdminUserResponse, LoginRequest, TokenResponse,
)

__all__ = [
    'LoginRequest', 'TokenResponse', 'AdminUserCreate', 'AdminUserResponse',
    'AdminUserListResponse'
]
