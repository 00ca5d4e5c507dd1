from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from config import ACCESS_TOKEN_EXPIRE_MINUTES
from compliance.audit.repositories.audit_repository import AuditRepository
from compliance.audit.services.audit_service import AuditLogWriter, admin_actor
from compliance.auth.models.admin_user import AdminRole, AdminUser
from compliance.auth.schemas.auth_schemas import (
    AdminUserCreate, AdminUserListResponse, AdminUserResponse, LoginRequest, TokenResponse,
)
from compliance.auth.services.auth_service import AuthService
from database import commit, get_db

router = APIRouter(prefix="/auth", tags=["authentication"])
security = HTTPBearer()


async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security),
                           db: AsyncSession = Depends(get_db)) -> AdminUser:
    user = await AuthService.get_current_user(db, credentials.credentials)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def verify_admin(current_user: AdminUser = Depends(get_current_user)) -> AdminUser:
    if current_user.role != AdminRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only administrators can perform this action"
        )
    return current_user


@router.post("/login", response_model=TokenResponse)
async def login(login_data: LoginRequest, db: AsyncSession = Depends(get_db)):
    user = await AuthService.authenticate_user(db, login_data.email, login_data.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    access_token = AuthService.create_access_token(
        data={"sub": user.email}, expires_delta=timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    return TokenResponse(
        access_token=access_token,
        token_type="bearer",
        user_id=user.id,
        user_name=user.name,
        user_role=user.role.value
    )


@router.post("/register", response_model=AdminUserResponse, status_code=status.HTTP_201_CREATED)
async def register_user(
    user_data: AdminUserCreate,
    db: AsyncSession = Depends(get_db),
    current_user: AdminUser = Depends(verify_admin)
):
    if await AuthService.find_by_email(db, user_data.email):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered"
        )

    new_user = AdminUser(
        name=user_data.name,
        email=user_data.email,
        password_hash=AuthService.get_password_hash(user_data.password),
        role=user_data.role,
        is_active=True
    )
    db.add(new_user)
    await db.flush()
    await AuditLogWriter(AuditRepository(db)).record(
        "operator_registered",
        f"Operator {new_user.email} registered with role {new_user.role.value}",
        actor=admin_actor(current_user.email),
        entity_type="admin_user",
        entity_id=str(new_user.id),
        payload={"role": new_user.role.value},
    )
    await commit(db)
    return new_user


@router.get("/users", response_model=AdminUserListResponse)
async def list_users(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
    current_user: AdminUser = Depends(verify_admin)
):
    total = await db.scalar(select(func.count()).select_from(AdminUser))
    result = await db.execute(select(AdminUser).order_by(AdminUser.id).offset(skip).limit(limit))
    return AdminUserListResponse(users=list(result.scalars().all()), total=total or 0)


@router.get("/me", response_model=AdminUserResponse)
async def get_current_user_info(current_user: AdminUser = Depends(get_current_user)):
    return current_user
