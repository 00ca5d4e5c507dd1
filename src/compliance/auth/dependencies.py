from fastapi import Depends, HTTPException, status

from compliance.auth.controllers.auth_controller import get_current_user
from compliance.auth.models.admin_user import AdminUser
from compliance.auth.services.permission import can_perform_action


def require_permission(action: str):
    def dependency(current_user: AdminUser = Depends(get_current_user)):
        if not can_perform_action(current_user.role, action):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"User with role '{current_user.role.value}' cannot perform '{action}'"
            )
        return current_user
    return dependency
