from compliance.auth.models.admin_user import AdminRole

ROLE_PERMISSIONS = {
    AdminRole.VIEWER: ["view"],
    AdminRole.COMPLIANCE_OFFICER: ["view", "intake", "compensation", "audit"],
    AdminRole.ADMIN: ["view", "intake", "compensation", "audit", "manage"],
}


def can_perform_action(user_role: AdminRole, action: str) -> bool:
    return action in ROLE_PERMISSIONS.get(user_role, [])
