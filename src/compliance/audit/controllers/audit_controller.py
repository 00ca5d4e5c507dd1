from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from compliance.audit.models.schemas import AuditLogResponse
from compliance.audit.services.audit_service import AuditLogWriter
from compliance.auth.dependencies import require_permission
from compliance.auth.models.admin_user import AdminUser
from compliance.dependencies import get_audit_writer

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("", response_model=List[AuditLogResponse])
async def list_audit_entries(
    action: Optional[str] = Query(None),
    entity_type: Optional[str] = Query(None, alias="entityType"),
    entity_id: Optional[str] = Query(None, alias="entityId"),
    collaborator_id: Optional[str] = Query(None, alias="collaboratorId"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    audit_writer: AuditLogWriter = Depends(get_audit_writer),
    current_user: AdminUser = Depends(require_permission("audit"))
):
    return await audit_writer.history(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        collaborator_id=collaborator_id,
        skip=skip,
        limit=limit,
    )
