from typing import List

from fastapi import APIRouter, Depends, Request, status

from compliance.audit.services.audit_service import admin_actor
from compliance.auth.dependencies import require_permission
from compliance.auth.models.admin_user import AdminUser
from compliance.collaborators.models.schemas import (
    CollaboratorCreate, CollaboratorDetailResponse, CollaboratorResponse, CompensationCreate,
    ComplianceIssueResponse, DocumentResponse, IntakeResponse, PortalResponse, ProfileUpdate,
)
from compliance.collaborators.services.collaborator_service import CollaboratorService, portal_link
from compliance.dependencies import get_collaborator_service

router = APIRouter(prefix="/collaborators", tags=["collaborators"])
portal_router = APIRouter(prefix="/portal", tags=["portal"])


def _collaborator(collaborator, status=None) -> CollaboratorResponse:
    return CollaboratorResponse.model_validate(collaborator).model_copy(update={"status": status})


@router.post("", response_model=IntakeResponse, status_code=status.HTTP_201_CREATED)
async def create_collaborator(
    payload: CollaboratorCreate,
    service: CollaboratorService = Depends(get_collaborator_service),
    current_user: AdminUser = Depends(require_permission("intake"))
):
    """Admin intake: creates the collaborator and generates the required documents."""
    result = await service.create_collaborator(payload.model_dump(), actor=admin_actor(current_user.email))
    return IntakeResponse(
        collaborator=_collaborator(result.collaborator),
        documents=[DocumentResponse.model_validate(doc) for doc in result.documents],
        email_sent=result.email_sent,
        portal_link=portal_link(result.collaborator.id),
    )


@router.get("", response_model=List[CollaboratorResponse])
async def list_collaborators(
    service: CollaboratorService = Depends(get_collaborator_service),
    current_user: AdminUser = Depends(require_permission("view"))
):
    return [_collaborator(c, s) for c, s in await service.list_collaborators()]


@router.get("/compliance-issues", response_model=List[ComplianceIssueResponse])
async def list_compliance_issues(
    service: CollaboratorService = Depends(get_collaborator_service),
    current_user: AdminUser = Depends(require_permission("view"))
):
    return await service.compliance_issues()


@router.get("/{collaborator_id}", response_model=CollaboratorDetailResponse)
async def get_collaborator(
    collaborator_id: str,
    service: CollaboratorService = Depends(get_collaborator_service),
    current_user: AdminUser = Depends(require_permission("view"))
):
    overview = await service.overview(collaborator_id)
    return CollaboratorDetailResponse(
        **_collaborator(overview.collaborator, overview.status).model_dump(),
        documents=[DocumentResponse.model_validate(doc) for doc in overview.documents],
    )


@router.post("/{collaborator_id}/compensations", response_model=CollaboratorResponse)
async def record_compensation(
    collaborator_id: str,
    payload: CompensationCreate,
    service: CollaboratorService = Depends(get_collaborator_service),
    current_user: AdminUser = Depends(require_permission("compensation"))
):
    collaborator = await service.record_compensation(
        collaborator_id, payload.amount, payload.description, actor=admin_actor(current_user.email)
    )
    return _collaborator(collaborator)


@portal_router.get("/{collaborator_id}", response_model=PortalResponse)
async def open_portal(
    collaborator_id: str,
    request: Request,
    service: CollaboratorService = Depends(get_collaborator_service)
):
    """Signer portal: profile and documents to read and sign."""
    overview = await service.portal_view(collaborator_id, request.client.host if request.client else None)
    return PortalResponse(
        collaborator=_collaborator(overview.collaborator, overview.status),
        profile_completed=overview.collaborator.profile_completed,
        status=overview.status,
        documents=[DocumentResponse.model_validate(doc) for doc in overview.documents],
    )


@portal_router.put("/{collaborator_id}/profile", response_model=CollaboratorResponse)
async def complete_profile(
    collaborator_id: str,
    payload: ProfileUpdate,
    service: CollaboratorService = Depends(get_collaborator_service)
):
    collaborator = await service.complete_profile(collaborator_id, payload.model_dump(exclude_none=True))
    return _collaborator(collaborator)
