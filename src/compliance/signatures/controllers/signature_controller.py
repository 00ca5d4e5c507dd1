from dataclasses import asdict

from fastapi import APIRouter, Depends, Query, Request, status

from compliance.signatures.models.schemas import ConfirmResponse, SignRequest, SignResponse
from compliance.signatures.services.verification_service import ConfirmationResult, VerificationService
from compliance.dependencies import get_verification_service

router = APIRouter(tags=["signatures"])


def _device(user_agent: str) -> str:
    agent = user_agent.lower()
    # tablet agents often carry "Mobile" too
    if "ipad" in agent or "tablet" in agent:
        return "tablet"
    if "mobile" in agent or "android" in agent or "iphone" in agent:
        return "mobile"
    return "desktop"


def _confirmation_response(result: ConfirmationResult) -> ConfirmResponse:
    return ConfirmResponse(
        signer_name=result.signer_name,
        documents=[asdict(doc) for doc in result.documents],
        download_link=result.download_link,
        certificate_url=result.certificate_url,
    )


@router.post("/sign", response_model=SignResponse, status_code=status.HTTP_201_CREATED)
async def sign_documents(
    payload: SignRequest,
    request: Request,
    service: VerificationService = Depends(get_verification_service)
):
    """Sign every pending document of a collaborator and send the verification email."""
    user_agent = request.headers.get("user-agent", "")
    result = await service.sign_batch(
        payload.collaborator_id,
        payload.signer_name.strip(),
        payload.signer_email,
        payload.accepted_document_ids,
        ip_address=request.client.host if request.client else None,
        user_agent=user_agent or None,
        device=_device(user_agent),
    )
    return SignResponse(batch_token=result.batch_token, email_sent_to=result.email_sent_to)


@router.post("/sign/{batch_token}/resend", response_model=SignResponse)
async def resend_verification(
    batch_token: str,
    service: VerificationService = Depends(get_verification_service)
):
    result = await service.resend_verification(batch_token)
    return SignResponse(batch_token=result.batch_token, email_sent_to=result.email_sent_to)


@router.get("/confirm", response_model=ConfirmResponse)
async def confirm_signature(
    code: str = Query(..., min_length=1),
    service: VerificationService = Depends(get_verification_service)
):
    """Verification link target: validates the whole signing batch of the code."""
    return _confirmation_response(await service.confirm(code))


@router.get("/downloads", response_model=ConfirmResponse)
async def signed_downloads(
    token: str = Query(..., min_length=1),
    service: VerificationService = Depends(get_verification_service)
):
    return _confirmation_response(await service.signed_documents(token))
