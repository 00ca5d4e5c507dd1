from typing import List, Optional

from pydantic import EmailStr, Field

from compliance.schemas import CamelModel


class SignRequest(CamelModel):
    collaborator_id: str
    signer_name: str = Field(min_length=1, max_length=255)
    signer_email: EmailStr
    accepted_document_ids: List[str] = Field(min_length=1)


class SignResponse(CamelModel):
    batch_token: str
    email_sent_to: str


class SignedDocumentResponse(CamelModel):
    title: str
    signed_at: str
    verification_code: str
    hash: str
    document_id: Optional[str] = None
    content_url: Optional[str] = None
    download_url: Optional[str] = None


class ConfirmResponse(CamelModel):
    signer_name: str
    documents: List[SignedDocumentResponse]
    download_link: str
    certificate_url: Optional[str] = None
