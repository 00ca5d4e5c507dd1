from datetime import datetime
from typing import List, Optional

from pydantic import EmailStr, Field

from compliance.collaborators.services.status_aggregator import ComplianceStatus
from compliance.documents.models.document import DocumentKind, DocumentState
from compliance.schemas import CamelModel


class CollaboratorCreate(CamelModel):
    first_name: str = Field(min_length=1, max_length=120)
    last_name: Optional[str] = None
    email: EmailStr
    contract_type: str
    tax_code: Optional[str] = Field(default=None, max_length=32)
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = Field(default=None, max_length=10)
    province: Optional[str] = Field(default=None, max_length=4)
    iban: Optional[str] = Field(default=None, max_length=34)
    vat_number: Optional[str] = Field(default=None, max_length=20)
    role_description: Optional[str] = None
    annual_limit: Optional[float] = Field(default=None, gt=0)


class ProfileUpdate(CamelModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    tax_code: Optional[str] = Field(default=None, max_length=32)
    phone: Optional[str] = None
    birth_date: Optional[str] = Field(default=None, pattern=r"^\d{4}-\d{2}-\d{2}$")
    birth_place: Optional[str] = None
    nationality: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = Field(default=None, max_length=10)
    province: Optional[str] = Field(default=None, max_length=4)
    iban: Optional[str] = Field(default=None, max_length=34)
    vat_number: Optional[str] = Field(default=None, max_length=20)


class CompensationCreate(CamelModel):
    amount: float = Field(gt=0)
    description: Optional[str] = None


class DocumentResponse(CamelModel):
    id: str
    kind: DocumentKind
    title: str
    number: str
    state: DocumentState
    content_url: Optional[str] = None
    content_sha256: Optional[str] = None
    signed_at: Optional[datetime] = None
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None


class CollaboratorResponse(CamelModel):
    id: str
    first_name: str
    last_name: str
    email: str
    tax_code: str
    phone: Optional[str] = None
    birth_date: Optional[str] = None
    birth_place: Optional[str] = None
    nationality: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    province: Optional[str] = None
    iban: Optional[str] = None
    vat_number: Optional[str] = None
    contract_type: str
    role_description: Optional[str] = None
    annual_limit: float
    annual_amount_used: float
    profile_completed: bool
    notes: Optional[str] = None
    created_at: datetime
    status: Optional[ComplianceStatus] = None


class CollaboratorDetailResponse(CollaboratorResponse):
    documents: List[DocumentResponse] = []


class IntakeResponse(CamelModel):
    collaborator: CollaboratorResponse
    documents: List[DocumentResponse]
    email_sent: bool
    portal_link: str


class ComplianceIssueResponse(CamelModel):
    collaborator_id: str
    full_name: str
    kind: str
    message: str
    status: ComplianceStatus
    usage_ratio: float = 0.0


class PortalResponse(CamelModel):
    collaborator: CollaboratorResponse
    profile_completed: bool
    status: ComplianceStatus
    documents: List[DocumentResponse]
