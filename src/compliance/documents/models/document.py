import uuid
from enum import Enum as PyEnum

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, String

from database import Base, utcnow


class DocumentKind(PyEnum):
    PRIVACY = "privacy"
    INDEPENDENCE_DECLARATION = "independence-declaration"
    CONTRACT_OCCASIONAL = "contract-occasional"
    CONTRACT_VAT = "contract-vat"
    MULTI_CLIENT_DECLARATION = "multi-client-declaration"


class DocumentState(PyEnum):
    TO_SIGN = "to_sign"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    SIGNED = "signed"


DOCUMENT_TITLES = {
    DocumentKind.PRIVACY: "Confidentiality and Privacy Notice",
    DocumentKind.INDEPENDENCE_DECLARATION: "Declaration of Independence",
    DocumentKind.CONTRACT_OCCASIONAL: "Occasional Collaboration Contract",
    DocumentKind.CONTRACT_VAT: "Professional Collaboration Contract (VAT registered)",
    DocumentKind.MULTI_CLIENT_DECLARATION: "Multi-Client Declaration",
}


class Document(Base):
    __tablename__ = "documents"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    collaborator_id = Column(String(36), ForeignKey("collaborators.id"), nullable=False, index=True)
    kind = Column(Enum(DocumentKind, values_callable=lambda e: [m.value for m in e]), nullable=False)
    title = Column(String(255), nullable=False)
    number = Column(String(64), nullable=False, unique=True)

    # rendered artifact in the blob store
    content_path = Column(String(512), nullable=True)
    content_url = Column(String(1024), nullable=True)
    content_sha256 = Column(String(64), nullable=True)

    state = Column(
        Enum(DocumentState, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=DocumentState.TO_SIGN,
    )
    signed_at = Column(DateTime, nullable=True)
    valid_from = Column(DateTime, nullable=False, default=utcnow)
    valid_until = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
