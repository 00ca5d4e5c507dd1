import io
import logging
import secrets
import time
from datetime import timedelta
from typing import List, Optional

from PyPDF2 import PdfReader
from PyPDF2.errors import PdfReadError

from config import DOCUMENT_VALIDITY_DAYS
from compliance.audit.services.audit_service import SYSTEM_ACTOR, AuditLogWriter
from compliance.collaborators.models.collaborator import Collaborator, ContractType
from compliance.documents.models.document import (
    DOCUMENT_TITLES, Document, DocumentKind, DocumentState,
)
from compliance.documents.repositories.document_repository import DocumentRepository
from compliance.documents.services.rendering import DocumentRenderer
from compliance.errors import ArtifactIntegrityError, ConfigurationError, InvalidStateError
from compliance.signatures.services.hashing import HashingService
from compliance.storage.services.blob_store import BlobStore
from database import utcnow

logger = logging.getLogger(__name__)

UNIVERSAL_DOCUMENTS = [DocumentKind.PRIVACY, DocumentKind.INDEPENDENCE_DECLARATION]

_VAT_DOCUMENTS = UNIVERSAL_DOCUMENTS + [DocumentKind.CONTRACT_VAT, DocumentKind.MULTI_CLIENT_DECLARATION]

REQUIRED_DOCUMENTS = {
    ContractType.OCCASIONAL: UNIVERSAL_DOCUMENTS + [DocumentKind.CONTRACT_OCCASIONAL],
    ContractType.VAT_REGISTERED: _VAT_DOCUMENTS,
    # mixed collaborators receive the VAT set
    ContractType.MIXED: _VAT_DOCUMENTS,
}

ALLOWED_TRANSITIONS = {
    DocumentState.TO_SIGN: {DocumentState.AWAITING_CONFIRMATION},
    DocumentState.AWAITING_CONFIRMATION: {DocumentState.SIGNED},
    DocumentState.SIGNED: set(),
}

DEFAULT_ROLE_DESCRIPTION = "educational and training services"


def required_document_kinds(contract_type: str) -> List[DocumentKind]:
    """Document kinds a collaborator must sign, by contract type."""
    try:
        parsed = ContractType(contract_type)
    except ValueError:
        raise ConfigurationError(f"Unrecognized contract type '{contract_type}'")
    return list(REQUIRED_DOCUMENTS[parsed])


def _document_number() -> str:
    return f"DOC-{time.time_ns() // 1_000_000}-{secrets.token_hex(5)[:9]}"


def _validate_pdf(data: bytes) -> None:
    try:
        reader = PdfReader(io.BytesIO(data))
        _ = reader.pages[0]
    except (PdfReadError, IndexError, ValueError) as exc:
        raise ConfigurationError("Rendered document is not a valid PDF") from exc


class DocumentRegistry:
    """
    Owns the lifecycle of compliance documents.

    State only moves forward (to_sign -> awaiting_confirmation -> signed) and
    only through the signature ledger and the verification protocol.
    """

    def __init__(self, repository: DocumentRepository, audit_writer: AuditLogWriter,
                 blob_store: BlobStore, renderer: Optional[DocumentRenderer] = None):
        self.document_repository = repository
        self.audit_writer = audit_writer
        self.blob_store = blob_store
        self.renderer = renderer or DocumentRenderer()

    async def documents_for(self, collaborator_id: str) -> List[Document]:
        return await self.document_repository.find_by_collaborator_id(collaborator_id)

    async def generate_documents(self, collaborator: Collaborator, actor: str = SYSTEM_ACTOR) -> List[Document]:
        """
        Materialize the documents required by the collaborator's contract type.

        Kinds the collaborator already holds are skipped. An unrecognized
        contract type still produces the universal documents and then raises
        ConfigurationError carrying them in ``documents``.
        """
        configuration_error = None
        try:
            kinds = required_document_kinds(collaborator.contract_type)
        except ConfigurationError as exc:
            logger.warning("Collaborator %s: %s", collaborator.id, exc.message)
            configuration_error = exc
            kinds = list(UNIVERSAL_DOCUMENTS)

        existing = {doc.kind for doc in await self.documents_for(collaborator.id)}
        created = []
        for kind in kinds:
            if kind in existing:
                continue
            created.append(await self._create_document(collaborator, kind))

        if created:
            await self.audit_writer.record(
                "documents_generated",
                f"Generated {len(created)} document(s) for {collaborator.full_name}",
                actor=actor,
                entity_type="collaborator",
                entity_id=collaborator.id,
                collaborator_id=collaborator.id,
                payload={
                    "documents": [{"id": d.id, "kind": d.kind.value, "number": d.number} for d in created],
                    "contract_type": collaborator.contract_type,
                },
            )
            logger.info("Generated %d document(s) for collaborator %s", len(created), collaborator.id)

        if configuration_error is not None:
            configuration_error.documents = created
            raise configuration_error
        return created

    async def _create_document(self, collaborator: Collaborator, kind: DocumentKind) -> Document:
        now = utcnow()
        document = Document(
            collaborator_id=collaborator.id,
            kind=kind,
            title=DOCUMENT_TITLES[kind],
            number=_document_number(),
            state=DocumentState.TO_SIGN,
            valid_from=now,
            valid_until=now + timedelta(days=DOCUMENT_VALIDITY_DAYS),
        )
        await self.document_repository.save(document)

        pdf = self.renderer.render(kind.value, {
            "title": document.title,
            "document_number": document.number,
            "issued_on": now.date().isoformat(),
            "full_name": collaborator.full_name,
            "tax_code": collaborator.tax_code,
            "vat_number": collaborator.vat_number,
            "role_description": collaborator.role_description or DEFAULT_ROLE_DESCRIPTION,
            "annual_limit": collaborator.annual_limit,
            "valid_until": document.valid_until.date().isoformat(),
        })
        _validate_pdf(pdf)

        path = f"documents/{collaborator.id}/{document.id}.pdf"
        document.content_url = await self.blob_store.put(path, pdf)
        document.content_path = path
        document.content_sha256 = HashingService.bytes_sha256(pdf)
        await self.document_repository.persist()
        return document

    @staticmethod
    def can_transition(document: Document, new_state: DocumentState) -> bool:
        return new_state in ALLOWED_TRANSITIONS.get(document.state, set())

    async def transition(self, document: Document, new_state: DocumentState, **changes) -> Document:
        if not self.can_transition(document, new_state):
            raise InvalidStateError(
                f"Document '{document.title}' cannot move from "
                f"{document.state.value} to {new_state.value}"
            )
        previous_state = document.state
        for key, value in changes.items():
            setattr(document, key, value)
        document.state = new_state
        await self.document_repository.persist()
        logger.info("Document %s changed from %s to %s", document.id, previous_state.value, new_state.value)
        return document

    async def mark_awaiting_confirmation(self, document: Document, signed_at) -> Document:
        # signed_at is provisional until the email is confirmed
        return await self.transition(document, DocumentState.AWAITING_CONFIRMATION, signed_at=signed_at)

    async def mark_signed(self, document: Document) -> Document:
        return await self.transition(document, DocumentState.SIGNED)

    async def load_verified_content(self, document: Document) -> bytes:
        """Artifact bytes, after checking them against the recorded SHA-256."""
        if not document.content_path:
            raise ArtifactIntegrityError("Document has no stored content")
        data = await self.blob_store.get(document.content_path)
        if HashingService.bytes_sha256(data) != document.content_sha256:
            logger.error("Integrity check failed for document %s", document.id)
            raise ArtifactIntegrityError("Integrity compromised: hash does not match")
        return data
