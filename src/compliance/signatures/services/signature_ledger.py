import logging
from typing import Iterable, List, Optional

from compliance.audit.services.audit_service import AuditLogWriter, signer_actor
from compliance.collaborators.models.collaborator import Collaborator
from compliance.documents.models.document import Document, DocumentState
from compliance.documents.services.document_registry import DocumentRegistry
from compliance.errors import InvalidStateError
from compliance.signatures.models.signature import SignatureLedgerEntry
from compliance.signatures.repositories.signature_repository import SignatureRepository
from compliance.signatures.services.hashing import (
    HashingService, parse_signing_timestamp, signing_timestamp, verification_code,
)

logger = logging.getLogger(__name__)


class SignatureLedger:
    """
    Append-only record of signature intents.

    Entries are created pending (valid=False) and only ever move to valid
    through the verification protocol. Nothing here deletes or rewrites an
    entry.
    """

    def __init__(self, repository: SignatureRepository, registry: DocumentRegistry,
                 audit_writer: AuditLogWriter):
        self.signature_repository = repository
        self.registry = registry
        self.audit_writer = audit_writer

    async def record_signature(
        self,
        document: Document,
        collaborator: Collaborator,
        signer_name: str,
        signer_email: str,
        batch_token: str,
        sequence_index: int,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        device: Optional[str] = None,
    ) -> SignatureLedgerEntry:
        if document.state != DocumentState.TO_SIGN:
            raise InvalidStateError(
                f"Document '{document.title}' is {document.state.value} and cannot be signed"
            )

        timestamp = signing_timestamp()
        entry = SignatureLedgerEntry(
            document_id=document.id,
            collaborator_id=collaborator.id,
            signer_name=signer_name,
            signer_email=signer_email,
            content_hash=HashingService.signature_hash(
                document.id, collaborator.id, signer_name, signer_email, timestamp
            ),
            hash_timestamp=timestamp,
            verification_code=verification_code(sequence_index),
            verification_token=batch_token,
            sequence_index=sequence_index,
            valid=False,
            email_verified=False,
            ip_address=ip_address,
            user_agent=user_agent,
            device=device,
        )
        await self.signature_repository.save(entry)
        await self.registry.mark_awaiting_confirmation(document, parse_signing_timestamp(timestamp))

        await self.audit_writer.record(
            "document_signed",
            f"Document '{document.title}' signed by {signer_name}, awaiting email confirmation",
            actor=signer_actor(signer_email),
            entity_type="document",
            entity_id=document.id,
            collaborator_id=collaborator.id,
            payload={
                "entry_id": entry.id,
                "document_kind": document.kind.value,
                "document_number": document.number,
                "verification_code": entry.verification_code,
                "content_hash": entry.content_hash,
                "hash_timestamp": timestamp,
                "ip_address": ip_address,
                "user_agent": user_agent,
                "device": device,
            },
        )
        logger.info("Recorded signature %s for document %s", entry.verification_code, document.id)
        return entry

    async def find_by_code(self, code: str) -> Optional[str]:
        """Batch token for a verification code, or None."""
        return await self.signature_repository.find_token_by_code(code)

    async def find_pending_by_token(self, token: str) -> List[SignatureLedgerEntry]:
        return await self.signature_repository.find_pending_by_token(token)

    async def find_by_token(self, token: str) -> List[SignatureLedgerEntry]:
        return await self.signature_repository.find_by_token(token)

    async def get(self, entry_id: str) -> Optional[SignatureLedgerEntry]:
        return await self.signature_repository.get(entry_id)

    async def entries_for_documents(self, document_ids: Iterable[str]) -> List[SignatureLedgerEntry]:
        return await self.signature_repository.find_by_document_ids(document_ids)

    @staticmethod
    def verify_hash(entry: SignatureLedgerEntry) -> bool:
        """Re-derive the content hash from the stored fields."""
        return HashingService.signature_hash(
            entry.document_id, entry.collaborator_id, entry.signer_name,
            entry.signer_email, entry.hash_timestamp,
        ) == entry.content_hash
