"""
Email-confirmed signing.

A signer accepts every document still to sign; the ledger records one pending
entry per document under a shared batch token and a single email carries the
first entry's code. Opening the link resolves code -> token and validates
every pending entry of the batch.

Each entry is validated in its own transaction (ledger flag, document state
and audit entry commit together). When an entry fails, the ones already
committed stay valid and the failure is reported as PartialValidationError;
opening the link again retries only the entries still pending.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from config import PUBLIC_BASE_URL
from compliance.audit.services.audit_service import SYSTEM_ACTOR, AuditLogWriter, signer_actor
from compliance.collaborators.repositories.collaborator_repository import CollaboratorRepository
from compliance.documents.models.document import DocumentState
from compliance.documents.services.document_registry import DocumentRegistry
from compliance.documents.services.rendering import CertificateRenderer
from compliance.errors import (
    ComplianceError, DispatchError, InvalidCodeError, InvalidStateError, NotFoundError,
    PartialValidationError, StorageError, ValidationError,
)
from compliance.notifications.services.email_templates import DOCUMENTS_COMPLETED, VERIFICATION
from compliance.notifications.services.notification_service import NotificationService
from compliance.signatures.models.signature import SignatureLedgerEntry
from compliance.signatures.services.hashing import HashingService, random_token, signing_timestamp
from compliance.signatures.services.signature_ledger import SignatureLedger
from compliance.storage.services.blob_store import BlobStore
from database import commit, utcnow

logger = logging.getLogger(__name__)

LINK_VALIDITY_HOURS = 24


@dataclass
class SignBatchResult:
    batch_token: str
    email_sent_to: str
    entry_ids: List[str] = field(default_factory=list)


@dataclass
class SignedDocument:
    entry_id: str
    document_id: str
    title: str
    signed_at: str
    verification_code: str
    hash: str
    content_url: Optional[str] = None
    download_url: Optional[str] = None


@dataclass
class ConfirmationResult:
    signer_name: str
    signer_email: str
    documents: List[SignedDocument]
    download_link: str
    collaborator_id: Optional[str] = None
    certificate_url: Optional[str] = None


def verification_link(code: str) -> str:
    return f"{PUBLIC_BASE_URL}/confirm?code={code}"


def download_link(token: str) -> str:
    return f"{PUBLIC_BASE_URL}/downloads?token={token}"


class VerificationService:

    def __init__(
        self,
        db: AsyncSession,
        ledger: SignatureLedger,
        registry: DocumentRegistry,
        collaborator_repository: CollaboratorRepository,
        notifications: NotificationService,
        audit_writer: AuditLogWriter,
        blob_store: BlobStore,
        certificate_renderer: Optional[CertificateRenderer] = None,
    ):
        self.db = db
        self.ledger = ledger
        self.registry = registry
        self.collaborator_repository = collaborator_repository
        self.notifications = notifications
        self.audit_writer = audit_writer
        self.blob_store = blob_store
        self.certificate_renderer = certificate_renderer or CertificateRenderer()

    async def sign_batch(
        self,
        collaborator_id: str,
        signer_name: str,
        signer_email: str,
        accepted_document_ids: Sequence[str],
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        device: Optional[str] = None,
    ) -> SignBatchResult:
        """
        Record one pending ledger entry per accepted document and send the
        verification email.

        Every document still to sign must be among the accepted ids. The
        entries are committed before dispatch, so a DispatchError leaves the
        signature intent in place; the email can be sent again with
        resend_verification.
        """
        collaborator = await self.collaborator_repository.get(collaborator_id)
        if not collaborator:
            raise NotFoundError("Collaborator not found")

        accepted = list(dict.fromkeys(accepted_document_ids))
        if not accepted:
            raise ValidationError("At least one accepted document is required")

        documents = {doc.id: doc for doc in await self.registry.documents_for(collaborator.id)}
        unknown = [doc_id for doc_id in accepted if doc_id not in documents]
        if unknown:
            raise ValidationError(f"Unknown document(s): {', '.join(unknown)}")

        to_sign = [doc for doc in documents.values() if doc.state == DocumentState.TO_SIGN]
        if not to_sign:
            raise InvalidStateError("No documents are waiting for a signature")
        for doc_id in accepted:
            if documents[doc_id].state != DocumentState.TO_SIGN:
                raise InvalidStateError(
                    f"Document '{documents[doc_id].title}' is {documents[doc_id].state.value} and cannot be signed"
                )
        missing = [doc.title for doc in to_sign if doc.id not in accepted]
        if missing:
            raise ValidationError(f"Every document must be read and accepted: {', '.join(missing)}")

        batch_token = random_token()
        entries = []
        for index, doc_id in enumerate(accepted):
            entry = await self.ledger.record_signature(
                documents[doc_id], collaborator, signer_name, signer_email, batch_token, index,
                ip_address=ip_address, user_agent=user_agent, device=device,
            )
            entries.append(entry)

        await self.audit_writer.record(
            "documents_signed_pending",
            f"{len(entries)} document(s) signed by {signer_name}, verification email pending",
            actor=signer_actor(signer_email),
            entity_type="collaborator",
            entity_id=collaborator.id,
            collaborator_id=collaborator.id,
            payload={
                "entry_ids": [e.id for e in entries],
                "verification_codes": [e.verification_code for e in entries],
                "signer_email": signer_email,
            },
        )
        await commit(self.db)
        logger.info("Signing batch of %d document(s) recorded for collaborator %s", len(entries), collaborator.id)

        titles = [documents[e.document_id].title for e in entries]
        try:
            await self._send_verification(entries[0], titles)
        except DispatchError as exc:
            exc.batch_token = batch_token
            raise
        return SignBatchResult(
            batch_token=batch_token,
            email_sent_to=signer_email,
            entry_ids=[e.id for e in entries],
        )

    async def resend_verification(self, batch_token: str) -> SignBatchResult:
        pending = await self.ledger.find_pending_by_token(batch_token)
        if not pending:
            raise InvalidCodeError("no pending entries for token")
        documents = {doc.id: doc for doc in await self.registry.document_repository.find_by_ids(
            e.document_id for e in pending)}
        titles = [documents[e.document_id].title for e in pending if e.document_id in documents]
        await self._send_verification(pending[0], titles)
        return SignBatchResult(
            batch_token=batch_token,
            email_sent_to=pending[0].signer_email,
            entry_ids=[e.id for e in pending],
        )

    async def _send_verification(self, first_entry: SignatureLedgerEntry, titles: List[str]) -> str:
        return await self.notifications.send(
            VERIFICATION,
            first_entry.signer_email,
            first_entry.signer_name,
            {
                "verification_code": first_entry.verification_code,
                "verification_link": verification_link(first_entry.verification_code),
                "documents": titles,
                "expires_in_hours": LINK_VALIDITY_HOURS,
            },
            collaborator_id=first_entry.collaborator_id,
        )

    async def confirm(self, code: str) -> ConfirmationResult:
        """Resolve a verification code and validate its whole batch."""
        batch_token = await self.ledger.find_by_code(code)
        if not batch_token:
            logger.warning("Verification with unknown code rejected")
            raise InvalidCodeError("unknown code")

        pending = await self.ledger.find_pending_by_token(batch_token)
        if not pending:
            logger.warning("Verification with consumed code rejected")
            raise InvalidCodeError("batch already verified")

        await self.validate_batch(pending)

        signed = await self.signed_documents(batch_token)
        await self._send_completed(signed)
        return signed

    async def validate_batch(self, entries: Sequence[SignatureLedgerEntry]) -> List[str]:
        """
        Validate every entry of a batch, one transaction per entry.

        Returns the ids validated by this call. Entries found already valid
        (another confirmation got there first) are skipped without a new
        audit entry.
        """
        # ids up front: a rollback expires the loaded entries
        entry_ids = [entry.id for entry in entries]
        validated: List[str] = []
        failed: Dict[str, str] = {}

        for entry_id in entry_ids:
            try:
                if await self._validate_entry(entry_id):
                    validated.append(entry_id)
            except ComplianceError as exc:
                await self.db.rollback()
                logger.error("Validation of signature %s failed: %s", entry_id, exc.message)
                failed[entry_id] = exc.message

        if failed:
            raise PartialValidationError(validated, failed)
        logger.info("Validated %d signature(s)", len(validated))
        return validated

    async def _validate_entry(self, entry_id: str) -> bool:
        entry = await self.ledger.get(entry_id)
        if entry is None:
            raise StorageError("Signature entry could not be loaded")

        if not await self.ledger.signature_repository.mark_valid(entry_id, utcnow()):
            return False

        document = await self.registry.document_repository.get(entry.document_id)
        if document is None:
            raise StorageError("Signed document could not be loaded")
        await self.registry.mark_signed(document)

        await self.audit_writer.record(
            "email_verified",
            f"Signature on '{document.title}' confirmed by email",
            actor=signer_actor(entry.signer_email),
            entity_type="signature",
            entity_id=entry.id,
            collaborator_id=entry.collaborator_id,
            payload={
                "document_id": document.id,
                "verification_code": entry.verification_code,
                "content_hash": entry.content_hash,
            },
        )
        await commit(self.db)
        return True

    async def signed_documents(self, batch_token: str) -> ConfirmationResult:
        """Validated documents of a batch, with links to the artifacts and the certificate."""
        entries = [e for e in await self.ledger.find_by_token(batch_token) if e.valid]
        if not entries:
            raise InvalidCodeError("no validated entries for token")

        documents = {doc.id: doc for doc in await self.registry.document_repository.find_by_ids(
            e.document_id for e in entries)}
        signed = []
        for entry in entries:
            doc = documents.get(entry.document_id)
            signed.append(SignedDocument(
                entry_id=entry.id,
                document_id=entry.document_id,
                title=doc.title if doc else "",
                signed_at=entry.hash_timestamp,
                verification_code=entry.verification_code,
                hash=entry.content_hash,
                content_url=doc.content_url if doc else None,
                download_url=f"{PUBLIC_BASE_URL}/documents/{entry.document_id}/download",
            ))

        first = entries[0]
        certificate_url = await self._ensure_certificate(entries, signed)
        return ConfirmationResult(
            signer_name=first.signer_name,
            signer_email=first.signer_email,
            documents=signed,
            download_link=download_link(batch_token),
            collaborator_id=first.collaborator_id,
            certificate_url=certificate_url,
        )

    async def _ensure_certificate(self, entries: List[SignatureLedgerEntry],
                                  signed: List[SignedDocument]) -> Optional[str]:
        first = entries[0]
        if await self.ledger.find_pending_by_token(first.verification_token):
            # a certificate only ever covers a fully validated batch
            return None
        digest = HashingService.content_hash(sorted(e.id for e in entries))
        path = f"certificates/{first.collaborator_id}/{digest}.pdf"
        if await self.blob_store.exists(path):
            return self.blob_store.get_public_url(path)

        validated_at = max((e.validated_at for e in entries if e.validated_at), default=None)
        pdf = self.certificate_renderer.render(
            first.signer_name,
            first.signer_email,
            signing_timestamp(validated_at) if validated_at else signing_timestamp(),
            [
                {
                    "title": doc.title,
                    "signed_at": doc.signed_at,
                    "verification_code": doc.verification_code,
                    "content_hash": doc.hash,
                }
                for doc in signed
            ],
        )
        try:
            url = await self.blob_store.put(path, pdf)
        except StorageError as exc:
            logger.error("Certificate for batch of entry %s not stored: %s", first.id, exc.message)
            return None

        await self.audit_writer.record(
            "certificate_generated",
            f"Signature certificate generated for {first.signer_name}",
            actor=SYSTEM_ACTOR,
            entity_type="certificate",
            entity_id=first.id,
            collaborator_id=first.collaborator_id,
            payload={"path": path, "documents": [doc.document_id for doc in signed]},
        )
        await commit(self.db)
        return url

    async def _send_completed(self, result: ConfirmationResult) -> None:
        try:
            await self.notifications.send(
                DOCUMENTS_COMPLETED,
                result.signer_email,
                result.signer_name,
                {
                    "documents": [doc.title for doc in result.documents],
                    "download_link": result.download_link,
                },
                collaborator_id=result.collaborator_id,
            )
        except DispatchError:
            # the signatures are confirmed; the receipt can be downloaded from the link
            logger.warning("Completion receipt for %s not sent", result.signer_email)
