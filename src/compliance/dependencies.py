"""FastAPI providers wiring repositories and services for one request."""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from compliance.audit.repositories.audit_repository import AuditRepository
from compliance.audit.services.audit_service import AuditLogWriter
from compliance.collaborators.repositories.collaborator_repository import CollaboratorRepository
from compliance.collaborators.services.collaborator_service import CollaboratorService
from compliance.collaborators.services.status_aggregator import StatusAggregator
from compliance.documents.repositories.document_repository import DocumentRepository
from compliance.documents.services.document_registry import DocumentRegistry
from compliance.notifications.services.email_dispatcher import EmailDispatcher
from compliance.notifications.services.notification_service import NotificationService
from compliance.signatures.repositories.signature_repository import SignatureRepository
from compliance.signatures.services.signature_ledger import SignatureLedger
from compliance.signatures.services.verification_service import VerificationService
from compliance.storage.services.blob_store import BlobStore
from database import get_db


def get_blob_store(request: Request) -> BlobStore:
    return request.app.state.blob_store


def get_email_dispatcher(request: Request) -> EmailDispatcher:
    return request.app.state.email_dispatcher


def get_audit_writer(db: AsyncSession = Depends(get_db)) -> AuditLogWriter:
    return AuditLogWriter(AuditRepository(db))


def get_document_registry(
    db: AsyncSession = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
    audit_writer: AuditLogWriter = Depends(get_audit_writer),
) -> DocumentRegistry:
    return DocumentRegistry(DocumentRepository(db), audit_writer, blob_store)


def get_notification_service(
    db: AsyncSession = Depends(get_db),
    dispatcher: EmailDispatcher = Depends(get_email_dispatcher),
    audit_writer: AuditLogWriter = Depends(get_audit_writer),
) -> NotificationService:
    return NotificationService(db, dispatcher, audit_writer, CollaboratorRepository(db))


def get_status_aggregator(db: AsyncSession = Depends(get_db)) -> StatusAggregator:
    return StatusAggregator(DocumentRepository(db), SignatureRepository(db))


def get_verification_service(
    db: AsyncSession = Depends(get_db),
    registry: DocumentRegistry = Depends(get_document_registry),
    notifications: NotificationService = Depends(get_notification_service),
    audit_writer: AuditLogWriter = Depends(get_audit_writer),
    blob_store: BlobStore = Depends(get_blob_store),
) -> VerificationService:
    ledger = SignatureLedger(SignatureRepository(db), registry, audit_writer)
    return VerificationService(
        db, ledger, registry, CollaboratorRepository(db), notifications, audit_writer, blob_store,
    )


def get_collaborator_service(
    db: AsyncSession = Depends(get_db),
    registry: DocumentRegistry = Depends(get_document_registry),
    aggregator: StatusAggregator = Depends(get_status_aggregator),
    notifications: NotificationService = Depends(get_notification_service),
    audit_writer: AuditLogWriter = Depends(get_audit_writer),
) -> CollaboratorService:
    return CollaboratorService(db, CollaboratorRepository(db), registry, aggregator, notifications, audit_writer)
