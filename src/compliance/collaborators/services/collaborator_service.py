import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from config import ANNUAL_LIMIT_WARNING_RATIO, DEFAULT_ANNUAL_LIMIT, PUBLIC_BASE_URL
from compliance.audit.services.audit_service import SYSTEM_ACTOR, AuditLogWriter, signer_actor
from compliance.collaborators.models.collaborator import (
    PLACEHOLDER_VALUE, PROVINCE_PLACEHOLDER, TEMP_TAX_CODE_PREFIX, Collaborator, ContractType,
)
from compliance.collaborators.repositories.collaborator_repository import CollaboratorRepository
from compliance.collaborators.services.status_aggregator import ComplianceStatus, StatusAggregator
from compliance.documents.models.document import Document
from compliance.documents.services.document_registry import DocumentRegistry
from compliance.errors import ConfigurationError, DispatchError, NotFoundError, ValidationError
from compliance.notifications.services.email_templates import DOCUMENTS_READY
from compliance.notifications.services.notification_service import NotificationService
from database import commit

logger = logging.getLogger(__name__)

PROFILE_FIELDS = (
    "first_name", "last_name", "tax_code", "phone", "birth_date", "birth_place",
    "nationality", "address", "city", "postal_code", "province", "iban", "vat_number",
)


def temporary_tax_code() -> str:
    return f"{TEMP_TAX_CODE_PREFIX}{str(time.time_ns() // 1_000_000)[-11:]}X"


def portal_link(collaborator_id: str) -> str:
    return f"{PUBLIC_BASE_URL}/portal/{collaborator_id}"


@dataclass
class IntakeResult:
    collaborator: Collaborator
    documents: List[Document]
    email_sent: bool


@dataclass
class ComplianceIssue:
    collaborator_id: str
    full_name: str
    kind: str
    message: str
    status: ComplianceStatus
    usage_ratio: float = 0.0


@dataclass
class CollaboratorOverview:
    collaborator: Collaborator
    status: ComplianceStatus
    documents: List[Document] = field(default_factory=list)


class CollaboratorService:

    def __init__(
        self,
        db: AsyncSession,
        repository: CollaboratorRepository,
        registry: DocumentRegistry,
        aggregator: StatusAggregator,
        notifications: NotificationService,
        audit_writer: AuditLogWriter,
    ):
        self.db = db
        self.collaborator_repository = repository
        self.registry = registry
        self.aggregator = aggregator
        self.notifications = notifications
        self.audit_writer = audit_writer

    async def create_collaborator(self, data: Dict[str, Any], actor: str = SYSTEM_ACTOR) -> IntakeResult:
        """
        Admin intake: store the collaborator, generate the documents required
        by the contract type and send the documents_ready email.

        Fields not supplied yet are stored as placeholders and completed by
        the collaborator in the portal.
        """
        email = data["email"].strip().lower()
        if await self.collaborator_repository.find_by_email(email):
            raise ValidationError("A collaborator with this email already exists")

        collaborator = Collaborator(
            first_name=data["first_name"].strip(),
            last_name=(data.get("last_name") or PLACEHOLDER_VALUE).strip(),
            email=email,
            tax_code=(data.get("tax_code") or temporary_tax_code()).strip().upper(),
            phone=data.get("phone") or PLACEHOLDER_VALUE,
            address=data.get("address") or PLACEHOLDER_VALUE,
            city=data.get("city") or PLACEHOLDER_VALUE,
            postal_code=data.get("postal_code") or PLACEHOLDER_VALUE,
            province=data.get("province") or PROVINCE_PLACEHOLDER,
            iban=data.get("iban") or PLACEHOLDER_VALUE,
            vat_number=data.get("vat_number"),
            contract_type=data["contract_type"],
            role_description=data.get("role_description"),
            annual_limit=data.get("annual_limit") or DEFAULT_ANNUAL_LIMIT,
            annual_amount_used=0.0,
        )
        collaborator.profile_completed = collaborator.is_profile_complete()
        await self.collaborator_repository.save(collaborator)

        await self.audit_writer.record(
            "collaborator_created",
            f"Collaborator {collaborator.full_name} created",
            actor=actor,
            entity_type="collaborator",
            entity_id=collaborator.id,
            collaborator_id=collaborator.id,
            payload={"email": collaborator.email, "contract_type": collaborator.contract_type},
        )

        try:
            documents = await self.registry.generate_documents(collaborator, actor=actor)
        except ConfigurationError as exc:
            # keep the collaborator and the universal documents
            await commit(self.db)
            exc.collaborator_id = collaborator.id
            raise
        await commit(self.db)
        logger.info("Collaborator %s created with %d document(s)", collaborator.id, len(documents))

        email_sent = True
        try:
            await self.notifications.send(
                DOCUMENTS_READY,
                collaborator.email,
                collaborator.full_name,
                {
                    "portal_link": portal_link(collaborator.id),
                    "documents": [doc.title for doc in documents],
                },
                collaborator_id=collaborator.id,
            )
        except DispatchError:
            email_sent = False
        return IntakeResult(collaborator=collaborator, documents=documents, email_sent=email_sent)

    async def get_collaborator(self, collaborator_id: str) -> Collaborator:
        collaborator = await self.collaborator_repository.get(collaborator_id)
        if not collaborator:
            raise NotFoundError("Collaborator not found")
        return collaborator

    async def overview(self, collaborator_id: str) -> CollaboratorOverview:
        collaborator = await self.get_collaborator(collaborator_id)
        return CollaboratorOverview(
            collaborator=collaborator,
            status=await self.aggregator.status(collaborator.id),
            documents=await self.registry.documents_for(collaborator.id),
        )

    async def list_collaborators(self) -> List[Tuple[Collaborator, ComplianceStatus]]:
        statuses = await self.aggregator.statuses()
        return [
            (collaborator, statuses.get(collaborator.id, ComplianceStatus.NO_DOCUMENTS))
            for collaborator in await self.collaborator_repository.find_all()
        ]

    async def portal_view(self, collaborator_id: str, ip_address: Optional[str] = None) -> CollaboratorOverview:
        overview = await self.overview(collaborator_id)
        collaborator = overview.collaborator
        await self.audit_writer.record(
            "portal_access",
            f"{collaborator.full_name} opened the document portal",
            actor=signer_actor(collaborator.email),
            entity_type="collaborator",
            entity_id=collaborator.id,
            collaborator_id=collaborator.id,
            payload={"ip_address": ip_address, "documents": len(overview.documents)},
        )
        await commit(self.db)
        return overview

    async def complete_profile(self, collaborator_id: str, data: Dict[str, Any]) -> Collaborator:
        collaborator = await self.get_collaborator(collaborator_id)
        changes = {
            key: value.strip() if isinstance(value, str) else value
            for key, value in data.items()
            if key in PROFILE_FIELDS and value is not None
        }
        if "tax_code" in changes:
            changes["tax_code"] = changes["tax_code"].upper()
        if not changes:
            raise ValidationError("No profile fields supplied")

        await self.collaborator_repository.update(collaborator.id, changes)
        collaborator.profile_completed = collaborator.is_profile_complete()

        await self.audit_writer.record(
            "data_completion",
            f"{collaborator.full_name} updated the profile",
            actor=signer_actor(collaborator.email),
            entity_type="collaborator",
            entity_id=collaborator.id,
            collaborator_id=collaborator.id,
            payload={"fields": sorted(changes), "profile_completed": collaborator.profile_completed},
        )
        await commit(self.db)
        return collaborator

    async def record_compensation(self, collaborator_id: str, amount: float,
                                  description: Optional[str] = None, actor: str = SYSTEM_ACTOR) -> Collaborator:
        if amount <= 0:
            raise ValidationError("Compensation amount must be positive")
        collaborator = await self.get_collaborator(collaborator_id)

        used = round((collaborator.annual_amount_used or 0.0) + amount, 2)
        limit_exceeded = (
            collaborator.contract_type == ContractType.OCCASIONAL.value
            and used > collaborator.annual_limit
        )
        if limit_exceeded:
            logger.warning("Collaborator %s exceeds the annual limit (%.2f > %.2f)",
                           collaborator.id, used, collaborator.annual_limit)

        await self.collaborator_repository.update(collaborator.id, {"annual_amount_used": used})
        await self.audit_writer.record(
            "compensation_recorded",
            f"Compensation of EUR {amount:.2f} recorded for {collaborator.full_name}",
            actor=actor,
            entity_type="collaborator",
            entity_id=collaborator.id,
            collaborator_id=collaborator.id,
            payload={
                "amount": amount,
                "description": description,
                "annual_amount_used": used,
                "annual_limit": collaborator.annual_limit,
                "limit_exceeded": limit_exceeded,
            },
        )
        await commit(self.db)
        return collaborator

    async def compliance_issues(self) -> List[ComplianceIssue]:
        """Collaborators with unsigned documents or close to their annual limit."""
        issues = []
        for collaborator, status in await self.list_collaborators():
            if status != ComplianceStatus.COMPLETED:
                issues.append(ComplianceIssue(
                    collaborator_id=collaborator.id,
                    full_name=collaborator.full_name,
                    kind="documents",
                    message=f"{collaborator.full_name} - documents {status.value}",
                    status=status,
                ))
            if collaborator.annual_limit:
                ratio = (collaborator.annual_amount_used or 0.0) / collaborator.annual_limit
                if ratio > ANNUAL_LIMIT_WARNING_RATIO:
                    issues.append(ComplianceIssue(
                        collaborator_id=collaborator.id,
                        full_name=collaborator.full_name,
                        kind="annual_limit",
                        message=(
                            f"{collaborator.full_name} - limit {ratio * 100:.0f}% "
                            f"(EUR {collaborator.annual_amount_used:.2f}/{collaborator.annual_limit:.2f})"
                        ),
                        status=status,
                        usage_ratio=round(ratio, 4),
                    ))
        return issues
