import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from compliance.audit.models.audit_log import AuditLogEntry
from compliance.audit.services.audit_service import SYSTEM_ACTOR, AuditLogWriter
from compliance.collaborators.repositories.collaborator_repository import CollaboratorRepository
from compliance.errors import DispatchError
from compliance.notifications.services.email_dispatcher import EmailDispatcher
from database import commit, utcnow

logger = logging.getLogger(__name__)

PROBLEM_EVENTS = ("bounced", "complained")


def _event_name(event_type: str) -> str:
    # provider events look like "email.delivered"
    if event_type.startswith("email."):
        return event_type[len("email."):]
    return event_type


def _collaborator_tag(tags: Any) -> Optional[str]:
    if isinstance(tags, dict):
        return tags.get("collaborator_id")
    if isinstance(tags, list):
        for tag in tags:
            if isinstance(tag, dict) and tag.get("name") == "collaborator_id":
                return tag.get("value")
    return None


class NotificationService:
    """
    Sends workflow emails and keeps the audit trail of every delivery
    attempt, including the provider's delivery events.
    """

    def __init__(self, db: AsyncSession, dispatcher: EmailDispatcher, audit_writer: AuditLogWriter,
                 collaborator_repository: Optional[CollaboratorRepository] = None):
        self.db = db
        self.dispatcher = dispatcher
        self.audit_writer = audit_writer
        self.collaborator_repository = collaborator_repository

    async def send(
        self,
        kind: str,
        recipient_email: str,
        recipient_name: str,
        template_data: Dict[str, Any],
        collaborator_id: Optional[str] = None,
    ) -> str:
        """
        Dispatch one email and audit the outcome.

        A failed dispatch is audited as email_failed_<kind> and re-raised;
        nothing already committed by the caller is rolled back.
        """
        data = dict(template_data)
        if collaborator_id:
            data.setdefault("collaborator_id", collaborator_id)

        try:
            delivery_id = await self.dispatcher.send(kind, recipient_email, recipient_name, data)
        except DispatchError as exc:
            logger.warning("Dispatch of %s email to %s failed: %s", kind, recipient_email, exc.message)
            await self.audit_writer.record(
                f"email_failed_{kind}",
                f"Email '{kind}' to {recipient_email} could not be sent",
                actor=SYSTEM_ACTOR,
                entity_type="email",
                collaborator_id=collaborator_id,
                payload={"to": recipient_email, "error": exc.message},
            )
            await commit(self.db)
            raise

        await self.audit_writer.record(
            f"email_sent_{kind}",
            f"Email '{kind}' sent to {recipient_email}",
            actor=SYSTEM_ACTOR,
            entity_type="email",
            entity_id=delivery_id or None,
            collaborator_id=collaborator_id,
            payload={"to": recipient_email, "delivery_id": delivery_id},
        )
        await commit(self.db)
        return delivery_id

    async def record_provider_event(self, event: Dict[str, Any]) -> AuditLogEntry:
        event_type = _event_name(str(event.get("type") or "unknown"))
        data = event.get("data") or {}
        recipients: List[str] = data.get("to") or []
        if isinstance(recipients, str):
            recipients = [recipients]
        collaborator_id = _collaborator_tag(data.get("tags"))

        entry = await self.audit_writer.record(
            f"email_{event_type}",
            f"Email {event_type}: {data.get('subject') or 'N/A'}",
            actor="email-provider",
            entity_type="email_log",
            entity_id=data.get("email_id") or data.get("id"),
            collaborator_id=collaborator_id,
            payload={
                "delivery_id": data.get("email_id") or data.get("id"),
                "to": recipients,
                "from": data.get("from"),
                "subject": data.get("subject"),
                "status": event_type,
                "timestamp": event.get("created_at") or utcnow().isoformat(),
                "full_event": event,
            },
        )

        if event_type in PROBLEM_EVENTS and recipients and self.collaborator_repository is not None:
            note = f"Email problem: {event_type} - {utcnow().isoformat()}"
            for collaborator in await self.collaborator_repository.find_by_email(recipients[0]):
                await self.collaborator_repository.update(collaborator.id, {"notes": note})
                logger.warning("Collaborator %s flagged after email %s", collaborator.id, event_type)

        await commit(self.db)
        return entry
