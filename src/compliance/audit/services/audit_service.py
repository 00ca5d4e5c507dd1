import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from compliance.audit.models.audit_log import AuditLogEntry
from compliance.audit.repositories.audit_repository import AuditRepository
from database import utcnow

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


def signer_actor(email: str) -> str:
    return f"signer:{email}"


def admin_actor(email: str) -> str:
    return f"admin:{email}"


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(v) for v in value]
    if hasattr(value, "value") and not isinstance(value, (str, int, float, bool)):
        return value.value
    return value


class AuditLogWriter:
    """
    Writes the evidentiary trail. Entries join the caller's unit of work and
    become durable with the caller's commit, together with the transition
    they describe.
    """

    def __init__(self, repository: AuditRepository):
        self.audit_repository = repository

    async def record(
        self,
        action: str,
        description: str,
        *,
        actor: str = SYSTEM_ACTOR,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        collaborator_id: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> AuditLogEntry:
        body = _jsonable(dict(payload or {}))
        body.setdefault("timestamp", utcnow().isoformat())
        entry = AuditLogEntry(
            actor=actor,
            action=action,
            description=description,
            entity_type=entity_type,
            entity_id=entity_id,
            collaborator_id=collaborator_id,
            payload=body,
        )
        await self.audit_repository.save(entry)
        logger.debug("audit %s on %s/%s by %s", action, entity_type, entity_id, actor)
        return entry

    async def history(self, **filters) -> List[AuditLogEntry]:
        return await self.audit_repository.find(**filters)
