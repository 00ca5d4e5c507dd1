from typing import List, Optional

from sqlalchemy import select

from compliance.audit.models.audit_log import AuditLogEntry
from database import BaseRepository


class AuditRepository(BaseRepository):
    """Insert and query only; the log has no update or delete path."""

    async def save(self, entry: AuditLogEntry) -> AuditLogEntry:
        return await self._add(entry)

    async def find(
        self,
        action: Optional[str] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        collaborator_id: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[AuditLogEntry]:
        query = select(AuditLogEntry)
        if action is not None:
            query = query.where(AuditLogEntry.action == action)
        if entity_type is not None:
            query = query.where(AuditLogEntry.entity_type == entity_type)
        if entity_id is not None:
            query = query.where(AuditLogEntry.entity_id == entity_id)
        if collaborator_id is not None:
            query = query.where(AuditLogEntry.collaborator_id == collaborator_id)
        query = query.order_by(AuditLogEntry.created_at, AuditLogEntry.id).offset(skip).limit(limit)
        return await self._scalars(query)
