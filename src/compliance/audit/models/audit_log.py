"""Append-only audit log. Rows are written once and never updated or deleted."""
import uuid

from sqlalchemy import JSON, Column, DateTime, String, Text, event

from database import Base, utcnow


class AuditLogEntry(Base):
    __tablename__ = "audit_log"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    actor = Column(String(255), nullable=False)
    action = Column(String(64), nullable=False, index=True)
    description = Column(Text, nullable=False)
    entity_type = Column(String(64), nullable=True)
    entity_id = Column(String(64), nullable=True, index=True)
    collaborator_id = Column(String(36), nullable=True, index=True)
    payload = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)


class AuditLogImmutableError(Exception):
    pass


@event.listens_for(AuditLogEntry, "before_update")
def _refuse_update(mapper, connection, target):
    raise AuditLogImmutableError(f"Audit entry {target.id} is write-once")


@event.listens_for(AuditLogEntry, "before_delete")
def _refuse_delete(mapper, connection, target):
    raise AuditLogImmutableError(f"Audit entry {target.id} cannot be deleted")
