from datetime import datetime
from typing import Any, Dict, Optional

from compliance.schemas import CamelModel


class AuditLogResponse(CamelModel):
    id: str
    actor: str
    action: str
    description: str
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    collaborator_id: Optional[str] = None
    payload: Dict[str, Any] = {}
    created_at: datetime
