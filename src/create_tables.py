import asyncio
import logging

from database import Base, engine
# models must be imported so they register with Base
from compliance.audit.models.audit_log import AuditLogEntry  # noqa: F401
from compliance.auth.models.admin_user import AdminUser  # noqa: F401
from compliance.collaborators.models.collaborator import Collaborator  # noqa: F401
from compliance.documents.models.document import Document  # noqa: F401
from compliance.signatures.models.signature import SignatureLedgerEntry  # noqa: F401

logger = logging.getLogger(__name__)


async def create_tables(bind=engine):
    """Create every table that does not exist yet."""
    logger.info("Tables: %s", list(Base.metadata.tables.keys()))
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(create_tables())
