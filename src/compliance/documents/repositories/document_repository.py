from typing import Iterable, List, Optional

from sqlalchemy import select

from compliance.documents.models.document import Document
from database import BaseRepository


class DocumentRepository(BaseRepository):

    async def save(self, document: Document) -> Document:
        return await self._add(document)

    async def get(self, document_id: str) -> Optional[Document]:
        return await self._get(Document, document_id)

    async def find_by_collaborator_id(self, collaborator_id: str) -> List[Document]:
        return await self._scalars(
            select(Document)
            .where(Document.collaborator_id == collaborator_id)
            .order_by(Document.created_at, Document.number)
        )

    async def find_by_ids(self, document_ids: Iterable[str]) -> List[Document]:
        ids = list(document_ids)
        if not ids:
            return []
        return await self._scalars(select(Document).where(Document.id.in_(ids)))

    async def find_all(self) -> List[Document]:
        return await self._scalars(select(Document))

    async def persist(self) -> None:
        """Flush pending attribute changes on loaded documents."""
        await self._flush()
