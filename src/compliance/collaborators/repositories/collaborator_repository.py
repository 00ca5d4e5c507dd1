from typing import Dict, List, Optional

from sqlalchemy import select

from compliance.collaborators.models.collaborator import Collaborator
from database import BaseRepository


class CollaboratorRepository(BaseRepository):

    async def save(self, collaborator: Collaborator) -> Collaborator:
        return await self._add(collaborator)

    async def get(self, collaborator_id: str) -> Optional[Collaborator]:
        return await self._get(Collaborator, collaborator_id)

    async def find_all(self) -> List[Collaborator]:
        return await self._scalars(select(Collaborator).order_by(Collaborator.created_at))

    async def find_by_email(self, email: str) -> List[Collaborator]:
        return await self._scalars(select(Collaborator).where(Collaborator.email == email))

    async def update(self, collaborator_id: str, data: Dict) -> Optional[Collaborator]:
        collaborator = await self.get(collaborator_id)
        if not collaborator:
            return None
        for field, value in data.items():
            setattr(collaborator, field, value)
        await self._flush()
        return collaborator
