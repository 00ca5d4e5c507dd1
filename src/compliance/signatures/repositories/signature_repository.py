from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from compliance.errors import StorageError
from compliance.signatures.models.signature import SignatureLedgerEntry
from database import BaseRepository


class SignatureRepository(BaseRepository):

    async def save(self, entry: SignatureLedgerEntry) -> SignatureLedgerEntry:
        return await self._add(entry)

    async def get(self, entry_id: str) -> Optional[SignatureLedgerEntry]:
        return await self._get(SignatureLedgerEntry, entry_id)

    async def find_token_by_code(self, code: str) -> Optional[str]:
        result = await self._read(
            select(SignatureLedgerEntry.verification_token)
            .where(SignatureLedgerEntry.verification_code == code)
        )
        return result.scalars().first()

    async def find_pending_by_token(self, token: str) -> List[SignatureLedgerEntry]:
        return await self._scalars(
            select(SignatureLedgerEntry)
            .where(
                SignatureLedgerEntry.verification_token == token,
                SignatureLedgerEntry.valid.is_(False),
            )
            .order_by(SignatureLedgerEntry.sequence_index)
        )

    async def find_by_token(self, token: str) -> List[SignatureLedgerEntry]:
        return await self._scalars(
            select(SignatureLedgerEntry)
            .where(SignatureLedgerEntry.verification_token == token)
            .order_by(SignatureLedgerEntry.sequence_index)
        )

    async def find_by_document_ids(self, document_ids: Iterable[str]) -> List[SignatureLedgerEntry]:
        ids = list(document_ids)
        if not ids:
            return []
        return await self._scalars(
            select(SignatureLedgerEntry).where(SignatureLedgerEntry.document_id.in_(ids))
        )

    async def find_all(self) -> List[SignatureLedgerEntry]:
        return await self._scalars(select(SignatureLedgerEntry))

    async def mark_valid(self, entry_id: str, validated_at: datetime) -> bool:
        """
        Flip one entry from pending to valid.

        The update only matches rows still pending, so two concurrent
        confirmations cannot both validate the same entry. Returns False when
        the entry was already valid.
        """
        stmt = (
            update(SignatureLedgerEntry)
            .where(
                SignatureLedgerEntry.id == entry_id,
                SignatureLedgerEntry.valid.is_(False),
            )
            .values(valid=True, email_verified=True, validated_at=validated_at)
            .execution_options(synchronize_session="fetch")
        )
        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as exc:
            raise StorageError("Could not confirm signature") from exc
        return result.rowcount == 1
