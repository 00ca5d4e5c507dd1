"""
Compliance status of a collaborator.

The status is the worst state across all of the collaborator's documents:
one document without a confirmed signature is enough to keep the
collaborator out of COMPLETED.
"""

from collections import defaultdict
from enum import Enum
from typing import Dict, Iterable, List, Sequence

from compliance.documents.models.document import Document
from compliance.documents.repositories.document_repository import DocumentRepository
from compliance.signatures.models.signature import SignatureLedgerEntry
from compliance.signatures.repositories.signature_repository import SignatureRepository


class ComplianceStatus(str, Enum):
    NO_DOCUMENTS = "no_documents"
    AWAITING_SIGNATURE = "awaiting_signature"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    COMPLETED = "completed"

    @property
    def rank(self) -> int:
        return STATUS_RANK[self]


STATUS_RANK = {
    ComplianceStatus.NO_DOCUMENTS: 0,
    ComplianceStatus.AWAITING_SIGNATURE: 1,
    ComplianceStatus.AWAITING_CONFIRMATION: 2,
    ComplianceStatus.COMPLETED: 3,
}


def document_status(entries: Sequence[SignatureLedgerEntry]) -> ComplianceStatus:
    """
    Status of a single document from its ledger entries.

    A valid entry is never undone, so it dominates any later pending one.
    Otherwise the latest entry decides.
    """
    if not entries:
        return ComplianceStatus.AWAITING_SIGNATURE
    if any(entry.valid for entry in entries):
        return ComplianceStatus.COMPLETED
    return ComplianceStatus.AWAITING_CONFIRMATION


def aggregate_status(documents: Sequence[Document],
                     entries: Iterable[SignatureLedgerEntry]) -> ComplianceStatus:
    if not documents:
        return ComplianceStatus.NO_DOCUMENTS

    by_document: Dict[str, List[SignatureLedgerEntry]] = defaultdict(list)
    for entry in entries:
        by_document[entry.document_id].append(entry)

    worst = ComplianceStatus.COMPLETED
    for doc in documents:
        state = document_status(by_document.get(doc.id, []))
        if state.rank < worst.rank:
            worst = state
    return worst


class StatusAggregator:
    """Loads documents and ledger entries and applies aggregate_status."""

    def __init__(self, document_repository: DocumentRepository,
                 signature_repository: SignatureRepository):
        self.document_repository = document_repository
        self.signature_repository = signature_repository

    async def status(self, collaborator_id: str) -> ComplianceStatus:
        documents = await self.document_repository.find_by_collaborator_id(collaborator_id)
        entries = await self.signature_repository.find_by_document_ids(doc.id for doc in documents)
        return aggregate_status(documents, entries)

    async def statuses(self) -> Dict[str, ComplianceStatus]:
        """Status for every collaborator that holds documents."""
        documents = await self.document_repository.find_all()
        entries = await self.signature_repository.find_all()

        docs_by_collaborator: Dict[str, List[Document]] = defaultdict(list)
        for doc in documents:
            docs_by_collaborator[doc.collaborator_id].append(doc)
        return {
            collaborator_id: aggregate_status(docs, entries)
            for collaborator_id, docs in docs_by_collaborator.items()
        }
