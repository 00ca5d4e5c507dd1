from fastapi import APIRouter, Depends
from fastapi.responses import Response

from compliance.documents.services.document_registry import DocumentRegistry
from compliance.errors import NotFoundError
from compliance.dependencies import get_document_registry

router = APIRouter(prefix="/documents", tags=["documents"])


@router.get("/{document_id}/download")
async def download_document(
    document_id: str,
    registry: DocumentRegistry = Depends(get_document_registry)
):
    """Document PDF, served only if it still matches its recorded hash."""
    document = await registry.document_repository.get(document_id)
    if not document:
        raise NotFoundError("Document not found")

    content = await registry.load_verified_content(document)
    return Response(
        content=content,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="{document.number}.pdf"',
            "X-Content-SHA256": document.content_sha256,
        },
    )
