"""Document ingestion routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status

from lorekeeper.api.dependencies import get_ingestion
from lorekeeper.ingest.pipeline import IngestionPipeline
from lorekeeper.ingest.types import DocumentInput
from lorekeeper.models.dto import DeleteResponse, DocumentCreateRequest, DocumentResponse
from lorekeeper.models.entities import DocumentMetadata

router = APIRouter()


@router.post(
    "",
    response_model=DocumentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Ingest a document",
)
def ingest_document(
    request: DocumentCreateRequest,
    pipeline: IngestionPipeline = Depends(get_ingestion),
) -> DocumentResponse:
    document = pipeline.ingest(
        DocumentInput(
            instance_id=request.instance_id,
            title=request.title,
            content=request.content,
            type=request.type,
            data_source_id=request.data_source_id,
            url=request.url,
            metadata=DocumentMetadata(
                author=request.author,
                external_id=request.external_id,
                tags=list(request.tags),
            ),
        )
    )
    return DocumentResponse.from_entity(document)


@router.get("", response_model=list[DocumentResponse], summary="List documents of an instance")
def list_documents(
    instance_id: str = Query(..., min_length=1),
    data_source_id: str | None = None,
    limit: int = Query(default=100, ge=1, le=1000),
    pipeline: IngestionPipeline = Depends(get_ingestion),
) -> list[DocumentResponse]:
    documents = pipeline.list_documents(instance_id, data_source_id=data_source_id, limit=limit)
    return [DocumentResponse.from_entity(document) for document in documents]


@router.get("/{document_id}", response_model=DocumentResponse, summary="Fetch a document with its chunks")
def get_document(document_id: str, pipeline: IngestionPipeline = Depends(get_ingestion)) -> DocumentResponse:
    return DocumentResponse.from_entity(pipeline.get(document_id), include_chunks=True)


@router.delete("/{document_id}", response_model=DeleteResponse, summary="Delete a document")
def delete_document(document_id: str, pipeline: IngestionPipeline = Depends(get_ingestion)) -> DeleteResponse:
    pipeline.delete(document_id)
    return DeleteResponse(deleted=1)


__all__ = ["router"]
