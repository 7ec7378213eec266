"""Data source, sync job, and metrics routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status

from lorekeeper.api.dependencies import get_source_service
from lorekeeper.core.metrics import metrics_response
from lorekeeper.models.dto import (
    DeleteResponse,
    JobResponse,
    SourceCreateRequest,
    SourceResponse,
    SourceUpdateRequest,
)
from lorekeeper.sync.service import DataSourceService

router = APIRouter()


@router.get("/sources", response_model=list[SourceResponse], summary="List data sources of an instance")
def list_sources(
    instance_id: str = Query(..., min_length=1),
    service: DataSourceService = Depends(get_source_service),
) -> list[SourceResponse]:
    return [SourceResponse.from_entity(source) for source in service.list_sources(instance_id)]


@router.post(
    "/sources",
    response_model=SourceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a data source",
)
def create_source(
    request: SourceCreateRequest,
    service: DataSourceService = Depends(get_source_service),
) -> SourceResponse:
    source = service.create(request.instance_id, request.name, request.type, request.config)
    return SourceResponse.from_entity(source)


@router.get("/sources/{source_id}", response_model=SourceResponse, summary="Fetch a data source")
def get_source(source_id: str, service: DataSourceService = Depends(get_source_service)) -> SourceResponse:
    return SourceResponse.from_entity(service.get(source_id))


@router.patch("/sources/{source_id}", response_model=SourceResponse, summary="Update a data source")
def update_source(
    source_id: str,
    request: SourceUpdateRequest,
    service: DataSourceService = Depends(get_source_service),
) -> SourceResponse:
    return SourceResponse.from_entity(service.update(source_id, name=request.name, config=request.config))


@router.delete("/sources/{source_id}", response_model=DeleteResponse, summary="Remove a data source")
def delete_source(
    source_id: str,
    cascade: bool = False,
    service: DataSourceService = Depends(get_source_service),
) -> DeleteResponse:
    service.delete(source_id, cascade=cascade)
    return DeleteResponse(deleted=1)


@router.post(
    "/sources/{source_id}/sync",
    response_model=JobResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start a background sync",
)
def trigger_sync(
    source_id: str,
    timeout: float | None = Query(default=None, gt=0),
    service: DataSourceService = Depends(get_source_service),
) -> JobResponse:
    return JobResponse.from_entity(service.trigger_sync(source_id, timeout=timeout))


@router.get("/jobs/{job_id}", response_model=JobResponse, summary="Poll a sync job")
def get_job(job_id: str, service: DataSourceService = Depends(get_source_service)) -> JobResponse:
    return JobResponse.from_entity(service.get_job(job_id))


@router.post("/jobs/{job_id}/cancel", response_model=JobResponse, summary="Cancel a running sync job")
def cancel_job(job_id: str, service: DataSourceService = Depends(get_source_service)) -> JobResponse:
    return JobResponse.from_entity(service.cancel_job(job_id))


@router.get("/metrics", summary="Prometheus metrics")
async def get_metrics():
    return metrics_response()


__all__ = ["router"]
