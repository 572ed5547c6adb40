"""Route handlers for the volm REST API.

Handlers only translate between HTTP and VolumeService; error mapping
(NotFound -> 404, SelectorMismatch -> 403, Upstream -> 502) lives in the
exception handlers registered by ``create_app``.
"""

from __future__ import annotations

from fastapi import APIRouter, Request

from volm.api.schemas import (
    DeleteResponse,
    ServiceInfo,
    StatusResponse,
    StoreStatusResponse,
    VolumeInfo,
)
from volm.service import VolumeService

router = APIRouter()


def _service(request: Request) -> VolumeService:
    return request.app.state.service  # type: ignore[no-any-return]


@router.get("/", response_model=ServiceInfo)
async def service_info(request: Request) -> ServiceInfo:
    from volm import __version__

    return ServiceInfo(version=__version__, mode=request.app.state.mode, service="volm")


@router.get("/status", response_model=StatusResponse)
async def status(request: Request) -> StatusResponse:
    service = _service(request)
    return StatusResponse(
        namespace=service.namespace,
        selector=str(service.selector),
        stores=[StoreStatusResponse.from_status(s) for s in service.status()],
    )


@router.get("/vol/", response_model=list[VolumeInfo], response_model_by_alias=True)
async def list_volumes(request: Request) -> list[VolumeInfo]:
    return [VolumeInfo.from_view(v) for v in _service(request).list_volumes()]


@router.get("/vol/{name}", response_model=VolumeInfo, response_model_by_alias=True)
async def get_volume(name: str, request: Request) -> VolumeInfo:
    return VolumeInfo.from_view(_service(request).get_volume(name))


@router.delete("/vol/{name}", response_model=DeleteResponse)
async def delete_volume(name: str, request: Request) -> DeleteResponse:
    await _service(request).delete_volume(name)
    return DeleteResponse(status=True)
