from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from src.adapters.api.dependencies import get_detour_service
from src.adapters.api.schemas.detours import (
    ArchivedDetourSchema,
    DetourSchema,
    RouteDetourStatusSchema,
)
from src.app.services.detour_detection_service import DetourDetectionService
from src.domain.exceptions import DetourNotFound

router = APIRouter(prefix="/detours", tags=["detours"])


@router.get("", response_model=list[DetourSchema])
def list_active_detours(
    service: DetourDetectionService = Depends(get_detour_service),
) -> list[DetourSchema]:
    return [DetourSchema.from_domain(d) for d in service.active_detours()]


@router.get("/history", response_model=list[ArchivedDetourSchema])
def list_detour_history(
    route_id: str | None = Query(default=None),
    limit: int | None = Query(default=None, ge=0),
    service: DetourDetectionService = Depends(get_detour_service),
) -> list[ArchivedDetourSchema]:
    return [
        ArchivedDetourSchema.from_domain(e)
        for e in service.history(route_id=route_id, limit=limit)
    ]


@router.get("/routes/{route_id}", response_model=list[DetourSchema])
def list_route_detours(
    route_id: str,
    direction_id: str | None = Query(default=None),
    service: DetourDetectionService = Depends(get_detour_service),
) -> list[DetourSchema]:
    return [
        DetourSchema.from_domain(d)
        for d in service.detours_for_route(route_id, direction_id)
    ]


@router.get("/routes/{route_id}/status", response_model=RouteDetourStatusSchema)
def get_route_detour_status(
    route_id: str,
    direction_id: str | None = Query(default=None),
    service: DetourDetectionService = Depends(get_detour_service),
) -> RouteDetourStatusSchema:
    return RouteDetourStatusSchema(
        route_id=route_id,
        direction_id=direction_id,
        has_active_detour=service.has_active_detour(route_id, direction_id),
    )


@router.get("/{detour_id}", response_model=DetourSchema)
def get_detour(
    detour_id: str,
    service: DetourDetectionService = Depends(get_detour_service),
) -> DetourSchema:
    try:
        detour = service.get_detour(detour_id)
    except DetourNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return DetourSchema.from_domain(detour)
