from typing import Any

from fastapi import APIRouter, Depends, Query

from ..auth.deps import get_current_user_id
from ..config import DISCOVERY_DEFAULT_LIMIT, DISCOVERY_MAX_LIMIT
from ..deps import get_discovery_service
from ..services.discovery import DiscoveryFilters, DiscoveryService

router = APIRouter()


@router.get("/discovery")
def discover(
    limit: int = Query(default=DISCOVERY_DEFAULT_LIMIT, ge=1, le=DISCOVERY_MAX_LIMIT),
    min_age: int | None = Query(default=None, ge=18, le=120),
    max_age: int | None = Query(default=None, ge=18, le=120),
    max_distance: float | None = Query(default=None, gt=0),
    exclude: list[str] | None = Query(default=None),
    user_id: str = Depends(get_current_user_id),
    service: DiscoveryService = Depends(get_discovery_service),
) -> dict[str, Any]:
    filters = DiscoveryFilters(
        min_age=min_age,
        max_age=max_age,
        max_distance_km=max_distance,
        exclude_user_ids=list(exclude or []),
    )
    profiles = service.discover(user_id, limit=limit, filters=filters)
    return {"profiles": profiles, "total": len(profiles)}
