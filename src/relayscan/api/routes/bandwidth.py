"""Bandwidth API endpoints.

GET  /api/bandwidth          - Current aggregated bandwidths
POST /api/bandwidth/publish  - Publish a new version now
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from relayscan.api.app import get_coordinator
from relayscan.models.types import BandwidthSnapshot, PublishResult
from relayscan.worker.coordinator import ScanCoordinator

router = APIRouter()


@router.get("/bandwidth", response_model=BandwidthSnapshot)
def get_bandwidth(
    coordinator: ScanCoordinator = Depends(get_coordinator),
) -> BandwidthSnapshot:
    """Get the latest aggregated bandwidth per relay.

    Raises:
        HTTPException: 409 if no roster has been loaded or nothing has
            been published yet.
    """
    try:
        return coordinator.snapshot()
    except RuntimeError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.post("/bandwidth/publish", response_model=PublishResult)
def publish_bandwidth(
    coordinator: ScanCoordinator = Depends(get_coordinator),
) -> PublishResult:
    """Recompute and publish a new bandwidth file version."""
    return coordinator.publish()
