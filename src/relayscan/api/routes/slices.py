"""Slices API endpoints.

GET  /api/slices                  - Progress of every slice
GET  /api/slices/{slice_id}       - Progress of one slice
POST /api/slices/{slice_id}/pair  - Next relay pair to probe
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from relayscan.api.app import get_coordinator
from relayscan.models.types import RelayPairResponse, SliceStatus
from relayscan.worker.coordinator import ScanCoordinator

router = APIRouter()


@router.get("/slices", response_model=list[SliceStatus])
def list_slices(
    coordinator: ScanCoordinator = Depends(get_coordinator),
) -> list[SliceStatus]:
    """Get progress of all slices in the current generation."""
    return coordinator.all_slice_status()


@router.get("/slices/{slice_id}", response_model=SliceStatus)
def get_slice(
    slice_id: int,
    coordinator: ScanCoordinator = Depends(get_coordinator),
) -> SliceStatus:
    """Get progress of one slice.

    Raises:
        HTTPException: 404 if slice not found.
    """
    try:
        return coordinator.slice_status(slice_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Slice not found")


@router.post("/slices/{slice_id}/pair", response_model=RelayPairResponse)
def next_pair(
    slice_id: int,
    coordinator: ScanCoordinator = Depends(get_coordinator),
) -> RelayPairResponse:
    """Assign the next relay pair to probe.

    Args:
        slice_id: Slice to draw from.
        coordinator: Scan coordinator (injected).

    Returns:
        RelayPairResponse with the pair and payload size.

    Raises:
        HTTPException: 404 if slice not found, 409 if it has no pair left.
    """
    try:
        pair = coordinator.next_pair(slice_id)
        status = coordinator.slice_status(slice_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Slice not found")

    if pair is None:
        raise HTTPException(status_code=409, detail="Slice exhausted")

    return RelayPairResponse(
        slice_id=slice_id,
        entry=pair.entry,
        exit=pair.exit,
        target=pair.target,
        target_role=pair.target_role,
        transfer_size=status.transfer_size,
    )
