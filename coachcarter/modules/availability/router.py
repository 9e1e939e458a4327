"""Availability API router."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from coachcarter.modules.availability.schemas import AvailabilitySubmission, AvailabilitySubmitted
from coachcarter.modules.availability.service import AvailabilityService, get_availability_service

router = APIRouter(prefix="/availability", tags=["availability"])


@router.post("", response_model=AvailabilitySubmitted)
async def submit_availability(
    payload: AvailabilitySubmission,
    service: AvailabilityService = Depends(get_availability_service),
) -> AvailabilitySubmitted:
    """Accept weekly availability for a booking."""
    await service.submit(payload)
    return AvailabilitySubmitted()
