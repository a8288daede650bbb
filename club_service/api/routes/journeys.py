"""
Club journey endpoints
"""
from fastapi import APIRouter, Depends, status

from ...application.services import JourneyService
from ...dependencies import get_club_member, get_enabled_host, get_journey_service
from ...domain.models import ClubContext
from ...schemas import (
    JourneyCreate,
    JourneyListResponse,
    JourneyReorder,
    JourneyResponse,
    JourneyUpdate,
    MessageResponse,
)

router = APIRouter(prefix="/api/v1/clubs/{club_id}/journeys", tags=["Journeys"])


@router.get("", response_model=JourneyListResponse)
async def list_journeys(
    club_id: str,
    member: ClubContext = Depends(get_club_member),
    service: JourneyService = Depends(get_journey_service)
):
    """Journeys of a club in display order, for its host and members"""
    journeys = await service.list_journeys(club_id)
    return JourneyListResponse(journeys=[JourneyResponse.model_validate(j) for j in journeys])


@router.post("", response_model=JourneyResponse, status_code=status.HTTP_201_CREATED)
async def create_journey(
    club_id: str,
    payload: JourneyCreate,
    host: ClubContext = Depends(get_enabled_host),
    service: JourneyService = Depends(get_journey_service)
):
    """
    Create a journey

    - **title**: Journey title, also the source of its per-club unique slug
    - **order**: Display position, defaults to after the last journey
    - Requires the enabled host of the club
    """
    journey = await service.create_journey(club_id, host.uid, payload.model_dump(mode="json"))
    return JourneyResponse.model_validate(journey)


# Declared before "/{journey_id}" so "reorder" is not taken for an id
@router.patch("/reorder", response_model=MessageResponse)
async def reorder_journeys(
    club_id: str,
    payload: JourneyReorder,
    host: ClubContext = Depends(get_enabled_host),
    service: JourneyService = Depends(get_journey_service)
):
    """Set the display order to the position of each id in journey_ids"""
    await service.reorder_journeys(club_id, payload.journey_ids)
    return MessageResponse(message="Journeys reordered successfully")


@router.patch("/{journey_id}", response_model=JourneyResponse)
async def update_journey(
    club_id: str,
    journey_id: str,
    payload: JourneyUpdate,
    host: ClubContext = Depends(get_enabled_host),
    service: JourneyService = Depends(get_journey_service)
):
    journey = await service.update_journey(club_id, journey_id, payload.model_dump(mode="json", exclude_none=True))
    return JourneyResponse.model_validate(journey)


@router.delete("/{journey_id}", response_model=MessageResponse)
async def delete_journey(
    club_id: str,
    journey_id: str,
    host: ClubContext = Depends(get_enabled_host),
    service: JourneyService = Depends(get_journey_service)
):
    """Delete a journey and all of its lessons"""
    await service.delete_journey(club_id, journey_id)
    return MessageResponse(message="Journey deleted successfully")
