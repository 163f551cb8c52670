"""Address autocomplete routes backed by Google Places."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from core.container import container
from core.logging import get_logger
from middleware.rate_limit import RateLimit
from services.location import LocationService

logger = get_logger(__name__)
router = APIRouter(prefix="/api/location", tags=["location"])


class PlacePrediction(BaseModel):
    place_id: str
    description: str
    main_text: str
    secondary_text: str


class SearchResponse(BaseModel):
    predictions: List[PlacePrediction]


class PlaceDetails(BaseModel):
    place_id: str
    formatted_address: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    types: List[str] = []


def get_location_service() -> LocationService:
    return container.location_service()


@router.get(
    "/search",
    response_model=SearchResponse,
    dependencies=[Depends(RateLimit("search", lambda s: s.rate_limit_search))]
)
async def search_places(
    query: str = Query(..., min_length=1, max_length=200),
    session_token: Optional[str] = Query(None, alias="sessionToken", max_length=128),
    location: LocationService = Depends(get_location_service)
):
    """Autocomplete an address."""
    predictions = await location.autocomplete(query, session_token)
    return {"predictions": predictions}


@router.get(
    "/details",
    response_model=PlaceDetails,
    dependencies=[Depends(RateLimit("details", lambda s: s.rate_limit_details))]
)
async def place_details(
    place_id: str = Query(..., alias="placeId", min_length=1, max_length=256),
    session_token: Optional[str] = Query(None, alias="sessionToken", max_length=128),
    location: LocationService = Depends(get_location_service)
):
    """Resolve a place id to a formatted address and coordinates."""
    return await location.place_details(place_id, session_token)
