from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Coordinate(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class Participant(BaseModel):
    id: str = Field(min_length=1)
    location: str = Field(min_length=1)
    coordinates: Optional[Coordinate] = None


class PlanFilters(BaseModel):
    venue_types: List[str] = []
    min_rating: Optional[float] = Field(default=None, ge=1, le=5)
    price_levels: List[int] = []
    max_distance_km: Optional[float] = Field(default=None, gt=0)

    @field_validator("price_levels")
    @classmethod
    def _check_price_levels(cls, levels: List[int]) -> List[int]:
        for level in levels:
            if level < 0 or level > 4:
                raise ValueError("price levels must be between 0 and 4")
        return levels


class PreferenceProfile(BaseModel):
    natural_language_query: Optional[str] = None
    dietary_restrictions: List[str] = []
    accessibility: List[str] = []
    mood: Optional[str] = None
    activity_type: Optional[str] = None
    time_of_day: Optional[str] = None
    budget: Optional[str] = None
    group_size: Optional[int] = Field(default=None, gt=0)

    @property
    def has_query(self) -> bool:
        return bool(self.natural_language_query and self.natural_language_query.strip())


class VenueAnalysis(BaseModel):
    ambiance: Optional[str] = None
    good_for: List[str] = []
    best_time_to_visit: Optional[str] = None
    crowd_level: Optional[str] = None
    atmosphere_score: float = Field(default=5, ge=1, le=10)


class Venue(BaseModel):
    id: str
    name: str
    category: str = "Other"
    rating: Optional[float] = Field(default=None, ge=1, le=5)
    review_count: Optional[int] = None
    price_level: Optional[int] = Field(default=None, ge=0, le=4)
    address: str = ""
    coordinates: Coordinate
    opening_hours: Optional[List[str]] = None
    photos: List[str] = []
    website: Optional[str] = None
    phone_number: Optional[str] = None
    is_open_now: Optional[bool] = None
    features: List[str] = []
    analysis: Optional[VenueAnalysis] = None
    updated_at: Optional[datetime] = None


class TravelEstimate(BaseModel):
    participant_id: str
    location: str
    distance_km: float
    minutes: int


class MatchResult(BaseModel):
    venue_id: str
    score: float = Field(ge=0, le=100)
    reasoning: str = ""
    highlights: List[str] = []


class RankedVenue(Venue):
    travel_times: List[TravelEstimate] = []
    recommendation: Optional[MatchResult] = None


class Plan(BaseModel):
    id: str
    title: Optional[str] = None
    participants: List[Participant] = Field(min_length=2, max_length=10)
    midpoint: Optional[Coordinate] = None
    selected_venues: List[str] = []
    filters: Optional[PlanFilters] = None
    preferences: Optional[PreferenceProfile] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


# --- Request / response bodies ---

class ParticipantInput(BaseModel):
    id: str = Field(min_length=1)
    location: str = Field(min_length=1)


class CreatePlanRequest(BaseModel):
    participants: List[ParticipantInput] = Field(min_length=2, max_length=10)
    title: Optional[str] = None
    filters: Optional[PlanFilters] = None
    preferences: Optional[PreferenceProfile] = None

    @field_validator("participants")
    @classmethod
    def _unique_ids(cls, participants: List[ParticipantInput]) -> List[ParticipantInput]:
        ids = [p.id for p in participants]
        if len(set(ids)) != len(ids):
            raise ValueError("participant ids must be unique")
        return participants


class PlanUpdate(BaseModel):
    """Mutable plan fields; participants and midpoint are fixed once a plan exists"""

    model_config = {"extra": "forbid"}

    title: Optional[str] = None
    filters: Optional[PlanFilters] = None
    preferences: Optional[PreferenceProfile] = None
    selected_venues: Optional[List[str]] = None


class VenueSearchRequest(BaseModel):
    radius: Optional[int] = Field(default=None, gt=0)
    type: Optional[str] = None
    min_rating: Optional[float] = Field(default=None, ge=1, le=5)
    price_levels: Optional[List[int]] = None

    @field_validator("price_levels")
    @classmethod
    def _check_price_levels(cls, levels: Optional[List[int]]) -> Optional[List[int]]:
        if levels is not None:
            for level in levels:
                if level < 0 or level > 4:
                    raise ValueError("price levels must be between 0 and 4")
        return levels


class VenueSearchResult(BaseModel):
    venues: List[RankedVenue] = []
    venue_type: Optional[str] = None
    fallback_applied: bool = False
    searched_types: List[Optional[str]] = []
