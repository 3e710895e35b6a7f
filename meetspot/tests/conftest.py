import threading
import time
from typing import Dict, List, Optional

import pytest

from meetspot.config import SearchSettings
from meetspot.errors import NotFound, PreferenceServiceError, UpstreamUnavailable
from meetspot.models import (
    Coordinate,
    MatchResult,
    Participant,
    Plan,
    PreferenceProfile,
    Venue,
    VenueAnalysis,
)
from meetspot.preferences import OfflinePreferenceEngine
from meetspot.storage import MemoryStorage
from meetspot.venue_pipeline import VenueSearchPipeline

MIDPOINT = Coordinate(lat=40.7359, lng=-73.9911)


def make_venue(venue_id: str, rating: Optional[float] = None, price_level: Optional[int] = None,
               lat: float = 40.7359, lng: float = -73.9911, category: str = "Restaurant") -> Venue:
    return Venue(
        id=venue_id,
        name=f"Venue {venue_id}",
        category=category,
        rating=rating,
        price_level=price_level,
        address=f"{venue_id} Main St",
        coordinates=Coordinate(lat=lat, lng=lng),
    )


def make_plan(midpoint: Optional[Coordinate] = MIDPOINT, query: Optional[str] = None,
              participants: Optional[List[Participant]] = None, **fields) -> Plan:
    if participants is None:
        participants = [
            Participant(id="alice", location="Times Square",
                        coordinates=Coordinate(lat=40.7580, lng=-73.9855)),
            Participant(id="bob", location="Union Square",
                        coordinates=Coordinate(lat=40.7359, lng=-73.9911)),
        ]
    preferences = PreferenceProfile(natural_language_query=query) if query else None
    return Plan(id="plan-1", participants=participants, midpoint=midpoint, preferences=preferences, **fields)


class FakeMapsService:
    """In-memory stand-in for GoogleMapsService"""

    def __init__(self, results: Optional[Dict[Optional[str], List[Venue]]] = None,
                 addresses: Optional[Dict[str, Coordinate]] = None,
                 fail_types: tuple = ()):
        self.results = results or {}
        self.addresses = addresses or {}
        self.fail_types = fail_types
        self.search_calls: List[tuple] = []
        self.geocode_calls: List[str] = []
        self._lock = threading.Lock()

    def search_nearby(self, center, radius, venue_type=None):
        with self._lock:
            self.search_calls.append((center, radius, venue_type))
        if venue_type in self.fail_types:
            raise UpstreamUnavailable("Places provider unavailable: HTTP 500")
        return [v.model_copy() for v in self.results.get(venue_type, [])]

    @property
    def searched_types(self):
        return [call[2] for call in self.search_calls]

    def geocode_address(self, address):
        with self._lock:
            self.geocode_calls.append(address)
        if address not in self.addresses:
            raise NotFound(f"No results found for address: {address}")
        return self.addresses[address]

    def reverse_geocode(self, coordinate):
        return "Union Square, New York, NY"

    def autocomplete(self, text):
        return [{'description': f"{text} Street, New York, NY", 'place_id': 'p1'}]

    def get_photo(self, ref):
        return iter([b'\xff\xd8', b'\xff\xd9'])


class RecordingAnalyzer:
    def __init__(self, fail_ids=()):
        self.fail_ids = set(fail_ids)
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def analyze(self, venue):
        with self._lock:
            self.calls.append(venue.id)
        if venue.id in self.fail_ids:
            raise PreferenceServiceError(f"analysis failed for {venue.id}")
        return VenueAnalysis(ambiance="cozy", good_for=["catching up"], atmosphere_score=7)


class FixedScorer:
    def __init__(self, scores: Dict[str, float]):
        self.scores = scores
        self.calls: List[tuple] = []

    def score(self, venues, profile, group_size=None):
        self.calls.append(([v.id for v in venues], profile, group_size))
        return [
            MatchResult(venue_id=v.id, score=self.scores[v.id], reasoning=f"fits {v.id}", highlights=["quiet"])
            for v in venues if v.id in self.scores
        ]


class FailingScorer:
    def score(self, venues, profile, group_size=None):
        raise PreferenceServiceError("model unavailable")


class SlowScorer:
    def score(self, venues, profile, group_size=None):
        time.sleep(0.5)
        return [MatchResult(venue_id=v.id, score=100) for v in venues]


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def offline_engine():
    return OfflinePreferenceEngine()


@pytest.fixture
def build_pipeline(storage, offline_engine):
    def _build(maps, analyzer=None, scorer=None, **settings):
        return VenueSearchPipeline(
            maps,
            storage,
            analyzer=analyzer or offline_engine,
            scorer=scorer or offline_engine,
            settings=SearchSettings(**settings),
        )
    return _build
