import threading
import time

import pytest

from meetspot.errors import NotFound
from meetspot.models import (
    Coordinate,
    CreatePlanRequest,
    PlanUpdate,
    PreferenceProfile,
)
from meetspot.planner import PlanService, merge_preferences
from meetspot.storage import MemoryStorage

from .conftest import FakeMapsService

ADDRESSES = {
    "Times Square, New York, NY": Coordinate(lat=40.7580, lng=-73.9855),
    "Union Square, New York, NY": Coordinate(lat=40.7359, lng=-73.9911),
}


class RecordingParser:
    def __init__(self):
        self.calls = []

    def parse(self, text):
        self.calls.append(text)
        return PreferenceProfile(natural_language_query=text, mood="quiet", dietary_restrictions=["vegan"])


@pytest.fixture
def geocoder():
    return FakeMapsService(addresses=ADDRESSES)


@pytest.fixture
def parser():
    return RecordingParser()


@pytest.fixture
def service(geocoder, storage, parser):
    return PlanService(geocoder, storage, parser)


def _request(*locations, **fields):
    participants = [{'id': f"p{i}", 'location': loc} for i, loc in enumerate(locations)]
    return CreatePlanRequest.model_validate({'participants': participants, **fields})


class TestCreatePlan:
    def test_geocodes_every_participant(self, service, geocoder, storage):
        plan = service.create_plan(_request("Times Square, New York, NY", "Union Square, New York, NY"))

        assert sorted(geocoder.geocode_calls) == sorted(ADDRESSES)
        assert [p.coordinates for p in plan.participants] == list(ADDRESSES.values())
        assert plan.midpoint.lat == pytest.approx((40.7580 + 40.7359) / 2)
        assert plan.midpoint.lng == pytest.approx((-73.9855 + -73.9911) / 2)
        assert storage.get_plan(plan.id) == plan

    def test_coordinate_strings_skip_geocoding(self, service, geocoder):
        plan = service.create_plan(_request("40.7, -74.0", "Times Square, New York, NY"))

        assert geocoder.geocode_calls == ["Times Square, New York, NY"]
        assert plan.participants[0].coordinates == Coordinate(lat=40.7, lng=-74.0)

    def test_unknown_address_names_the_location(self, service, storage):
        with pytest.raises(NotFound, match="Failed to geocode location: Atlantis"):
            service.create_plan(_request("Atlantis", "Times Square, New York, NY"))

    def test_keeps_title_and_filters(self, service):
        plan = service.create_plan(_request(
            "40.7, -74.0", "40.8, -73.9",
            title="Friday dinner",
            filters={'venue_types': ["restaurant"], 'min_rating': 4.5},
        ))
        assert plan.title == "Friday dinner"
        assert plan.filters.min_rating == 4.5

    def test_parses_query_and_keeps_explicit_hints(self, service, parser):
        plan = service.create_plan(_request(
            "40.7, -74.0", "40.8, -73.9",
            preferences={'natural_language_query': "somewhere quiet", 'mood': "romantic"},
        ))

        assert parser.calls == ["somewhere quiet"]
        assert plan.preferences.mood == "romantic"
        assert plan.preferences.dietary_restrictions == ["vegan"]

    def test_no_query_skips_parser(self, service, parser):
        plan = service.create_plan(_request("40.7, -74.0", "40.8, -73.9", preferences={'budget': "moderate"}))

        assert parser.calls == []
        assert plan.preferences.budget == "moderate"


def test_merge_preferences_prefers_explicit_values():
    explicit = PreferenceProfile.model_validate({'mood': "lively", 'dietary_restrictions': []})
    parsed = PreferenceProfile(mood="quiet", dietary_restrictions=["vegan"], budget="moderate")

    merged = merge_preferences(explicit, parsed)

    assert merged.mood == "lively"
    assert merged.dietary_restrictions == ["vegan"]
    assert merged.budget == "moderate"


class TestPlanEdits:
    @pytest.fixture
    def plan(self, service):
        return service.create_plan(_request("40.7, -74.0", "40.8, -73.9"))

    def test_get_unknown_plan(self, service):
        with pytest.raises(NotFound):
            service.get_plan("missing")

    def test_select_is_idempotent(self, service, plan):
        service.select_venue(plan.id, "v1")
        updated = service.select_venue(plan.id, "v1")
        assert updated.selected_venues == ["v1"]

    def test_deselect_is_idempotent(self, service, plan):
        service.select_venue(plan.id, "v1")
        service.select_venue(plan.id, "v2")
        service.deselect_venue(plan.id, "v1")
        updated = service.deselect_venue(plan.id, "v1")
        assert updated.selected_venues == ["v2"]

    def test_select_on_unknown_plan(self, service):
        with pytest.raises(NotFound):
            service.select_venue("missing", "v1")

    def test_update_only_touches_sent_fields(self, service, plan):
        service.update_plan(plan.id, PlanUpdate(title="Brunch"))
        updated = service.update_plan(plan.id, PlanUpdate.model_validate({'filters': {'min_rating': 3.5}}))

        assert updated.title == "Brunch"
        assert updated.filters.min_rating == 3.5
        assert updated.midpoint == plan.midpoint

    def test_update_dedupes_selected_venues(self, service, plan):
        updated = service.update_plan(plan.id, PlanUpdate(selected_venues=["a", "b", "a"]))
        assert updated.selected_venues == ["a", "b"]

    def test_update_reparses_changed_query_only(self, service, parser, plan):
        service.update_plan(plan.id, PlanUpdate.model_validate(
            {'preferences': {'natural_language_query': "cheap tacos"}}))
        updated = service.update_plan(plan.id, PlanUpdate.model_validate(
            {'preferences': {'natural_language_query': "cheap tacos"}}))

        assert parser.calls == ["cheap tacos"]
        assert updated.preferences.natural_language_query == "cheap tacos"

    def test_empty_update_returns_plan_unchanged(self, service, plan):
        assert service.update_plan(plan.id, PlanUpdate()) == plan


class SlowReadStorage(MemoryStorage):
    def get_plan(self, plan_id):
        plan = super().get_plan(plan_id)
        time.sleep(0.05)
        return plan


def test_concurrent_selects_keep_every_venue(geocoder, parser):
    service = PlanService(geocoder, SlowReadStorage(), parser)
    plan = service.create_plan(_request("40.7, -74.0", "40.8, -73.9"))

    threads = [threading.Thread(target=service.select_venue, args=(plan.id, vid)) for vid in ("v1", "v2")]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(service.get_plan(plan.id).selected_venues) == ["v1", "v2"]


def test_concurrent_deselects_keep_remaining_venues(geocoder, parser):
    service = PlanService(geocoder, SlowReadStorage(), parser)
    plan = service.create_plan(_request("40.7, -74.0", "40.8, -73.9"))
    for vid in ("v1", "v2", "v3"):
        service.select_venue(plan.id, vid)

    threads = [threading.Thread(target=service.deselect_venue, args=(plan.id, vid)) for vid in ("v1", "v3")]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert service.get_plan(plan.id).selected_venues == ["v2"]
