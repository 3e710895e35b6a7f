import asyncio
import concurrent.futures
import logging
import uuid
from typing import Optional

from .errors import NotFound
from .geo import calculate_midpoint, parse_coordinate
from .models import (
    Coordinate,
    CreatePlanRequest,
    Participant,
    ParticipantInput,
    Plan,
    PlanUpdate,
    PreferenceProfile,
)
from .preferences import PreferenceParser
from .storage import Storage

logger = logging.getLogger(__name__)


def merge_preferences(explicit: PreferenceProfile, parsed: PreferenceProfile) -> PreferenceProfile:
    """Hints the caller supplied win over hints parsed from the free-text query"""
    merged = parsed.model_dump()
    for key, value in explicit.model_dump(exclude_unset=True).items():
        if value not in (None, [], ''):
            merged[key] = value
    return PreferenceProfile(**merged)


class PlanService:
    """Creates meeting plans from participant locations and applies itinerary edits"""

    def __init__(
        self,
        geocoder,
        storage: Storage,
        parser: PreferenceParser,
        executor: Optional[concurrent.futures.Executor] = None,
    ):
        self.geocoder = geocoder
        self.storage = storage
        self.parser = parser
        self.executor = executor or concurrent.futures.ThreadPoolExecutor(max_workers=10)

    def create_plan(self, request: CreatePlanRequest) -> Plan:
        """
        Geocode every participant, compute the midpoint and persist the plan.
        Uses async parallel execution for the geocoding calls.
        """
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            return loop.run_until_complete(self.create_plan_async(request))
        finally:
            loop.close()

    async def create_plan_async(self, request: CreatePlanRequest) -> Plan:
        # Geocode all participant locations in parallel
        coordinates = await asyncio.gather(*[
            self._locate(participant) for participant in request.participants
        ])
        participants = [
            Participant(id=p.id, location=p.location, coordinates=coords)
            for p, coords in zip(request.participants, coordinates)
        ]

        midpoint = calculate_midpoint(coordinates)
        logger.info("Midpoint for %d participants: lat=%s, lng=%s",
                    len(participants), midpoint.lat, midpoint.lng)

        preferences = await self._process_preferences(request.preferences)

        plan = Plan(
            id=str(uuid.uuid4()),
            title=request.title,
            participants=participants,
            midpoint=midpoint,
            filters=request.filters,
            preferences=preferences,
        )
        return self.storage.create_plan(plan)

    async def _locate(self, participant: ParticipantInput) -> Coordinate:
        coords = parse_coordinate(participant.location)
        if coords is not None:
            return coords
        loop = asyncio.get_event_loop()
        try:
            return await loop.run_in_executor(self.executor, self.geocoder.geocode_address, participant.location)
        except NotFound as e:
            raise NotFound(f"Failed to geocode location: {participant.location}") from e

    async def _process_preferences(self, preferences: Optional[PreferenceProfile]) -> Optional[PreferenceProfile]:
        if preferences is None or not preferences.has_query:
            return preferences
        loop = asyncio.get_event_loop()
        parsed = await loop.run_in_executor(self.executor, self.parser.parse, preferences.natural_language_query)
        return merge_preferences(preferences, parsed)

    def get_plan(self, plan_id: str) -> Plan:
        plan = self.storage.get_plan(plan_id)
        if plan is None:
            raise NotFound(f"Plan not found: {plan_id}")
        return plan

    def update_plan(self, plan_id: str, update: PlanUpdate) -> Plan:
        plan = self.get_plan(plan_id)
        changes = {}
        if 'title' in update.model_fields_set:
            changes['title'] = update.title
        if 'filters' in update.model_fields_set:
            changes['filters'] = update.filters
        if 'selected_venues' in update.model_fields_set:
            changes['selected_venues'] = list(dict.fromkeys(update.selected_venues or []))
        if 'preferences' in update.model_fields_set:
            preferences = update.preferences
            previous = plan.preferences.natural_language_query if plan.preferences else None
            if preferences is not None and preferences.has_query \
                    and preferences.natural_language_query != previous:
                preferences = merge_preferences(preferences, self.parser.parse(preferences.natural_language_query))
            changes['preferences'] = preferences
        if not changes:
            return plan
        return self._save(plan_id, changes)

    def select_venue(self, plan_id: str, venue_id: str) -> Plan:
        plan = self.storage.add_selected_venue(plan_id, venue_id)
        if plan is None:
            raise NotFound(f"Plan not found: {plan_id}")
        return plan

    def deselect_venue(self, plan_id: str, venue_id: str) -> Plan:
        plan = self.storage.remove_selected_venue(plan_id, venue_id)
        if plan is None:
            raise NotFound(f"Plan not found: {plan_id}")
        return plan

    def _save(self, plan_id: str, changes: dict) -> Plan:
        updated = self.storage.update_plan(plan_id, changes)
        if updated is None:
            raise NotFound(f"Plan not found: {plan_id}")
        return updated
