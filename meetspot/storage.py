import threading
import uuid
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from .models import Plan, Venue, utcnow


class Storage(ABC):
    """Plan store and venue cache"""

    @abstractmethod
    def create_plan(self, plan: Plan) -> Plan:
        ...

    @abstractmethod
    def get_plan(self, plan_id: str) -> Optional[Plan]:
        ...

    @abstractmethod
    def update_plan(self, plan_id: str, updates: Dict) -> Optional[Plan]:
        ...

    @abstractmethod
    def add_selected_venue(self, plan_id: str, venue_id: str) -> Optional[Plan]:
        """Append venue_id to the itinerary unless already present"""

    @abstractmethod
    def remove_selected_venue(self, plan_id: str, venue_id: str) -> Optional[Plan]:
        ...

    @abstractmethod
    def get_venues(self, venue_ids: List[str]) -> List[Venue]:
        ...

    @abstractmethod
    def upsert_venue(self, venue: Venue) -> Venue:
        ...

    @abstractmethod
    def update_venue(self, venue_id: str, updates: Dict) -> Optional[Venue]:
        ...


class MemoryStorage(Storage):
    """
    Thread-safe in-process storage.

    Venues are keyed by provider id; concurrent upserts of the same id are
    last-write-wins. Stored models are copied in and out so callers never
    share mutable state with the cache.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._plans: Dict[str, Plan] = {}
        self._venues: Dict[str, Venue] = {}

    def create_plan(self, plan: Plan) -> Plan:
        now = utcnow()
        stored = plan.model_copy(update={
            'id': plan.id or str(uuid.uuid4()),
            'created_at': now,
            'updated_at': now,
        }, deep=True)
        with self._lock:
            self._plans[stored.id] = stored
        return stored.model_copy(deep=True)

    def get_plan(self, plan_id: str) -> Optional[Plan]:
        with self._lock:
            plan = self._plans.get(plan_id)
        return plan.model_copy(deep=True) if plan else None

    def update_plan(self, plan_id: str, updates: Dict) -> Optional[Plan]:
        with self._lock:
            plan = self._plans.get(plan_id)
            if plan is None:
                return None
            updated = plan.model_copy(update={**updates, 'updated_at': utcnow()}, deep=True)
            self._plans[plan_id] = updated
        return updated.model_copy(deep=True)

    def add_selected_venue(self, plan_id: str, venue_id: str) -> Optional[Plan]:
        with self._lock:
            plan = self._plans.get(plan_id)
            if plan is None:
                return None
            if venue_id not in plan.selected_venues:
                plan = plan.model_copy(update={
                    'selected_venues': plan.selected_venues + [venue_id],
                    'updated_at': utcnow(),
                }, deep=True)
                self._plans[plan_id] = plan
        return plan.model_copy(deep=True)

    def remove_selected_venue(self, plan_id: str, venue_id: str) -> Optional[Plan]:
        with self._lock:
            plan = self._plans.get(plan_id)
            if plan is None:
                return None
            if venue_id in plan.selected_venues:
                plan = plan.model_copy(update={
                    'selected_venues': [v for v in plan.selected_venues if v != venue_id],
                    'updated_at': utcnow(),
                }, deep=True)
                self._plans[plan_id] = plan
        return plan.model_copy(deep=True)

    def get_venues(self, venue_ids: List[str]) -> List[Venue]:
        with self._lock:
            found = [self._venues[vid] for vid in venue_ids if vid in self._venues]
        return [v.model_copy(deep=True) for v in found]

    def upsert_venue(self, venue: Venue) -> Venue:
        with self._lock:
            existing = self._venues.get(venue.id)
            updates = {'updated_at': utcnow()}
            # A refresh from the provider never carries analysis; keep the cached one
            if venue.analysis is None and existing is not None:
                updates['analysis'] = existing.analysis
            stored = venue.model_copy(update=updates, deep=True)
            self._venues[venue.id] = stored
        return stored.model_copy(deep=True)

    def update_venue(self, venue_id: str, updates: Dict) -> Optional[Venue]:
        with self._lock:
            venue = self._venues.get(venue_id)
            if venue is None:
                return None
            updated = venue.model_copy(update={**updates, 'updated_at': utcnow()}, deep=True)
            self._venues[venue_id] = updated
        return updated.model_copy(deep=True)

