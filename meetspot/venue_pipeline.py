"""
Venue ranking pipeline for a plan's midpoint.

search -> type fallback -> cache upsert + analysis -> travel estimates
-> rating / price filters -> preference or rating ranking

Each step consumes the complete output of the previous one. Only the
per-venue enrichment inside a step fans out concurrently.
"""

import asyncio
import concurrent.futures
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .config import DEFAULT_SEARCH_SETTINGS, SearchSettings
from .errors import PreconditionFailed
from .geo import travel_estimates
from .models import (
    MatchResult,
    Plan,
    PreferenceProfile,
    RankedVenue,
    Venue,
    VenueSearchRequest,
    VenueSearchResult,
)
from .preferences import PreferenceScorer, VenueAnalyzer
from .storage import Storage

logger = logging.getLogger(__name__)


@dataclass
class SearchParameters:
    """Search inputs after request fields, plan filters and defaults are merged"""

    radius: int
    venue_type: Optional[str]
    min_rating: Optional[float]
    price_levels: Optional[List[int]]


def resolve_parameters(plan: Plan, request: VenueSearchRequest,
                       settings: SearchSettings = DEFAULT_SEARCH_SETTINGS) -> SearchParameters:
    """
    Fields the caller sent win (an explicit null min_rating disables the
    threshold); otherwise the plan's stored filters apply, then defaults.
    """
    sent = request.model_fields_set
    filters = plan.filters

    if request.radius is not None:
        radius = request.radius
    elif filters and filters.max_distance_km:
        radius = int(filters.max_distance_km * 1000)
    else:
        radius = settings.default_radius_m

    if 'type' in sent:
        venue_type = request.type
    elif filters and len(filters.venue_types) == 1:
        venue_type = filters.venue_types[0]
    else:
        venue_type = None

    if 'min_rating' in sent:
        min_rating = request.min_rating
    elif filters and filters.min_rating is not None:
        min_rating = filters.min_rating
    else:
        min_rating = settings.default_min_rating

    if 'price_levels' in sent:
        price_levels = request.price_levels
    elif filters and filters.price_levels:
        price_levels = filters.price_levels
    else:
        price_levels = None

    return SearchParameters(radius, venue_type.lower() if venue_type else None, min_rating, price_levels)


def apply_filters(venues: List[RankedVenue], min_rating: Optional[float] = None,
                  price_levels: Optional[List[int]] = None) -> List[RankedVenue]:
    """Drop venues below min_rating or outside price_levels; unknown values fail an active filter"""
    filtered = venues
    if min_rating is not None:
        filtered = [v for v in filtered if v.rating is not None and v.rating >= min_rating]
    if price_levels:
        allowed = set(price_levels)
        filtered = [v for v in filtered if v.price_level is not None and v.price_level in allowed]
    return filtered


def sort_by_rating(venues: List[RankedVenue]) -> List[RankedVenue]:
    # Unrated venues count as 0 and sink to the end
    return sorted(venues, key=lambda v: v.rating or 0, reverse=True)


def rank_by_match(venues: List[RankedVenue], matches: List[MatchResult]) -> List[RankedVenue]:
    """Attach match results and sort by score; venues the scorer skipped follow the scored ones"""
    by_id: Dict[str, MatchResult] = {m.venue_id: m for m in matches}
    scored = []
    unscored = []
    for venue in venues:
        match = by_id.get(venue.id)
        if match is None:
            unscored.append(venue)
        else:
            scored.append(venue.model_copy(update={'recommendation': match}))
    scored.sort(key=lambda v: v.recommendation.score, reverse=True)
    return scored + sort_by_rating(unscored)


class VenueSearchPipeline:
    """Produces the ranked, filtered venue list for a plan's midpoint"""

    def __init__(
        self,
        place_search,
        storage: Storage,
        analyzer: VenueAnalyzer,
        scorer: PreferenceScorer,
        settings: SearchSettings = DEFAULT_SEARCH_SETTINGS,
        executor: Optional[concurrent.futures.Executor] = None,
    ):
        self.place_search = place_search
        self.storage = storage
        self.analyzer = analyzer
        self.scorer = scorer
        self.settings = settings
        self.executor = executor or concurrent.futures.ThreadPoolExecutor(max_workers=10)

    def search(self, plan: Plan, request: VenueSearchRequest) -> VenueSearchResult:
        """Synchronous entry point; runs search_async on a private event loop"""
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            return loop.run_until_complete(self.search_async(plan, request))
        finally:
            loop.close()

    async def search_async(self, plan: Plan, request: VenueSearchRequest) -> VenueSearchResult:
        if plan.midpoint is None:
            raise PreconditionFailed("Plan has no midpoint; create the midpoint before searching venues")

        params = resolve_parameters(plan, request, self.settings)
        logger.info("Searching venues for plan %s near (%s, %s): %r",
                    plan.id, plan.midpoint.lat, plan.midpoint.lng, params)

        venues, venue_type, searched = await self._search_with_fallback(plan, params)
        if not venues:
            logger.info("No venues found for plan %s after trying %s", plan.id, searched)
            return VenueSearchResult(venues=[], venue_type=venue_type, fallback_applied=False,
                                     searched_types=searched)

        enriched = await asyncio.gather(*[self._enrich_venue(plan, venue) for venue in venues])

        filtered = apply_filters(list(enriched), params.min_rating, params.price_levels)
        logger.info("%d of %d venues passed filters (min_rating=%s, price_levels=%s)",
                    len(filtered), len(enriched), params.min_rating, params.price_levels)

        ranked = await self._rank(plan, filtered)

        return VenueSearchResult(
            venues=ranked,
            venue_type=venue_type,
            fallback_applied=venue_type != params.venue_type,
            searched_types=searched,
        )

    # --- Steps ---
    async def _run(self, func, *args):
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(self.executor, func, *args)

    def fallback_types(self, venue_type: Optional[str]) -> List[Optional[str]]:
        """Types to try in order; only the head of the fallback sequence has successors"""
        sequence = list(self.settings.fallback_sequence)
        if sequence and venue_type == sequence[0]:
            return sequence
        return [venue_type]

    async def _search_with_fallback(
        self, plan: Plan, params: SearchParameters,
    ) -> Tuple[List[Venue], Optional[str], List[Optional[str]]]:
        searched: List[Optional[str]] = []
        for venue_type in self.fallback_types(params.venue_type):
            searched.append(venue_type)
            venues = await self._run(self.place_search.search_nearby, plan.midpoint, params.radius, venue_type)
            if venues:
                if venue_type != params.venue_type:
                    logger.info("No %s results, showing %s instead", params.venue_type, venue_type)
                return venues, venue_type, searched
            logger.info("Search for type=%s returned no venues", venue_type)
        return [], params.venue_type, searched

    async def _enrich_venue(self, plan: Plan, venue: Venue) -> RankedVenue:
        cached = await self._run(self.storage.upsert_venue, venue)

        if cached.analysis is None:
            try:
                analysis = await self._run(self.analyzer.analyze, cached)
            except Exception as e:
                logger.warning("Failed to analyze venue %s: %s", cached.id, e)
                analysis = None
            if analysis is not None:
                updated = await self._run(self.storage.update_venue, cached.id, {'analysis': analysis})
                cached = updated or cached.model_copy(update={'analysis': analysis})

        return RankedVenue(
            **cached.model_dump(),
            travel_times=travel_estimates(plan.participants, cached.coordinates),
        )

    async def _rank(self, plan: Plan, venues: List[RankedVenue]) -> List[RankedVenue]:
        profile: Optional[PreferenceProfile] = plan.preferences
        if not venues or profile is None or not profile.has_query:
            return sort_by_rating(venues)

        group_size = profile.group_size or len(plan.participants)
        try:
            matches = await asyncio.wait_for(
                self._run(self.scorer.score, venues, profile, group_size),
                timeout=self.settings.scoring_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Preference scoring timed out after %.1fs, sorting by rating",
                           self.settings.scoring_timeout)
            return sort_by_rating(venues)
        except Exception as e:
            logger.warning("Failed to generate preference recommendations: %s", e)
            return sort_by_rating(venues)

        return rank_by_match(venues, matches)
