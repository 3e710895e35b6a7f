"""
Natural-language preference handling.

Three capabilities sit behind small interfaces so the venue pipeline can be
driven by a live model or by the deterministic offline engine:

- PreferenceParser: free text -> PreferenceProfile (best-effort, never raises)
- VenueAnalyzer: venue -> VenueAnalysis (raises PreferenceServiceError)
- PreferenceScorer: venues + profile -> MatchResult list (raises PreferenceServiceError)

The venue pipeline treats any exception from an analyzer or scorer as a
miss: the venue goes without analysis, or results fall back to rating order.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, List, Optional

from groq import APIError, Groq

from .config import DEFAULT_LLM_CONFIG, LLMConfig
from .errors import PreferenceServiceError
from .models import MatchResult, PreferenceProfile, Venue, VenueAnalysis

logger = logging.getLogger(__name__)

DEFAULT_RATING_FOR_SCORING = 3.0
DEFAULT_REASONING = "Good match for your preferences"
RATING_REASONING = "Standard recommendation based on rating"

# ---------------------------------------------------------------------------
# LLM Prompts
# ---------------------------------------------------------------------------

PARSE_PROMPT = """\
You parse what a group wants from a meeting spot. Extract structured \
preferences from the user's text.

Return ONLY valid JSON in this exact format (use [] or null when not mentioned):
{
  "dietary_restrictions": ["vegetarian", "gluten-free"],
  "accessibility": ["wheelchair accessible"],
  "mood": "casual / formal / romantic / energetic / quiet",
  "activity_type": "dining / coffee / drinks / entertainment / outdoor",
  "time_of_day": "morning / lunch / afternoon / evening / late night",
  "budget": "budget-friendly / moderate / upscale / luxury"
}"""

ANALYZE_PROMPT = """\
You describe venues for people choosing where to meet. Given one venue, \
infer its character.

Return ONLY valid JSON in this exact format:
{
  "ambiance": "cozy / modern / traditional / ...",
  "good_for": ["activity1", "activity2"],
  "best_time_to_visit": "time description",
  "crowd_level": "quiet / moderate / busy",
  "atmosphere_score": 7
}
atmosphere_score is a number from 1 to 10."""

SCORE_PROMPT = """\
You are an expert meeting spot recommender. Score each candidate venue by how \
well it fits the group's preferences.

Return ONLY valid JSON in this exact format:
{"recommendations": [{"venue_id": "<id>", "match_score": 0-100, \
"reasoning": "<one sentence>", "highlights": ["highlight1", "highlight2"]}]}
Include only venues from the provided list."""


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _build_venue_message(venue: Venue) -> str:
    lines = [
        f"Venue: {venue.name}",
        f"Category: {venue.category or 'Unknown'}",
        f"Rating: {venue.rating if venue.rating is not None else 'N/A'}",
        f"Price level: {'$' * venue.price_level if venue.price_level else 'N/A'}",
        f"Address: {venue.address or 'N/A'}",
        f"Features: {', '.join(venue.features) or 'None listed'}",
    ]
    return "\n".join(lines)


def _build_scoring_message(
    venues: List[Venue],
    profile: PreferenceProfile,
    group_size: Optional[int],
) -> str:
    lines = ["## Group Preferences"]
    lines.append(f"- Query: {profile.natural_language_query or ''}")
    lines.append(f"- Dietary restrictions: {', '.join(profile.dietary_restrictions) or 'None'}")
    lines.append(f"- Accessibility needs: {', '.join(profile.accessibility) or 'None'}")
    lines.append(f"- Mood: {profile.mood or 'Any'}")
    lines.append(f"- Activity type: {profile.activity_type or 'Any'}")
    lines.append(f"- Time of day: {profile.time_of_day or 'Any'}")
    lines.append(f"- Budget: {profile.budget or 'Any'}")
    lines.append(f"- Group size: {group_size or 'Not specified'}")

    lines.append("\n## Candidate Venues")
    candidates = [
        {
            'id': v.id,
            'name': v.name,
            'category': v.category,
            'rating': v.rating,
            'price_level': v.price_level,
            'features': v.features,
            'analysis': v.analysis.model_dump() if v.analysis else None,
        }
        for v in venues
    ]
    lines.append(json.dumps(candidates, indent=2))
    return "\n".join(lines)


class PreferenceParser(ABC):
    @abstractmethod
    def parse(self, text: str) -> PreferenceProfile:
        ...


class VenueAnalyzer(ABC):
    @abstractmethod
    def analyze(self, venue: Venue) -> Optional[VenueAnalysis]:
        ...


class PreferenceScorer(ABC):
    @abstractmethod
    def score(
        self,
        venues: List[Venue],
        profile: PreferenceProfile,
        group_size: Optional[int] = None,
    ) -> List[MatchResult]:
        ...


class OfflinePreferenceEngine(PreferenceParser, VenueAnalyzer, PreferenceScorer):
    """Deterministic engine used when no model is configured, and in tests"""

    def parse(self, text: str) -> PreferenceProfile:
        return PreferenceProfile(natural_language_query=text)

    def analyze(self, venue: Venue) -> Optional[VenueAnalysis]:
        return None

    def score(
        self,
        venues: List[Venue],
        profile: PreferenceProfile,
        group_size: Optional[int] = None,
    ) -> List[MatchResult]:
        results = []
        for venue in venues:
            rating = venue.rating if venue.rating is not None else DEFAULT_RATING_FOR_SCORING
            results.append(MatchResult(
                venue_id=venue.id,
                score=round(rating / 5 * 100),
                reasoning=RATING_REASONING,
                highlights=venue.features[:2],
            ))
        return results


class GroqPreferenceEngine(PreferenceParser, VenueAnalyzer, PreferenceScorer):
    """Preference parsing, venue analysis and scoring through a Groq-hosted model"""

    def __init__(self, config: LLMConfig = DEFAULT_LLM_CONFIG, client: Optional[Groq] = None):
        if not config.api_key and client is None:
            raise ValueError("A Groq API key is required")
        self.config = config
        self.client = client or Groq(api_key=config.api_key, timeout=config.timeout)

    def _complete_json(self, system_prompt: str, user_message: str) -> Any:
        response = self.client.chat.completions.create(
            model=self.config.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_message},
            ],
            max_tokens=self.config.max_tokens,
            temperature=0.3,
            response_format={"type": "json_object"},
        )
        content = response.choices[0].message.content or "{}"
        return json.loads(content)

    def parse(self, text: str) -> PreferenceProfile:
        try:
            parsed = self._complete_json(PARSE_PROMPT, f'User input: "{text}"')
            return PreferenceProfile(
                natural_language_query=text,
                dietary_restrictions=parsed.get("dietary_restrictions") or [],
                accessibility=parsed.get("accessibility") or [],
                mood=parsed.get("mood") or None,
                activity_type=parsed.get("activity_type") or None,
                time_of_day=parsed.get("time_of_day") or None,
                budget=parsed.get("budget") or None,
            )
        except (APIError, ValueError, TypeError, AttributeError):
            logger.warning("Preference parsing failed, keeping the raw query only", exc_info=True)
            return PreferenceProfile(natural_language_query=text)

    def analyze(self, venue: Venue) -> Optional[VenueAnalysis]:
        try:
            analysis = self._complete_json(ANALYZE_PROMPT, _build_venue_message(venue))
            return VenueAnalysis(
                ambiance=analysis.get("ambiance"),
                good_for=analysis.get("good_for") or [],
                best_time_to_visit=analysis.get("best_time_to_visit"),
                crowd_level=analysis.get("crowd_level"),
                atmosphere_score=_clamp(float(analysis.get("atmosphere_score") or 5), 1, 10),
            )
        except (APIError, ValueError, TypeError, AttributeError) as e:
            raise PreferenceServiceError(f"Venue analysis failed for {venue.id}: {e}") from e

    def score(
        self,
        venues: List[Venue],
        profile: PreferenceProfile,
        group_size: Optional[int] = None,
    ) -> List[MatchResult]:
        if not venues:
            return []
        try:
            parsed = self._complete_json(SCORE_PROMPT, _build_scoring_message(venues, profile, group_size))
            items = parsed if isinstance(parsed, list) else parsed.get("recommendations", [])
            known_ids = {v.id for v in venues}

            results: List[MatchResult] = []
            seen = set()
            for item in items:
                venue_id = str(item.get("venue_id", ""))
                if venue_id not in known_ids or venue_id in seen:
                    continue
                seen.add(venue_id)
                results.append(MatchResult(
                    venue_id=venue_id,
                    score=_clamp(float(item.get("match_score") or 0), 0, 100),
                    reasoning=item.get("reasoning") or DEFAULT_REASONING,
                    highlights=[str(h) for h in item.get("highlights") or []],
                ))
            return results
        except (APIError, ValueError, TypeError, AttributeError) as e:
            raise PreferenceServiceError(f"Preference scoring failed: {e}") from e


def build_preference_engine(config: LLMConfig = DEFAULT_LLM_CONFIG):
    """Groq engine when a key is configured and enabled, offline engine otherwise"""
    if config.enabled and config.api_key:
        logger.info("Using Groq preference engine (model=%s)", config.model)
        return GroqPreferenceEngine(config)
    logger.info("No LLM configured, using offline preference engine")
    return OfflinePreferenceEngine()
