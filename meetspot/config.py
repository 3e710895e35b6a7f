import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

# Load .env from project root
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

PLACEHOLDER_API_KEY = "your_api_key_here"


def _env_list(name: str, default: str) -> Tuple[str, ...]:
    raw = os.getenv(name, default)
    return tuple(item.strip().lower() for item in raw.split(",") if item.strip())


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() not in ("0", "false", "no", "off")


def maps_api_key() -> Optional[str]:
    """Return the Google Maps key, or None when unset or left at the placeholder"""
    key = os.getenv("GOOGLE_MAPS_API_KEY")
    if not key or key == PLACEHOLDER_API_KEY:
        return None
    return key


@dataclass(frozen=True)
class LLMConfig:
    api_key: str = field(default_factory=lambda: os.getenv("GROQ_API_KEY", ""))
    model: str = field(default_factory=lambda: os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile"))
    timeout: float = field(default_factory=lambda: float(os.getenv("LLM_TIMEOUT_SECONDS", "10")))
    max_tokens: int = 2048
    enabled: bool = field(default_factory=lambda: _env_bool("LLM_ENABLED", "true"))


@dataclass(frozen=True)
class SearchSettings:
    default_radius_m: int = field(default_factory=lambda: int(os.getenv("DEFAULT_SEARCH_RADIUS_M", "5000")))
    default_min_rating: float = field(default_factory=lambda: float(os.getenv("DEFAULT_MIN_RATING", "4.0")))
    # Ordered preference: cafe is a closer substitute for a restaurant than a bar
    fallback_sequence: Tuple[str, ...] = field(
        default_factory=lambda: _env_list("VENUE_FALLBACK_SEQUENCE", "restaurant,cafe,bar")
    )
    scoring_timeout: float = field(default_factory=lambda: float(os.getenv("SCORING_TIMEOUT_SECONDS", "15")))
    max_place_results: int = field(default_factory=lambda: int(os.getenv("MAX_PLACE_RESULTS", "20")))


DEFAULT_LLM_CONFIG = LLMConfig()
DEFAULT_SEARCH_SETTINGS = SearchSettings()
