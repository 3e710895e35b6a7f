import googlemaps
from googlemaps.exceptions import ApiError, HTTPError, Timeout, TransportError
from typing import Dict, Iterator, List, Optional
import concurrent.futures
import logging

from .errors import NotFound, UpstreamUnavailable
from .models import Coordinate, Venue

logger = logging.getLogger(__name__)


# --- Module-level constants ---
MAX_PHOTOS_PER_VENUE = 3
PLACE_DETAILS_WORKERS = 5
PLACE_DETAILS_FIELDS = ['formatted_address', 'formatted_phone_number', 'website', 'opening_hours']
PHOTO_MAX_WIDTH = 400

# UI venue type -> Places API type
VENUE_TYPE_MAP = {
    'restaurant': 'restaurant',
    'cafe': 'cafe',
    'bar': 'bar',
    'park': 'park',
    'trail': 'park',
    'museum': 'museum',
    'entertainment': 'amusement_park',
}

# Places API type -> display category, checked in the order the provider lists types
CATEGORY_MAP = {
    'restaurant': 'Restaurant',
    'food': 'Restaurant',
    'cafe': 'Café',
    'bar': 'Bar',
    'night_club': 'Bar',
    'park': 'Park',
    'amusement_park': 'Entertainment',
    'museum': 'Museum',
    'tourist_attraction': 'Attraction',
    'shopping_mall': 'Shopping',
    'store': 'Shopping',
}

PROVIDER_ERRORS = (ApiError, TransportError, HTTPError, Timeout)


def map_venue_type(venue_type: str) -> str:
    return VENUE_TYPE_MAP.get(venue_type.lower(), 'establishment')


def categorize_place(types: List[str]) -> str:
    for place_type in types:
        if place_type in CATEGORY_MAP:
            return CATEGORY_MAP[place_type]
    return 'Other'


def format_coordinate(coordinate: Coordinate) -> str:
    return f"{coordinate.lat:.4f}, {coordinate.lng:.4f}"


class GoogleMapsService:
    """Service for interacting with Google Maps APIs"""

    def __init__(self, api_key: str, max_results: int = 20):
        if not api_key:
            raise ValueError("Valid Google Maps API key is required")
        self.client = googlemaps.Client(key=api_key)
        self.max_results = max_results

    def geocode_address(self, address: str) -> Coordinate:
        """
        Geocode an address using Google Maps Geocoding API.
        Raises NotFound when the provider has no match.
        """
        try:
            result = self.client.geocode(address)
        except PROVIDER_ERRORS as e:
            logger.error("Geocoding error for '%s': %s", address, e)
            raise UpstreamUnavailable(f"Geocoding provider unavailable: {e}") from e

        if not result:
            raise NotFound(f"No results found for address: {address}")

        location = result[0]['geometry']['location']
        return Coordinate(lat=location['lat'], lng=location['lng'])

    def reverse_geocode(self, coordinate: Coordinate) -> str:
        """
        Formatted address for a coordinate.
        Falls back to the coordinate itself when the provider has nothing.
        """
        try:
            result = self.client.reverse_geocode((coordinate.lat, coordinate.lng))
        except PROVIDER_ERRORS as e:
            logger.warning("Reverse geocoding error, falling back to coordinates: %s", e)
            return format_coordinate(coordinate)

        if not result:
            return format_coordinate(coordinate)
        return result[0]['formatted_address']

    def search_nearby(self, center: Coordinate, radius: int, venue_type: Optional[str] = None) -> List[Venue]:
        """
        Find venues within radius meters of center.

        An empty list means the provider found nothing (ZERO_RESULTS);
        any other failure raises UpstreamUnavailable.
        """
        params = {
            'location': (center.lat, center.lng),
            'radius': radius,
        }
        if venue_type:
            params['type'] = map_venue_type(venue_type)

        try:
            places_result = self.client.places_nearby(**params)
        except PROVIDER_ERRORS as e:
            logger.error("Places search error: %s", e)
            raise UpstreamUnavailable(f"Places provider unavailable: {e}") from e

        places = places_result.get('results', [])[:self.max_results]
        if not places:
            logger.info("No places found near %s radius=%s type=%s", format_coordinate(center), radius, venue_type)
            return []

        with concurrent.futures.ThreadPoolExecutor(max_workers=PLACE_DETAILS_WORKERS) as pool:
            details = list(pool.map(self.get_place_details, [p.get('place_id') for p in places]))

        return [self._to_venue(place, extra) for place, extra in zip(places, details)]

    def get_place_details(self, place_id: Optional[str]) -> Dict:
        """Contact details and weekday hours; empty dict on any failure"""
        if not place_id:
            return {}
        try:
            response = self.client.place(place_id, fields=PLACE_DETAILS_FIELDS)
        except PROVIDER_ERRORS as e:
            logger.warning("Place details error for %s: %s", place_id, e)
            return {}

        result = response.get('result') or {}
        details = {}
        if result.get('formatted_address'):
            details['address'] = result['formatted_address']
        if result.get('formatted_phone_number'):
            details['phone_number'] = result['formatted_phone_number']
        if result.get('website'):
            details['website'] = result['website']
        weekday_text = (result.get('opening_hours') or {}).get('weekday_text')
        if weekday_text:
            details['opening_hours'] = weekday_text
        return details

    def _to_venue(self, place: Dict, details: Dict) -> Venue:
        photos = [
            f"/api/places/photo?ref={photo['photo_reference']}"
            for photo in place.get('photos', [])[:MAX_PHOTOS_PER_VENUE]
            if photo.get('photo_reference')
        ]
        fields = {
            'id': place['place_id'],
            'name': place['name'],
            'category': categorize_place(place.get('types', [])),
            'rating': place.get('rating') or None,
            'review_count': place.get('user_ratings_total'),
            'price_level': place.get('price_level'),
            'address': place.get('vicinity', ''),
            'coordinates': Coordinate(
                lat=place['geometry']['location']['lat'],
                lng=place['geometry']['location']['lng'],
            ),
            'is_open_now': (place.get('opening_hours') or {}).get('open_now'),
            'photos': photos,
        }
        fields.update(details)
        return Venue(**fields)

    def autocomplete(self, text: str) -> List[Dict]:
        """Address suggestions for partial input (top 5)"""
        try:
            predictions = self.client.places_autocomplete(text, types='address')
        except PROVIDER_ERRORS as e:
            logger.error("Places autocomplete error: %s", e)
            raise UpstreamUnavailable(f"Autocomplete provider unavailable: {e}") from e
        return predictions[:5]

    def get_photo(self, photo_reference: str) -> Iterator[bytes]:
        """Raw image chunks for a Places photo reference"""
        try:
            return self.client.places_photo(photo_reference, max_width=PHOTO_MAX_WIDTH)
        except PROVIDER_ERRORS as e:
            logger.error("Places photo error: %s", e)
            raise UpstreamUnavailable(f"Photo provider unavailable: {e}") from e

