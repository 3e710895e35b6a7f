from flask import Flask, Response, request, jsonify, g
from flask_cors import CORS
from pydantic import ValidationError
import concurrent.futures
import os
import logging
import json
from time import perf_counter

from .config import DEFAULT_LLM_CONFIG, DEFAULT_SEARCH_SETTINGS, maps_api_key
from .errors import InvalidInput, MeetspotError, ServiceNotConfigured
from .maps_service import GoogleMapsService
from .models import Coordinate, CreatePlanRequest, PlanUpdate, VenueSearchRequest
from .planner import PlanService
from .preferences import build_preference_engine
from .storage import MemoryStorage
from .venue_pipeline import VenueSearchPipeline

# Configure logging
logging.basicConfig(
    level=os.getenv('LOG_LEVEL', 'INFO').upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(os.getenv('LOG_FILE', 'app.log')),
        logging.StreamHandler()
    ]
)
logger = logging.getLogger(__name__)

app = Flask(__name__)
CORS(app)  # Enable CORS for all routes


# Per-request timing: record start time and log duration on completion
@app.before_request
def _start_timer():
    g._start_time = perf_counter()


@app.after_request
def _log_request_duration(response):
    start = getattr(g, '_start_time', None)
    if start is not None:
        duration_ms = (perf_counter() - start) * 1000.0
        # Include response time header for easy debugging/measurement
        response.headers['X-Process-Time-ms'] = f"{duration_ms:.1f}"
        logger.info(
            "request completed: method=%s path=%s status=%s duration_ms=%.1f remote_addr=%s",
            request.method,
            request.full_path if request.query_string else request.path,
            response.status_code,
            duration_ms,
            request.remote_addr,
        )
    return response


@app.teardown_request
def _teardown_request_log(error=None):
    # If an unhandled exception occurred, ensure we still log duration
    if error is not None:
        start = getattr(g, '_start_time', None)
        duration_ms = (perf_counter() - start) * 1000.0 if start is not None else None
        logger.error(
            "request error: method=%s path=%s duration_ms=%s error=%s",
            request.method,
            request.full_path if request.query_string else request.path,
            f"{duration_ms:.1f}" if duration_ms is not None else 'unknown',
            repr(error),
        )


# Initialize services
api_key = maps_api_key()
logger.info(f"API Key found: {'Yes' if api_key else 'No'}")

storage = MemoryStorage()
preference_engine = build_preference_engine(DEFAULT_LLM_CONFIG)
executor = concurrent.futures.ThreadPoolExecutor(max_workers=10)

if not api_key:
    logger.warning("GOOGLE_MAPS_API_KEY not found or not configured in environment variables")
    maps_service = None
else:
    try:
        logger.info("Initializing Google Maps service...")
        maps_service = GoogleMapsService(api_key, max_results=DEFAULT_SEARCH_SETTINGS.max_place_results)
        logger.info("Google Maps service initialized successfully")
    except ValueError as e:
        logger.error(f"Error initializing Google Maps service: {e}")
        maps_service = None

# Plans and the venue cache work without a key; geocoding and search need one
plan_service = PlanService(maps_service, storage, preference_engine, executor=executor)
venue_pipeline = VenueSearchPipeline(
    maps_service,
    storage,
    analyzer=preference_engine,
    scorer=preference_engine,
    settings=DEFAULT_SEARCH_SETTINGS,
    executor=executor,
)


def _require(service):
    if service is None:
        raise ServiceNotConfigured('Google Maps API key not configured')
    return service


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        if request.get_data():
            raise InvalidInput('Malformed JSON body')
        raise InvalidInput('JSON data is required')
    if not isinstance(data, dict):
        raise InvalidInput('JSON object expected')
    return data


def _success(data, status: int = 200):
    return jsonify({'success': True, 'data': data}), status


@app.errorhandler(MeetspotError)
def handle_meetspot_error(error: MeetspotError):
    if error.status_code >= 500:
        logger.error("%s: %s", type(error).__name__, error.message)
    else:
        logger.warning("%s: %s", type(error).__name__, error.message)
    return jsonify({'success': False, 'error': error.message}), error.status_code


@app.errorhandler(ValidationError)
def handle_validation_error(error: ValidationError):
    logger.warning("Request validation failed: %s", error)
    details = [
        {'field': '.'.join(str(part) for part in e['loc']), 'message': e['msg']}
        for e in error.errors()
    ]
    return jsonify({'success': False, 'error': 'Invalid request', 'details': details}), 400


@app.route('/', methods=['GET'])
def health_check():
    """Health check endpoint"""
    return jsonify({
        'message': 'Meetspot API is running!',
        'endpoints': {
            'plans': '/api/plans',
            'plan': '/api/plans/<plan_id>',
            'itinerary': '/api/plans/<plan_id>/itinerary/<venue_id>',
            'venue_search': '/api/plans/<plan_id>/venues',
            'venues': '/api/venues?ids=<id>,<id>',
            'geocode': '/api/geocode',
            'autocomplete': '/api/places/autocomplete',
            'reverse_geocode': '/api/places/reverse-geocode',
            'photo': '/api/places/photo?ref=<photo_reference>',
            'health': '/'
        },
        'maps_configured': maps_service is not None,
        'status': 'healthy'
    })


@app.route('/api/plans', methods=['POST'])
def create_plan():
    """
    Create a meeting plan
    Expected JSON: {
        "participants": [{"id": "a", "location": "Times Square, New York, NY"}, ...],
        "title": "Friday dinner",  // optional
        "filters": {"venue_types": ["restaurant"], "min_rating": 4.0},  // optional
        "preferences": {"natural_language_query": "quiet vegan spot"}  // optional
    }
    """
    logger.info("=== CREATE PLAN REQUEST ===")
    _require(maps_service)
    data = _json_body()
    logger.info(f"Create plan request data: {json.dumps(data)}")

    plan_request = CreatePlanRequest.model_validate(data)
    plan = plan_service.create_plan(plan_request)
    logger.info(f"Plan {plan.id} created with midpoint lat={plan.midpoint.lat}, lng={plan.midpoint.lng}")
    return _success(plan.model_dump(mode='json'), 201)


@app.route('/api/plans/<plan_id>', methods=['GET'])
def get_plan(plan_id):
    plan = plan_service.get_plan(plan_id)
    return _success(plan.model_dump(mode='json'))


@app.route('/api/plans/<plan_id>', methods=['PATCH'])
def update_plan(plan_id):
    """
    Update a plan's title, filters, preferences or selected venues.
    Participants and midpoint are fixed; edit them by creating a new plan.
    """
    update = PlanUpdate.model_validate(_json_body())
    plan = plan_service.update_plan(plan_id, update)
    return _success(plan.model_dump(mode='json'))


@app.route('/api/plans/<plan_id>/itinerary/<venue_id>', methods=['PUT'])
def add_to_itinerary(plan_id, venue_id):
    plan = plan_service.select_venue(plan_id, venue_id)
    return _success(plan.model_dump(mode='json'))


@app.route('/api/plans/<plan_id>/itinerary/<venue_id>', methods=['DELETE'])
def remove_from_itinerary(plan_id, venue_id):
    plan = plan_service.deselect_venue(plan_id, venue_id)
    return _success(plan.model_dump(mode='json'))


@app.route('/api/plans/<plan_id>/venues', methods=['POST'])
def search_venues(plan_id):
    """
    Search venues near a plan's midpoint
    Expected JSON (all optional): {
        "radius": 5000,
        "type": "restaurant",
        "min_rating": 4.0,  // null disables the rating filter
        "price_levels": [1, 2]
    }
    """
    logger.info("=== VENUE SEARCH REQUEST ===")
    _require(maps_service)
    plan = plan_service.get_plan(plan_id)
    # Empty body means "use the plan's filters"
    data = _json_body() if request.get_data() else {}
    search_request = VenueSearchRequest.model_validate(data)

    _search_start = perf_counter()
    result = venue_pipeline.search(plan, search_request)
    _compute_ms = (perf_counter() - _search_start) * 1000.0
    logger.info(
        "Venue search for plan %s returned %d venues (type=%s, fallback=%s) in %.1f ms",
        plan_id, len(result.venues), result.venue_type, result.fallback_applied, _compute_ms,
    )

    response = jsonify({'success': True, 'data': result.model_dump(mode='json')})
    response.headers['X-Compute-Time-ms'] = f"{_compute_ms:.1f}"
    return response


@app.route('/api/venues', methods=['GET'])
def get_venues():
    """Cached venues by id, e.g. /api/venues?ids=abc,def"""
    ids = [v for v in request.args.get('ids', '').split(',') if v]
    venues = storage.get_venues(ids)
    return _success([v.model_dump(mode='json') for v in venues])


@app.route('/api/geocode', methods=['POST'])
def geocode_address():
    """
    Geocode a single address
    Expected JSON: {"address": "123 Main St, City, State"}
    """
    logger.info("=== GEOCODE REQUEST ===")
    service = _require(maps_service)
    data = _json_body()

    address = data.get('address')
    if not address:
        raise InvalidInput('Address is required')

    logger.info(f"Attempting to geocode address: '{address}'")
    coordinates = service.geocode_address(address)
    logger.info(f"Geocoding successful - lat: {coordinates.lat}, lng: {coordinates.lng}")
    return _success({'coordinates': coordinates.model_dump()})


@app.route('/api/places/autocomplete', methods=['POST'])
def autocomplete():
    service = _require(maps_service)
    data = _json_body()
    text = data.get('input') or ''
    if len(text) < 3:
        return _success({'predictions': []})
    return _success({'predictions': service.autocomplete(text)})


@app.route('/api/places/reverse-geocode', methods=['POST'])
def reverse_geocode():
    service = _require(maps_service)
    data = _json_body()
    try:
        coordinate = Coordinate(lat=float(data.get('lat')), lng=float(data.get('lng')))
    except (TypeError, ValueError):
        raise InvalidInput('Valid latitude and longitude required')
    return _success({'address': service.reverse_geocode(coordinate)})


@app.route('/api/places/photo', methods=['GET'])
def place_photo():
    """Photo proxy so the API key never reaches the browser"""
    service = _require(maps_service)
    ref = request.args.get('ref')
    if not ref:
        raise InvalidInput('Photo reference required')
    chunks = service.get_photo(ref)
    return Response(chunks, mimetype='image/jpeg', headers={'Cache-Control': 'public, max-age=86400'})


@app.errorhandler(404)
def not_found(error):
    return jsonify({'success': False, 'error': 'Endpoint not found'}), 404


@app.errorhandler(500)
def internal_error(error):
    return jsonify({'success': False, 'error': 'Internal server error'}), 500


if __name__ == '__main__':
    if not api_key:
        print("\n" + "="*50)
        print("SETUP REQUIRED:")
        print("="*50)
        print("1. Get a Google Maps API key from: https://console.cloud.google.com/")
        print("2. Enable the following APIs:")
        print("   - Geocoding API")
        print("   - Places API")
        print("3. Set GOOGLE_MAPS_API_KEY in the .env file")
        print("4. Optionally set GROQ_API_KEY for preference-based ranking")
        print("5. Restart the app")
        print("="*50)
        print("API will start but most features will be disabled without a valid key\n")

    app.run(host='0.0.0.0', port=5001, debug=True)
