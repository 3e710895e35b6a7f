"""
Meeting-point geometry: midpoint, great-circle distance and a travel-time heuristic.

Pure functions, no I/O.
"""

import math
from typing import Iterable, List, Optional, Sequence

from geopy.point import Point

from .errors import InvalidInput
from .models import Coordinate, Participant, TravelEstimate

EARTH_RADIUS_KM = 6371.0
KM_TO_MILES = 0.621371
# Flat average speed for the travel-time heuristic; no routing involved
AVERAGE_SPEED_MPH = 30


def calculate_midpoint(coordinates: Sequence[Coordinate]) -> Coordinate:
    """
    Calculate the meeting point for a set of coordinates.

    Two points use the plain lat/lng mean, which is adequate at city scale.
    Three or more are averaged as 3D unit vectors and converted back, which
    avoids the antimeridian wraparound and pole distortion of naive averaging.
    Sums use math.fsum so the result does not depend on input order.
    """
    if not coordinates:
        raise InvalidInput("At least one coordinate is required")

    if len(coordinates) == 1:
        return coordinates[0]

    if len(coordinates) == 2:
        a, b = coordinates
        return Coordinate(lat=(a.lat + b.lat) / 2, lng=(a.lng + b.lng) / 2)

    xs: List[float] = []
    ys: List[float] = []
    zs: List[float] = []
    for coord in coordinates:
        lat = math.radians(coord.lat)
        lng = math.radians(coord.lng)
        xs.append(math.cos(lat) * math.cos(lng))
        ys.append(math.cos(lat) * math.sin(lng))
        zs.append(math.sin(lat))

    n = len(coordinates)
    x = math.fsum(xs) / n
    y = math.fsum(ys) / n
    z = math.fsum(zs) / n

    central_lng = math.atan2(y, x)
    central_lat = math.atan2(z, math.sqrt(x * x + y * y))

    return Coordinate(lat=math.degrees(central_lat), lng=math.degrees(central_lng))


def calculate_distance(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance in kilometers (haversine)"""
    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    dlat = lat2 - lat1
    dlng = math.radians(b.lng - a.lng)

    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def estimate_travel_minutes(distance_km: float) -> int:
    """Rough driving time at a flat 30 mph; straight-line distance, not directions"""
    return round(distance_km * KM_TO_MILES / AVERAGE_SPEED_MPH * 60)


def travel_estimates(participants: Iterable[Participant], destination: Coordinate) -> List[TravelEstimate]:
    """Travel estimate from each located participant to destination; unlocated participants are skipped"""
    estimates = []
    for participant in participants:
        if participant.coordinates is None:
            continue
        distance = calculate_distance(participant.coordinates, destination)
        estimates.append(TravelEstimate(
            participant_id=participant.id,
            location=participant.location,
            distance_km=round(distance, 2),
            minutes=estimate_travel_minutes(distance),
        ))
    return estimates


def parse_coordinate(text: str) -> Optional[Coordinate]:
    """
    Interpret a location string that is already a "lat, lng" pair.
    Returns None for anything that reads like an address.
    """
    # Point's own parser skips leading text, so only hand it a bare numeric pair
    parts = [p.strip() for p in text.split(",")]
    if len(parts) != 2:
        return None
    try:
        lat, lng = float(parts[0]), float(parts[1])
    except ValueError:
        return None
    if not -180 <= lng <= 180:
        return None
    try:
        point = Point(lat, lng)
    except ValueError:
        return None
    return Coordinate(lat=point.latitude, lng=point.longitude)
