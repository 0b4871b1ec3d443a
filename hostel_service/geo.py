"""
Geospatial utilities: distances, bounds and campus areas
"""
import math
from dataclasses import dataclass, replace
from typing import Iterable, List, Optional, Sequence, Tuple

from .domain.models import GeoPoint, Hostel

EARTH_RADIUS_KM = 6371.0

DEFAULT_MAP_CENTER = GeoPoint(5.1167, -1.2833)
DEFAULT_MAP_ZOOM = 15
MIN_ZOOM = 12
MAX_ZOOM = 19
BOUNDS_PADDING = 0.1


@dataclass(frozen=True)
class Bounds:
    north: float
    south: float
    east: float
    west: float


@dataclass(frozen=True)
class CampusArea:
    name: str
    latitude: float
    longitude: float
    radius_km: float


# Named reference points around campus
CAMPUS_LOCATIONS = {
    "science": GeoPoint(5.1167, -1.2833),
    "north-campus": GeoPoint(5.1200, -1.2800),
    "south-campus": GeoPoint(5.1130, -1.2860),
    "atlantic-hall": GeoPoint(5.1150, -1.2850),
    "african-hall": GeoPoint(5.1170, -1.2820),
    "casford": GeoPoint(5.1180, -1.2810),
    "valco": GeoPoint(5.1140, -1.2840),
    "business-school": GeoPoint(5.1160, -1.2825),
    "medical-school": GeoPoint(5.1190, -1.2780),
    "main-gate": GeoPoint(5.1155, -1.2835),
}

# Checked in order; the first area whose radius covers the point wins
CAMPUS_AREAS = (
    CampusArea("Science", 5.1167, -1.2833, 0.5),
    CampusArea("North Campus", 5.1200, -1.2800, 0.5),
    CampusArea("South Campus", 5.1130, -1.2860, 0.5),
    CampusArea("Atlantic Hall", 5.1150, -1.2850, 0.3),
    CampusArea("African Hall", 5.1170, -1.2820, 0.3),
)

OFF_CAMPUS = "Off Campus"


def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in km (haversine)"""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def distance_between(a: GeoPoint, b: GeoPoint) -> float:
    return calculate_distance(a.latitude, a.longitude, b.latitude, b.longitude)


def is_within_bounds(latitude: float, longitude: float, bounds: Bounds) -> bool:
    """Inclusive on every edge"""
    return (
        bounds.south <= latitude <= bounds.north
        and bounds.west <= longitude <= bounds.east
    )


def calculate_bounds(points: Sequence[Tuple[float, float]]) -> Optional[Bounds]:
    """
    Smallest box containing ``points`` (lat, lng), padded on each side by
    10% of its span. None for no points.
    """
    if not points:
        return None
    lats = [p[0] for p in points]
    lngs = [p[1] for p in points]
    north, south, east, west = max(lats), min(lats), max(lngs), min(lngs)
    lat_padding = (north - south) * BOUNDS_PADDING
    lng_padding = (east - west) * BOUNDS_PADDING
    return Bounds(
        north=north + lat_padding,
        south=south - lat_padding,
        east=east + lng_padding,
        west=west - lng_padding,
    )


def format_distance(distance_km: float) -> str:
    """Meters below 1 km (rounded half up), otherwise km to one decimal"""
    if distance_km < 1:
        return f"{math.floor(distance_km * 1000 + 0.5)} m"
    return f"{distance_km:.1f} km"


def location_name(latitude: float, longitude: float) -> str:
    for area in CAMPUS_AREAS:
        if calculate_distance(latitude, longitude, area.latitude, area.longitude) <= area.radius_km:
            return area.name
    return OFF_CAMPUS


def with_distances(hostels: Iterable[Hostel], origin: GeoPoint) -> List[Hostel]:
    """Copies of ``hostels`` carrying their distance from ``origin``"""
    return [replace(h, distance=distance_between(origin, h.coordinates)) for h in hostels]


def nearby(hostels: Iterable[Hostel], origin: GeoPoint, radius_km: float) -> List[Hostel]:
    """Hostels within ``radius_km`` of ``origin``, nearest first"""
    annotated = [h for h in with_distances(hostels, origin) if h.distance <= radius_km]
    annotated.sort(key=lambda h: h.distance)
    return annotated


def hostel_bounds(hostels: Iterable[Hostel]) -> Optional[Bounds]:
    return calculate_bounds([(h.coordinates.latitude, h.coordinates.longitude) for h in hostels])
