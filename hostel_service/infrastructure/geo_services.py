"""
Geocoding and routing clients (best effort)
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from ..config import settings
from ..domain.models import GeoPoint
from ..geo import format_distance

logger = logging.getLogger(__name__)

GEOCODE_SUFFIX = ", University of Cape Coast, Ghana"


@dataclass(frozen=True)
class Place:
    name: str
    latitude: float
    longitude: float
    type: Optional[str] = None


@dataclass(frozen=True)
class Route:
    distance_m: float
    duration_s: float
    geometry: Dict[str, Any]

    @property
    def distance_text(self) -> str:
        return format_distance(self.distance_m / 1000)

    @property
    def duration_text(self) -> str:
        minutes = round(self.duration_s / 60)
        if minutes < 60:
            return f"{minutes} min"
        return f"{minutes // 60} hr {minutes % 60} min"


class GeoServicesClient:
    """HTTP client for the geocoder and router"""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = httpx.Timeout(10.0, connect=5.0)
        self.transport = transport
        self.client: Optional[httpx.AsyncClient] = None

    async def start(self):
        self.client = httpx.AsyncClient(
            timeout=self.timeout,
            transport=self.transport,
            headers={"User-Agent": settings.GEO_USER_AGENT},
        )
        logger.info("Geo services client initialized")

    async def stop(self):
        if self.client:
            await self.client.aclose()
            self.client = None
            logger.info("Geo services client closed")

    async def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Optional[Any]:
        if not self.client:
            logger.error("Geo services client not initialized")
            return None
        try:
            response = await self.client.get(url, params=params)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error {e.response.status_code} for {url}: {e}")
            return None
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Request failed for {url}: {e}")
            return None

    async def geocode(self, query: str) -> List[Place]:
        """Places matching ``query`` near campus; empty on failure"""
        if not query.strip():
            return []
        data = await self._get_json(
            f"{settings.GEOCODER_URL}/search",
            params={"format": "json", "q": query + GEOCODE_SUFFIX},
        )
        places = []
        for item in data or []:
            try:
                places.append(Place(
                    name=item["display_name"].split(",")[0],
                    latitude=float(item["lat"]),
                    longitude=float(item["lon"]),
                    type=item.get("type"),
                ))
            except (KeyError, TypeError, ValueError):
                continue
        return places

    async def route(self, start: GeoPoint, end: GeoPoint) -> Optional[Route]:
        """Driving route between two points; None when unavailable"""
        coordinates = f"{start.longitude},{start.latitude};{end.longitude},{end.latitude}"
        data = await self._get_json(
            f"{settings.ROUTER_URL}/route/v1/driving/{coordinates}",
            params={"overview": "full", "geometries": "geojson"},
        )
        if not data or data.get("code") != "Ok" or not data.get("routes"):
            return None
        best = data["routes"][0]
        return Route(
            distance_m=float(best["distance"]),
            duration_s=float(best["duration"]),
            geometry=best.get("geometry") or {},
        )
