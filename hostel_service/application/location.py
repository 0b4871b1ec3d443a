"""
User geolocation state

Positions and errors are reported by the client (browser or device) and
fed into a LocationTracker per connection.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, Optional

from ..config import settings
from ..domain.models import GeoPoint
from ..errors import GeolocationError, GeolocationErrorKind
from ..geo import distance_between, location_name

logger = logging.getLogger(__name__)


class PermissionState(str, Enum):
    PROMPT = "prompt"
    GRANTED = "granted"
    DENIED = "denied"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class UserLocation:
    latitude: float
    longitude: float
    accuracy: Optional[float] = None
    timestamp: Optional[datetime] = None

    @property
    def point(self) -> GeoPoint:
        return GeoPoint(self.latitude, self.longitude)

    @property
    def area(self) -> str:
        return location_name(self.latitude, self.longitude)


@dataclass(frozen=True)
class LocationUpdate:
    location: UserLocation
    moved: bool  # moved further than the recenter threshold


WatchCallback = Callable[[Optional[LocationUpdate], Optional[GeolocationError]], None]


class WatchHandle:
    """Cancel handle for a location watch"""

    def __init__(self, tracker: "LocationTracker", watch_id: int):
        self._tracker = tracker
        self.watch_id = watch_id

    def cancel(self) -> None:
        self._tracker.clear_watch(self.watch_id)


class LocationTracker:
    """Permission state, last known position and active watches"""

    def __init__(self, move_threshold_km: float = settings.LOCATION_MOVE_THRESHOLD_KM):
        self.move_threshold_km = move_threshold_km
        self.permission = PermissionState.PROMPT
        self.location: Optional[UserLocation] = None
        self.error: Optional[GeolocationError] = None
        self.locating = False
        self._watches: Dict[int, WatchCallback] = {}
        self._next_id = 1

    def request(self) -> None:
        """A position request has been issued to the client"""
        if self.permission == PermissionState.UNSUPPORTED:
            raise GeolocationError(GeolocationErrorKind.UNSUPPORTED)
        self.locating = True
        self.error = None

    def set_supported(self, supported: bool) -> None:
        if not supported:
            self.permission = PermissionState.UNSUPPORTED

    def update_position(
        self,
        latitude: float,
        longitude: float,
        accuracy: Optional[float] = None,
    ) -> LocationUpdate:
        location = UserLocation(latitude, longitude, accuracy, datetime.now(timezone.utc))
        previous = self.location
        moved = previous is None or distance_between(previous.point, location.point) > self.move_threshold_km
        self.location = location
        self.permission = PermissionState.GRANTED
        self.error = None
        self.locating = False
        update = LocationUpdate(location=location, moved=moved)
        for callback in list(self._watches.values()):
            callback(update, None)
        return update

    def report_error(self, code: int) -> GeolocationError:
        """
        Record a positioning failure by its numeric code.

        Only a permission denial changes the persisted permission state;
        unavailable and timeout are transient.
        """
        error = GeolocationError.from_code(code)
        self.error = error
        self.locating = False
        if error.kind == GeolocationErrorKind.PERMISSION_DENIED:
            self.permission = PermissionState.DENIED
        elif error.kind == GeolocationErrorKind.UNSUPPORTED:
            self.permission = PermissionState.UNSUPPORTED
        logger.info(f"Geolocation error: {error.kind.value}")
        for callback in list(self._watches.values()):
            callback(None, error)
        return error

    def watch(self, callback: WatchCallback) -> WatchHandle:
        if self.permission == PermissionState.UNSUPPORTED:
            callback(None, GeolocationError(GeolocationErrorKind.UNSUPPORTED))
            return WatchHandle(self, -1)
        watch_id = self._next_id
        self._next_id += 1
        self._watches[watch_id] = callback
        return WatchHandle(self, watch_id)

    def clear_watch(self, watch_id: int) -> None:
        self._watches.pop(watch_id, None)

    def stop(self) -> None:
        self._watches.clear()

    @property
    def watching(self) -> bool:
        return bool(self._watches)
