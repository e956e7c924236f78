import logging
from datetime import datetime
from typing import Callable, Optional

from attendance_engine.core.config import AttendanceConfig
from attendance_engine.core.errors import LocationUnavailableError
from attendance_engine.models.attendance import LocationFix

logger = logging.getLogger(__name__)

class LocationProvider:
    """Capability that returns the device position or raises LocationUnavailableError"""

    def get_location(self) -> LocationFix:
        raise NotImplementedError

class StaticLocationProvider(LocationProvider):
    """Fixed position, for kiosks mounted at the work location"""

    def __init__(self, latitude: Optional[float], longitude: Optional[float], accuracy: Optional[float] = None,
                 clock: Callable[[], datetime] = datetime.now):
        self.latitude = latitude
        self.longitude = longitude
        self.accuracy = accuracy
        self._clock = clock

    def get_location(self) -> LocationFix:
        if self.latitude is None or self.longitude is None:
            raise LocationUnavailableError("No static position configured", "GPS_UNAVAILABLE")
        return LocationFix(latitude=self.latitude, longitude=self.longitude,
                           accuracy=self.accuracy, timestamp=self._clock())

def provider_from_config() -> LocationProvider:
    return StaticLocationProvider(
        AttendanceConfig.STATIC_LATITUDE,
        AttendanceConfig.STATIC_LONGITUDE,
        AttendanceConfig.STATIC_ACCURACY,
    )

def resolve_fix(latitude: Optional[float], longitude: Optional[float], accuracy: Optional[float],
                provider: Optional[LocationProvider]) -> Optional[LocationFix]:
    """Coordinates from the caller win; otherwise ask the provider. None when neither has a position"""
    if latitude is not None and longitude is not None:
        return LocationFix(latitude=latitude, longitude=longitude, accuracy=accuracy)
    if provider is None:
        return None
    try:
        return provider.get_location()
    except LocationUnavailableError as e:
        logger.warning(f"Location provider unavailable: {e}")
        return None
