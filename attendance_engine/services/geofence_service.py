import logging
import math
from typing import Optional

from attendance_engine.models.attendance import GeofenceResult, LocationFix
from attendance_engine.models.schedule import WorkLocation

logger = logging.getLogger(__name__)

EARTH_RADIUS_M = 6371000

def _as_coordinate(value) -> Optional[float]:
    """Coerce a coordinate to float; None for anything non-finite"""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number

def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate distance between two points using Haversine formula.
    Returns distance in meters.
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)

    a = (math.sin(delta_lat / 2) ** 2 +
         math.cos(lat1_rad) * math.cos(lat2_rad) *
         math.sin(delta_lon / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c

def check_geofence(latitude, longitude, center_latitude, center_longitude, radius_meters) -> GeofenceResult:
    """Distance/radius check that fails closed on invalid input"""
    coords = [_as_coordinate(v) for v in (latitude, longitude, center_latitude, center_longitude)]
    radius = _as_coordinate(radius_meters)

    if any(c is None for c in coords) or radius is None:
        logger.warning(f"Geofence check failed closed on invalid input: ({latitude}, {longitude}) vs ({center_latitude}, {center_longitude}) r={radius_meters}")
        return GeofenceResult(distance_meters=None, within_radius=False)

    distance = haversine_distance(*coords)
    return GeofenceResult(distance_meters=distance, within_radius=distance <= radius)

def validate_work_location(fix: Optional[LocationFix], work_location: Optional[WorkLocation]) -> GeofenceResult:
    """Check a location fix against the assigned work location"""
    if fix is None or work_location is None:
        return GeofenceResult(distance_meters=None, within_radius=False)

    result = check_geofence(
        fix.latitude, fix.longitude,
        work_location.latitude, work_location.longitude,
        work_location.radius_meters
    )
    log_geofence_attempt(fix, work_location, result)
    return result

def is_accuracy_acceptable(fix: Optional[LocationFix], max_accuracy_meters: float) -> bool:
    """GPS accuracy gate; a limit of 0 (or less) disables it"""
    if not max_accuracy_meters or max_accuracy_meters <= 0:
        return True
    if fix is None or fix.accuracy is None:
        return True
    return fix.accuracy <= max_accuracy_meters

def log_geofence_attempt(fix: LocationFix, work_location: WorkLocation, result: GeofenceResult):
    """Log every geofence verification for audit purposes"""
    distance = f"{result.distance_meters:.1f}m" if result.distance_meters is not None else "n/a"
    if result.within_radius:
        logger.info(f"Geofence SUCCESS - Location: {work_location.name} ({work_location.id}), distance {distance} <= {work_location.radius_meters}m")
    else:
        logger.warning(f"Geofence FAILED - Location: {work_location.name} ({work_location.id}), distance {distance} > {work_location.radius_meters}m, accuracy {fix.accuracy}")
