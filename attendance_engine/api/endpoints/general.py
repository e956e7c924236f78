import logging

from fastapi import APIRouter, Depends, HTTPException

from attendance_engine.api.dependencies import get_engine
from attendance_engine.core.config import AttendanceConfig, BackendConfig, ServerConfig
from attendance_engine.services.engine import AttendanceEngine
from attendance_engine.services.geofence_service import check_geofence

router = APIRouter()
logger = logging.getLogger(__name__)

@router.get("/")
async def root():
    return {
        "message": ServerConfig.APP_NAME,
        "version": ServerConfig.APP_VERSION,
        "description": ServerConfig.APP_DESCRIPTION,
        "status": "running",
        "backend": BackendConfig.BASE_URL,
    }

@router.get("/config")
async def get_public_config():
    """Get public configuration information"""
    return {
        "app_name": ServerConfig.APP_NAME,
        "app_version": ServerConfig.APP_VERSION,
        "checkin_before_shift_minutes": AttendanceConfig.CHECKIN_BEFORE_SHIFT_MINUTES,
        "late_tolerance_minutes": AttendanceConfig.LATE_TOLERANCE_MINUTES,
        "checkout_after_shift_minutes": AttendanceConfig.CHECKOUT_AFTER_SHIFT_MINUTES,
        "max_gps_accuracy_meters": AttendanceConfig.MAX_GPS_ACCURACY_METERS,
        "poll_interval_seconds": AttendanceConfig.POLL_INTERVAL_SECONDS,
        "soft_failure_codes": BackendConfig.SOFT_FAILURE_CODES,
        "debug_endpoints_enabled": ServerConfig.ENABLE_DEBUG_ENDPOINTS,
    }

@router.get("/health")
async def health_check(engine: AttendanceEngine = Depends(get_engine)):
    """Health check with refresh and lock status"""
    state = engine.state()
    return {
        "status": "healthy",
        "scheduler_running": engine.scheduler.running,
        "next_refresh_at": engine.scheduler.next_refresh_time,
        "last_refreshed_at": state.last_refreshed_at,
        "operation_in_flight": engine.lock.holder,
        "work_location_assigned": state.work_location_assigned,
        "schedules_loaded": len(engine.machine.schedules),
    }

@router.get("/debug/geofence")
async def test_geofence(latitude: float, longitude: float, engine: AttendanceEngine = Depends(get_engine)):
    """Test endpoint to check the geofence against the assigned work location"""
    if not ServerConfig.ENABLE_DEBUG_ENDPOINTS:
        raise HTTPException(status_code=404, detail="Debug endpoints disabled")

    work_location = engine.machine.work_location
    if work_location is None:
        raise HTTPException(status_code=404, detail="No work location assigned")

    result = check_geofence(latitude, longitude, work_location.latitude, work_location.longitude,
                            work_location.radius_meters)
    return {
        "latitude": latitude,
        "longitude": longitude,
        "work_location": work_location.name,
        "radius_meters": work_location.radius_meters,
        "distance_meters": result.distance_meters,
        "within_radius": result.within_radius,
    }
