import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from attendance_engine.core.config import AttendanceConfig, BackendConfig, ServerConfig
from attendance_engine.api.endpoints import general, attendance, metrics
from attendance_engine.services.engine import AttendanceEngine

# Configure logging
log_level = getattr(logging, ServerConfig.LOG_LEVEL.upper())
logging.basicConfig(level=log_level)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup logic
    logger.info("=" * 60)
    logger.info(f"{ServerConfig.APP_NAME.upper()}")
    logger.info(f"Version: {ServerConfig.APP_VERSION}")
    logger.info("=" * 60)

    engine = getattr(app.state, "engine", None) or AttendanceEngine()
    app.state.engine = engine

    logger.info(f"Backend: {BackendConfig.BASE_URL}")
    logger.info(f"Check-in buffer: {AttendanceConfig.CHECKIN_BEFORE_SHIFT_MINUTES} min, late after {AttendanceConfig.LATE_TOLERANCE_MINUTES} min")
    if AttendanceConfig.MAX_GPS_ACCURACY_METERS > 0:
        logger.info(f"GPS accuracy gate: {AttendanceConfig.MAX_GPS_ACCURACY_METERS}m")
    else:
        logger.warning("GPS accuracy gate is DISABLED")

    if ServerConfig.START_SCHEDULER:
        engine.start()
    else:
        logger.warning("Background refresh is DISABLED, state only changes on request")

    logger.info("=" * 60)
    logger.info("Attendance Engine started successfully!")

    yield  # Server is running

    # Shutdown logic
    logger.info("Shutting down Attendance Engine...")
    engine.close()


app = FastAPI(
    title=ServerConfig.APP_NAME,
    version=ServerConfig.APP_VERSION,
    description=ServerConfig.APP_DESCRIPTION,
    lifespan=lifespan,
    docs_url="/docs" if ServerConfig.ENABLE_API_DOCS else None,
    redoc_url="/redoc" if ServerConfig.ENABLE_API_DOCS else None,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=ServerConfig.CORS_ORIGINS,
    allow_credentials=ServerConfig.CORS_ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(general.router, tags=["General"])
app.include_router(attendance.router, tags=["Attendance"])
app.include_router(metrics.router, tags=["Metrics"])
