import uvicorn
import logging
from attendance_engine.main import app # Import the FastAPI app instance from attendance_engine.main
from attendance_engine.core.config import ServerConfig

# Configure logging for the main entry point
log_level = getattr(logging, ServerConfig.LOG_LEVEL.upper())
logging.basicConfig(level=log_level)
logger = logging.getLogger(__name__)

if __name__ == "__main__":
    logger.info(f"Starting HTTP server on {ServerConfig.HOST}:{ServerConfig.PORT}...")
    logger.info(f"API Documentation: http://localhost:{ServerConfig.PORT}/docs")
    if ServerConfig.HOST not in ("127.0.0.1", "localhost") and not ServerConfig.ENGINE_SECRET:
        logger.warning("Listening beyond localhost without ENGINE_SECRET set")

    # One engine per process; the session state lives in memory
    uvicorn.run(
        app,
        host=ServerConfig.HOST,
        port=ServerConfig.PORT,
        log_level=ServerConfig.LOG_LEVEL.lower(),
    )
