from fastapi import HTTPException, Request
import logging
from attendance_engine.core.config import ServerConfig

logger = logging.getLogger(__name__)

async def require_localhost(request: Request):
    """Require request to come from localhost"""
    client_host = request.client.host if request.client else None
    if client_host not in ["127.0.0.1", "::1", "localhost"]:
        logger.warning(f"Control endpoint access denied from {client_host}")
        raise HTTPException(status_code=403, detail="Control endpoints only accessible from localhost")
    return True

async def require_engine_secret(request: Request):
    """Require engine secret in header when one is configured"""
    if not ServerConfig.ENGINE_SECRET:
        return True
    engine_secret = request.headers.get("X-Engine-Secret")
    if engine_secret != ServerConfig.ENGINE_SECRET:
        logger.warning(f"Invalid engine secret from {request.client.host if request.client else 'unknown'}")
        raise HTTPException(status_code=403, detail="Invalid engine credentials")
    return True

async def control_auth(request: Request):
    """Combined authentication for routes that change attendance state"""
    if ServerConfig.LOCALHOST_ONLY_CONTROL:
        await require_localhost(request)
    await require_engine_secret(request)
    return True
