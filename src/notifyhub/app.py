"""
NotifyHub Application

FastAPI application for the multi-channel notification pipeline.
"""
import logging
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Config
from .errors import AuthorizationError, ConfigurationError, LedgerError, PersistenceError
from .services.engine_service import get_engine_service, init_engine_service
from .routes import (
    health_router,
    auth_router,
    audit_router,
    channels_router,
    triggers_router,
    notifications_router,
    jobs_router,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger("notifyhub.app")

# Suppress noisy loggers
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("asyncpg").setLevel(logging.WARNING)
logging.getLogger("telethon").setLevel(logging.WARNING)

# Create FastAPI application
app = FastAPI(
    title="NotifyHub API",
    description="Multi-channel outbound notifications with audit gate, autopilot and read receipts",
    version="0.1.0"
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup_event():
    """Initialize services on startup"""
    logger.info("Starting NotifyHub...")

    try:
        await init_engine_service()
        logger.info("NotifyHub started successfully")
    except Exception as e:
        logger.error(f"Failed to start NotifyHub: {e}")
        raise


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown"""
    logger.info("Shutting down NotifyHub...")

    try:
        engine = get_engine_service()
        await engine.close()
        logger.info("NotifyHub shutdown complete")
    except Exception as e:
        logger.error(f"Error during shutdown: {e}")


# ============================================
# Error mapping
# ============================================

@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    return JSONResponse(status_code=400, content={"detail": exc.reason, "channel": exc.channel})


@app.exception_handler(AuthorizationError)
async def authorization_error_handler(request: Request, exc: AuthorizationError):
    logger.warning(f"Blocked {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=403, content={"detail": str(exc)})


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError):
    logger.error(f"Store failure on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=503, content={"detail": f"Store unavailable: {exc}"})


# Include routers
app.include_router(health_router, prefix="/api/v1", tags=["health"])
app.include_router(auth_router, prefix="/api/v1", tags=["auth"])
app.include_router(audit_router, prefix="/api/v1", tags=["audit"])
app.include_router(channels_router, prefix="/api/v1", tags=["channels"])
app.include_router(triggers_router, prefix="/api/v1", tags=["triggers"])
app.include_router(notifications_router, prefix="/api/v1", tags=["notifications"])
app.include_router(jobs_router, prefix="/api/v1", tags=["jobs"])


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": "NotifyHub",
        "version": "0.1.0",
        "status": "running"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        app,
        host=Config.API_HOST,
        port=Config.API_PORT
    )
