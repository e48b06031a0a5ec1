# farmbid/main.py
import asyncio
import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from farmbid.api import auction, bid, notification, order, websocket
from farmbid.core.config import settings
from farmbid.core.database import engine, pool_config
from farmbid.core.exceptions import FarmBidError
from farmbid.core.redis import redis_client
from farmbid.tasks.auction_monitor import auction_monitor_task
from farmbid.tasks.event_relay import event_relay_task

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup and shutdown events for FastAPI application.
    """
    # Connect to Redis on startup
    try:
        await redis_client.connect()
        logger.info("Redis connected")
    except Exception as e:
        logger.warning(f"Redis connection failed: {e}")

    monitor_task = asyncio.create_task(auction_monitor_task())
    relay_task = asyncio.create_task(event_relay_task())
    logger.info("Application started")

    yield

    # Cancel background tasks
    for task in (monitor_task, relay_task):
        task.cancel()
    for task in (monitor_task, relay_task):
        try:
            await task
        except asyncio.CancelledError:
            pass
    logger.info("Background tasks stopped")

    # Disconnect from Redis on shutdown
    try:
        await redis_client.disconnect()
        logger.info("Redis disconnected")
    except Exception as e:
        logger.warning(f"Redis disconnect failed: {e}")

    await engine.dispose()
    logger.info("Application shutdown")


app = FastAPI(
    title=f"{settings.APP_NAME} API",
    description="Agricultural produce auctions with a realtime bidding feed",
    version=settings.APP_VERSION,
    lifespan=lifespan,
    debug=settings.DEBUG,
)

# CORS middleware (allow frontend to connect)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Include API routers
app.include_router(auction.router, prefix="/api", tags=["Auctions"])
app.include_router(bid.router, prefix="/api", tags=["Bidding"])
app.include_router(order.router, prefix="/api", tags=["Orders"])
app.include_router(notification.router, prefix="/api", tags=["Notifications"])
app.include_router(websocket.router, tags=["WebSocket"])


# Global exception handlers
@app.exception_handler(FarmBidError)
async def farmbid_exception_handler(request: Request, exc: FarmBidError):
    """Map domain errors to their HTTP status"""
    logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "type": type(exc).__name__},
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    return [
        {key: value for key, value in error.items() if key in ("loc", "msg", "type")}
        for error in exc.errors()
    ]


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request validation errors with detailed info"""
    logger.warning(f"Validation error: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "detail": jsonable_errors(exc),
            "type": "RequestValidationError",
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch-all exception handler to log and return detailed errors"""
    logger.error(f"Unhandled exception: {exc}")
    logger.error(f"Request: {request.method} {request.url}")
    logger.error(f"Traceback: {traceback.format_exc()}")

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": str(exc) if app.debug else "Internal server error",
            "type": type(exc).__name__,
            "traceback": traceback.format_exc().split("\n") if app.debug else None,
        },
    )


@app.get("/")
async def root():
    """Root endpoint - health check"""
    return {
        "message": f"{settings.APP_NAME} API",
        "status": "running",
        "version": settings.APP_VERSION,
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "redis": await redis_client.ping()}


@app.get("/metrics/pool")
async def pool_metrics():
    """
    Monitor connection pool status.
    Useful for debugging connection pool exhaustion during load tests.
    """
    pool = engine.pool
    capacity = pool_config["pool_size"] + pool_config["max_overflow"]

    return {
        "pool_size": pool.size(),
        "checked_in_connections": pool.checkedin(),
        "checked_out_connections": pool.checkedout(),
        "overflow_connections": pool.overflow(),
        "capacity": capacity,
        "status": "healthy" if pool.checkedout() < capacity else "exhausted",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("farmbid.main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
