"""
QR Payments Backend - FastAPI Application

Backend server for QRPH payment transactions at the point of sale:
payload generation, status polling, gateway confirmation and cancellation.
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from .config import settings
from .exceptions import QRPaymentError
from .db.init_db import initialize_database
from .services.scheduler import start_scheduler, shutdown_scheduler
from .mocks.payment_gateway import mock_gateway
from .api.qr_payments import router as qr_payments_router


# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    - Startup: Initialize database, start the optional expiry sweep
    - Shutdown: Stop the scheduler
    """
    logger.info("Starting QR payments backend server...")
    logger.info(f"Demo mode: {settings.demo_mode}")

    try:
        initialize_database()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise

    try:
        start_scheduler()
    except Exception as e:
        logger.error(f"Failed to start scheduler: {e}")
        if not settings.demo_mode:
            raise
        logger.warning("Continuing without expiry sweep in demo mode")

    logger.info("Server startup complete")

    yield

    logger.info("Shutting down QR payments backend server...")

    try:
        shutdown_scheduler(wait=True)
    except Exception as e:
        logger.error(f"Error during scheduler shutdown: {e}")


app = FastAPI(
    title="QR Payments API",
    description="QRPH payment transactions for the point of sale",
    version=VERSION,
    lifespan=lifespan,
)


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(QRPaymentError)
async def qr_payment_error_handler(request: Request, exc: QRPaymentError):
    """
    Render lifecycle errors with their own HTTP status.

    Not found and not-pending answer 404, expired and validation 400,
    bad webhook signatures 401.
    """
    logger.warning(
        f"QR payment error: {exc.error_code} - {exc.message}",
        extra={"details": exc.details}
    )

    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    """Input validation failures not caught by Pydantic."""
    logger.warning(f"Validation error: {str(exc)}")

    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": str(exc),
            "error_code": "validation_error",
            "details": {}
        }
    )


@app.exception_handler(Exception)
async def general_error_handler(request: Request, exc: Exception):
    """
    Catch-all handler for unexpected errors.

    Logs full exception for debugging but returns generic message to client.
    """
    logger.error(f"Unexpected error: {str(exc)}", exc_info=True)

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "An unexpected error occurred",
            "error_code": "internal_error",
            "details": {"error_type": type(exc).__name__} if settings.demo_mode else {}
        }
    )


@app.get("/api/health")
async def health_check():
    """Health check endpoint for monitoring and load balancers."""
    health = {
        "status": "healthy",
        "version": VERSION,
        "demo_mode": settings.demo_mode,
        "expiry_sweep_enabled": settings.expiry_sweep_enabled,
    }
    if settings.demo_mode:
        health["gateway"] = mock_gateway.get_status()
    return health


app.include_router(qr_payments_router, prefix="/api/qr-payments", tags=["QR Payments"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "qrpay.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.demo_mode,
        log_level=settings.log_level.lower()
    )
