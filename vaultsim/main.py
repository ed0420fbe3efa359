"""
VaultSim - Vault transaction simulation service
Main FastAPI application entry point
"""

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
import structlog
import uvicorn

from vaultsim.core.config import settings
from vaultsim.core.error_handling import SimulationError, get_error_tracker
from vaultsim.core.logging import configure_logging
from vaultsim.core.response import simulation_error_response, status_code_for
from vaultsim.api.v1 import simulation
from vaultsim.adapters.simulation_backend import get_simulation_backend
from vaultsim.adapters.zapper import get_zapper_adapter

# Configure structured logging
configure_logging()
logger = structlog.get_logger()

# Create FastAPI application
app = FastAPI(
    title="VaultSim API",
    description="Pre-flight simulation of vault deposits and withdrawals",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT == "development" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT == "development" else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Simulation router - deposit and withdraw pre-flight checks
app.include_router(simulation.router, prefix="/api/v1/simulation", tags=["simulation"])


@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    logger.info("VaultSim API started successfully",
                environment=settings.ENVIRONMENT,
                network_id=settings.SIMULATION_NETWORK_ID)


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    try:
        logger.info("Application shutdown initiated")

        await get_simulation_backend().close()
        await get_zapper_adapter().close()

        logger.info("Application shutdown completed")

    except Exception as e:
        logger.error("Error during application shutdown", error=str(e))


@app.get("/")
async def root():
    """Health check endpoint"""
    return {"message": "VaultSim API is running", "version": "1.0.0"}


@app.get("/health")
async def health_check():
    """Detailed health check endpoint"""
    error_summary = await get_error_tracker().get_error_summary(hours=1)

    return {
        "status": "healthy",
        "environment": settings.ENVIRONMENT,
        "version": "1.0.0",
        "errors_last_hour": error_summary["total_errors"],
    }


@app.exception_handler(SimulationError)
async def simulation_exception_handler(request, exc):
    """Typed simulation failures escaping a route"""
    logger.error("Simulation error", kind=exc.kind.value, error=exc.message)
    return JSONResponse(status_code=status_code_for(exc), content=simulation_error_response(exc))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request, exc):
    """Malformed simulation requests"""
    logger.warning("Request validation failed", errors=len(exc.errors()))
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": "Invalid request",
            "details": jsonable_encoder(exc.errors()),
            "code": 400
        }
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc):
    """Global HTTP exception handler"""
    logger.error("HTTP exception", status_code=exc.status_code, detail=exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.detail,
            "code": exc.status_code
        }
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc):
    """Global exception handler"""
    logger.error("Unhandled exception", exception=str(exc), type=type(exc).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal server error",
            "code": 500
        }
    )


if __name__ == "__main__":
    uvicorn.run(
        "vaultsim.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=True if settings.ENVIRONMENT == "development" else False,
        log_config=None  # Use our custom logging config
    )
