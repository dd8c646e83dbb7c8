"""
Quiz Question Ingestion Service - Main application entry point
"""
import time
import logging
from contextlib import asynccontextmanager
from typing import Dict, Any

from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

# Import configuration and dependencies
from config import settings
from database.database import engine, create_tables
from api.dependencies import get_question_service, get_circuit_breaker

# Import API routers
from api.document_controller import router as document_router

# Import error handling and utilities
from utils.error_handlers import (
    ErrorHandlingMiddleware, create_error_response, get_status_code_for_error_code
)
from utils.logging import setup_logging, log_api_request
from utils.exceptions import QuizIngestionException, ErrorCode
from utils.health_check import HealthChecker

logger = logging.getLogger(__name__)

# Global application state
app_state: Dict[str, Any] = {}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager for startup and shutdown events
    """
    setup_logging()

    start_time = time.time()
    app_state["start_time"] = start_time

    logger.info(f"Starting {settings.app_name} v{settings.app_version}...")
    logger.info(f"Environment: {settings.environment}")

    try:
        create_tables(engine)
        logger.info("Database tables ready")

        question_service = get_question_service()
        app_state["question_service"] = question_service
        logger.info(f"Question service initialized (generator: {question_service.generation_client.endpoint})")

        health_checker = HealthChecker(engine=engine, circuit_breaker=get_circuit_breaker())
        app_state["health_checker"] = health_checker

        startup_time = time.time() - start_time
        logger.info(f"{settings.app_name} startup completed in {startup_time:.2f} seconds")

    except Exception as e:
        logger.error(f"Failed to start {settings.app_name}: {e}")
        raise

    yield

    logger.info(f"Shutting down {settings.app_name}...")

    question_service = app_state.get("question_service")
    if question_service is not None:
        await question_service.generation_client.aclose()

    app_state.clear()
    logger.info(f"{settings.app_name} shutdown completed")


# Create FastAPI application with lifespan manager
app = FastAPI(
    title=settings.app_name,
    description="Generates quiz questions for uploaded documents through an external generator and stores them",
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)


def configure_middleware():
    """Configure all application middleware"""

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins.split(","),
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        max_age=3600,
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start_time = time.time()

        client_ip = request.client.host if request.client else "unknown"
        user_agent = request.headers.get("user-agent", "unknown")

        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = int((time.time() - start_time) * 1000)
            logger.error(f"Request failed: {request.method} {request.url.path} - {str(e)}")
            log_api_request(
                method=request.method,
                path=str(request.url.path),
                status_code=500,
                duration_ms=duration_ms,
                user_agent=user_agent,
                client_ip=client_ip
            )
            raise

        duration_ms = int((time.time() - start_time) * 1000)
        log_api_request(
            method=request.method,
            path=str(request.url.path),
            status_code=response.status_code,
            duration_ms=duration_ms,
            user_agent=user_agent,
            client_ip=client_ip
        )
        response.headers["X-Response-Time"] = f"{duration_ms}ms"
        return response

    app.add_middleware(ErrorHandlingMiddleware)


configure_middleware()


@app.exception_handler(QuizIngestionException)
async def ingestion_exception_handler(request: Request, exc: QuizIngestionException):
    """
    Handle the service's own exceptions with structured error responses
    """
    logger.warning(f"Request {request.method} {request.url} failed: {exc}")
    return JSONResponse(
        status_code=get_status_code_for_error_code(exc.error_code),
        content=exc.to_dict()
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Handle Pydantic validation errors with per-field details
    """
    logger.warning(f"Validation error in {request.method} {request.url}: {exc}")

    field_errors = []
    for error in exc.errors():
        field_path = " -> ".join(str(loc) for loc in error["loc"])
        field_errors.append({
            "field": field_path,
            "message": error["msg"],
            "type": error["type"]
        })

    return create_error_response(
        error_code=ErrorCode.VALIDATION_ERROR,
        message="Request validation failed",
        status_code=422,
        details={"field_errors": field_errors}
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """
    Handle HTTP exceptions with consistent formatting
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.detail
        )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "code": "HTTP_ERROR",
                "message": str(exc.detail),
                "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
            }
        }
    )


# Include API routers
app.include_router(document_router)


@app.get("/health")
async def health_check():
    """
    Basic health check endpoint for load balancers and monitoring
    """
    return {
        "status": "healthy",
        "message": f"{settings.app_name} is running",
        "version": settings.app_version,
        "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
    }


@app.get("/health/detailed")
async def detailed_health_check():
    """
    Detailed health check endpoint with database and circuit breaker status
    """
    health_checker = app_state.get("health_checker") or HealthChecker(
        engine=engine,
        circuit_breaker=get_circuit_breaker()
    )

    system_health = await health_checker.check_system_health(include_details=True)

    response = {
        "status": system_health.status.value,
        "message": system_health.message,
        "timestamp": system_health.timestamp,
        "uptime_seconds": system_health.uptime_seconds,
        "components": [
            {
                "name": comp.name,
                "status": comp.status.value,
                "message": comp.message,
                "details": comp.details,
                "response_time_ms": comp.response_time_ms,
                "last_check": comp.last_check
            }
            for comp in system_health.components
        ]
    }

    # Degraded still serves requests
    status_code = 503 if system_health.status.value == "unhealthy" else 200
    return JSONResponse(status_code=status_code, content=response)


@app.get("/")
async def root():
    """
    Root endpoint with API information
    """
    return {
        "message": f"Welcome to the {settings.app_name} API",
        "version": settings.app_version,
        "environment": settings.environment,
        "documentation": "/docs",
        "endpoints": {
            "generate_questions": "POST /documents/{document_id}/questions",
            "document_info": "GET /documents/{document_id}",
            "health_check": "GET /health",
            "detailed_health": "GET /health/detailed"
        },
        "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
    }


def create_app() -> FastAPI:
    """
    Application factory function
    """
    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        workers=settings.workers if not settings.debug else 1,
        reload=settings.debug,
        access_log=True,
        server_header=False,
        date_header=False
    )
