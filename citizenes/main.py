import time
import os
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Load environment variables at startup
from dotenv import load_dotenv
load_dotenv()

from .api.auth import router as auth_router
from .api.chat import router as chat_router
from .api.comments import router as comments_router
from .api.feedback import router as feedback_router
from .api.responses import router as responses_router
from .api.subscriptions import router as subscriptions_router
from .api.users import router as users_router
from .core.config import settings
from .core.database import create_tables
from .core.exceptions import CitizenESException
from .core.logging_config import (
    setup_logging,
    get_logger,
    set_request_context,
    clear_request_context,
    generate_request_id,
    log_api_request,
    log_api_response
)
from .services.event_broker import event_broker
from .services.event_relay import build_event_relay

# Setup structured logging with configuration
setup_logging(
    log_level=os.environ.get('LOG_LEVEL', settings.LOG_LEVEL),
    json_logs=(os.environ.get('ENVIRONMENT', settings.ENVIRONMENT).lower() == "production")
)
logger = get_logger("main")

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    openapi_url=f"{settings.API_V1_STR}/openapi.json"
)

event_relay = build_event_relay()


@app.on_event("startup")
async def startup_event():
    logger.info("Starting CitizenES Service...")

    if settings.AUTO_CREATE_TABLES:
        create_tables()
        logger.info("Database tables ensured")

    if event_relay is not None:
        try:
            event_relay.connect()
            event_broker.add_relay(event_relay)
            logger.info("Event relay connected successfully")
        except Exception as e:
            logger.error(f"Failed to connect event relay: {e}")
            logger.warning("CitizenES Service will continue without event relay")

    logger.info("CitizenES Service startup completed")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down CitizenES Service...")

    if event_relay is not None:
        event_broker.remove_relay(event_relay)
        try:
            event_relay.close()
            logger.info("Event relay closed successfully")
        except Exception as e:
            logger.error(f"Error closing event relay: {e}")

    logger.info("CitizenES Service shutdown completed")


@app.middleware("http")
async def logging_middleware(request: Request, call_next):
    """Middleware for request/response logging and context tracking."""
    start_time = time.time()

    request_id = request.headers.get("x-request-id") or generate_request_id()
    set_request_context(request_id=request_id)

    log_api_request(
        method=request.method,
        path=str(request.url.path),
        user_agent=request.headers.get("user-agent"),
        client_ip=request.client.host if request.client else None
    )

    try:
        response = await call_next(request)

        duration_ms = (time.time() - start_time) * 1000
        log_api_response(
            method=request.method,
            path=str(request.url.path),
            status_code=response.status_code,
            duration_ms=duration_ms
        )

        response.headers["x-request-id"] = request_id
        return response

    except Exception as e:
        duration_ms = (time.time() - start_time) * 1000
        logger.error(
            "Request failed",
            method=request.method,
            path=str(request.url.path),
            duration_ms=duration_ms,
            error=str(e),
            exc_info=True
        )
        raise
    finally:
        clear_request_context()


@app.exception_handler(CitizenESException)
async def citizenes_exception_handler(request: Request, exc: CitizenESException):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.CORS_ORIGIN.split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth_router, prefix=f"{settings.API_V1_STR}/auth", tags=["auth"])
app.include_router(users_router, prefix=f"{settings.API_V1_STR}/users", tags=["users"])
app.include_router(feedback_router, prefix=f"{settings.API_V1_STR}/feedback", tags=["feedback"])
app.include_router(comments_router, prefix=f"{settings.API_V1_STR}/comments", tags=["comments"])
app.include_router(responses_router, prefix=f"{settings.API_V1_STR}/responses", tags=["responses"])

# WebSocket routes live at the root for easier client access
app.include_router(chat_router)
app.include_router(subscriptions_router)


@app.get("/")
async def root():
    return {"message": "CitizenES Service API", "version": settings.VERSION}


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": settings.SERVICE_NAME}
