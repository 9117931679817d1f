"""FastAPI application."""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from .config import settings
from .domain_errors import DomainError
from .problem_details import domain_error_handler
from .routers import auth, telegram
from .routers import max as max_bot

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

# Create app
app = FastAPI(
    title="Shked Messenger Bridge",
    version="1.0.0",
    description="Telegram and Max bot bridge for the Shked university system"
)

# Production safety checks (fail closed on insecure config).
if settings.ENV.lower() == "production" and settings.JWT_SECRET_KEY == "change-me-in-production":
    raise RuntimeError("JWT_SECRET_KEY must be set in production.")
if settings.ENV.lower() == "production" and any(origin.strip() == "*" for origin in settings.cors_origins):
    raise RuntimeError("ALLOWED_ORIGINS must be explicit in production (no wildcard when using credentials).")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"] if settings.ENV.lower() != "production" else ["Authorization", "Content-Type"],
)

app.add_exception_handler(DomainError, domain_error_handler)

# Include routers
app.include_router(auth.router, prefix="/api/v1")
app.include_router(telegram.router, prefix="/api/v1")
app.include_router(max_bot.router, prefix="/api/v1")


@app.get("/api/v1/system/health")
def health_check():
    """Health check endpoint."""
    return {
        "status": "ok",
        "version": "1.0.0",
        "telegram": bool(settings.TELEGRAM_BOT_TOKEN),
        "max": bool(settings.MAX_BOT_TOKEN),
    }


@app.get("/")
def root():
    """Root endpoint."""
    return {
        "message": "Shked Messenger Bridge API",
        "version": "1.0.0",
        "docs": "/docs"
    }
