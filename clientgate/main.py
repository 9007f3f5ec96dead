"""ClientGate – FastAPI application."""
# Load .env before any app code that might read config
from dotenv import load_dotenv
from pathlib import Path
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from clientgate.config import get_settings
from clientgate.database import Base, engine
# Import models so Base.metadata has all tables before create_all (schema source of truth)
from clientgate.models import Account, AuditLog, ConsultationRequest  # noqa: F401
from clientgate.errors import (
    DuplicateAccountError,
    InvalidStateError,
    NotFoundError,
    TokenError,
    TransientError,
    ValidationError,
)
from clientgate.routers import auth, consultations, registration

settings = get_settings()
app = FastAPI(title=settings.app_name, debug=settings.debug)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(consultations.router)
app.include_router(registration.router)
app.include_router(auth.router)


@app.exception_handler(TokenError)
def token_error_handler(request: Request, exc: TokenError):
    # Specific reason is already in the server log and audit trail
    return JSONResponse(status_code=400, content={"detail": exc.public_message})


@app.exception_handler(ValidationError)
def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"detail": exc.message})


@app.exception_handler(NotFoundError)
def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": exc.message})


@app.exception_handler(InvalidStateError)
def invalid_state_handler(request: Request, exc: InvalidStateError):
    return JSONResponse(status_code=409, content={"detail": exc.message})


@app.exception_handler(DuplicateAccountError)
def duplicate_account_handler(request: Request, exc: DuplicateAccountError):
    return JSONResponse(status_code=409, content={"detail": "An account with this email already exists."})


@app.exception_handler(TransientError)
def transient_error_handler(request: Request, exc: TransientError):
    return JSONResponse(status_code=503, content={"detail": exc.message}, headers={"Retry-After": "1"})


@app.on_event("startup")
def startup():
    logging.getLogger("uvicorn.error").info("[%s] Starting (env=%s)", settings.app_name, settings.app_env)
    if settings.mailgun_configured:
        logging.getLogger("uvicorn.error").info("[Mailgun] Notifications via domain=%s", settings.mailgun_domain)
    else:
        logging.getLogger("uvicorn.error").info("[Mailgun] Not configured - notifications are logged, not sent")
    try:
        Base.metadata.create_all(bind=engine)
    except Exception as e:
        logging.getLogger("uvicorn.error").warning("Database startup failed (tables skipped). Check DATABASE_URL and network. Error: %s", e)


@app.get("/")
def root():
    return {"app": settings.app_name, "status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}
