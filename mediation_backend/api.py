"""
Mediation Backend API
=====================

FastAPI application for dispute mediation case management.

Core Endpoints:
- POST /auth/register, POST /auth/login, GET /auth/me - Accounts and JWT
- GET  /health                                        - Health check
- WS   /ws/cases?token=<jwt>                          - Live case status changes (admins)

Routers:
- /api/v1/cases/*          - Registered users' own cases (api_cases.py)
- /api/v1/admin/*          - Lifecycle, witnesses, consent, panels (api_admin.py)
- /api/v1/public/consent/* - Opposite-party consent links (api_public.py)

Run with:
    uvicorn mediation_backend.api:app --host 0.0.0.0 --port 8000
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.exception_handlers import http_exception_handler, request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from . import __version__
from .api_admin import router as admin_router
from .api_cases import router as cases_router
from .api_public import router as public_router
from .auth import (
    AuthContext,
    MAX_PASSWORD_BYTES,
    decode_token,
    get_auth_service,
    is_password_too_long,
    require_auth,
    token_for_user,
)
from .config import get_settings
from .db.session import get_db, get_db_session, init_db
from .errors import MediationError
from .events import get_event_hub
from .middleware import CorrelationMiddleware, SecurityHeadersMiddleware
from .schemas import HealthResponse, LoginRequest, RegisterRequest, TokenResponse

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# =============================================================================
# FastAPI App
# =============================================================================

app = FastAPI(
    title="Mediation Backend",
    description="Dispute mediation case management: lifecycle, consent links, witnesses and panels",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

CORS_ALLOW_ORIGINS = settings.cors_origins()
logger.info(f"CORS allow origins: {CORS_ALLOW_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["*"],
)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(CorrelationMiddleware)

app.include_router(cases_router)
app.include_router(admin_router)
app.include_router(public_router)


# =============================================================================
# Health
# =============================================================================

@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        database = "ok"
    except Exception as e:
        logger.error(f"Health check database error: {e}")
        database = "unavailable"
    return HealthResponse(
        status="ok" if database == "ok" else "degraded",
        version=__version__,
        database=database,
    )


# =============================================================================
# Auth Endpoints (JWT)
# =============================================================================

@app.post("/auth/register", tags=["Auth"], response_model=TokenResponse, status_code=201)
async def register(request: RegisterRequest, db: Session = Depends(get_db)):
    """Register a user account and return an access token"""
    if is_password_too_long(request.password):
        raise HTTPException(status_code=400, detail=f"Password too long (max {MAX_PASSWORD_BYTES} bytes)")

    user = get_auth_service(db).register_user(
        email=str(request.email),
        password=request.password,
        name=request.name.strip(),
        phone=request.phone,
    )
    if not user:
        raise HTTPException(status_code=400, detail="Email already registered")

    return TokenResponse(access_token=token_for_user(user))


@app.post("/auth/login", tags=["Auth"], response_model=TokenResponse)
async def login(request: LoginRequest, db: Session = Depends(get_db)):
    """Login with email and password"""
    if is_password_too_long(request.password):
        raise HTTPException(status_code=400, detail=f"Password too long (max {MAX_PASSWORD_BYTES} bytes)")

    user = get_auth_service(db).authenticate_user(str(request.email), request.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid email or password")

    return TokenResponse(access_token=token_for_user(user))


@app.get("/auth/me", tags=["Auth"])
async def auth_me(auth: AuthContext = Depends(require_auth)):
    """Get current authenticated user info from token"""
    return {
        "user_id": auth.user_id,
        "email": auth.email,
        "name": auth.name,
        "role": auth.role.value,
        "is_admin": auth.is_admin,
    }


# =============================================================================
# WebSocket: live status changes
# =============================================================================

def _websocket_admin(token: Optional[str]) -> Optional[AuthContext]:
    payload = decode_token(token) if token else None
    if not payload or payload.get("type") != "access" or not payload.get("sub"):
        return None
    with get_db_session() as db:
        auth = get_auth_service(db).get_auth_context(payload["sub"])
    if not auth or not auth.is_admin:
        return None
    return auth


@app.websocket("/ws/cases")
async def websocket_case_events(websocket: WebSocket, token: Optional[str] = Query(None)):
    """Stream case status changes to an admin client"""
    auth = _websocket_admin(token)
    if not auth:
        await websocket.close(code=4401)
        return

    await websocket.accept()
    queue: asyncio.Queue = asyncio.Queue()
    loop = asyncio.get_running_loop()
    unsubscribe = get_event_hub().subscribe(
        lambda event: loop.call_soon_threadsafe(queue.put_nowait, event)
    )
    logger.info(f"Admin {auth.user_id} subscribed to case events")

    async def forward_events():
        while True:
            event = await queue.get()
            await websocket.send_json(event)

    await websocket.send_json({"type": "subscribed", "user_id": auth.user_id})
    forwarder = asyncio.create_task(forward_events())
    try:
        # Client messages are ignored; receiving surfaces the disconnect
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info(f"Admin {auth.user_id} unsubscribed from case events")
    finally:
        forwarder.cancel()
        unsubscribe()


# =============================================================================
# Startup
# =============================================================================

@app.on_event("startup")
async def startup():
    log_config_issue = logger.error if settings.is_production else logger.warning
    for warning in settings.validate_config():
        log_config_issue(f"Config: {warning}")
    init_db()
    logger.info("Database initialized")


# =============================================================================
# Error Handlers
# =============================================================================

def _is_api_v1_request(request: Request) -> bool:
    return request.url.path.startswith("/api/v1")


def _is_public_request(request: Request) -> bool:
    return request.url.path.startswith("/api/v1/public")


def _error_code_for_status(status_code: int) -> str:
    return {
        400: "bad_request",
        401: "unauthorized",
        403: "forbidden",
        404: "not_found",
        409: "conflict",
        410: "expired",
        422: "validation_error",
        500: "internal_error",
    }.get(status_code, "error")


def _build_error_payload(code: str, message: str, details: Any = None) -> Dict[str, Any]:
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details,
        }
    }


@app.exception_handler(MediationError)
async def mediation_error_handler(request: Request, exc: MediationError):
    """Domain errors carry their own code and status"""
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.url.path}: {exc.message}")
        message, details = exc.public_message, None
    elif _is_public_request(request):
        message, details = exc.public_message, None
    else:
        message, details = exc.message, exc.details

    return JSONResponse(
        status_code=exc.status_code,
        content=_build_error_payload(exc.code, message, details),
    )


@app.exception_handler(HTTPException)
async def api_http_exception_handler(request: Request, exc: HTTPException):
    """Structured errors for /api/v1 endpoints."""
    if not _is_api_v1_request(request):
        return await http_exception_handler(request, exc)

    message = exc.detail if isinstance(exc.detail, str) and exc.detail else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content=_build_error_payload(_error_code_for_status(exc.status_code), message),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def api_validation_exception_handler(request: Request, exc: RequestValidationError):
    """Return structured validation errors without leaking inputs."""
    if not _is_api_v1_request(request):
        return await request_validation_exception_handler(request, exc)

    sanitized_errors = [
        {"loc": err.get("loc"), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content=_build_error_payload("validation_error", "Invalid request", {"errors": sanitized_errors}),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler - always return valid JSON"""
    logger.exception(f"Unhandled exception on {request.url.path}: {exc.__class__.__name__}")
    return JSONResponse(
        status_code=500,
        content=_build_error_payload("internal_error", "Internal server error"),
    )
