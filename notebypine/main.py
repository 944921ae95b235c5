"""
FastAPI main application entry point.

Architecture:
  Admin UI → http://localhost:3000/api/v1/...  → admin REST API (JWT)
  Admin UI → ws://localhost:3000/ws            → live incident/solution/knowledge events
  Browser  → http://localhost:3000/admin/      → built admin UI, when present

Security model:
  - All data endpoints require a JWT obtained with PocketBase admin credentials
  - RateLimitMiddleware limits login attempts and write requests per IP
  - Security headers prevent clickjacking, MIME sniffing, etc.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from notebypine import __version__
from notebypine.config import get_settings
from notebypine.database import close_db, connect_db
from notebypine.events import manager
from notebypine.middleware.rate_limit import RateLimitMiddleware
from notebypine.queries import CacheManager, check_database_health
from notebypine.routers import auth, export, incidents, knowledge, search, solutions
from notebypine.utils.errors import AppError
from notebypine.utils.log import configure_logging

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"

# Pre-built admin UI, served under /admin when present
STATIC_DIR = Path(__file__).parent / "static"


# ============================================================
# Application Lifespan (startup/shutdown)
# ============================================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown events."""
    logger.info("Starting NoteByPine admin API...")

    _settings = get_settings()
    if _settings.uses_default_secrets:
        logger.warning(
            "JWT_SECRET_KEY or POCKETBASE_ADMIN_PASSWORD is still a default value. "
            "Set real secrets in .env before exposing the API."
        )
    logger.info(f"CORS origins: {_settings.cors_origins_list}")

    await connect_db()
    await CacheManager.warm_up()

    if STATIC_DIR.is_dir() and (STATIC_DIR / "index.html").is_file():
        logger.info(f"Serving admin UI from {STATIC_DIR}")
    else:
        logger.info("No admin UI build found, API-only mode")

    yield

    logger.info("Shutting down NoteByPine admin API...")
    await close_db()


# ============================================================
# Create FastAPI Application
# ============================================================
app = FastAPI(
    title="NoteByPine Admin API",
    description="Incident and knowledge-base administration backed by PocketBase",
    version=__version__,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
)


# ============================================================
# Middleware Stack (executes bottom-to-top)
# ============================================================
settings = get_settings()


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to every response."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if request.url.path.startswith("/admin/assets/"):
            response.headers["Cache-Control"] = "public, max-age=31536000, immutable"
        else:
            response.headers["Cache-Control"] = "no-store"
        return response


# 1. Security headers (outermost)
app.add_middleware(SecurityHeadersMiddleware)

# 2. CORS for the admin UI dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 3. Rate limiting on login and write endpoints (innermost)
app.add_middleware(RateLimitMiddleware)


# ============================================================
# Error Handlers
# ============================================================
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    codes = {401: "UNAUTHORIZED", 403: "FORBIDDEN", 404: "NOT_FOUND", 405: "METHOD_NOT_ALLOWED"}
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.detail, "code": codes.get(exc.status_code, "HTTP_ERROR")},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path"))
    message = f"Invalid '{field}': {first.get('msg', 'invalid value')}" if field else "Invalid request"
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": message, "code": "VALIDATION_ERROR",
                 "details": {"errors": [
                     {"loc": [str(p) for p in e.get("loc", ())], "msg": e.get("msg", "")}
                     for e in errors
                 ]}},
    )


# ============================================================
# API Routes: all mounted under /api/v1
# ============================================================
app.include_router(auth.router, prefix=f"{API_PREFIX}/auth", tags=["Authentication"])
app.include_router(incidents.router, prefix=f"{API_PREFIX}/incidents", tags=["Incidents"])
app.include_router(solutions.router, prefix=f"{API_PREFIX}/solutions", tags=["Solutions"])
app.include_router(knowledge.router, prefix=f"{API_PREFIX}/knowledge", tags=["Knowledge"])
app.include_router(search.router, prefix=f"{API_PREFIX}/search", tags=["Search"])
app.include_router(export.router, prefix=f"{API_PREFIX}/export", tags=["Export"])


def api_index() -> dict:
    return {
        "success": True,
        "message": "NoteByPine Admin API",
        "version": __version__,
        "endpoints": {
            "auth": f"{API_PREFIX}/auth",
            "incidents": f"{API_PREFIX}/incidents",
            "solutions": f"{API_PREFIX}/solutions",
            "knowledge": f"{API_PREFIX}/knowledge",
            "search": f"{API_PREFIX}/search",
            "export": f"{API_PREFIX}/export",
            "health": "/health",
            "websocket": "/ws",
        },
        "documentation": "/api/docs",
    }


@app.get("/")
async def root() -> dict:
    return api_index()


@app.get(API_PREFIX)
async def api_root() -> dict:
    return api_index()


# ============================================================
# Health Check Endpoints
# ============================================================
@app.get("/health")
async def health_check() -> dict:
    """Liveness probe: confirms the process is running."""
    return {"status": "healthy", "version": __version__}


@app.get("/health/ready")
async def readiness_check():
    """Readiness probe: verifies PocketBase answers."""
    database = await check_database_health()
    checks = {"database": database, "cache": CacheManager.get_stats()}
    if not database["healthy"]:
        return JSONResponse(status_code=503, content={"status": "not ready", "checks": checks})
    return {"status": "ready", "checks": checks}


# ============================================================
# WebSocket
# ============================================================
@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """Live update stream; clients may send "ping" to keep the socket alive."""
    await manager.connect(websocket)
    try:
        while True:
            data = await websocket.receive_text()
            if data == "ping":
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(websocket)


# ============================================================
# Static Admin UI Serving (production mode)
# ============================================================
if STATIC_DIR.is_dir() and (STATIC_DIR / "index.html").is_file():
    if (STATIC_DIR / "assets").is_dir():
        app.mount("/admin/assets", StaticFiles(directory=str(STATIC_DIR / "assets")), name="static-assets")

    @app.get("/admin/{full_path:path}")
    async def serve_spa(request: Request, full_path: str):
        """Serve the admin SPA; unknown paths fall back to index.html."""
        file_path = STATIC_DIR / full_path
        if full_path and file_path.is_file() and ".." not in full_path:
            return FileResponse(str(file_path))
        return FileResponse(str(STATIC_DIR / "index.html"))


def run() -> None:
    """Run the API with uvicorn."""
    import uvicorn

    configure_logging(settings.log_level)
    uvicorn.run(
        "notebypine.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_config=None,
    )


if __name__ == "__main__":
    run()
