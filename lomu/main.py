import logging
import time

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import get_settings
from .db import close_mongo_connection, connect_to_mongo, get_db, is_connected
from .errors import LomuError
from .integrations.geocoding import close_geocoder
from .repositories.user import UserRepository
from .routers import auth, chat, password, payments, users
from .services.payment_service import close_mpesa_client

LOGGER = logging.getLogger("uvicorn.error")

app = FastAPI(title="Lomu API")
settings = get_settings()

LOGGER.info("[CORS] allow_origins=%s", settings.cors_origins)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=True,
)
app.add_middleware(GZipMiddleware, minimum_size=512)


# Simple slow-request logger
@app.middleware("http")
async def log_slow_requests(request: Request, call_next):
    t0 = time.time()
    response = await call_next(request)
    dt = (time.time() - t0) * 1000
    if dt >= get_settings().slow_request_ms:
        LOGGER.warning(
            "[perf] slow request %s %s %dms status=%s",
            request.method,
            request.url.path,
            int(dt),
            response.status_code,
        )
    return response


@app.exception_handler(LomuError)
async def handle_lomu_error(request: Request, exc: LomuError):
    if exc.status_code >= 500:
        LOGGER.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, "error": type(exc).__name__},
    )


@app.exception_handler(StarletteHTTPException)
async def handle_http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def handle_request_validation(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path"))
    message = f"Invalid {field}" if field else "Invalid request"
    return JSONResponse(status_code=400, content={"message": message, "error": "ValidationError"})


@app.exception_handler(Exception)
async def handle_unexpected(request: Request, exc: Exception):
    LOGGER.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"message": "Server error", "error": "ServerError"})


@app.on_event("startup")
async def startup():
    await connect_to_mongo()
    admins = get_settings().admin_usernames
    if admins:
        promoted = await UserRepository(get_db()).promote_admins(admins)
        if promoted:
            LOGGER.info("[Admin] promoted %d configured admin account(s)", promoted)

    # Cloudinary status log (non-fatal)
    from .integrations.cloudinary import get_status as cld_status, is_enabled as cld_enabled

    if cld_enabled():
        info = cld_status() or {}
        LOGGER.info(
            "[Cloudinary] configured=%s cloud=%s via_url=%s",
            bool(info.get("configured")),
            info.get("cloudName") or "unknown",
            "yes" if info.get("usingUrl") else "no",
        )
    else:
        LOGGER.warning("[Cloudinary] not configured; photo uploads will fail")


@app.on_event("shutdown")
async def shutdown():
    await close_geocoder()
    await close_mpesa_client()
    await close_mongo_connection()


# Routers
app.include_router(auth.router, prefix="/api", tags=["auth"])
app.include_router(password.router, prefix="/api", tags=["password"])
app.include_router(users.router, prefix="/api", tags=["users"])
app.include_router(chat.router, prefix="/api", tags=["chat"])
app.include_router(payments.router, prefix="/api", tags=["payments"])


@app.get("/")
async def root():
    return {"status": "lomu-api-ok"}


@app.get("/api/health/db")
async def health_db():
    if not is_connected():
        return JSONResponse(status_code=503, content={"ok": False, "message": "MongoDB not connected"})
    try:
        await get_db().command("ping")
    except Exception as exc:
        LOGGER.error("DB health check failed: %s", exc)
        return JSONResponse(status_code=503, content={"ok": False, "message": "MongoDB ping failed"})
    return {"ok": True, "db": get_settings().mongo_db}
