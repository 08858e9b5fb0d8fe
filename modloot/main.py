"""
Modloot — deals and rewards marketplace API.
Main application entry point.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from modloot.api.admin import router as admin_router
from modloot.api.auth import router as auth_router
from modloot.api.catalog import apps_router, coupons_router, games_router, giftcards_router
from modloot.api.interactions import router as interactions_router
from modloot.api.offers import router as offers_router
from modloot.api.postback import router as postback_router
from modloot.api.subscribers import router as subscribers_router
from modloot.api.userip import router as userip_router
from modloot.config import get_settings
from modloot.core.email import EmailClient
from modloot.core.errors import APIError
from modloot.core.geo import GeoResolver
from modloot.middleware.security import SecurityHeadersMiddleware
from modloot.models.database import dispose_engine

import structlog

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.dev.ConsoleRenderer() if get_settings().debug else structlog.processors.JSONRenderer(),
    ],
)

logger = structlog.get_logger()

VERSION = "0.1.0"

NOT_FOUND_HTML = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>404 Not Found</title></head>
<body><h1>404 Not Found</h1><p>The page you requested does not exist.</p></body>
</html>"""


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    app.state.geo = GeoResolver(settings.geoip_db_path)
    app.state.email = EmailClient(
        api_key=settings.resend_api_key,
        from_address=settings.email_from_address,
        sender_name=settings.email_sender_name,
        api_url=settings.resend_api_url,
        timeout=settings.email_timeout_seconds,
    )
    logger.info("modloot_starting", environment=settings.environment,
                geoip=bool(settings.geoip_db_path), email=app.state.email.configured)
    yield
    app.state.geo.close()
    await app.state.email.aclose()
    await dispose_engine()
    logger.info("modloot_shutting_down")


app = FastAPI(
    title="Modloot",
    description="Deals and rewards marketplace: catalog, country-gated offers, CPA postbacks.",
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs" if get_settings().debug else None,
    redoc_url="/redoc" if get_settings().debug else None,
    openapi_url="/openapi.json" if get_settings().debug else None,
)

# Security headers on every response
app.add_middleware(SecurityHeadersMiddleware)

ALLOWED_ORIGINS = ["*"] if get_settings().debug else get_settings().allowed_origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Authorization", "Content-Type"],
)


# --- Errors ---

@app.exception_handler(APIError)
async def api_error_handler(request: Request, exc: APIError):
    return JSONResponse(status_code=exc.status_code, content={"success": False, "message": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(p) for p in err["loc"][1:]), "message": err["msg"]}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"success": False, "message": "Validation failed", "errors": errors},
    )


def _not_found(request: Request):
    accept = request.headers.get("accept", "")
    # Explicit types win over a trailing wildcard
    if "text/html" in accept:
        return HTMLResponse(NOT_FOUND_HTML, status_code=404)
    if "json" in accept:
        return JSONResponse({"error": "404 Not Found"}, status_code=404)
    if "text/plain" in accept:
        return PlainTextResponse("404 Not Found", status_code=404)
    if "*/*" in accept or not accept:
        return HTMLResponse(NOT_FOUND_HTML, status_code=404)
    return PlainTextResponse("404 Not Found", status_code=404)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        return _not_found(request)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error", path=request.url.path, method=request.method)
    return JSONResponse(status_code=500, content={"success": False, "message": "Internal server error"})


# --- Routes ---
app.include_router(auth_router)
app.include_router(apps_router)
app.include_router(games_router)
app.include_router(giftcards_router)
app.include_router(coupons_router)
app.include_router(offers_router)
app.include_router(postback_router)
app.include_router(subscribers_router)
app.include_router(interactions_router)
app.include_router(admin_router)
app.include_router(userip_router)


@app.get("/health")
async def health():
    return {"status": "ok", "service": "modloot", "version": VERSION}
