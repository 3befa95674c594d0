from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .db import get_conn
from .errors import ReplyMateError
from .review_tables import run_review_schema
from .routers import business, google, reviews
from .settings import settings

logging.basicConfig(
    level=getattr(logging, (settings.LOG_LEVEL or "INFO").upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# -----------------------------
# FastAPI setup + DB schema
# -----------------------------

app = FastAPI(title="ReplyMate")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def _set_common_headers(request: Request, call_next):
    resp = await call_next(request)
    resp.headers["X-Build"] = settings.BUILD_ID
    resp.headers["X-Served-By"] = "fastapi"
    return resp


# -----------------------------
# Errors: always {"error": message}
# -----------------------------

@app.exception_handler(ReplyMateError)
async def _replymate_error(request: Request, exc: ReplyMateError):
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    return JSONResponse({"error": exc.message or type(exc).__name__}, status_code=exc.status_code)


@app.exception_handler(StarletteHTTPException)
async def _http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse({"error": str(exc.detail)}, status_code=exc.status_code, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def _validation_error(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    msg = errors[0].get("msg") if errors else "Invalid request"
    return JSONResponse({"error": f"Invalid request: {msg}"}, status_code=400)


@app.exception_handler(Exception)
async def _unhandled_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse({"error": str(exc) or "Internal Server Error"}, status_code=500)


@app.on_event("startup")
def _startup():
    if not settings.DATABASE_URL:
        logger.warning("DATABASE_URL not set; skipping schema setup")
        return
    run_review_schema(get_conn)


@app.get("/ping")
def ping():
    """Health check: no DB, no external calls."""
    return {"ok": True}


app.include_router(reviews.router)
app.include_router(google.router)
app.include_router(business.router)
