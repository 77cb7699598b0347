from __future__ import annotations
import time
import uuid
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from challenge_league.config import settings
from challenge_league.logging_setup import configure_logging
from challenge_league.routes.system import router as system_router
from challenge_league.routes.auth import router as auth_router
from challenge_league.routes.leagues import router as leagues_router
from challenge_league.routes.responses import router as responses_router
from challenge_league.routes.votes import router as votes_router
from challenge_league.routes.admin import router as admin_router
from challenge_league.routes.cron import router as cron_router
from challenge_league.routes.notifications import router as notifications_router
from challenge_league.routes.comments import router as comments_router
import structlog

configure_logging()
log = structlog.get_logger()

@asynccontextmanager
async def lifespan(app: FastAPI):
    log.info("startup", env=settings.environment, version=settings.app_version, git_sha=settings.git_sha)
    yield
    log.info("shutdown")

app = FastAPI(
    title=f"{settings.app_display_name} API",
    version=settings.app_version,
    lifespan=lifespan,
    description=f"{settings.app_display_name} API: private photo leagues with weekly prompts, voting and standings",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.environment == "dev" else settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(system_router)
app.include_router(auth_router)
app.include_router(leagues_router)
app.include_router(responses_router)
app.include_router(votes_router)
app.include_router(admin_router)
app.include_router(cron_router)
app.include_router(notifications_router)
app.include_router(comments_router)

@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = rid
    structlog.contextvars.bind_contextvars(request_id=rid)
    started = time.perf_counter()
    try:
        response: Response = await call_next(request)
        log.info(
            "request.completed",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
    finally:
        structlog.contextvars.clear_contextvars()
    response.headers["X-Request-ID"] = rid
    return response
