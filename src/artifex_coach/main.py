"""FastAPI application entry point."""

import logging
import os
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from artifex_coach.api.routes import router
from artifex_coach.api.websocket import handle_challenge_websocket, handle_chat_websocket
from artifex_coach.config import get_settings
from artifex_coach.session import get_coach_session

# Configure structlog based on environment
is_production = os.getenv("ENV", "development").lower() == "production"

if is_production:
    # Production: JSON format for machine parsing
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.INFO),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
else:
    # Development: console format for human readability
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Tear down any challenge clocks still ticking
    if get_coach_session.cache_info().currsize:
        await get_coach_session().close()


app = FastAPI(title="Artifex Coach", version="0.1.0", lifespan=lifespan)
_allowed_origins_env = os.getenv(
    "ALLOWED_ORIGINS", "http://localhost:8000,http://127.0.0.1:8000"
)
allowed_origins = [o.strip() for o in _allowed_origins_env.split(",")]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(router)


@app.middleware("http")
async def auth_middleware(request: Request, call_next):
    """Optional APP_SECRET authentication middleware."""
    if not settings.app_secret or request.url.path == "/api/health":
        return await call_next(request)
    if request.headers.get("X-App-Secret", "") != settings.app_secret:
        return JSONResponse({"error": "Unauthorized"}, status_code=401)
    return await call_next(request)


def _websocket_authorized(websocket: WebSocket) -> bool:
    if not settings.app_secret:
        return True
    return websocket.headers.get("X-App-Secret", "") == settings.app_secret


@app.websocket("/ws/chat")
async def chat_endpoint(websocket: WebSocket) -> None:
    """Mentor chat panel; reconnecting starts a new conversation."""
    if not _websocket_authorized(websocket):
        await websocket.close(code=1008, reason="Unauthorized")
        return
    await handle_chat_websocket(websocket, get_coach_session())


@app.websocket("/ws/challenges/{challenge_id}")
async def challenge_endpoint(websocket: WebSocket, challenge_id: str) -> None:
    """Challenge view with live timer ticks."""
    if not _websocket_authorized(websocket):
        await websocket.close(code=1008, reason="Unauthorized")
        return
    await handle_challenge_websocket(websocket, get_coach_session(), challenge_id)


def main() -> None:
    """Run the application."""
    uvicorn.run(
        "artifex_coach.main:app",
        host=settings.host,
        port=settings.port,
        reload=False,
        log_level="info",
    )


if __name__ == "__main__":
    main()
