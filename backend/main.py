import logging
from contextlib import asynccontextmanager
from pathlib import Path

import socketio
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from settings import get_settings
from src.api.models import ConnectedUserResponse, MessageResponse
from src.data.chat_store import ChatStore, NullChatStore, open_chat_store
from src.data.geo import LAT_MAX, LAT_MIN, LNG_MAX, LNG_MIN
from src.middleware import RequestLoggingMiddleware
from src.monitoring import get_metrics
from src.presence.dispatcher import EventDispatcher
from src.presence.registry import PresenceRegistry
from src.realtime.sockets import create_socket_server, register_socket_handlers
from src.realtime.transport import SocketIOTransport

settings = get_settings()
BACKEND_ROOT = Path(__file__).resolve().parent
CHAT_DB = BACKEND_ROOT / settings.chat_db_path

# Structured logging: include module and level; handlers can add JSON later
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address, default_limits=["100/minute"])

# Input validation bounds for the history query
RADIUS_M_MAX = 5000

_cors_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]

# Realtime side: one registry per process, mutated only through the dispatcher
sio = create_socket_server("*" if _cors_origins == ["*"] else _cors_origins)
registry = PresenceRegistry()
dispatcher = EventDispatcher(
    registry,
    SocketIOTransport(sio),
    store=NullChatStore(),
    radius_m=settings.proximity_radius_m,
)
register_socket_handlers(sio, dispatcher)


def _validate_lat_lng(lat: float, lng: float) -> None:
    if not (LAT_MIN <= lat <= LAT_MAX):
        raise HTTPException(status_code=400, detail=f"lat must be between {LAT_MIN} and {LAT_MAX}")
    if not (LNG_MIN <= lng <= LNG_MAX):
        raise HTTPException(status_code=400, detail=f"lon must be between {LNG_MIN} and {LNG_MAX}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    store = open_chat_store(settings.persistence_enabled, CHAT_DB)
    app.state.chat_store = store
    dispatcher.store = store
    logger.info("telemetry startup radius_m=%s", settings.proximity_radius_m)
    yield
    dispatcher.store = NullChatStore()
    app.state.chat_store = None


app = FastAPI(title=settings.app_name, debug=settings.debug, lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(Exception)
def unhandled_exception_handler(request: Request, exc: Exception):
    """Return consistent JSON error for unhandled exceptions (500). Skip validation/HTTP errors."""
    from fastapi.exceptions import RequestValidationError
    if isinstance(exc, (HTTPException, RequestValidationError)):
        raise exc
    logger.exception("telemetry unhandled_exception path=%s", request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": "An unexpected error occurred. Please try again later."},
    )


# Order: last added = innermost. So RequestLogging runs first (outermost), then CORS.
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ASGI entrypoint: Socket.IO on /socket.io, everything else (and lifespan) goes to FastAPI.
# Run with: uvicorn main:socket_app
socket_app = socketio.ASGIApp(sio, other_asgi_app=app)


@app.get("/favicon.ico", include_in_schema=False)
@limiter.exempt
def favicon(request: Request):
    """Return 204 so browser favicon requests don't log 404."""
    return Response(status_code=204)


@app.get("/health")
@limiter.exempt
def health(request: Request):
    return {"status": "ok", "connected": len(registry)}


@app.get("/metrics")
@limiter.exempt
def metrics(request: Request):
    """Request counts, socket event counts, connected users and uptime."""
    return get_metrics(connected_users=len(registry))


# --- Live presence ---


@app.get("/api/users", response_model=list[ConnectedUserResponse])
def list_connected_users(request: Request):
    """Everyone currently connected and registered, with last known position."""
    logger.info("telemetry route=users")
    return [ConnectedUserResponse.from_record(rec) for _, rec in registry.all()]


# --- Message history (durable log) ---


@app.get("/api/messages", response_model=list[MessageResponse])
def recent_messages(
    request: Request,
    lat: float | None = None,
    lon: float | None = None,
    radius: float = settings.proximity_radius_m,
):
    """Messages from the last hour sent within `radius` meters of (lat, lon), newest first."""
    if lat is None or lon is None:
        raise HTTPException(status_code=400, detail="lat and lon are required.")
    _validate_lat_lng(lat, lon)
    if not (0 < radius <= RADIUS_M_MAX):
        raise HTTPException(
            status_code=400,
            detail=f"radius must be greater than 0 and at most {RADIUS_M_MAX}",
        )
    store: ChatStore | None = getattr(app.state, "chat_store", None)
    if store is None:
        return []
    logger.info("telemetry route=messages radius=%s", radius)
    try:
        events = store.query_recent_messages_near(
            lat,
            lon,
            radius,
            window_seconds=settings.message_window_seconds,
            limit=settings.recent_messages_limit,
        )
    except Exception as e:
        logger.warning("telemetry messages_query_error error=%s", str(e))
        raise HTTPException(status_code=502, detail="Message history is unavailable. Please try again.") from e
    return [MessageResponse.from_event(e) for e in events]
