"""FastAPI application for the radio relay.

Serves the station directory, relays stations as MP3 through one FFmpeg
process per listener, and exposes health, metrics and relay control endpoints.

No application is built at import time; run it with ``python -m relay_server``
or ``uvicorn relay_server.app:create_app --factory``.
"""

import logging
import secrets
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import HTMLResponse, JSONResponse, Response, StreamingResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel
from starlette.background import BackgroundTask

from monitoring.metrics import RelayMetrics
from transcoder.config import TranscoderConfig
from transcoder.process_manager import SpawnFailure, TranscodeHandle, TranscoderSupervisor

from .config import RelaySettings, get_settings
from .directory import StationDirectory
from .errors import DataUnavailable, RelayError, UnknownStation
from .pages import render_index
from .registry import SessionRegistry
from .relay import StreamRelay
from .resolver import AddressResolver

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    stations: int
    active_streams: int
    timestamp: str


class ReloadResponse(BaseModel):
    """Station reload response."""

    status: str
    stations: int


def load_directory(settings: RelaySettings) -> StationDirectory:
    """Load the station snapshot, or an empty directory if it is unusable."""
    try:
        return StationDirectory.load(settings.stations_path)
    except DataUnavailable as e:
        logger.error(f"Station directory unavailable, starting degraded: {e}")
        return StationDirectory()


def build_relay(
    settings: RelaySettings,
    transcoder_config: Optional[TranscoderConfig] = None,
    metrics: Optional[RelayMetrics] = None,
    directory: Optional[StationDirectory] = None,
) -> StreamRelay:
    """Wire the relay components.

    Args:
        settings: Relay settings.
        transcoder_config: FFmpeg settings (loaded from environment if not provided).
        metrics: Metrics receiving transcoder exits.
        directory: Station directory (loaded from ``settings.stations_path`` if not provided).

    Returns:
        StreamRelay: A relay with a fresh registry and supervisor.
    """
    on_exit = None
    if metrics is not None:

        def on_exit(handle: TranscodeHandle) -> None:
            metrics.record_transcoder_exit(handle.state.value)

    return StreamRelay(
        directory=directory if directory is not None else load_directory(settings),
        resolver=AddressResolver(settings),
        supervisor=TranscoderSupervisor(config=transcoder_config, on_exit=on_exit),
        registry=SessionRegistry(),
        metrics=metrics,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Setup exception handlers for relay errors.

    Args:
        app: FastAPI application instance.
    """

    @app.exception_handler(RelayError)
    async def relay_exception_handler(request: Request, exc: RelayError):
        """Handle relay errors with the status they carry."""
        if isinstance(exc, UnknownStation):
            logger.info(f"Unknown station requested: {exc.station_id}")
        else:
            logger.error(f"Relay error on {request.url.path}: {exc}")
        return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})

    @app.exception_handler(SpawnFailure)
    async def spawn_failure_handler(request: Request, exc: SpawnFailure):
        """Handle transcoder start failures."""
        logger.error(f"Transcoder failed to start on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": f"Failed to start relay: {exc}"},
        )


async def require_api_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> None:
    """Check the Bearer token of control requests when one is configured.

    Raises:
        HTTPException: If the token is missing or wrong.
    """
    expected = request.app.state.settings.api_token
    if not expected:
        return

    if credentials is None or not secrets.compare_digest(
        credentials.credentials.encode("utf-8"), expected.encode("utf-8")
    ):
        logger.warning(f"Rejected control request to {request.url.path}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API token",
            headers={"WWW-Authenticate": "Bearer"},
        )


def create_app(
    settings: Optional[RelaySettings] = None,
    relay: Optional[StreamRelay] = None,
    transcoder_config: Optional[TranscoderConfig] = None,
    metrics: Optional[RelayMetrics] = None,
) -> FastAPI:
    """Create the relay application.

    Components not passed in are built at startup.

    Args:
        settings: Relay settings (loaded from environment if not provided).
        relay: Pre-built relay.
        transcoder_config: FFmpeg settings used when the relay is built here.
        metrics: Prometheus metrics (a private registry if not provided).

    Returns:
        FastAPI: The application.
    """
    if settings is None:
        settings = get_settings()
    if metrics is None:
        metrics = relay.metrics if relay is not None and relay.metrics else RelayMetrics()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager for startup/shutdown."""
        logger.info("Starting radio relay...")
        if app.state.relay is None:
            app.state.relay = build_relay(settings, transcoder_config, metrics)
            metrics.bind_active_sessions(app.state.relay.registry.count)

        logger.info(
            f"Radio relay ready: {len(app.state.relay.directory)} stations, "
            f"links under {settings.base_url}"
        )
        try:
            yield
        finally:
            logger.info("Shutting down radio relay...")
            await app.state.relay.supervisor.cleanup()
            logger.info("Radio relay shut down complete")

    app = FastAPI(
        title="Radio Relay",
        description="Relays radio stations as MP3 through FFmpeg",
        version="1.0.0",
        lifespan=lifespan,
        debug=settings.debug,
    )
    app.state.settings = settings
    app.state.metrics = metrics
    app.state.relay = relay
    if relay is not None:
        metrics.bind_active_sessions(relay.registry.count)

    setup_exception_handlers(app)

    def get_relay(request: Request) -> StreamRelay:
        return request.app.state.relay

    @app.get("/", response_class=HTMLResponse)
    async def index(relay: StreamRelay = Depends(get_relay)):
        """Station directory page."""
        return HTMLResponse(render_index(relay.directory, settings.base_url))

    @app.get("/api/stations")
    async def list_stations(relay: StreamRelay = Depends(get_relay)):
        """List stations with their local relay URLs."""
        return [
            {**station.to_record(), "localStreamUrl": settings.stream_url(station.id)}
            for station in relay.directory
        ]

    @app.get("/stream/{station_id}")
    async def stream_station(
        station_id: str, request: Request, relay: StreamRelay = Depends(get_relay)
    ):
        """Relay a station as MP3.

        Raises:
            UnknownStation: 404 if the station is not in the directory.
            NoPlayableAddress: 500 if no media URL is known.
            SpawnFailure: 500 if FFmpeg cannot be started.
        """
        stream = await relay.open(station_id)
        return StreamingResponse(
            stream.chunks(request.is_disconnected),
            media_type=stream.media_type,
            headers=stream.headers(),
            background=BackgroundTask(stream.aclose),
        )

    @app.get("/health", response_model=HealthResponse)
    async def health_check(relay: StreamRelay = Depends(get_relay)):
        """Health check endpoint.

        Reports degraded while the station directory is empty.
        """
        stations = len(relay.directory)
        return HealthResponse(
            status="ok" if stations > 0 else "degraded",
            stations=stations,
            active_streams=relay.registry.count(),
            timestamp=datetime.now().isoformat(),
        )

    @app.get("/metrics")
    async def prometheus_metrics():
        """Prometheus metrics endpoint."""
        return Response(content=metrics.get_metrics(), media_type=metrics.content_type)

    @app.get("/api/relays", dependencies=[Depends(require_api_token)])
    async def list_relays(relay: StreamRelay = Depends(get_relay)):
        """List active relay sessions."""
        sessions = relay.registry.sessions()
        return {"count": len(sessions), "sessions": [s.to_dict() for s in sessions]}

    @app.delete("/api/relays/{session_id}", dependencies=[Depends(require_api_token)])
    async def stop_relay(session_id: str, relay: StreamRelay = Depends(get_relay)):
        """Stop one relay session.

        Raises:
            HTTPException: 404 if the session is not active.
        """
        session = relay.registry.get(session_id)
        if session is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail=f"Session not found: {session_id}"
            )

        returncode = None
        handle = session.handle
        if handle is not None:
            returncode = await handle.terminate()
        relay.registry.unregister(session.station_id, session_id)

        logger.info(f"Relay session {session_id} stopped by control request")
        return {"status": "stopped", "session_id": session_id, "returncode": returncode}

    @app.post(
        "/api/stations/reload",
        response_model=ReloadResponse,
        dependencies=[Depends(require_api_token)],
    )
    async def reload_stations(relay: StreamRelay = Depends(get_relay)):
        """Reload the station snapshot.

        The current directory stays in place when the snapshot cannot be read.
        """
        directory = await run_in_threadpool(StationDirectory.load, settings.stations_path)
        relay.directory = directory
        logger.info(f"Station directory reloaded: {len(directory)} stations")
        return ReloadResponse(status="reloaded", stations=len(directory))

    return app
