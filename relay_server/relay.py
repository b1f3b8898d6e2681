"""Relay endpoint core.

Turns a station id into a running transcoder whose output is streamed to one
listener, and releases the transcoder when the listener goes away.
"""

import logging
from typing import AsyncIterator, Awaitable, Callable, Dict, Optional
from urllib.parse import quote

from monitoring.metrics import RelayMetrics
from transcoder.process_manager import SpawnFailure, TranscodeHandle, TranscoderSupervisor

from .directory import Station, StationDirectory
from .errors import NoPlayableAddress, UnknownStation
from .registry import RelaySession, SessionRegistry
from .resolver import AddressResolver, AddressSource, ResolvedAddress

logger = logging.getLogger(__name__)

# Characters encodeURIComponent leaves as they are, besides alphanumerics and "-_."
ICY_NAME_SAFE = "!~*'()"


def encode_icy_name(name: str) -> str:
    """Percent-encode a station name for the ``icy-name`` header."""
    return quote(name, safe=ICY_NAME_SAFE)


class RelayStream:
    """One listener's relay: a transcoder handle plus its registry entry."""

    def __init__(
        self,
        station: Station,
        address: ResolvedAddress,
        handle: TranscodeHandle,
        session: RelaySession,
        registry: SessionRegistry,
        metrics: Optional[RelayMetrics] = None,
    ):
        self.station = station
        self.address = address
        self.handle = handle
        self.session = session
        self._registry = registry
        self._metrics = metrics
        self._closed = False

    @property
    def media_type(self) -> str:
        return self.handle.mime_type

    @property
    def closed(self) -> bool:
        return self._closed

    def headers(self) -> Dict[str, str]:
        """Response headers for the audio stream (no Content-Length)."""
        return {
            "Cache-Control": "no-cache",
            "icy-name": encode_icy_name(self.station.name),
            "X-Accel-Buffering": "no",
        }

    async def chunks(
        self, is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None
    ) -> AsyncIterator[bytes]:
        """
        Yield transcoder output as it arrives.

        Args:
            is_disconnected: Checked before each chunk; the relay stops once it
                returns True

        The transcoder is stopped when iteration ends for any reason.
        """
        sent = 0
        try:
            async for chunk in self.handle.iter_output():
                if is_disconnected is not None and await is_disconnected():
                    logger.info(f"Listener left station {self.station.id}, stopping relay")
                    break
                sent += len(chunk)
                if self._metrics is not None:
                    self._metrics.record_bytes(len(chunk))
                yield chunk
        finally:
            logger.debug(f"Relay of station {self.station.id} ended after {sent} bytes")
            self.close()

    def close(self) -> None:
        """
        Stop the transcoder and drop the registry entry.

        Synchronous and idempotent: safe from a cancelled generator, from the
        response background task, or both. A transcoder that already closed
        its output is left to exit on its own so a crash is reported as one.
        """
        if self._closed:
            return
        self._closed = True

        self.handle.request_stop()
        self._registry.unregister(self.station.id, self.session.session_id)
        logger.info(
            f"Relay closed for station {self.station.id} "
            f"(session {self.session.session_id}, {self._registry.count()} active)"
        )

    async def aclose(self) -> None:
        """Awaitable ``close()``, for response background tasks."""
        self.close()


class StreamRelay:
    """Opens relay streams for stations of the current directory."""

    def __init__(
        self,
        directory: StationDirectory,
        resolver: AddressResolver,
        supervisor: TranscoderSupervisor,
        registry: SessionRegistry,
        metrics: Optional[RelayMetrics] = None,
    ):
        """
        Initialize relay.

        Args:
            directory: Station directory; replaced as a whole on reload
            resolver: Fresh-address resolver
            supervisor: Transcoder process supervisor
            registry: Active session registry
            metrics: Optional Prometheus metrics
        """
        self.directory = directory
        self.resolver = resolver
        self.supervisor = supervisor
        self.registry = registry
        self.metrics = metrics

    async def open(self, station_id: str) -> RelayStream:
        """
        Start relaying a station to a new listener.

        Args:
            station_id: Station to relay

        Returns:
            RelayStream ready to be iterated

        Raises:
            UnknownStation: If the station is not in the directory
            NoPlayableAddress: If no media URL could be found
            SpawnFailure: If the transcoder could not be started
        """
        station = self.directory.lookup(station_id)
        if station is None:
            self._record_request("unknown_station")
            raise UnknownStation(station_id)

        logger.info(f"Relay requested for {station.name} ({station.id})")

        address = await self.resolve_address(station)
        if address is None:
            self._record_request("no_address")
            logger.error(f"No playable address for {station.name} ({station.id})")
            raise NoPlayableAddress(station.id)

        try:
            handle = await self.supervisor.start(station.id, address.url)
        except SpawnFailure:
            self._record_request("spawn_failed")
            raise

        session = self.registry.register(station.id, handle)
        self._record_request("started")
        if self.metrics is not None:
            self.metrics.record_address(address.source.value)

        logger.info(
            f"Relaying {station.name} ({station.id}) from {address.source.value} address "
            f"(session {session.session_id}, {self.registry.count()} active)"
        )
        return RelayStream(
            station=station,
            address=address,
            handle=handle,
            session=session,
            registry=self.registry,
            metrics=self.metrics,
        )

    async def resolve_address(self, station: Station) -> Optional[ResolvedAddress]:
        """
        Fresh catalog address, else the snapshot URL.

        Args:
            station: Station to resolve

        Returns:
            ResolvedAddress or None if neither source has a URL
        """
        resolved = await self.resolver.resolve(station.id, station.region)
        if resolved is not None:
            return resolved

        cached = station.cached_media_url
        if cached:
            logger.warning(
                f"Using cached address for {station.name} ({station.id}); it may have expired"
            )
            return ResolvedAddress(url=cached, source=AddressSource.CACHED)
        return None

    def _record_request(self, outcome: str) -> None:
        if self.metrics is not None:
            self.metrics.record_request(outcome)
