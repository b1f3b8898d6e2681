"""
Radio Relay Server

HTTP relay for a fixed catalog of radio stations: resolves a fresh media URL
per request and streams it to the listener as MP3 through FFmpeg.
"""

__version__ = "1.0.0"

from relay_server.config import RelaySettings
from relay_server.directory import Station, StationDirectory
from relay_server.errors import (
    DataUnavailable,
    NoPlayableAddress,
    RelayError,
    ResolutionFailure,
    UnknownStation,
)
from relay_server.registry import RelaySession, SessionRegistry
from relay_server.relay import RelayStream, StreamRelay
from relay_server.resolver import AddressResolver, AddressSource, ResolvedAddress

__all__ = [
    "AddressResolver",
    "AddressSource",
    "DataUnavailable",
    "NoPlayableAddress",
    "RelayError",
    "RelaySession",
    "RelaySettings",
    "RelayStream",
    "ResolutionFailure",
    "ResolvedAddress",
    "SessionRegistry",
    "Station",
    "StationDirectory",
    "StreamRelay",
    "UnknownStation",
]
