"""Relay error types.

Each request-level error carries the HTTP status the endpoint answers with.
"""

from fastapi import status


class RelayError(Exception):
    """Base class for relay errors."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class DataUnavailable(RelayError):
    """Station directory snapshot is missing or corrupt."""


class UnknownStation(RelayError):
    """Requested station id is not in the directory."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, station_id: str):
        super().__init__(f"Station not found: {station_id}")
        self.station_id = station_id


class ResolutionFailure(RelayError):
    """A catalog lookup failed (network, status, or payload)."""


class NoPlayableAddress(RelayError):
    """Neither the catalog nor the snapshot has a URL for the station."""

    def __init__(self, station_id: str):
        super().__init__(f"No playable address for station: {station_id}")
        self.station_id = station_id
