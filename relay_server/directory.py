"""Station directory.

Loads the station snapshot written by the catalog crawler into a read-only
table. A directory is never modified after it is built; reloading produces a
new directory that replaces the old one as a whole.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import DataUnavailable

logger = logging.getLogger(__name__)

NATIONAL_REGION = "央广"


class StationRecord(BaseModel):
    """One record of the crawler snapshot."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(..., min_length=1, description="Catalog content ID")
    name: str = Field(..., description="Station display name")
    subtitle: str = ""
    image: str = ""
    province: str = Field("", description="Region label")
    play_url_low: Optional[str] = Field(None, alias="playUrlLow")
    mp3_play_url_low: Optional[str] = Field(None, alias="mp3PlayUrlLow")
    mp3_play_url_high: Optional[str] = Field(None, alias="mp3PlayUrlHigh")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        if isinstance(value, int):
            return str(value)
        return value

    @field_validator("subtitle", "image", "province", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value


@dataclass(frozen=True)
class Station:
    """A station known to the relay."""

    id: str
    name: str
    region: str
    subtitle: str = ""
    image: str = ""
    mp3_play_url_high: Optional[str] = None
    mp3_play_url_low: Optional[str] = None
    play_url_low: Optional[str] = None

    @classmethod
    def from_record(cls, record: StationRecord) -> "Station":
        return cls(
            id=record.id,
            name=record.name,
            region=record.province,
            subtitle=record.subtitle,
            image=record.image,
            mp3_play_url_high=record.mp3_play_url_high or None,
            mp3_play_url_low=record.mp3_play_url_low or None,
            play_url_low=record.play_url_low or None,
        )

    @property
    def candidate_urls(self) -> List[str]:
        """Non-empty snapshot URLs, best first (high, low, generic)."""
        urls = (self.mp3_play_url_high, self.mp3_play_url_low, self.play_url_low)
        return [url for url in urls if url]

    @property
    def cached_media_url(self) -> Optional[str]:
        """Last known playable URL; may have expired."""
        urls = self.candidate_urls
        return urls[0] if urls else None

    def to_record(self) -> Dict[str, Any]:
        """Snapshot representation, using the crawler's field names."""
        return {
            "id": self.id,
            "name": self.name,
            "subtitle": self.subtitle,
            "image": self.image,
            "province": self.region,
            "playUrlLow": self.play_url_low,
            "mp3PlayUrlLow": self.mp3_play_url_low,
            "mp3PlayUrlHigh": self.mp3_play_url_high,
        }


class StationDirectory:
    """Immutable table of stations keyed by id."""

    def __init__(self, stations: Iterable[Station] = ()):
        """Build a directory.

        Args:
            stations: Stations in snapshot order. Later duplicates of an id are
                dropped so ids stay unique.
        """
        table: Dict[str, Station] = {}
        for station in stations:
            if station.id in table:
                logger.warning(f"Duplicate station id {station.id!r} ignored ({station.name})")
                continue
            table[station.id] = station
        self._stations = MappingProxyType(table)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "StationDirectory":
        """Load a directory from a crawler snapshot.

        Args:
            path: Path of the JSON snapshot (a list of station records).

        Returns:
            StationDirectory: The loaded directory.

        Raises:
            DataUnavailable: If the file is missing, unreadable or malformed.
        """
        path = Path(path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                payload = json.load(f)
        except FileNotFoundError as e:
            raise DataUnavailable(f"Station snapshot not found: {path}") from e
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise DataUnavailable(f"Cannot read station snapshot {path}: {e}") from e

        if not isinstance(payload, list):
            raise DataUnavailable(f"Station snapshot {path} is not a list of records")

        directory = cls(cls._parse_records(payload))
        logger.info(f"Loaded {len(directory)} stations from {path}")
        return directory

    @staticmethod
    def _parse_records(payload: List[Any]) -> Iterator[Station]:
        for index, raw in enumerate(payload):
            try:
                record = StationRecord.model_validate(raw)
            except ValidationError as e:
                logger.warning(f"Skipping invalid station record #{index}: {e.error_count()} error(s)")
                continue

            station = Station.from_record(record)
            if not station.candidate_urls:
                logger.warning(f"Skipping station {station.id} ({station.name}): no media URL")
                continue
            yield station

    def lookup(self, station_id: str) -> Optional[Station]:
        """Find a station by id."""
        return self._stations.get(station_id)

    def regions(self) -> List[str]:
        """Region labels, national stations first, then sorted."""
        regions = {station.region for station in self._stations.values()}
        national = [NATIONAL_REGION] if NATIONAL_REGION in regions else []
        return national + sorted(regions - {NATIONAL_REGION})

    def __len__(self) -> int:
        return len(self._stations)

    def __iter__(self) -> Iterator[Station]:
        return iter(self._stations.values())

    def __contains__(self, station_id: object) -> bool:
        return station_id in self._stations
