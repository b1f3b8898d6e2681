"""Address resolver for station media URLs.

Catalog media URLs expire, so each relay asks the catalog for a fresh one:
first in the station's region, then in the national list. Lookups are signed
with the catalog's shared key and never fail a relay; when both come back
empty the caller falls back to the snapshot URL.
"""

import asyncio
import hashlib
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

import aiohttp

from .config import RelaySettings
from .errors import ResolutionFailure

logger = logging.getLogger(__name__)

NATIONAL_REGION_CODE = "0"

# Catalog province codes by region label
REGION_CODES: Dict[str, str] = {
    "央广": "0", "国家": "0",
    "安徽": "340000", "北京": "110000", "重庆": "500000", "福建": "350000",
    "甘肃": "620000", "广东": "440000", "广西": "450000", "贵州": "520000",
    "海南": "460000", "河北": "130000", "河南": "410000", "黑龙江": "230000",
    "湖北": "420000", "湖南": "430000", "吉林": "220000", "江苏": "320000",
    "江西": "360000", "辽宁": "210000", "内蒙古": "150000", "宁夏": "640000",
    "青海": "630000", "山东": "370000", "山西": "140000", "陕西": "610000",
    "上海": "310000", "四川": "510000", "西藏": "540000", "新疆": "650000",
    "新疆兵团": "660000", "云南": "530000", "浙江": "330000",
}

# Record fields holding media URLs, best first
MEDIA_URL_FIELDS = ("mp3PlayUrlHigh", "mp3PlayUrlLow", "playUrlLow")


class AddressSource(str, Enum):
    """Which lookup produced an address."""

    REGIONAL = "regional"
    NATIONAL = "national"
    CACHED = "cached"


@dataclass(frozen=True)
class ResolvedAddress:
    """A media URL valid for a single relay attempt."""

    url: str
    source: AddressSource


def generate_sign(params: Mapping[str, Any], timestamp: int, secret: str) -> str:
    """Sign a catalog request.

    Keys are sorted, joined as ``key=value`` pairs with ``&``, followed by
    ``timestamp`` and ``key``; the MD5 digest is returned as uppercase hex.

    Args:
        params: Query parameters of the request.
        timestamp: Millisecond timestamp sent with the same request.
        secret: Shared catalog key.

    Returns:
        str: 32-character uppercase hex signature.
    """
    param_str = "&".join(f"{key}={params[key]}" for key in sorted(params))
    if param_str:
        sign_text = f"{param_str}&timestamp={timestamp}&key={secret}"
    else:
        sign_text = f"timestamp={timestamp}&key={secret}"
    return hashlib.md5(sign_text.encode("utf-8")).hexdigest().upper()


def region_code_for(region: Optional[str]) -> str:
    """Catalog province code for a region label (national when unknown)."""
    if not region:
        return NATIONAL_REGION_CODE
    return REGION_CODES.get(region.strip(), NATIONAL_REGION_CODE)


def pick_media_url(record: Mapping[str, Any]) -> Optional[str]:
    """Best non-empty media URL of a catalog record."""
    for field in MEDIA_URL_FIELDS:
        url = record.get(field)
        if isinstance(url, str) and url.strip():
            return url.strip()
    return None


class AddressResolver:
    """Looks up current media URLs in the remote catalog."""

    LIST_ENDPOINT = "/web/appBroadcast/list"

    def __init__(self, settings: RelaySettings, clock: Callable[[], float] = time.time):
        """Initialize resolver.

        Args:
            settings: Relay settings (catalog URL, key, identification headers).
            clock: Time source in seconds, used for request timestamps.
        """
        self.settings = settings
        self.base_url = settings.catalog_base_url.rstrip("/")
        self._clock = clock

    async def resolve(
        self, station_id: str, region_hint: Optional[str] = None
    ) -> Optional[ResolvedAddress]:
        """Find a fresh media URL for a station.

        Args:
            station_id: Catalog content ID.
            region_hint: Region label of the station, used to scope the first lookup.

        Returns:
            ResolvedAddress or None if neither lookup found the station.
        """
        region_code = region_code_for(region_hint)
        logger.info(f"Refreshing stream address for {station_id} (region: {region_hint or '-'})")

        url = await self._find_in_catalog(station_id, region_code)
        if url:
            source = (
                AddressSource.NATIONAL
                if region_code == NATIONAL_REGION_CODE
                else AddressSource.REGIONAL
            )
            logger.info(f"Resolved {station_id} from {source.value} catalog")
            return ResolvedAddress(url=url, source=source)

        if region_code != NATIONAL_REGION_CODE:
            logger.info(f"Station {station_id} not in region {region_code}, trying national list")
            url = await self._find_in_catalog(station_id, NATIONAL_REGION_CODE)
            if url:
                logger.info(f"Resolved {station_id} from national catalog")
                return ResolvedAddress(url=url, source=AddressSource.NATIONAL)

        logger.warning(f"Could not resolve a fresh address for {station_id}")
        return None

    async def _find_in_catalog(self, station_id: str, region_code: str) -> Optional[str]:
        """Search one catalog list; lookup failures count as not found."""
        try:
            records = await self._fetch_catalog(region_code)
        except ResolutionFailure as e:
            logger.warning(f"Catalog lookup failed (province {region_code}): {e}")
            return None

        for record in records:
            if str(record.get("contentId")) == station_id:
                return pick_media_url(record)
        return None

    async def _fetch_catalog(self, region_code: str) -> List[Dict[str, Any]]:
        """Fetch the station list of one province.

        Args:
            region_code: Catalog province code ("0" for national).

        Returns:
            List of station records.

        Raises:
            ResolutionFailure: On network errors, timeouts, bad status or payload.
        """
        params = {
            "categoryId": self.settings.catalog_category_id,
            "provinceCode": region_code,
        }
        headers = self._build_headers(params)
        timeout = aiohttp.ClientTimeout(total=self.settings.resolver_timeout)

        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(
                    f"{self.base_url}{self.LIST_ENDPOINT}",
                    params=params,
                    headers=headers,
                ) as response:
                    if response.status != 200:
                        raise ResolutionFailure(f"HTTP {response.status}")
                    data = await response.json(content_type=None)
        except ResolutionFailure:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ResolutionFailure(f"{type(e).__name__}: {e}") from e
        except ValueError as e:
            raise ResolutionFailure(f"Invalid JSON: {e}") from e

        if not isinstance(data, dict) or data.get("code") != 0:
            code = data.get("code") if isinstance(data, dict) else None
            raise ResolutionFailure(f"Catalog error code: {code}")

        records = data.get("data") or []
        if not isinstance(records, list):
            raise ResolutionFailure("Catalog payload is not a list")
        return [record for record in records if isinstance(record, dict)]

    def _build_headers(self, params: Mapping[str, Any]) -> Dict[str, str]:
        """Identification headers with a fresh timestamp and its signature."""
        timestamp = int(self._clock() * 1000)
        return {
            "equipmentId": self.settings.equipment_id,
            "platformCode": self.settings.platform_code,
            "Content-Type": "application/json",
            "timestamp": str(timestamp),
            "sign": generate_sign(params, timestamp, self.settings.catalog_secret),
        }
