"""HTTP client for the GeoJSON feeds published by the smart bin sensor platform."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import httpx

from ...config import settings

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RemoteSmartBin:
    serial_number: int
    longitude: float
    latitude: float
    address: str
    capacity: float
    threshold: float
    last_updated: datetime


@dataclass(slots=True)
class FillLevelReading:
    serial_number: int
    fullness: float
    timestamp: datetime


def parse_timestamp(value: Any) -> datetime:
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def smart_bin_from_feature(feature: dict) -> RemoteSmartBin:
    properties = feature["properties"]
    longitude, latitude = feature["geometry"]["coordinates"][:2]
    return RemoteSmartBin(
        serial_number=int(properties["serial_number"]),
        longitude=float(longitude),
        latitude=float(latitude),
        address=properties.get("bin_detail") or "",
        capacity=float(properties["capacity"]),
        threshold=float(properties["fullness_threshold"]),
        last_updated=parse_timestamp(properties["last_updated"]),
    )


def fill_level_from_feature(feature: dict) -> FillLevelReading:
    properties = feature["properties"]
    return FillLevelReading(
        serial_number=int(properties["serial_num"]),
        fullness=float(properties["fill_lvl"]),
        timestamp=parse_timestamp(properties["timestamp"]),
    )


def _parse_features(payload: dict, converter, label: str) -> list:
    parsed = []
    for feature in payload.get("features") or []:
        try:
            parsed.append(converter(feature))
        except (KeyError, ValueError, TypeError, IndexError) as exc:
            logger.warning(f"Skipping invalid {label} feature: {exc}")
    return parsed


class SmartBinFeedClient:
    def __init__(
        self,
        bins_url: str | None = None,
        fill_levels_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.bins_url = bins_url or settings.smart_bins_url
        if not self.bins_url:
            raise ValueError("Smart bins feed URL is not configured.")
        self.fill_levels_url = fill_levels_url or settings.smart_bins_fill_levels_url
        self.timeout = timeout if timeout is not None else settings.smart_bins_timeout_seconds
        self._transport = transport

    def _get_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout, connect=10.0),
            transport=self._transport,
        )

    async def _get_json(self, url: str) -> dict | None:
        try:
            async with self._get_client() as client:
                response = await client.get(url)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as exc:
            logger.warning(f"Smart bin feed {url} request failed: {exc}")
            return None
        except ValueError:
            logger.warning(f"Smart bin feed {url} response is not valid JSON")
            return None
        if not isinstance(data, dict):
            logger.warning(f"Smart bin feed {url} is not a GeoJSON feature collection")
            return None
        return data

    async def fetch_smart_bins(self) -> list[RemoteSmartBin] | None:
        """Every smart bin the platform knows about, or None when the feed is unavailable."""
        payload = await self._get_json(self.bins_url)
        if payload is None:
            return None
        return _parse_features(payload, smart_bin_from_feature, "smart bin")

    async def fetch_fill_levels(self) -> list[FillLevelReading] | None:
        """Latest fill level per smart bin; an empty list when no fill level feed is configured."""
        if not self.fill_levels_url:
            return []
        payload = await self._get_json(self.fill_levels_url)
        if payload is None:
            return None
        return _parse_features(payload, fill_level_from_feature, "fill level")
