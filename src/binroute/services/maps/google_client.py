"""HTTP client for the Google Distance Matrix and Directions services."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Sequence

import httpx

from ...config import settings
from ...models.domain import Position, TravelEstimate

OK_STATUS = "OK"
RATE_LIMIT_STATUS = "OVER_QUERY_LIMIT"

logger = logging.getLogger(__name__)


def plan_matrix_batches(
    origin_count: int,
    destination_count: int,
    max_origins: int,
    max_destinations: int,
    max_pairs: int,
) -> list[tuple[int, int, int, int]]:
    """Split an origin x destination request into blocks honouring every per-call limit.

    Returns ``(origin_start, origin_end, destination_start, destination_end)``
    tuples in request order.
    """
    batches: list[tuple[int, int, int, int]] = []
    origin_start = 0
    while origin_start < origin_count:
        origin_block = min(origin_count - origin_start, max_origins, max_pairs)
        destination_limit = min(max_destinations, max_pairs // origin_block)
        destination_start = 0
        while destination_start < destination_count:
            destination_block = min(destination_count - destination_start, destination_limit)
            batches.append(
                (
                    origin_start,
                    origin_start + origin_block,
                    destination_start,
                    destination_start + destination_block,
                )
            )
            destination_start += destination_block
        origin_start += origin_block
    return batches


def plan_direction_windows(waypoint_count: int, max_waypoints: int) -> list[tuple[int, int]]:
    """Split a waypoint chain into inclusive ``(start, end)`` windows.

    Each window's last waypoint is the next window's first one.
    """
    if max_waypoints < 2:
        raise ValueError("A directions request needs room for at least two waypoints.")
    windows: list[tuple[int, int]] = []
    for start in range(0, waypoint_count - 1, max_waypoints - 1):
        windows.append((start, min(start + max_waypoints - 1, waypoint_count - 1)))
    return windows


def _format_position(position: Position) -> str:
    return f"{position.latitude},{position.longitude}"


class GoogleMapsClient:
    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        max_origins_per_request: int | None = None,
        max_destinations_per_request: int | None = None,
        max_pairs_per_request: int | None = None,
        max_waypoints_per_request: int | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key or settings.google_maps_api_key
        if not self.api_key:
            raise ValueError("Google Maps API key is not configured.")
        self.base_url = (base_url or settings.google_maps_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.maps_timeout_seconds
        self.max_origins_per_request = max_origins_per_request or settings.maps_max_origins_per_request
        self.max_destinations_per_request = (
            max_destinations_per_request or settings.maps_max_destinations_per_request
        )
        self.max_pairs_per_request = max_pairs_per_request or settings.maps_max_pairs_per_request
        self.max_waypoints_per_request = max_waypoints_per_request or settings.maps_max_waypoints_per_request
        self.max_retries = max_retries if max_retries is not None else settings.maps_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.maps_backoff_seconds
        self._transport = transport

    def _get_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout, connect=10.0),
            transport=self._transport,
        )

    def _base_params(self) -> dict[str, str]:
        return {
            "mode": settings.maps_travel_mode,
            "units": "metric",
            "language": settings.maps_language,
            "key": self.api_key,
        }

    async def _request(self, client: httpx.AsyncClient, endpoint: str, params: dict[str, str]) -> dict | None:
        """Issue one call, retrying only on rate limiting with a linearly growing delay.

        Returns the decoded payload when the service answered OK, otherwise None.
        """
        url = f"{self.base_url}/{endpoint}/json"
        attempt = 0
        while True:
            try:
                response = await client.get(url, params=params)
            except httpx.HTTPError as exc:
                logger.warning(f"{endpoint} request failed: {exc}")
                return None

            if response.status_code != 429:
                if response.status_code != 200:
                    logger.warning(f"{endpoint} request returned HTTP {response.status_code}")
                    return None
                try:
                    data = response.json()
                except ValueError:
                    logger.warning(f"{endpoint} response is not valid JSON")
                    return None
                status = data.get("status")
                if status == OK_STATUS:
                    return data
                if status != RATE_LIMIT_STATUS:
                    logger.warning(f"{endpoint} request failed with status {status}: {data.get('error_message', '')}")
                    return None

            if attempt >= self.max_retries:
                logger.warning(f"{endpoint} still rate limited after {self.max_retries} retries")
                return None
            attempt += 1
            wait_time = self.backoff_seconds * attempt
            logger.debug(f"{endpoint} rate limited, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries})")
            await asyncio.sleep(wait_time)

    async def distance_matrix(
        self,
        origins: Sequence[Position],
        destinations: Sequence[Position],
    ) -> list[list[TravelEstimate]]:
        """Travel estimates from every origin to every destination.

        Cells stay unknown when a block of the request fails, when the service
        reports a pair as unroutable, or when either position is out of range.
        Failures never raise.
        """
        matrix = [[TravelEstimate() for _ in destinations] for _ in origins]
        valid_origins = [index for index, position in enumerate(origins) if position.is_valid()]
        valid_destinations = [index for index, position in enumerate(destinations) if position.is_valid()]
        if len(valid_origins) < len(origins) or len(valid_destinations) < len(destinations):
            logger.warning(
                f"Skipping {len(origins) - len(valid_origins)} origins and "
                f"{len(destinations) - len(valid_destinations)} destinations with invalid coordinates"
            )
        if not valid_origins or not valid_destinations:
            return matrix

        batches = plan_matrix_batches(
            len(valid_origins),
            len(valid_destinations),
            self.max_origins_per_request,
            self.max_destinations_per_request,
            self.max_pairs_per_request,
        )
        start_time = time.perf_counter()
        failed = 0
        async with self._get_client() as client:
            for origin_start, origin_end, destination_start, destination_end in batches:
                origin_indices = valid_origins[origin_start:origin_end]
                destination_indices = valid_destinations[destination_start:destination_end]
                params = self._base_params()
                params["origins"] = "|".join(_format_position(origins[i]) for i in origin_indices)
                params["destinations"] = "|".join(_format_position(destinations[j]) for j in destination_indices)

                data = await self._request(client, "distancematrix", params)
                if data is None:
                    failed += 1
                    continue
                for row_offset, row in enumerate(data.get("rows", [])[: len(origin_indices)]):
                    for column_offset, element in enumerate(row.get("elements", [])[: len(destination_indices)]):
                        if element.get("status") != OK_STATUS:
                            continue
                        matrix[origin_indices[row_offset]][destination_indices[column_offset]] = TravelEstimate(
                            distance=int(element["distance"]["value"]),
                            duration=int(element["duration"]["value"]),
                        )

        elapsed = time.perf_counter() - start_time
        if failed:
            logger.warning(
                f"Partial failure: {failed}/{len(batches)} distance matrix requests failed; "
                f"affected pairs are marked unknown ({elapsed:.2f}s)"
            )
        else:
            logger.info(
                f"Completed {len(batches)} distance matrix requests for "
                f"{len(origins)}x{len(destinations)} pairs in {elapsed:.2f}s"
            )
        return matrix

    async def directions(
        self,
        origin: Position,
        destination: Position,
        waypoints: Sequence[Position] = (),
    ) -> list[dict[str, Any]]:
        """Turn-by-turn directions for the chain origin -> waypoints -> destination.

        Long chains are split into overlapping windows, one call each; the
        per-window payloads are returned in order and left for the caller to
        stitch together. Windows that fail are skipped.
        """
        chain = [origin, *waypoints, destination]
        windows = plan_direction_windows(len(chain), self.max_waypoints_per_request)
        results: list[dict[str, Any]] = []
        async with self._get_client() as client:
            for start, end in windows:
                params = self._base_params()
                params["origin"] = _format_position(chain[start])
                params["destination"] = _format_position(chain[end])
                params["alternatives"] = "false"
                interior = chain[start + 1 : end]
                if interior:
                    params["waypoints"] = "|".join(_format_position(point) for point in interior)

                data = await self._request(client, "directions", params)
                if data is None:
                    logger.warning(f"Directions window [{start}:{end}] failed and is omitted")
                    continue
                results.append(data)
        return results

    async def check_health(self) -> bool:
        """Check that the service answers with the configured key."""
        point = Position(longitude=145.1275, latitude=-37.907803)
        params = self._base_params()
        params["origins"] = _format_position(point)
        params["destinations"] = _format_position(point)
        try:
            async with self._get_client() as client:
                response = await client.get(f"{self.base_url}/distancematrix/json", params=params, timeout=5.0)
                response.raise_for_status()
                return response.json().get("status") == OK_STATUS
        except (httpx.HTTPError, ValueError):
            return False
