"""Collaborators shared by the HTTP layer and the background refresh."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from .config import settings
from .db.supabase import get_supabase_client
from .persistence.database import SupabaseRecordStore
from .persistence.memory import InMemoryRecordStore
from .persistence.store import RecordStore
from .services.distances.service import DistanceCacheMaintainer
from .services.maps.google_client import GoogleMapsClient
from .services.refresh import RefreshCoordinator
from .services.schedules.service import ScheduleBuilder
from .services.smart_bins.feed import SmartBinFeedClient
from .services.smart_bins.service import SmartBinFeed, SmartBinSynchronizer
from .services.solver.adapter import RoutingSolverAdapter

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AppContext:
    store: RecordStore
    coordinator: RefreshCoordinator
    maps_client: Optional[GoogleMapsClient] = None
    database_configured: bool = False


def assemble_context(
    store: RecordStore,
    maps_client: Optional[GoogleMapsClient] = None,
    solver: Optional[RoutingSolverAdapter] = None,
    database_configured: bool = False,
    smart_bin_feed: Optional[SmartBinFeed] = None,
) -> AppContext:
    builder = ScheduleBuilder(store, solver or RoutingSolverAdapter())
    distances = DistanceCacheMaintainer(store, maps_client) if maps_client is not None else None
    smart_bins = SmartBinSynchronizer(store, smart_bin_feed) if smart_bin_feed is not None else None
    return AppContext(
        store=store,
        coordinator=RefreshCoordinator(builder, distances, smart_bins),
        maps_client=maps_client,
        database_configured=database_configured,
    )


async def build_context() -> AppContext:
    """Wire the collaborators from the current settings."""
    client = await get_supabase_client()
    if client is None:
        logger.warning("Supabase not configured - using an in-memory record store, data will not survive a restart")
        store: RecordStore = InMemoryRecordStore()
    else:
        store = SupabaseRecordStore(client)

    maps_client = None
    if settings.google_maps_api_key:
        maps_client = GoogleMapsClient()
    else:
        logger.warning("Google Maps API key not configured - distance cache maintenance is disabled")

    if not settings.routing_solver_path.exists():
        logger.warning(f"Routing solver not found at {settings.routing_solver_path}")

    smart_bin_feed = None
    if settings.smart_bins_url:
        smart_bin_feed = SmartBinFeedClient()
    else:
        logger.warning("Smart bins feed URL not configured - smart bins and fill levels will not be synced")

    return assemble_context(
        store,
        maps_client=maps_client,
        database_configured=client is not None,
        smart_bin_feed=smart_bin_feed,
    )


def get_context(request: Request) -> AppContext:
    return request.app.state.context
