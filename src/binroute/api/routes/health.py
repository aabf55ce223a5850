"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ...context import AppContext, get_context
from ...persistence.store import Collection, RecordStoreError

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


@router.get("/health/maps", status_code=status.HTTP_200_OK)
async def health_maps(context: AppContext = Depends(get_context)) -> dict:
    """Check the Google Maps services answer with the configured key."""
    if context.maps_client is None:
        return {"service": "google_maps", "configured": False, "healthy": False}
    try:
        healthy = await context.maps_client.check_health()
        return {"service": "google_maps", "configured": True, "healthy": healthy}
    except Exception as e:
        return {"service": "google_maps", "configured": True, "healthy": False, "error": str(e)}


@router.get("/health/database", status_code=status.HTTP_200_OK)
async def check_database(context: AppContext = Depends(get_context)) -> dict:
    """Check the record store and report how many records it holds."""
    if not context.database_configured:
        message = (
            "Supabase not configured. Set BINROUTE_SUPABASE_URL and BINROUTE_SUPABASE_KEY environment variables; "
            "an in-memory store is in use."
        )
    else:
        message = "Database connected."

    try:
        counts = {
            collection.value: len(await context.store.find_all(collection))
            for collection in (
                Collection.DEPOTS,
                Collection.SMART_BINS,
                Collection.DUMB_BINS,
                Collection.FLEET_VEHICLES,
                Collection.SCHEDULES,
            )
        }
    except RecordStoreError as exc:
        return {
            "configured": context.database_configured,
            "connected": False,
            "error": str(exc),
            "message": f"Database connection error: {exc}",
        }
    return {
        "configured": context.database_configured,
        "connected": True,
        "counts": counts,
        "message": message,
    }
