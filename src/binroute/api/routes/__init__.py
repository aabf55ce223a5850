"""Route group exports."""

from . import bins, health, schedules, vehicles

__all__ = ["bins", "health", "schedules", "vehicles"]
