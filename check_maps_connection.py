#!/usr/bin/env python3
"""Manual check that the Google Distance Matrix and Directions services answer with the configured key."""

import asyncio
import sys
from pathlib import Path

# Add src to path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root / "src"))

from binroute.config import settings
from binroute.models.domain import Position
from binroute.services.maps.google_client import GoogleMapsClient

# Two points in Clayton, Victoria
TEST_POSITIONS = [
    Position(longitude=145.1275, latitude=-37.907803),
    Position(longitude=145.133957, latitude=-37.915047),
]


async def run_checks() -> int:
    print("1. Checking Google Maps configuration...")
    if not settings.google_maps_api_key:
        print("   [ERROR] Google Maps API key is not configured")
        print("   Please set BINROUTE_GOOGLE_MAPS_API_KEY in your .env file")
        return 1
    print(f"   [OK] Base URL: {settings.google_maps_base_url}")
    print(f"   [OK] Mode: {settings.maps_travel_mode}, language: {settings.maps_language}")
    print()

    client = GoogleMapsClient()

    print("2. Testing health check...")
    if not await client.check_health():
        print("   [ERROR] Distance Matrix service rejected the request")
        return 1
    print("   [OK] Distance Matrix service is reachable")
    print()

    print("3. Testing a 2x2 distance matrix...")
    matrix = await client.distance_matrix(TEST_POSITIONS, TEST_POSITIONS)
    for i, row in enumerate(matrix):
        for j, cell in enumerate(row):
            print(f"   [{i}->{j}] distance={cell.distance} m, duration={cell.duration} s")
    if not all(cell.is_known for row in matrix for cell in row):
        print("   [ERROR] Some pairs came back unknown")
        return 1
    print()

    print("4. Testing directions...")
    windows = await client.directions(TEST_POSITIONS[0], TEST_POSITIONS[1])
    if not windows:
        print("   [ERROR] No directions returned")
        return 1
    legs = windows[0]["routes"][0]["legs"]
    print(f"   [OK] {len(legs)} leg(s), {legs[0]['distance']['text']}")
    return 0


def main():
    print("=" * 60)
    print("Google Maps Connection Test")
    print("=" * 60)
    print()
    status = asyncio.run(run_checks())
    print()
    print("=" * 60)
    print("[SUCCESS] Google Maps services are working!" if status == 0 else "[FAILED] See the errors above")
    print("=" * 60)
    return status


if __name__ == "__main__":
    sys.exit(main())
