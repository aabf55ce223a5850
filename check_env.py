#!/usr/bin/env python3
"""Check the .env file and the external collaborators the router depends on."""

from pathlib import Path
import os
import sys

TEMPLATE = """# Supabase (leave empty to run on the in-memory store)
BINROUTE_SUPABASE_URL=https://your-project-id.supabase.co
BINROUTE_SUPABASE_KEY=your-service-role-key-here

# Google Distance Matrix / Directions
BINROUTE_GOOGLE_MAPS_API_KEY=your-google-maps-key

# Smart bin sensor platform (GeoJSON feeds)
BINROUTE_SMART_BINS_URL=https://your-sensor-platform/smart-bins.geojson
BINROUTE_SMART_BINS_FILL_LEVELS_URL=https://your-sensor-platform/fill-levels.geojson

# Route-optimization executable
BINROUTE_ROUTING_SOLVER_PATH=./routing_solver/bin/routing
# BINROUTE_ROUTING_STRATEGIES=AUTOMATIC,GUIDED_LOCAL_SEARCH

# Scheduling
# BINROUTE_FULLNESS_RATIO_THRESHOLD=0.5
# BINROUTE_REFRESH_INTERVAL_MINUTES=1440
"""

SECRET_NAMES = ("BINROUTE_SUPABASE_KEY", "BINROUTE_GOOGLE_MAPS_API_KEY")


def _mask(value: str) -> str:
    return value[:6] + "..." + value[-4:] if len(value) > 12 else "***"


def main():
    project_root = Path(__file__).parent
    env_file = project_root / ".env"

    print("=" * 60)
    print("Bin Collection Router environment checker")
    print("=" * 60)
    print()

    if not env_file.exists():
        env_file.write_text(TEMPLATE, encoding="utf-8")
        print(f"❌ .env file NOT found, created a template at: {env_file}")
        print("⚠️  Please edit .env and fill in your credentials, then run this again.")
        return

    print(f"✅ Found .env file at: {env_file}")
    for line in env_file.read_text(encoding="utf-8").splitlines():
        name, sep, value = line.partition("=")
        if sep and name.strip() in SECRET_NAMES:
            print(f"   {name.strip()}={_mask(value.strip())}")
    print()

    sys.path.insert(0, str(project_root / "src"))
    try:
        from binroute.config import settings
    except Exception as e:
        print(f"❌ Error loading config: {e}")
        print("Make sure you're running this from the project root directory")
        return

    checks = [
        ("Supabase URL", bool(settings.supabase_url), "in-memory store will be used"),
        ("Supabase key", bool(settings.supabase_key), "in-memory store will be used"),
        ("Google Maps API key", bool(settings.google_maps_api_key), "distance cache maintenance disabled"),
        ("Smart bins feed URL", bool(settings.smart_bins_url), "smart bins and fill levels will not be synced"),
        (
            f"Routing solver at {settings.routing_solver_path}",
            settings.routing_solver_path.exists() and os.access(settings.routing_solver_path, os.X_OK),
            "schedule builds will fail",
        ),
    ]
    for label, ok, consequence in checks:
        print(f"✅ {label}" if ok else f"❌ {label} missing: {consequence}")

    print()
    print("=" * 60)
    if all(ok for _, ok, _ in checks):
        print("✅ SUCCESS: every collaborator is configured")
    else:
        print("⚠️  Some collaborators are missing (variables must start with BINROUTE_)")
    print("=" * 60)


if __name__ == "__main__":
    main()
