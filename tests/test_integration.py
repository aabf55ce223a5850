import asyncio
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

from binroute.context import assemble_context
from binroute.main import create_app
from binroute.persistence.memory import InMemoryRecordStore
from binroute.persistence.store import Collection
from binroute.services.maps.google_client import GoogleMapsClient
from binroute.services.smart_bins.feed import SmartBinFeedClient
from binroute.services.solver.adapter import RoutingSolverAdapter


def _google_handler(calls: list):
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if request.url.path.endswith("/directions/json"):
            return httpx.Response(200, json={"status": "OK", "routes": [{"legs": []}]})
        origins = request.url.params["origins"].split("|")
        destinations = request.url.params["destinations"].split("|")
        element = {"status": "OK", "distance": {"value": 750}, "duration": {"value": 90}}
        return httpx.Response(
            200,
            json={"status": "OK", "rows": [{"elements": [element for _ in destinations]} for _ in origins]},
        )

    return handler


def _seed_store() -> InMemoryRecordStore:
    return InMemoryRecordStore(
        {
            Collection.DEPOTS: [{"id": "D", "longitude": 145.1275, "latitude": -37.9078, "address": "Depot Rd"}],
            Collection.SMART_BINS: [
                {
                    "id": "S1",
                    "serial_number": 1001,
                    "longitude": 145.13,
                    "latitude": -37.91,
                    "address": "1 Smart St",
                    "capacity": 10,
                    "threshold": 10,
                    "current_fullness": 10,
                }
            ],
            Collection.FLEET_VEHICLES: [
                {"id": "V1", "rego": "BIN001", "capacity": 30, "available": True, "icon": 2, "home_depot": "D"}
            ],
        }
    )


@pytest.fixture
def maps_calls() -> list:
    return []


@pytest.fixture
def store() -> InMemoryRecordStore:
    return _seed_store()


@pytest.fixture
def api_client(store, maps_calls, solver_script) -> TestClient:
    # One vehicle visiting every node in index order.
    script = solver_script(
        "nodes = len(sys.argv[2].split(','))\n"
        "print(','.join(['0'] + [str(i) for i in range(1, nodes)] + ['0']))\n"
    )
    maps_client = GoogleMapsClient(
        api_key="test-key",
        backoff_seconds=0.0,
        transport=httpx.MockTransport(_google_handler(maps_calls)),
    )
    context = assemble_context(store, maps_client=maps_client, solver=RoutingSolverAdapter(executable=script))
    app = create_app(context=context, background_refresh=False)
    return TestClient(app)


@pytest.fixture
def offline_client(store, tmp_path: Path) -> TestClient:
    context = assemble_context(store, solver=RoutingSolverAdapter(executable=tmp_path / "missing"))
    return TestClient(create_app(context=context, background_refresh=False))


def test_health_endpoints(api_client: TestClient):
    assert api_client.get("/api/health").json() == {"status": "ok"}

    maps = api_client.get("/api/health/maps").json()
    assert maps["configured"] is True
    assert maps["healthy"] is True

    database = api_client.get("/api/health/database").json()
    assert database["configured"] is False
    assert database["connected"] is True
    assert database["counts"]["smart_bins"] == 1


def test_list_bins_and_vehicles(api_client: TestClient):
    bins = api_client.get("/api/bins")
    assert bins.status_code == 200
    payload = bins.json()
    assert [item["id"] for item in payload["smart_bins"]] == ["S1"]
    assert payload["dumb_bins"] == []

    vehicles = api_client.get("/api/vehicles")
    assert vehicles.status_code == 200
    assert vehicles.json()[0]["rego"] == "BIN001"


def test_creating_a_dumb_bin_updates_cache_and_schedules(api_client: TestClient, store, maps_calls):
    response = api_client.put(
        "/api/bins",
        json={"create": [{"longitude": 145.1302, "latitude": -37.9101, "address": "2 Plain St", "capacity": 20}]},
    )

    assert response.status_code == 201
    (new_id,) = response.json()["inserted_ids"]

    dumb_bins = store.rows(Collection.DUMB_BINS)
    assert dumb_bins[0]["id"] == new_id
    assert dumb_bins[0]["nearest_smart_bin"] == "S1"

    pairs = {(row["origin_id"], row["destination_id"]) for row in store.rows(Collection.BIN_DISTANCES)}
    assert pairs == {(new_id, new_id), (new_id, "S1"), ("S1", new_id), (new_id, "D"), ("D", new_id)}
    assert maps_calls

    schedules = api_client.get("/api/schedules").json()
    assert [depot["id"] for depot in schedules["depots"]] == ["D"]
    assert len(schedules["schedules"]) == 1
    route = schedules["schedules"][0]["routes"][0]
    assert route["vehicle_id"] == "V1"
    assert len(route["visiting_order"]) == 4
    assert route["visiting_order"][2] == {"longitude": 145.1302, "latitude": -37.9101}
    assert len(schedules["schedules"][0]["strategies"]) == 5

    timestamp = api_client.get("/api/schedules/timestamp").json()["timestamp"]
    assert timestamp == schedules["schedules"][0]["timestamp"]


def test_invalid_bin_payload_is_rejected(api_client: TestClient, store):
    response = api_client.put(
        "/api/bins",
        json={"create": [{"longitude": 145.13, "latitude": -37.91, "address": "Huge", "capacity": 5000}]},
    )

    assert response.status_code == 422
    assert store.rows(Collection.DUMB_BINS) == []


def test_updating_a_missing_bin_fails(api_client: TestClient):
    response = api_client.put(
        "/api/bins",
        json={"update": [{"id": "NOPE", "longitude": 145.13, "latitude": -37.91, "address": "x", "capacity": 10}]},
    )

    assert response.status_code == 500


def test_vehicle_changes_rebuild_schedules(api_client: TestClient, store):
    response = api_client.put(
        "/api/vehicles",
        json={
            "create": [{"rego": "BIN002", "capacity": 5000, "icon": 3}],
            "update": [{"id": "V1", "rego": "BIN001", "capacity": 40, "available": True, "home_depot": "D"}],
        },
    )

    assert response.status_code == 201
    (new_id,) = response.json()["inserted_ids"]
    vehicles = {row["id"]: row for row in store.rows(Collection.FLEET_VEHICLES)}
    assert vehicles[new_id]["rego"] == "BIN002"
    assert vehicles["V1"]["capacity"] == 40
    assert len(store.rows(Collection.SCHEDULES)) == 1


def test_invalid_vehicle_payload_is_rejected(api_client: TestClient):
    response = api_client.put("/api/vehicles", json={"create": [{"rego": "", "capacity": 100}]})
    assert response.status_code == 422

    response = api_client.put("/api/vehicles", json={"create": [{"rego": "X", "capacity": 100, "icon": 12}]})
    assert response.status_code == 422


def test_refresh_with_cache_rebuild(api_client: TestClient, store):
    response = api_client.post("/api/schedules/refresh", json={"rebuild_cache": True})

    assert response.status_code == 200
    assert response.json() == {"success": True, "schedules": 1}
    # depot and one smart bin
    assert len(store.rows(Collection.BIN_DISTANCES)) == 4


def test_route_directions(api_client: TestClient, maps_calls):
    api_client.post("/api/schedules/refresh")
    maps_calls.clear()

    response = api_client.get("/api/schedules/0/routes/0/directions")

    assert response.status_code == 200
    payload = response.json()
    assert payload["vehicle_id"] == "V1"
    assert payload["stops"] == 3
    assert len(payload["windows"]) == 1
    assert len(maps_calls) == 1

    assert api_client.get("/api/schedules/5/routes/0/directions").status_code == 404
    assert api_client.get("/api/schedules/0/routes/3/directions").status_code == 404


def test_missing_collaborators(offline_client: TestClient):
    assert offline_client.get("/api/health/maps").json()["configured"] is False
    assert offline_client.post("/api/schedules/refresh", json={"rebuild_cache": True}).status_code == 503
    assert offline_client.get("/api/schedules/0/routes/0/directions").status_code == 503
    # The solver executable is missing.
    assert offline_client.post("/api/schedules/refresh").status_code == 500
    assert offline_client.get("/api/schedules/timestamp").json() == {"timestamp": None}


def _feed_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path.endswith("/bins"):
        return httpx.Response(
            200,
            json={
                "features": [
                    {
                        "geometry": {"type": "Point", "coordinates": [145.131, -37.911]},
                        "properties": {
                            "serial_number": 2002,
                            "bin_detail": "2 Smart St",
                            "capacity": 10,
                            "fullness_threshold": 10,
                            "last_updated": "2024-05-01T11:00:00Z",
                        },
                    }
                ]
            },
        )
    return httpx.Response(
        200,
        json={"features": [{"properties": {"serial_num": 2002, "fill_lvl": 10, "timestamp": "2024-05-02T11:00:00Z"}}]},
    )


def test_refresh_syncs_smart_bins_from_feed(store, maps_calls, solver_script):
    asyncio.run(
        store.insert_many(
            Collection.DUMB_BINS,
            [
                {
                    "id": "B1",
                    "longitude": 145.1305,
                    "latitude": -37.9105,
                    "address": "1 Plain St",
                    "capacity": 20,
                    "nearest_smart_bin": "S1",
                }
            ],
        )
    )
    script = solver_script(
        "nodes = len(sys.argv[2].split(','))\n"
        "print(','.join(['0'] + [str(i) for i in range(1, nodes)] + ['0']))\n"
    )
    maps_client = GoogleMapsClient(
        api_key="test-key",
        backoff_seconds=0.0,
        transport=httpx.MockTransport(_google_handler(maps_calls)),
    )
    feed = SmartBinFeedClient(
        bins_url="https://feeds.test/bins",
        fill_levels_url="https://feeds.test/levels",
        transport=httpx.MockTransport(_feed_handler),
    )
    context = assemble_context(
        store,
        maps_client=maps_client,
        solver=RoutingSolverAdapter(executable=script),
        smart_bin_feed=feed,
    )
    client = TestClient(create_app(context=context, background_refresh=False))

    response = client.post("/api/schedules/refresh")

    assert response.status_code == 200
    assert response.json() == {"success": True, "schedules": 1}
    smart_rows = store.rows(Collection.SMART_BINS)
    assert [row["serial_number"] for row in smart_rows] == [2002]
    assert smart_rows[0]["current_fullness"] == 10
    new_id = smart_rows[0]["id"]
    assert store.rows(Collection.DUMB_BINS)[0]["nearest_smart_bin"] == new_id
    # new smart bin to itself, to and from the dumb bin, to and from the depot
    distances = store.rows(Collection.BIN_DISTANCES)
    assert len(distances) == 5
    assert all(new_id in (row["origin_id"], row["destination_id"]) for row in distances)
    schedule = client.get("/api/schedules").json()["schedules"][0]
    assert len(schedule["routes"][0]["visiting_order"]) == 4
