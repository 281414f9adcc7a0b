import pytest
from datetime import datetime

pytestmark = pytest.mark.anyio

HARVEST_TOUR = {
    "title": "Harvest Tour",
    "description": "Walk the maize fields",
    "eventDate": "2026-11-07T00:00:00Z",
    "startTime": "09:00",
    "endTime": "12:00",
    "location": "North field",
    "category": "tour",
}


async def test_event_crud(admin_client, client):
    res = await admin_client.post("/api/events", json=HARVEST_TOUR)
    assert res.status_code == 201
    created = res.json()

    res = await admin_client.put(f"/api/events/{created['id']}", json={"location": "South field"})
    assert res.status_code == 200
    updated = res.json()
    assert updated["location"] == "South field"
    assert updated["title"] == "Harvest Tour"
    assert datetime.fromisoformat(updated["updatedAt"]) > datetime.fromisoformat(created["updatedAt"])

    assert (await client.get(f"/api/events/{created['id']}")).json()["location"] == "South field"

    assert (await admin_client.delete(f"/api/events/{created['id']}")).status_code == 200
    assert (await client.get(f"/api/events/{created['id']}")).status_code == 404


async def test_events_need_admin(alice_client):
    assert (await alice_client.post("/api/events", json=HARVEST_TOUR)).status_code == 403


async def test_event_validation(admin_client):
    res = await admin_client.post("/api/events", json={**HARVEST_TOUR, "location": ""})
    assert res.status_code == 400
    assert res.json()["errors"][0]["field"] == "location"


async def test_events_by_date_range(admin_client, client):
    for day in ("2026-11-01", "2026-11-15", "2026-12-20"):
        await admin_client.post("/api/events", json={**HARVEST_TOUR, "title": day, "eventDate": f"{day}T00:00:00Z"})

    res = await client.get("/api/events", params={"start": "2026-11-01T00:00:00Z", "end": "2026-11-30T00:00:00Z"})
    assert [e["title"] for e in res.json()] == ["2026-11-01", "2026-11-15"]

    assert len((await client.get("/api/events")).json()) == 3

    bad = await client.get("/api/events", params={"start": "2026-12-01T00:00:00Z", "end": "2026-11-01T00:00:00Z"})
    assert bad.status_code == 400


async def test_date_range_compares_in_utc(admin_client, client):
    # 01:00 in Nairobi on Nov 1st is still Oct 31st in UTC
    await admin_client.post("/api/events", json={**HARVEST_TOUR, "title": "Night market",
                                                 "eventDate": "2026-11-01T01:00:00+03:00"})

    november = await client.get("/api/events", params={"start": "2026-11-01T00:00:00Z"})
    assert november.json() == []

    late_october = await client.get("/api/events", params={
        "start": "2026-10-31T21:30:00Z", "end": "2026-10-31T22:30:00Z",
    })
    assert [e["title"] for e in late_october.json()] == ["Night market"]

    same_window_local = await client.get("/api/events", params={
        "start": "2026-11-01T00:30:00+03:00", "end": "2026-11-01T01:30:00+03:00",
    })
    assert [e["title"] for e in same_window_local.json()] == ["Night market"]
