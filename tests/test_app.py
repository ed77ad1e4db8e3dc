from __future__ import annotations

import pytest


@pytest.mark.asyncio
async def test_root_reports_ok(api_client) -> None:
    resp = await api_client.get("/")
    assert resp.status_code == 200
    assert resp.json() == {"status": "lomu-api-ok"}


@pytest.mark.asyncio
async def test_error_bodies_share_one_shape(api_client, make_user) -> None:
    unknown = await api_client.get("/api/nope")
    assert unknown.status_code == 404
    assert unknown.json() == {"message": "Not Found"}

    malformed = await api_client.post("/api/auth/register", json=["not", "an", "object"])
    assert malformed.status_code == 400
    assert malformed.json()["error"] == "ValidationError"

    alice = await make_user("alice")
    bad_coords = await api_client.put(
        "/api/users/location", json={"latitude": "north", "longitude": 1}, headers=alice["headers"]
    )
    assert bad_coords.status_code == 400
    assert bad_coords.json() == {"message": "Invalid latitude", "error": "ValidationError"}
