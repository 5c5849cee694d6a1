import pytest


@pytest.mark.asyncio
async def test_ping_and_healthz(http):
    response = await http.get("/ping")
    assert response.status_code == 200
    assert response.json()["ok"] is True

    response = await http.get("/healthz")
    assert response.text == "ok"


@pytest.mark.asyncio
async def test_db_health(http):
    response = await http.get("/api/db/health")
    assert response.json() == {"ok": True}
