from __future__ import annotations

import pytest
from aiohttp.test_utils import TestClient, TestServer

from clobber.health import build_health_app
from clobber.services.stats import RuntimeStats


@pytest.mark.asyncio
async def test_health_reports_stats():
    stats = RuntimeStats()
    stats.actions_applied = 3

    async with TestClient(TestServer(build_health_app(stats))) as client:
        resp = await client.get("/healthz")
        assert resp.status == 200
        data = await resp.json()

    assert data["ok"] is True
    assert data["service"] == "clobber"
    assert data["stats"]["actions_applied"] == 3
    assert "uptime_seconds" in data["stats"]
