"""
Operator API Tests.

============================================================
PURPOSE
============================================================
HTTP tests for the MID operations and audit endpoints.

============================================================
"""

import pytest
from aiohttp import test_utils

from audit.ledger import AuditLedger
from core.clock import MockClock
from core.config import PortalConfig
from domain.state_store import DomainStateStore
from operator_api.api import create_operator_app
from registry_sync.engine import RegistrySyncEngine
from registry_sync.gateway import ScriptedProbabilitySource, SimulatedRegistryGateway
from registry_sync.scheduler import TriggerScheduler
from storage.memory import InMemoryKeyValueStore


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def services():
    store = InMemoryKeyValueStore()
    clock = MockClock(tick_seconds=1.0)
    config = PortalConfig()
    config.gateway.latency_seconds = 0
    config.scheduler.kick_on_enqueue = False

    ledger = AuditLedger(store, clock=clock)
    domain = DomainStateStore(store, ledger, clock=clock)
    gateway = SimulatedRegistryGateway(
        config.gateway,
        probability_source=ScriptedProbabilitySource([0.0, 0.99], fallback=0.99),
    )
    engine = RegistrySyncEngine(store, ledger, domain, gateway, clock=clock, config=config)
    scheduler = TriggerScheduler(engine, domain, config.scheduler)
    return engine, ledger, scheduler


def _client(services) -> test_utils.TestClient:
    engine, ledger, scheduler = services
    return test_utils.TestClient(test_utils.TestServer(create_operator_app(engine, ledger, scheduler)))


# ============================================================
# HEALTH
# ============================================================

class TestHealth:
    """Tests for GET /health."""

    @pytest.mark.asyncio
    async def test_health(self, services):
        """Test the health endpoint."""
        async with _client(services) as client:
            resp = await client.get("/health")
            body = await resp.json()

        assert resp.status == 200
        assert body["status"] == "ok"
        assert body["service"] == "swiftpolicy-portal"
        assert body["processing"] is False
        assert body["timestamp"].endswith("+00:00")


# ============================================================
# MID SUBMISSIONS
# ============================================================

class TestSubmissions:
    """Tests for the MID submission endpoints."""

    @pytest.mark.asyncio
    async def test_enqueue_created(self, services):
        """Test a new policy is queued with 201."""
        async with _client(services) as client:
            resp = await client.post("/mid/submissions", json={"policyId": "POL-1", "vrm": "ab12cde"})
            body = await resp.json()

        assert resp.status == 201
        assert body["data"]["created"] is True
        submission = body["data"]["submission"]
        assert submission["policyId"] == "POL-1"
        assert submission["vrm"] == "AB12CDE"
        assert submission["status"] == "Pending"

    @pytest.mark.asyncio
    async def test_enqueue_duplicate(self, services):
        """Test a duplicate returns 200 with the existing submission."""
        async with _client(services) as client:
            first = await (await client.post("/mid/submissions", json={"policyId": "POL-1", "vrm": "AB12CDE"})).json()
            resp = await client.post("/mid/submissions", json={"policyId": "POL-1", "vrm": "AB12CDE"})
            body = await resp.json()

        assert resp.status == 200
        assert body["data"]["created"] is False
        assert body["data"]["submission"]["id"] == first["data"]["submission"]["id"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [{"policyId": "POL-1"}, {"vrm": "AB12CDE"}, ["POL-1"]])
    async def test_enqueue_validation(self, services, payload):
        """Test missing fields are rejected with 400."""
        async with _client(services) as client:
            resp = await client.post("/mid/submissions", json=payload)
            body = await resp.json()

        assert resp.status == 400
        assert body["status"] == "error"

    @pytest.mark.asyncio
    async def test_enqueue_rejects_non_json(self, services):
        """Test a non-JSON body is rejected with 400."""
        async with _client(services) as client:
            resp = await client.post("/mid/submissions", data="policyId=POL-1")

        assert resp.status == 400

    @pytest.mark.asyncio
    async def test_list_and_filter(self, services):
        """Test listing with status and search filters."""
        engine, _, _ = services
        engine.enqueue("POL-AAA", "AB12CDE")
        engine.enqueue("POL-BBB", "XY99ZZZ")
        await engine.process_queue()

        async with _client(services) as client:
            everything = await (await client.get("/mid/submissions")).json()
            all_filter = await (await client.get("/mid/submissions", params={"status": "All"})).json()
            failed = await (await client.get("/mid/submissions", params={"status": "Failed"})).json()
            searched = await (await client.get("/mid/submissions", params={"q": "ab12"})).json()

        assert len(everything["data"]) == 2
        assert len(all_filter["data"]) == 2
        assert [s["policyId"] for s in failed["data"]] == ["POL-BBB"]
        assert [s["policyId"] for s in searched["data"]] == ["POL-AAA"]

    @pytest.mark.asyncio
    async def test_list_rejects_unknown_status(self, services):
        """Test an unknown status filter is a 400."""
        async with _client(services) as client:
            resp = await client.get("/mid/submissions", params={"status": "Lost"})

        assert resp.status == 400

    @pytest.mark.asyncio
    async def test_stats(self, services):
        """Test the stats endpoint."""
        engine, _, _ = services
        engine.enqueue("POL-1", "AB12CDE")

        async with _client(services) as client:
            body = await (await client.get("/mid/stats")).json()

        assert body["data"] == {"total": 1, "success": 0, "failed": 0, "pending": 1}

    @pytest.mark.asyncio
    async def test_sync(self, services):
        """Test a manual pass reports its counts."""
        engine, _, _ = services
        engine.enqueue("POL-1", "AB12CDE")
        engine.enqueue("POL-2", "XY99ZZZ")

        async with _client(services) as client:
            resp = await client.post("/mid/sync")
            body = await resp.json()

        assert resp.status == 200
        assert body["data"]["attempted"] == 2
        assert body["data"]["succeeded"] == 1
        assert body["data"]["failed"] == 1
        assert body["data"]["skipped"] is False

    @pytest.mark.asyncio
    async def test_retry(self, services):
        """Test retrying a failed submission returns the outcome."""
        engine, _, _ = services
        engine.enqueue("POL-1", "AB12CDE")
        engine.enqueue("POL-2", "XY99ZZZ")
        await engine.process_queue()
        failed = engine.submission_for_policy("POL-2")

        async with _client(services) as client:
            resp = await client.post(f"/mid/submissions/{failed.id}/retry")
            body = await resp.json()

        assert resp.status == 200
        assert body["data"]["success"] is False
        assert body["data"]["submission"]["retryCount"] == 2

    @pytest.mark.asyncio
    async def test_retry_unknown(self, services):
        """Test retrying an unknown id is a 404 with no audit entry."""
        _, ledger, _ = services

        async with _client(services) as client:
            resp = await client.post("/mid/submissions/nonexistent-id/retry")

        assert resp.status == 404
        assert ledger.count() == 0


# ============================================================
# AUDIT
# ============================================================

class TestAudit:
    """Tests for GET /audit."""

    @pytest.mark.asyncio
    async def test_audit_newest_first(self, services):
        """Test entries are returned newest first with portal field names."""
        engine, _, _ = services
        first = engine.enqueue("POL-1", "AB12CDE")
        second = engine.enqueue("POL-2", "XY99ZZZ")

        async with _client(services) as client:
            body = await (await client.get("/audit")).json()

        entries = body["data"]["entries"]
        assert body["data"]["total"] == 2
        assert [e["targetId"] for e in entries] == [second.id, first.id]
        assert entries[0]["userId"] == "SYSTEM"
        assert entries[0]["action"] == "MID_QUEUED"

    @pytest.mark.asyncio
    async def test_audit_filters(self, services):
        """Test limit, action and target filters."""
        engine, _, _ = services
        first = engine.enqueue("POL-1", "AB12CDE")
        engine.enqueue("POL-2", "XY99ZZZ")
        await engine.process_queue()

        async with _client(services) as client:
            limited = await (await client.get("/audit", params={"limit": "1"})).json()
            failures = await (await client.get("/audit", params={"action": "MID_TX_FAILURE"})).json()
            targeted = await (await client.get("/audit", params={"target": first.id})).json()

        assert len(limited["data"]["entries"]) == 1
        assert limited["data"]["total"] == 4
        assert [e["action"] for e in failures["data"]["entries"]] == ["MID_TX_FAILURE"]
        assert [e["action"] for e in targeted["data"]["entries"]] == ["MID_TX_SUCCESS", "MID_QUEUED"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("limit", ["abc", "0"])
    async def test_audit_bad_limit(self, services, limit):
        """Test invalid limits are rejected."""
        async with _client(services) as client:
            resp = await client.get("/audit", params={"limit": limit})

        assert resp.status == 400
