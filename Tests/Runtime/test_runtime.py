# test_runtime.py
# Wiring tests: the runtime built from settings syncs end to end against the fake server.
import copy

import pytest

from workops_offline.config import DEFAULT_CONFIG_FROM_TOML
from workops_offline.runtime import build_runtime
from workops_offline.Sync.auth_gate import SessionAuthGate
from workops_offline.Sync.Sync_Orchestrator import SyncOutcome
from conftest import BASE_URL

pytestmark = pytest.mark.asyncio


def _settings(**auth):
    settings = copy.deepcopy(DEFAULT_CONFIG_FROM_TOML)
    settings["server"]["base_url"] = BASE_URL
    settings["database"]["offline_db_path"] = ":memory:"
    settings["sync"]["backoff_base_seconds"] = 0
    settings["auth"].update(auth)
    return settings


async def test_runtime_hydrates_and_pushes(fake_server):
    fake_server.add("GET", "/api/customers", {"success": True, "customers": [
        {"_id": "cust-1", "customerName": "Asha", "phoneNumber": "555", "updatedAt": "2024-01-01T00:00:00Z"}]})
    fake_server.add("POST", "/api/workorder", {"success": True, "workOrder": {"_id": "wo-srv"}})
    runtime = build_runtime(_settings(access_token="token-1"), transport=fake_server.transport)
    try:
        assert await runtime.monitor.check_now() is True
        assert runtime.pull_engine.is_database_empty()
        await runtime.pull_engine.initial_pull_all(runtime.auth_gate)
        assert runtime.daos.customers.get_by_id("cust-1")["customer_name"] == "Asha"

        runtime.daos.work_orders.insert_local({"customer_id": "cust-1", "schedule_date": "2024-05-01"})
        runtime.orchestrator.notify_local_save()
        result = await runtime.orchestrator.trigger_sync()

        assert result.outcome == SyncOutcome.SUCCESS
        assert runtime.daos.work_orders.get_by_id("wo-srv") is not None
        assert runtime.status.data_version == 1
        assert fake_server.calls("POST", "/api/workorder")[0].headers["Authorization"] == "Bearer token-1"
    finally:
        await runtime.close()


async def test_runtime_without_token_refuses_to_sync(fake_server):
    runtime = build_runtime(_settings(access_token=""), transport=fake_server.transport)
    try:
        result = await runtime.orchestrator.trigger_sync()
        assert result.outcome == SyncOutcome.AUTH_REQUIRED
        assert fake_server.requests == []
    finally:
        await runtime.close()


async def test_runtime_accepts_external_auth_gate(fake_server):
    gate = SessionAuthGate(token="external")
    runtime = build_runtime(_settings(), auth_gate=gate, transport=fake_server.transport)
    try:
        assert runtime.auth_gate is gate
        assert (await runtime.orchestrator.trigger_sync()).ok
    finally:
        await runtime.close()


async def test_health_check_before_start_does_not_schedule_sync(fake_server):
    settings = _settings(access_token="token-1")
    settings["connectivity"]["initial_online"] = False
    runtime = build_runtime(settings, transport=fake_server.transport)
    try:
        runtime.daos.work_orders.insert_local({"customer_id": "cust-1", "schedule_date": "2024-05-01"})
        assert await runtime.monitor.check_now() is True
        await runtime.orchestrator.wait_for_background()
        assert fake_server.writes() == []
    finally:
        await runtime.close()


async def test_started_runtime_syncs_when_coming_online(fake_server):
    fake_server.add("POST", "/api/workorder", {"success": True, "workOrder": {"_id": "wo-srv"}})
    settings = _settings(access_token="token-1")
    settings["connectivity"]["initial_online"] = False
    runtime = build_runtime(settings, transport=fake_server.transport)
    runtime.daos.work_orders.insert_local({"customer_id": "cust-1", "schedule_date": "2024-05-01"})

    runtime.start()
    await runtime.monitor.check_now()
    await runtime.orchestrator.wait_for_background()
    await runtime.close()

    assert len(fake_server.calls("POST", "/api/workorder")) == 1
