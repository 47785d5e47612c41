# test_auth_gate.py
import asyncio

import pytest
from unittest.mock import AsyncMock

from workops_offline.Sync.auth_gate import SessionAuthGate, run_with_auth
from workops_offline.workops_api.exceptions import AuthenticationError

pytestmark = pytest.mark.asyncio


async def test_signed_in_gate_resolves_to_token():
    gate = SessionAuthGate(token="abc", user_id="user-1")
    assert await gate.wait_for_auth() == "abc"
    assert gate.is_authenticated()
    assert gate.user_id == "user-1"


async def test_gate_waits_for_login():
    gate = SessionAuthGate(wait_timeout=1.0)
    waiter = asyncio.create_task(gate.wait_for_auth())
    await asyncio.sleep(0)
    assert not waiter.done()

    gate.set_session("fresh", user_id="user-2")
    assert await waiter == "fresh"


async def test_gate_times_out():
    gate = SessionAuthGate(wait_timeout=0.01)
    with pytest.raises(AuthenticationError, match="timeout"):
        await gate.wait_for_auth()


async def test_cleared_session_is_rejected():
    gate = SessionAuthGate(token="abc")
    gate.clear_session()
    with pytest.raises(AuthenticationError, match="not authenticated"):
        await gate.wait_for_auth()


async def test_forced_refresh_uses_callback():
    refresh = AsyncMock(return_value="new-token")
    gate = SessionAuthGate(token="old", refresh_callback=refresh)
    assert await gate.get_token() == "old"
    assert await gate.get_token(force_refresh=True) == "new-token"
    refresh.assert_awaited_once()


async def test_failed_refresh_signs_out():
    gate = SessionAuthGate(token="old", refresh_callback=AsyncMock(side_effect=RuntimeError("refresh endpoint down")))
    with pytest.raises(AuthenticationError):
        await gate.get_token(force_refresh=True)
    assert not gate.is_authenticated()


async def test_run_with_auth_skips_operation_when_rejected():
    gate = SessionAuthGate()
    gate.mark_initialized()
    operation = AsyncMock()
    with pytest.raises(AuthenticationError):
        await run_with_auth(gate, operation)
    operation.assert_not_awaited()

    gate.set_session("abc")
    operation.return_value = 42
    assert await run_with_auth(gate, operation) == 42
