# Tests/conftest.py
# Shared fixtures: an in-memory offline store, its DAOs, a signed-in auth gate and a scripted fake server.
import json
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import httpx
import pytest

from workops_offline.DB.Entity_DAOs import create_daos
from workops_offline.DB.Offline_Store_DB import OfflineStore
from workops_offline.workops_api.client import WorkOpsAPIClient
from workops_offline.Sync.auth_gate import SessionAuthGate


BASE_URL = "http://workops.test"

Scripted = Union[Dict[str, Any], Tuple[int, Any], Callable[[httpx.Request], httpx.Response], Exception]


class FakeServer:
    """
    Stands in for the remote service behind httpx.MockTransport.

    Routes are keyed by (method, path). Each route holds a queue of scripted answers; the last one repeats.
    An answer is a JSON body (HTTP 200), a `(status, body)` pair, a callable taking the request, or an
    exception instance to raise from the transport.
    """

    EMPTY_COLLECTIONS = {
        ("GET", "/api/customers"): {"success": True, "customers": []},
        ("GET", "/api/workorders/pending"): {"success": True, "workOrders": []},
        ("GET", "/api/workorders/completed"): {"success": True, "workOrders": []},
        ("GET", "/api/bills"): {"success": True, "bills": []},
        ("GET", "/api/inventory/items"): {"success": True, "items": [], "pagination": {"hasMore": False}},
        ("GET", "/api/inventory/services"): {"success": True, "services": [], "pagination": {"hasMore": False}},
        ("GET", "/api/bank-accounts"): {"success": True, "bankAccounts": [], "pagination": {"hasMore": False}},
        ("GET", "/api/dashboard/metrics"): {"success": True, "data": {"availableMonths": [], "availableYears": []}},
        ("GET", "/api/health"): {"status": "ok"},
    }

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.routes: Dict[Tuple[str, str], List[Scripted]] = {
            key: [body] for key, body in self.EMPTY_COLLECTIONS.items()
        }

    def add(self, method: str, path: str, *answers: Scripted) -> "FakeServer":
        self.routes[(method.upper(), path)] = list(answers)
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, json={"success": False, "message": f"No route {request.url.path}"})
        answer = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(answer, Exception):
            raise answer
        if callable(answer):
            return answer(request)
        if isinstance(answer, tuple):
            status, body = answer
            return httpx.Response(status, json=body)
        return httpx.Response(200, json=answer)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls(self, method: Optional[str] = None, path: Optional[str] = None) -> List[httpx.Request]:
        return [r for r in self.requests
                if (method is None or r.method == method) and (path is None or r.url.path == path)]

    def writes(self) -> List[httpx.Request]:
        """Every non-GET request, i.e. the push traffic."""
        return [r for r in self.requests if r.method != "GET"]

    @staticmethod
    def body(request: httpx.Request) -> Any:
        return json.loads(request.content) if request.content else None


@pytest.fixture
def store():
    db = OfflineStore(":memory:")
    yield db
    db.close_connection()


@pytest.fixture
def daos(store):
    return create_daos(store)


@pytest.fixture
def auth_gate():
    return SessionAuthGate(token="test-token", user_id="user-1")


@pytest.fixture
def fake_server():
    return FakeServer()


@pytest.fixture
def api_client(fake_server, auth_gate):
    return WorkOpsAPIClient(BASE_URL, token_provider=auth_gate, timeout=5.0, transport=fake_server.transport)
