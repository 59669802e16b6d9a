"""Tests for the HTTP surface using the in-memory runtime."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator
from typing import Any

import pytest
from fastapi.testclient import TestClient

from wasm2openapi import models
from wasm2openapi.api.app import create_app
from wasm2openapi.models import ComponentInterface, FunctionDescriptor, Param
from wasm2openapi.runtime.memory import FunctionTable, InMemoryComponentRuntime
from wasm2openapi.settings import InstancePolicy, Settings

COUNTER = models.Resource("r0", "counter")
BORROWED_COUNTER = models.Resource("r0", "counter", owned=False)

IFACE = ComponentInterface(
    functions=(
        FunctionDescriptor("add", (Param("a", models.S32()), Param("b", models.S32())), (Param(None, models.S32()),)),
        FunctionDescriptor("increment", results=(Param(None, models.U32()),)),
        FunctionDescriptor("fail", results=(Param(None, models.U32()),)),
        FunctionDescriptor("spin", results=(Param(None, models.U32()),)),
        FunctionDescriptor("[constructor]counter", results=(Param(None, COUNTER),)),
        FunctionDescriptor("[method]counter.get", (Param("self", BORROWED_COUNTER),), (Param(None, models.U32()),)),
        FunctionDescriptor("consume", (Param("c", COUNTER),)),
    ),
    docs="Test component.",
)


class Counter:
    def __init__(self) -> None:
        self.value = 7


def _functions(release: threading.Event) -> Callable[[], FunctionTable]:
    def factory() -> FunctionTable:
        state = {"count": 0}

        def increment() -> int:
            state["count"] += 1
            return state["count"]

        def fail() -> int:
            raise ZeroDivisionError("division by zero")

        def spin() -> int:
            release.wait(10)
            return 0

        return {
            "add": lambda a, b: a + b,
            "increment": increment,
            "fail": fail,
            "spin": spin,
            "[constructor]counter": Counter,
            "[method]counter.get": lambda counter: counter.value,
            "consume": lambda counter: None,
        }

    return factory


@pytest.fixture
def release() -> Iterator[threading.Event]:
    event = threading.Event()
    yield event
    # unblock calls abandoned by a timeout
    event.set()


@pytest.fixture
def make_client(release: threading.Event) -> Iterator[Callable[..., TestClient]]:
    clients: list[TestClient] = []

    def make(policy: InstancePolicy = InstancePolicy.SHARED, swagger: bool = False) -> TestClient:
        runtime = InMemoryComponentRuntime(_functions(release))
        app = create_app(IFACE, runtime, Settings(policy=policy, timeout=0.5), swagger=swagger)
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield make
    release.set()
    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def client(make_client: Callable[..., TestClient]) -> TestClient:
    return make_client()


def _call(client: TestClient, path: str, body: Any = None) -> Any:
    return client.post(path, json={} if body is None else body)


class TestInvocation:
    def test_add(self, client: TestClient) -> None:
        resp = _call(client, "/add", {"a": 2, "b": 3})
        assert resp.status_code == 200
        assert resp.json() == {"result0": 5}

    def test_decode_error(self, client: TestClient) -> None:
        resp = _call(client, "/add", {"a": "x", "b": 3})
        assert resp.status_code == 400
        body = resp.json()
        assert body["kind"] == "DecodeError"
        assert body["path"] == "/a"

    def test_missing_argument(self, client: TestClient) -> None:
        resp = _call(client, "/add", {"a": 1})
        assert resp.status_code == 400
        assert resp.json()["path"] == "/b"

    def test_wrong_content_type(self, client: TestClient) -> None:
        resp = client.post("/add", content=b"a=1&b=2", headers={"content-type": "application/x-www-form-urlencoded"})
        assert resp.status_code == 400
        assert resp.json()["kind"] == "InvalidRequest"

    def test_malformed_json(self, client: TestClient) -> None:
        resp = client.post("/add", content=b"{", headers={"content-type": "application/json"})
        assert resp.status_code == 400
        assert resp.json()["kind"] == "InvalidRequest"

    def test_body_must_be_object(self, client: TestClient) -> None:
        resp = _call(client, "/add", [2, 3])
        assert resp.status_code == 400
        assert resp.json()["kind"] == "InvalidRequest"

    def test_unknown_path(self, client: TestClient) -> None:
        resp = _call(client, "/subtract", {})
        assert resp.status_code == 404
        assert resp.json() == {"kind": "NotFound", "message": "No operation for POST /subtract"}

    def test_wrong_method_is_not_found(self, client: TestClient) -> None:
        resp = client.get("/add")
        assert resp.status_code == 404
        assert resp.json()["kind"] == "NotFound"


class TestFaults:
    def test_fault_returns_500_and_server_stays_up(self, client: TestClient) -> None:
        resp = _call(client, "/fail")
        assert resp.status_code == 500
        body = resp.json()
        assert body["kind"] == "InvocationFault"
        assert body["trap"] == "ZeroDivisionError"
        assert _call(client, "/add", {"a": 1, "b": 1}).json() == {"result0": 2}

    def test_fault_replaces_shared_context(self, client: TestClient) -> None:
        assert _call(client, "/increment").json() == {"result0": 1}
        assert _call(client, "/fail").status_code == 500
        # the replacement context starts from fresh guest state
        assert _call(client, "/increment").json() == {"result0": 1}
        assert client.app.state.dispatcher.replacements == 1

    def test_timeout_does_not_block_other_requests(self, client: TestClient) -> None:
        resp = _call(client, "/spin")
        assert resp.status_code == 504
        body = resp.json()
        assert body["kind"] == "Timeout"
        assert body["timeout"] == 0.5
        assert _call(client, "/add", {"a": 2, "b": 2}).json() == {"result0": 4}
        assert client.get("/healthz/ready").json()["instance"] == "up"


class TestInstancePolicy:
    def test_shared_context_keeps_state(self, client: TestClient) -> None:
        assert [_call(client, "/increment").json()["result0"] for _ in range(3)] == [1, 2, 3]

    def test_per_request_contexts_are_fresh(self, make_client: Callable[..., TestClient]) -> None:
        client = make_client(InstancePolicy.PER_REQUEST)
        assert [_call(client, "/increment").json()["result0"] for _ in range(3)] == [1, 1, 1]

    def test_shared_resource_handle_round_trip(self, client: TestClient) -> None:
        token = _call(client, "/constructor-counter").json()["result0"]
        assert token.startswith("counter-")
        resp = _call(client, "/method-counter-get", {"self": token})
        assert resp.status_code == 200
        assert resp.json() == {"result0": 7}

    def test_per_request_handles_do_not_outlive_request(self, make_client: Callable[..., TestClient]) -> None:
        client = make_client(InstancePolicy.PER_REQUEST)
        token = _call(client, "/constructor-counter").json()["result0"]
        resp = _call(client, "/method-counter-get", {"self": token})
        assert resp.status_code == 400
        body = resp.json()
        assert body["kind"] == "UnknownResourceHandle"
        assert body["path"] == "/self"
        assert body["token"] == token

    def test_owned_handle_is_spent_after_a_successful_call(self, client: TestClient) -> None:
        token = _call(client, "/constructor-counter").json()["result0"]
        assert _call(client, "/method-counter-get", {"self": token}).status_code == 200
        assert _call(client, "/method-counter-get", {"self": token}).status_code == 200
        resp = _call(client, "/consume", {"c": token})
        assert resp.status_code == 200
        assert resp.json() == {}
        for path, body in (("/consume", {"c": token}), ("/method-counter-get", {"self": token})):
            resp = _call(client, path, body)
            assert resp.status_code == 400
            assert resp.json()["kind"] == "UnknownResourceHandle"

    def test_forged_handle(self, client: TestClient) -> None:
        resp = _call(client, "/method-counter-get", {"self": "counter-forged"})
        assert resp.status_code == 400
        assert resp.json()["kind"] == "UnknownResourceHandle"


class TestHealthRoutes:
    def test_liveness(self, client: TestClient) -> None:
        resp = client.get("/healthz/live")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    def test_readiness_shared(self, client: TestClient) -> None:
        assert client.get("/healthz/ready").json() == {"status": "ok", "policy": "shared", "instance": "up"}

    def test_readiness_per_request(self, make_client: Callable[..., TestClient]) -> None:
        client = make_client(InstancePolicy.PER_REQUEST)
        assert client.get("/healthz/ready").json()["instance"] == "n/a"


class TestDiscoveryRoutes:
    def test_root_lists_functions(self, client: TestClient) -> None:
        body = client.get("/").json()
        assert body["meta"]["description"] == "Test component."
        assert body["meta"]["policy"] == "shared"
        assert {"name": "add", "method": "POST", "path": "/add"} in body["functions"]
        assert "swagger-ui" not in body["links"]

    def test_openapi_document(self, client: TestClient) -> None:
        document = client.get("/api-docs/openapi.json").json()
        assert document["openapi"] == "3.1.0"
        assert document["servers"] == [{"url": "http://127.0.0.1:8080"}]
        assert "/add" in document["paths"]
        assert "/constructor-counter" in document["paths"]

    def test_swagger_ui_disabled_by_default(self, client: TestClient) -> None:
        assert client.get("/swagger-ui").status_code == 404

    def test_swagger_ui(self, make_client: Callable[..., TestClient]) -> None:
        client = make_client(swagger=True)
        resp = client.get("/swagger-ui")
        assert resp.status_code == 200
        assert "/api-docs/openapi.json" in resp.text
        assert client.get("/").json()["links"]["swagger-ui"] == "/swagger-ui"

    def test_no_framework_docs(self, client: TestClient) -> None:
        assert client.get("/docs").status_code == 404
        assert client.get("/openapi.json").status_code == 404
