# ruff: noqa: E501
"""In-memory stand-in for the transactions REST backend.

:class:`FakeBackend` plugs into ``httpx.MockTransport`` so tests exercise the
real :class:`~finance_tracker.client.TransactionsApi` (request building,
envelope validation, error mapping) without a network. Toggles control how the
bulk and single-create endpoints misbehave, and every request is recorded in
``calls`` for ordering assertions.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import httpx

from finance_tracker.client import TransactionsApi

BASE_URL = "http://backend.test/api"


@dataclass
class Call:
    method: str
    path: str
    body: Any
    headers: dict[str, str]


@dataclass
class FakeBackend:
    """Configurable fake of ``POST /transactions`` and ``/transactions/bulk-import``.

    ``bulk_mode`` is one of ``"ok"``, ``"http_500"``, ``"success_false"``,
    ``"malformed"``, ``"connect_error"`` or ``"counts"`` (reply with
    ``bulk_counts`` verbatim). ``fail_create`` decides per create body whether
    the single-create endpoint rejects it.
    """

    bulk_mode: str = "ok"
    bulk_counts: tuple[int, int] = (0, 0)
    fail_create: Callable[[dict[str, Any]], bool] = lambda body: False
    calls: list[Call] = field(default_factory=list)
    created: list[dict[str, Any]] = field(default_factory=list)

    # ---- Introspection helpers -----------------------------------------------

    @property
    def bulk_calls(self) -> list[Call]:
        return [c for c in self.calls if c.path.endswith("/transactions/bulk-import")]

    @property
    def create_calls(self) -> list[Call]:
        return [c for c in self.calls if c.path.endswith("/transactions")]

    # ---- Transport -----------------------------------------------------------

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        self.calls.append(
            Call(request.method, request.url.path, body, dict(request.headers))
        )
        if request.url.path.endswith("/transactions/bulk-import"):
            return self._bulk(request, body)
        if request.url.path.endswith("/transactions"):
            return self._create(body)
        return httpx.Response(404, json={"success": False, "message": "not found"})

    def _bulk(self, request: httpx.Request, body: dict[str, Any]) -> httpx.Response:
        n = len(body["transactions"])
        if self.bulk_mode == "ok":
            self.created.extend(body["transactions"])
            return httpx.Response(200, json={"success": True, "data": {"success": n, "errors": 0}})
        if self.bulk_mode == "counts":
            ok, bad = self.bulk_counts
            return httpx.Response(200, json={"success": True, "data": {"success": ok, "errors": bad}})
        if self.bulk_mode == "http_500":
            return httpx.Response(500, text="internal error")
        if self.bulk_mode == "success_false":
            return httpx.Response(200, json={"success": False, "message": "bulk disabled"})
        if self.bulk_mode == "malformed":
            return httpx.Response(200, json={"ok": True})
        if self.bulk_mode == "connect_error":
            raise httpx.ConnectError("connection refused", request=request)
        raise AssertionError(f"unknown bulk_mode {self.bulk_mode!r}")

    def _create(self, body: dict[str, Any]) -> httpx.Response:
        if self.fail_create(body):
            return httpx.Response(
                422, json={"success": False, "message": "validation failed"}
            )
        self.created.append(body)
        return httpx.Response(201, json={"success": True, "data": {"id": len(self.created)}})

    # ---- Client factory ------------------------------------------------------

    def client(self, *, token: str | None = None) -> TransactionsApi:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        http = httpx.AsyncClient(
            base_url=BASE_URL,
            headers=headers,
            transport=httpx.MockTransport(self.handler),
        )
        return TransactionsApi(BASE_URL, http_client=http)


__all__ = ["BASE_URL", "Call", "FakeBackend"]
