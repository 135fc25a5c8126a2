"""Async client for the transactions REST backend.

Two endpoints are used:

- ``POST {base}/transactions/bulk-import`` with ``{"transactions": [...]}``
  (neutral field names, see :meth:`ImportCandidate.to_payload`); the response
  is ``{"success": bool, "data": {"success": int, "errors": int}, "message"?}``.
- ``POST {base}/transactions`` with the backend's own field names
  (``tipo``, ``valor``, ``descricao``, ``categoria_id``, ``data``,
  ``recorrente``); the response is ``{"success": bool, "data"?, "message"?}``.

Every failure (transport error, non-2xx status, ``success: false``, body that
does not match the envelope) surfaces as :class:`PersistError`.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from .config import Settings
from .errors import PersistError
from .logging_setup import get_logger
from .models import ImportCandidate

BULK_IMPORT_PATH = "/transactions/bulk-import"
CREATE_PATH = "/transactions"


class BulkCounts(BaseModel):
    model_config = ConfigDict(extra="ignore")

    success: int
    errors: int


class _Envelope(BaseModel):
    model_config = ConfigDict(extra="ignore")

    success: bool
    message: str | None = None


class _BulkEnvelope(_Envelope):
    data: BulkCounts


class _CreateEnvelope(_Envelope):
    data: Any = None


def create_payload(candidate: ImportCandidate) -> dict[str, Any]:
    """Map a candidate to the single-create body (backend field names)."""

    tx = candidate.transaction
    return {
        "tipo": tx.type,
        "valor": float(tx.amount),
        "descricao": tx.original_description,
        "categoria_id": candidate.categorization.category,
        "data": f"{tx.date}T00:00:00.000Z",
        "recorrente": False,
    }


class TransactionsApi:
    """Thin async wrapper over :class:`httpx.AsyncClient`.

    Pass ``http_client`` to reuse an existing client (tests hand in one backed
    by :class:`httpx.MockTransport`); otherwise one is created from the base
    URL, token and timeout and closed by :meth:`aclose` / ``async with``.
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._log = logger or get_logger("finance_tracker.client")
        if http_client is not None:
            self._http = http_client
            self._owns_http = False
        else:
            headers = {"Accept": "application/json"}
            if token:
                headers["Authorization"] = f"Bearer {token}"
            self._http = httpx.AsyncClient(
                base_url=base_url.rstrip("/"), headers=headers, timeout=timeout
            )
            self._owns_http = True

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> TransactionsApi:
        return cls(
            settings.api_base_url,
            token=settings.api_token,
            timeout=settings.http_timeout,
            **kwargs,
        )

    async def __aenter__(self) -> TransactionsApi:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def _post(self, path: str, body: Mapping[str, Any]) -> Any:
        try:
            resp = await self._http.post(path, json=body)
        except httpx.HTTPError as exc:
            raise PersistError(f"POST {path} failed: {exc}") from exc
        if resp.is_error:
            raise PersistError(
                f"POST {path} returned HTTP {resp.status_code}", status_code=resp.status_code
            )
        try:
            return resp.json()
        except ValueError as exc:
            raise PersistError(
                f"POST {path} returned a non-JSON body", status_code=resp.status_code
            ) from exc

    async def bulk_import(self, payloads: Sequence[Mapping[str, Any]]) -> BulkCounts:
        """Send all payloads in one request and return the backend's counts."""

        raw = await self._post(BULK_IMPORT_PATH, {"transactions": list(payloads)})
        try:
            env = _BulkEnvelope.model_validate(raw)
        except ValidationError as exc:
            raise PersistError(f"malformed bulk-import response: {exc}") from exc
        if not env.success:
            raise PersistError(env.message or "bulk import rejected")
        if env.data.success < 0 or env.data.errors < 0:
            raise PersistError("malformed bulk-import response: negative counts")
        self._log.debug(
            "bulk import: %d sent, backend reports %d ok / %d errors",
            len(payloads),
            env.data.success,
            env.data.errors,
        )
        return env.data

    async def create_transaction(self, candidate: ImportCandidate) -> Any:
        """Create one transaction; returns the backend's ``data`` (if any)."""

        raw = await self._post(CREATE_PATH, create_payload(candidate))
        try:
            env = _CreateEnvelope.model_validate(raw)
        except ValidationError as exc:
            raise PersistError(f"malformed create response: {exc}") from exc
        if not env.success:
            raise PersistError(env.message or "create rejected")
        return env.data


__all__ = [
    "BULK_IMPORT_PATH",
    "CREATE_PATH",
    "BulkCounts",
    "TransactionsApi",
    "create_payload",
]
