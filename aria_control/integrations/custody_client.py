"""
ARIA Control Plane — custody service integration.

Provides a thin wrapper over the custody service that moves balances between
custody accounts. The control plane only invokes it and propagates success
or failure; balance bookkeeping lives entirely in the custody service.

A transfer is authorized either by the source account owner's signature or by
a program-derived custody authority (see ``aria_control.escrow.time_lock``).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from aria_control.core.errors import CollaboratorFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransferReceipt:
    transfer_id: str
    source: str
    destination: str
    amount: int
    status: str


class TransferReply(BaseModel):
    """Body of a settled transfer as returned by the custody service."""

    id: str = Field(min_length=1)
    status: str
    amount: int = Field(ge=0)


class CustodyTransfer(Protocol):
    def transfer(
        self,
        source: str,
        destination: str,
        authority: str,
        amount: int,
    ) -> TransferReceipt:
        """Move ``amount`` from ``source`` to ``destination`` or raise CollaboratorFailure."""
        ...


class CustodyClient:
    """
    Synchronous custody REST client.

    Uses httpx. Every transport error, non-2xx response or rejected transfer
    surfaces as ``CollaboratorFailure``.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._headers = {"Content-Type": "application/json"}
        if api_key:
            self._headers["Authorization"] = f"Bearer {api_key}"
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.Client | None = None

    def _ensure_client(self) -> httpx.Client:
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(
                base_url=self.base_url,
                headers=self._headers,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    def close(self) -> None:
        if self._client and not self._client.is_closed:
            self._client.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        client = self._ensure_client()
        try:
            resp = client.request(method, path, **kwargs)
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPStatusError as exc:
            raise CollaboratorFailure(
                f"Custody service rejected {method} {path}: "
                f"HTTP {exc.response.status_code}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise CollaboratorFailure(f"Custody service unavailable: {exc}") from exc
        if not isinstance(body, dict):
            raise CollaboratorFailure(
                f"Custody service returned a non-object body for {method} {path}"
            )
        return body

    # ── Transfers ──────────────────────────────────────────────

    def transfer(
        self,
        source: str,
        destination: str,
        authority: str,
        amount: int,
    ) -> TransferReceipt:
        """Submit a transfer and wait for the custody service to settle it."""
        payload = {
            "source": source,
            "destination": destination,
            "authority": authority,
            "amount": str(amount),
        }
        data = self._request("POST", "/v1/transfers", json=payload)

        if data.get("status") != "settled":
            raise CollaboratorFailure(
                f"Custody transfer {data.get('id', '?')} not settled: "
                f"{data.get('status', 'unknown')}"
            )

        try:
            reply = TransferReply.model_validate(data)
        except PydanticValidationError as exc:
            raise CollaboratorFailure(
                f"Malformed custody transfer reply: {exc.error_count()} error(s)"
            ) from exc
        if reply.amount != amount:
            raise CollaboratorFailure(
                f"Custody transfer {reply.id} settled {reply.amount}, requested {amount}"
            )

        logger.info(
            "Custody transfer settled: %s -> %s amount=%d id=%s",
            source, destination, amount, reply.id,
        )
        return TransferReceipt(
            transfer_id=reply.id,
            source=source,
            destination=destination,
            amount=reply.amount,
            status=reply.status,
        )

    # ── Balances ───────────────────────────────────────────────

    def get_balance(self, account: str) -> int:
        """Balance held by a custody account."""
        data = self._request("GET", f"/v1/accounts/{account}/balance")
        try:
            return int(data["balance"])
        except (KeyError, TypeError, ValueError) as exc:
            raise CollaboratorFailure(f"Malformed custody balance reply for {account}") from exc
