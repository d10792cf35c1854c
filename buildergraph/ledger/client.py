"""Async HTTP client for the decentralized ledger node.

The node accepts JSON-LD assets, commits them in the background and later
exposes a Universal Asset Locator (UAL) through its status endpoint. This
client submits assets, polls for confirmation and reads assets back. It
holds no domain state and one instance is shared by all publish operations.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import quote

import httpx

from buildergraph.backoff import (
    OperationTimeout,
    PollingError,
    poll_until,
    retry,
    with_timeout,
)
from buildergraph.errors import ConfirmationTimeout, NodeRejected, TransportError

logger = logging.getLogger(__name__)

_DEFAULT_BASE_URL = "http://localhost:9200/api/dkg"
_DEFAULT_EXPLORER_BASE = "https://dkg.origintrail.io"
_DEFAULT_TIMEOUT = 30.0
_DEFAULT_MAX_ATTEMPTS = 3
_DEFAULT_RETRY_DELAY = 1.0
_DEFAULT_CONFIRMATION_TIMEOUT = 300.0

DEFAULT_PUBLISH_OPTIONS: dict[str, Any] = {
    "privacy": "public",
    "priority": 50,
    "epochs": 2,
    "maxAttempts": 3,
}


@dataclass
class PublishHandle:
    """What the node told us when it accepted an asset."""

    asset_id: str
    status: str
    ual: Optional[str] = None
    dataset_root: Optional[str] = None
    attempts: int = 1


@dataclass(frozen=True)
class LedgerConfirmation:
    ual: str
    dataset_root: Optional[str] = None


def _dataset_root(body: dict) -> Optional[str]:
    return body.get("datasetRoot") or body.get("dataset_root")


class LedgerClient:
    """Client for the ledger node's asset API.

    Args:
        base_url: Node API root, e.g. ``http://localhost:9200/api/dkg``.
        timeout: Per-request HTTP timeout in seconds.
        max_attempts: Total attempts for a publish request.
        retry_delay: Base delay between publish attempts (grows linearly).
        poll_initial_delay: First wait between status polls.
        poll_max_delay: Cap on the wait between status polls.
        poll_max_attempts: Number of status polls before giving up.
        publish_options: Overrides merged into ``publishOptions``.
        explorer_base: Root of the public explorer used for asset links.
        transport: Optional httpx transport (``httpx.MockTransport`` in tests).
    """

    def __init__(
        self,
        base_url: str = _DEFAULT_BASE_URL,
        *,
        timeout: float = _DEFAULT_TIMEOUT,
        max_attempts: int = _DEFAULT_MAX_ATTEMPTS,
        retry_delay: float = _DEFAULT_RETRY_DELAY,
        poll_initial_delay: float = 2.0,
        poll_max_delay: float = 10.0,
        poll_max_attempts: int = 60,
        publish_options: Optional[dict[str, Any]] = None,
        explorer_base: str = _DEFAULT_EXPLORER_BASE,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep=asyncio.sleep,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self.poll_initial_delay = poll_initial_delay
        self.poll_max_delay = poll_max_delay
        self.poll_max_attempts = poll_max_attempts
        self.publish_options = {**DEFAULT_PUBLISH_OPTIONS, **(publish_options or {})}
        self.explorer_base = explorer_base.rstrip("/")
        self._sleep = sleep
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "LedgerClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict:
        """Issue one request; any network error or non-2xx becomes TransportError."""
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            resp = await self._client.request(method, url, **kwargs)
        except httpx.RequestError as exc:
            raise TransportError(f"{method} {url} failed: {exc}") from exc

        if not resp.is_success:
            raise TransportError(
                f"HTTP {resp.status_code}: {resp.text[:500]}",
                status_code=resp.status_code,
            )
        try:
            body = resp.json()
        except ValueError as exc:
            raise TransportError(
                f"Non-JSON response from {url} (status {resp.status_code})",
                status_code=resp.status_code,
            ) from exc
        if not isinstance(body, dict):
            raise TransportError(f"Unexpected response shape from {url}", status_code=resp.status_code)
        return body

    # ------------------------------------------------------------------
    # Publish
    # ------------------------------------------------------------------

    async def publish(
        self,
        content: dict,
        metadata: Optional[dict[str, Any]] = None,
        *,
        epochs: Optional[int] = None,
    ) -> PublishHandle:
        """Submit a JSON-LD asset and return the node's handle for it.

        Raises:
            TransportError: the node could not be reached after all attempts.
            NodeRejected: the node refused the asset outright.
        """
        options = dict(self.publish_options)
        if epochs is not None:
            options["epochs"] = epochs
        payload = {
            "content": content,
            "metadata": {"source": "buildergraph", **(metadata or {})},
            "publishOptions": options,
        }

        attempts = 0

        async def _submit() -> dict:
            nonlocal attempts
            attempts += 1
            return await self._request("POST", "/assets", json=payload)

        def _log_retry(attempt: int, exc: BaseException) -> None:
            logger.warning(
                "Publish to %s failed (attempt %d/%d): %s",
                self.base_url, attempt, self.max_attempts, exc,
            )

        logger.info(
            "Publishing %s '%s' (epochs=%s)",
            content.get("@type", "asset"), content.get("name", "untitled"), options["epochs"],
        )
        body = await retry(
            _submit,
            max_retries=self.max_attempts - 1,
            delay=self.retry_delay,
            linear=True,
            retry_on=(TransportError,),
            on_retry=_log_retry,
            sleep=self._sleep,
        )

        asset_id = body.get("id")
        status = str(body.get("status") or "pending")
        if status == "failed":
            raise NodeRejected(
                f"Ledger node rejected asset: {body.get('error') or body.get('lastError') or 'unknown error'}",
                asset_id=str(asset_id) if asset_id is not None else None,
            )
        if asset_id is None and not body.get("ual"):
            raise TransportError("Ledger node response carried neither an asset id nor a UAL")

        handle = PublishHandle(
            asset_id=str(asset_id) if asset_id is not None else "",
            status=status,
            ual=body.get("ual") or None,
            dataset_root=_dataset_root(body),
            attempts=attempts,
        )
        logger.info("Asset accepted: id=%s status=%s ual=%s", handle.asset_id, handle.status, handle.ual)
        return handle

    # ------------------------------------------------------------------
    # Status / confirmation
    # ------------------------------------------------------------------

    async def get_asset_status(self, asset_id: str) -> dict:
        return await self._request("GET", f"/assets/status/{quote(str(asset_id), safe='')}")

    async def _check_confirmation(self, asset_id: str) -> Optional[LedgerConfirmation]:
        body = await self.get_asset_status(asset_id)
        if body.get("ual"):
            return LedgerConfirmation(ual=body["ual"], dataset_root=_dataset_root(body))
        if body.get("status") == "failed":
            raise NodeRejected(
                f"Asset publication failed: {body.get('lastError') or 'Unknown error'}",
                asset_id=asset_id,
            )
        logger.debug("Asset %s still %s", asset_id, body.get("status"))
        return None

    async def await_confirmation(
        self,
        handle: PublishHandle,
        timeout: float = _DEFAULT_CONFIRMATION_TIMEOUT,
    ) -> LedgerConfirmation:
        """Wait until the node reports a UAL for ``handle``.

        Raises:
            NodeRejected: the node reported the asset as failed.
            ConfirmationTimeout: no UAL within ``timeout`` or the poll budget.
        """
        if handle.ual:
            return LedgerConfirmation(ual=handle.ual, dataset_root=handle.dataset_root)

        poll = poll_until(
            lambda: self._check_confirmation(handle.asset_id),
            max_attempts=self.poll_max_attempts,
            initial_delay=self.poll_initial_delay,
            max_delay=self.poll_max_delay,
            retry_on=(TransportError,),
            sleep=self._sleep,
        )
        try:
            return await with_timeout(poll, timeout, message="Ledger confirmation")
        except OperationTimeout as exc:
            raise ConfirmationTimeout(
                f"No confirmation for asset {handle.asset_id} within {timeout:g}s; "
                "ledger outcome unknown",
                asset_id=handle.asset_id,
            ) from exc
        except PollingError as exc:
            raise ConfirmationTimeout(
                f"No confirmation for asset {handle.asset_id} after {exc.attempts} status checks; "
                "ledger outcome unknown",
                asset_id=handle.asset_id,
            ) from exc

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_asset(self, ual: str) -> dict:
        """Fetch a published asset by UAL."""
        return await self._request("GET", "/assets", params={"ual": ual})

    async def node_info(self) -> dict:
        """Node health/info endpoint, used by the API health check."""
        return await self._request("GET", "/info")

    def explorer_url(self, ual: Optional[str]) -> Optional[str]:
        if not ual:
            return None
        return f"{self.explorer_base}/explore?ual={quote(ual, safe='')}"
