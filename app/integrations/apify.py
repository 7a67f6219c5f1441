"""
Apify HTTP client: submit actor runs and read finished datasets.

Only two endpoints are used:

* ``POST /acts/{actor}/runs?token=`` with the actor input plus a webhook
  registration, answered by ``{"data": {"id": <run id>}}``.
* ``GET /datasets/{dataset}/items?token=&format=json`` answered by a JSON
  array of items.

Every request carries a total timeout. Retryable failures (429, 5xx,
timeouts, connection errors) are retried a bounded number of times with
exponential backoff; the per-operation circuit breaker short-circuits calls
while the provider is failing. Callers never see raw aiohttp errors, only
``ApifyError`` subclasses whose ``retryable`` flag tells them whether a later
pass may succeed.
"""
from __future__ import annotations

import asyncio
import json
from typing import Any, Iterable, Optional
from urllib.parse import urlencode

import aiohttp

from app.config import BACKOFF_POLICY, Settings
from app.utils import get_logger
from app.utils.backoff import compute_backoff_seconds, retry_after_seconds
from app.utils.circuit_breaker import CircuitBreaker, GLOBAL_CIRCUIT_BREAKER
from app.utils.observability import mask_secret

logger = get_logger(__name__)


class ApifyError(Exception):
    """Base provider failure. Retryable unless a subclass says otherwise."""

    retryable = True

    def __init__(self, message: str, *, status: int | None = None, operation: str | None = None, body: str | None = None):
        super().__init__(message)
        self.status = status
        self.operation = operation
        self.body = body


class ApifyConfigError(ApifyError):
    """Client is not configured (missing token)."""

    retryable = False


class ApifyResponseError(ApifyError):
    """4xx (other than 429) or an unusable response body."""

    retryable = False


class ApifyRateLimitError(ApifyError):
    def __init__(self, message: str, *, retry_after: float | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class ApifyTimeoutError(ApifyError):
    pass


def normalize_actor_id(actor_id: str) -> str:
    """Apify addresses actors as ``username~actor-name`` in URLs."""
    if "~" in actor_id:
        return actor_id
    if "/" in actor_id:
        return actor_id.replace("/", "~", 1)
    return actor_id


def build_webhook_url(public_base_url: str, secret: str, source: str, workspace: str | None = None) -> str:
    """Callback URL handed to the provider for run-completion notifications.

    ``workspace`` scopes the resulting inbox entry; runs covering accounts
    from several workspaces leave it out.
    """
    params = {"source": source, "secret": secret}
    if workspace:
        params["workspace"] = workspace
    query = urlencode(params)
    return f"{public_base_url.rstrip('/')}/api/v1/apify_webhook?{query}"


class ApifyClient:
    """Thin async client over the two provider endpoints we need."""

    def __init__(
        self,
        *,
        base_url: str,
        token: str | None,
        actor_id: str,
        timeout_seconds: float = 30.0,
        max_attempts: int | None = None,
        breaker: CircuitBreaker | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.actor_id = normalize_actor_id(actor_id)
        self.timeout_seconds = timeout_seconds
        self.max_attempts = int(max_attempts or BACKOFF_POLICY["max_attempts"])
        self.breaker = breaker or GLOBAL_CIRCUIT_BREAKER

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: Any) -> "ApifyClient":
        kwargs: dict[str, Any] = {
            "base_url": settings.apify_base_url,
            "token": settings.apify_token,
            "actor_id": settings.apify_actor_id,
            "timeout_seconds": settings.apify_timeout_seconds,
        }
        kwargs.update(overrides)
        return cls(**kwargs)

    async def start_run(
        self,
        run_input: dict[str, Any],
        *,
        webhook_url: Optional[str] = None,
        event_types: Optional[Iterable[str]] = None,
        actor_id: Optional[str] = None,
    ) -> str:
        """Submit an actor run and return its run id."""
        actor = normalize_actor_id(actor_id or self.actor_id)
        body: dict[str, Any] = dict(run_input)
        if webhook_url:
            body["webhooks"] = [{
                "eventTypes": list(event_types or []),
                "requestUrl": webhook_url,
            }]
        data = await self._request("start_run", "POST", f"/acts/{actor}/runs", json_body=body)
        run_id = (data.get("data") or {}).get("id") if isinstance(data, dict) else None
        if not run_id:
            raise ApifyResponseError("Run id missing from provider response", operation="start_run", body=str(data)[:400])
        logger.info("Apify run started", actor=actor, run_id=run_id, input_keys=sorted(run_input.keys()))
        return str(run_id)

    async def fetch_dataset_items(self, dataset_id: str) -> list[Any]:
        """Return every item of a finished run's dataset."""
        data = await self._request(
            "fetch_dataset",
            "GET",
            f"/datasets/{dataset_id}/items",
            params={"format": "json"},
        )
        if not isinstance(data, list):
            raise ApifyResponseError(
                "Dataset response is not a JSON array",
                operation="fetch_dataset",
                body=str(data)[:400],
            )
        logger.info("Apify dataset fetched", dataset_id=dataset_id, items=len(data))
        return data

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, Any]] = None,
        json_body: Optional[dict[str, Any]] = None,
    ) -> Any:
        if not self.token:
            raise ApifyConfigError("APIFY_TOKEN not configured", operation=operation)

        breaker_key = f"apify:{operation}"
        allowed, reason = self.breaker.allow_call(breaker_key)
        if not allowed:
            logger.warning("Apify call skipped due to circuit breaker", operation=operation, reason=reason)
            raise ApifyError(f"Circuit breaker denies call: {reason}", operation=operation)

        query = {"token": self.token, **(params or {})}
        url = f"{self.base_url}{path}"
        attempts = 0
        while True:
            attempts += 1
            try:
                data = await self._send(operation, method, url, query, json_body)
            except ApifyError as exc:
                # A 4xx or malformed body means the provider answered; only
                # transient failures count against the breaker.
                if exc.retryable:
                    self.breaker.record_failure(breaker_key)
                else:
                    self.breaker.record_success(breaker_key)
                if not exc.retryable or attempts >= self.max_attempts:
                    logger.warning(
                        "Apify call failed",
                        operation=operation,
                        attempts=attempts,
                        status=exc.status,
                        error=str(exc),
                        token=mask_secret(self.token),
                    )
                    raise
                delay = compute_backoff_seconds(attempts)
                if isinstance(exc, ApifyRateLimitError) and exc.retry_after is not None:
                    delay = min(exc.retry_after, float(BACKOFF_POLICY["max_seconds"]))
                logger.warning(
                    "Apify call retry scheduled",
                    operation=operation,
                    attempt=attempts,
                    backoff_seconds=round(delay, 2),
                    status=exc.status,
                )
                await asyncio.sleep(delay)
                continue
            self.breaker.record_success(breaker_key)
            return data

    async def _send(
        self,
        operation: str,
        method: str,
        url: str,
        params: dict[str, Any],
        json_body: Optional[dict[str, Any]],
    ) -> Any:
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.request(method, url, params=params, json=json_body) as resp:
                    text = await resp.text()
                    if resp.status == 429:
                        raise ApifyRateLimitError(
                            "Apify rate limit exceeded",
                            retry_after=retry_after_seconds(resp.headers.get("Retry-After")),
                            status=resp.status,
                            operation=operation,
                            body=text[:400],
                        )
                    if resp.status >= 500:
                        raise ApifyError(
                            f"Apify server error: {resp.status}",
                            status=resp.status,
                            operation=operation,
                            body=text[:400],
                        )
                    if resp.status >= 400:
                        raise ApifyResponseError(
                            f"Apify API error: {resp.status}",
                            status=resp.status,
                            operation=operation,
                            body=text[:400],
                        )
        except asyncio.TimeoutError as exc:
            raise ApifyTimeoutError(
                f"Apify request timed out after {self.timeout_seconds}s", operation=operation
            ) from exc
        except aiohttp.ClientError as exc:
            raise ApifyError(f"Apify request failed: {exc}", operation=operation) from exc

        try:
            return json.loads(text) if text else None
        except ValueError as exc:
            raise ApifyResponseError("Invalid JSON from provider", operation=operation, body=text[:400]) from exc


__all__ = [
    "ApifyClient",
    "ApifyError",
    "ApifyConfigError",
    "ApifyResponseError",
    "ApifyRateLimitError",
    "ApifyTimeoutError",
    "build_webhook_url",
    "normalize_actor_id",
]
