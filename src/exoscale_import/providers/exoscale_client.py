"""Async HTTP client for the Exoscale v2 compute API.

Covers the calls a template import needs: register a template, read an
asynchronous operation, read and delete a template. Requests are signed with
``EXO2-HMAC-SHA256`` from the account API key and secret; the secret is only
ever used as an HMAC key and never leaves the process.

Transient failures (429, 5xx, timeouts) are retried according to a
:class:`RetryPolicy`; a 429's ``Retry-After`` takes precedence over backoff.
"""

from __future__ import annotations

import asyncio
import base64
import hashlib
import hmac
import json as jsonlib
import logging
import random
import time
from dataclasses import dataclass
from typing import Any

import httpx

from .._version import USER_AGENT

logger = logging.getLogger(__name__)

SIGNATURE_SCHEME = "EXO2-HMAC-SHA256"

# A signature stays valid this long after it is issued.
_SIGNATURE_TTL_SECONDS = 600

_TRANSIENT_STATUSES = frozenset({429, 500, 502, 503, 504})


# ── Errors ───────────────────────────────────────────────────────


class ExoscaleAPIError(Exception):
    """The compute API answered with an error (or not at all)."""

    def __init__(
        self,
        status_code: int,
        message: str = "",
        *,
        response_body: str = "",
    ) -> None:
        self.status_code = status_code
        self.message = message
        self.response_body = response_body
        super().__init__(f"Exoscale API error {status_code}: {message}")


class ExoscaleAuthError(ExoscaleAPIError):
    """Credentials or signature rejected (401/403)."""


class ExoscaleNotFoundError(ExoscaleAPIError):
    """Resource not found (404)."""

    def __init__(self, message: str = "resource not found", **kwargs: Any) -> None:
        super().__init__(404, message, **kwargs)


class ExoscaleTimeoutError(ExoscaleAPIError):
    """No response within the request timeout."""

    def __init__(self, message: str = "request timed out") -> None:
        super().__init__(0, message)


# ── Retry policy ─────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """How often and how long to wait before re-sending a transient failure."""

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0

    def delay(self, attempt: int, retry_after: str | None = None) -> float:
        """Seconds to wait before retry number ``attempt + 1``.

        A numeric ``Retry-After`` wins (floored at 0.1s); otherwise the wait
        is drawn uniformly from ``[0, min(base * 2**attempt, max)]``.
        """
        if retry_after:
            try:
                return max(float(retry_after), 0.1)
            except ValueError:
                logger.debug("Ignoring non-numeric Retry-After: %r", retry_after)
        ceiling = min(self.base_delay * (2 ** attempt), self.max_delay)
        return random.uniform(0, ceiling)


# ── Request signing ──────────────────────────────────────────────


def sign_request(
    *,
    method: str,
    path: str,
    body: bytes,
    params: dict[str, str] | None,
    api_key: str,
    api_secret: str,
    expires: int,
) -> str:
    """Build the ``Authorization`` header value for one request.

    The signed message is, newline-separated: ``"<METHOD> <path>"``, the
    request body, the concatenated values of the signed query parameters
    (sorted by name), an empty signed-headers line and the expiry timestamp.
    """
    params = params or {}
    query_names = sorted(params)
    message = "\n".join(
        [
            f"{method.upper()} {path}",
            body.decode("utf-8"),
            "".join(str(params[name]) for name in query_names),
            "",
            str(expires),
        ]
    )
    digest = hmac.new(
        api_secret.encode("utf-8"),
        message.encode("utf-8"),
        hashlib.sha256,
    ).digest()
    signature = base64.standard_b64encode(digest).decode("ascii")

    parts = [f"{SIGNATURE_SCHEME} credential={api_key}"]
    if query_names:
        parts.append(f"signed-query-args={';'.join(query_names)}")
    parts.append(f"expires={expires}")
    parts.append(f"signature={signature}")
    return ",".join(parts)


def _error_from_response(resp: httpx.Response) -> ExoscaleAPIError:
    body = resp.text
    message = body[:200] if body else f"HTTP {resp.status_code}"
    try:
        payload = resp.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        message = payload.get("message") or payload.get("error") or message

    if resp.status_code == 404:
        return ExoscaleNotFoundError(message, response_body=body)
    if resp.status_code in (401, 403):
        return ExoscaleAuthError(resp.status_code, message, response_body=body)
    return ExoscaleAPIError(resp.status_code, message, response_body=body)


# ── Client ───────────────────────────────────────────────────────


class ExoscaleClient:
    """Signed, retrying client for the compute API of one zone.

    ``base_url`` includes the API version, e.g.
    ``https://api-ch-gva-2.exoscale.com/v2``; the signature covers that full
    path.
    """

    def __init__(
        self,
        *,
        api_key: str,
        api_secret: str,
        base_url: str,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 60.0,
        retry: RetryPolicy | None = None,
    ) -> None:
        if not api_key or not api_secret:
            raise ValueError("api_key and api_secret are required")

        self._api_key = api_key
        self._api_secret = api_secret
        self._base_url = base_url.rstrip("/")
        self._base_path = httpx.URL(self._base_url).path.rstrip("/")
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient()
        self._timeout = timeout_seconds
        self._retry = retry or RetryPolicy()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _headers(self, method: str, path: str, body: bytes, params: dict[str, str] | None) -> dict[str, str]:
        headers = {
            "User-Agent": USER_AGENT,
            "Authorization": sign_request(
                method=method,
                path=self._base_path + path,
                body=body,
                params=params,
                api_key=self._api_key,
                api_secret=self._api_secret,
                expires=int(time.time()) + _SIGNATURE_TTL_SECONDS,
            ),
        }
        if body:
            headers["Content-Type"] = "application/json"
        return headers

    async def _send(
        self,
        method: str,
        path: str,
        *,
        payload: Any | None = None,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Send one logical request, re-signing and retrying transient failures.

        Returns the last response received, which may still be an error.
        """
        body = jsonlib.dumps(payload).encode("utf-8") if payload is not None else b""
        attempts = self._retry.max_retries + 1

        for attempt in range(attempts):
            last = attempt == attempts - 1
            try:
                resp = await self._client.request(
                    method,
                    self._base_url + path,
                    headers=self._headers(method, path, body, params),
                    content=body or None,
                    params=params,
                    timeout=self._timeout,
                )
            except httpx.TimeoutException as exc:
                if last:
                    raise ExoscaleTimeoutError(f"{method} {path}: {exc}") from exc
                wait = self._retry.delay(attempt)
                logger.warning(
                    "Exoscale %s %s timed out (attempt %d/%d), retrying in %.1fs",
                    method, path, attempt + 1, attempts, wait,
                )
            else:
                if resp.status_code not in _TRANSIENT_STATUSES or last:
                    return resp
                wait = self._retry.delay(attempt, resp.headers.get("retry-after"))
                logger.warning(
                    "Exoscale %s %s returned %d (attempt %d/%d), retrying in %.1fs",
                    method, path, resp.status_code, attempt + 1, attempts, wait,
                )
            await asyncio.sleep(wait)

        raise ExoscaleAPIError(0, f"{method} {path}: no attempt was made")

    async def _call(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        resp = await self._send(method, path, **kwargs)
        if resp.status_code >= 400:
            raise _error_from_response(resp)
        return resp.json()

    # ── Endpoints ────────────────────────────────────────────────

    async def register_template(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Submit a template registration and return its operation."""
        operation = await self._call("POST", "/template", payload=payload)
        logger.info(
            "Template registration submitted: name=%s operation=%s",
            payload.get("name"),
            operation.get("id"),
        )
        return operation

    async def get_operation(self, operation_id: str) -> dict[str, Any]:
        return await self._call("GET", f"/operation/{operation_id}")

    async def get_template(self, template_id: str) -> dict[str, Any]:
        return await self._call("GET", f"/template/{template_id}")

    async def delete_template(self, template_id: str) -> dict[str, Any]:
        """Delete a template; raises ExoscaleNotFoundError if it is gone already."""
        operation = await self._call("DELETE", f"/template/{template_id}")
        logger.info("Template deletion submitted: id=%s", template_id)
        return operation
