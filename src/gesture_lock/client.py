"""HTTP client for the challenge control plane.

Used by the frame-driven runner to fetch its stage plan and to send the
single completion message once every stage has matched.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

import httpx

from gesture_lock.config import DEFAULT_PORT

logger = logging.getLogger("gesture_lock.client")


class CompletionError(RuntimeError):
    """A control-plane request failed."""


class CompletionClient:
    def __init__(
        self,
        base_url: str = f"http://localhost:{DEFAULT_PORT}",
        timeout: float = 5.0,
        transport: Optional[httpx.BaseTransport] = None,
        http: Optional[httpx.Client] = None,
    ):
        self.base_url = base_url.rstrip("/")
        if http is None:
            http = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)
        self._client = http

    def health(self) -> dict:
        return self._request("GET", "/health")

    def fetch_plan(self, resource: Optional[str] = None) -> dict:
        params = {"resource": resource} if resource else None
        return self._request("GET", "/challenge", params=params)

    def complete(self, resource: Optional[str] = None, timestamp_ms: Optional[int] = None) -> dict:
        """Report challenge completion. Safe to repeat; the server ignores extras."""
        payload = {
            "completed": True,
            "timestamp": timestamp_ms if timestamp_ms is not None else int(time.time() * 1000),
        }
        if resource:
            payload["resource"] = resource
        result = self._request("POST", "/complete", json=payload)
        logger.info(f"Completion acknowledged: {result.get('message', '')}")
        return result

    def _request(self, method: str, path: str, **kwargs) -> dict:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise CompletionError(f"{method} {path} failed: {e}") from e
        if response.status_code >= 400:
            raise CompletionError(
                f"{method} {path} returned {response.status_code}: {response.text}"
            )
        return response.json()

    def close(self):
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
