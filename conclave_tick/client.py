"""HTTP client for the Conclave debate API."""
from __future__ import annotations

import json
import logging
import random
import time
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Callable, Dict, Optional

from .models import ApiResponse
from .retry import RetryPolicy, TransientError, call_with_retry

logger = logging.getLogger(__name__)


class ConclaveTransportError(RuntimeError):
    """Raised when the API stays unreachable after every retry."""


class ConclaveClient:
    """Thin JSON wrapper over the Conclave REST endpoints.

    Non-2xx responses are returned as :class:`ApiResponse` rather than raised,
    so callers can tell soft rejections from hard errors. Only server-error
    responses and transport failures are retried.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        timeout: float = 15.0,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep
        self._rng = rng

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "ConclaveClient":
        policy = RetryPolicy(
            attempts=settings.retry_attempts,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
            jitter=settings.retry_jitter,
        )
        return cls(
            settings.api_base,
            settings.conclave_token,
            timeout=settings.http_timeout,
            retry_policy=policy,
            **kwargs,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    def status(self) -> ApiResponse:
        return self.request("GET", "/status")

    def list_debates(self) -> ApiResponse:
        return self.request("GET", "/debates")

    def join(self, debate_id: str, payload: Dict[str, Any]) -> ApiResponse:
        quoted = urllib.parse.quote(str(debate_id), safe="")
        return self.request("POST", f"/debates/{quoted}/join", payload)

    def allocate(self, payload: Dict[str, Any]) -> ApiResponse:
        return self.request("POST", "/allocate", payload)

    def comment(self, payload: Dict[str, Any]) -> ApiResponse:
        return self.request("POST", "/comment", payload)

    def refine(self, payload: Dict[str, Any]) -> ApiResponse:
        return self.request("POST", "/refine", payload)

    def request(
        self, method: str, path: str, body: Optional[Dict[str, Any]] = None
    ) -> ApiResponse:
        label = f"{method} {path}"

        def attempt() -> ApiResponse:
            response = self._send(method, path, body)
            if response.status >= 500:
                raise TransientError(f"{label} returned {response.status}", result=response)
            return response

        try:
            return call_with_retry(
                attempt,
                policy=self._retry_policy,
                sleep=self._sleep,
                rng=self._rng,
                label=label,
            )
        except TransientError as exc:
            if isinstance(exc.result, ApiResponse):
                return exc.result
            raise ConclaveTransportError(str(exc)) from exc

    def _send(
        self, method: str, path: str, body: Optional[Dict[str, Any]]
    ) -> ApiResponse:
        url = f"{self._base_url}{path}"
        data = json.dumps(body).encode("utf-8") if body is not None else None
        request = urllib.request.Request(
            url,
            data=data,
            method=method,
            headers={
                "Authorization": f"Bearer {self._token}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
        )
        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as response:
                status = int(getattr(response, "status", 200))
                raw = response.read()
        except urllib.error.HTTPError as exc:
            status = int(exc.code)
            raw = exc.read() or b""
        except (urllib.error.URLError, TimeoutError, ConnectionError) as exc:
            raise TransientError(f"{method} {path} unreachable: {exc}") from exc

        text = raw.decode("utf-8", errors="replace") if raw else ""
        payload: Any = None
        if text:
            try:
                payload = json.loads(text)
            except json.JSONDecodeError:
                payload = None
        logger.debug("%s %s -> %s", method, path, status)
        return ApiResponse(status=status, text=text, json=payload)


__all__ = ["ConclaveClient", "ConclaveTransportError"]
