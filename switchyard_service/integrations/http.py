"""
http.py - shared async HTTP client for third-party integration APIs.

Wraps httpx with:
- Separate connect/read timeouts and a total budget across attempts
- Exponential backoff retry on 429 (honoring Retry-After), 5xx and timeouts
- Opt-out of retries for non-idempotent calls
- No API keys or response bodies in logs
"""
import asyncio
import time
from typing import Any, Dict, Optional

import httpx

from switchyard_service.core.logging import logger


class RetryingHttpClient:
    """Small retrying wrapper around httpx.AsyncClient."""

    def __init__(
        self,
        base_url: str,
        headers: Optional[Dict[str, str]] = None,
        connect_timeout: float = 2.0,
        read_timeout: float = 6.0,
        total_timeout: float = 15.0,
        max_retries: int = 2,
        backoff_base: float = 0.5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.headers = dict(headers or {})
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.total_timeout = total_timeout
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        # tests inject httpx.MockTransport here
        self._transport = transport

    def _delay(self, attempt: int, response: Optional[httpx.Response] = None) -> float:
        if response is not None:
            retry_after = response.headers.get("Retry-After")
            if retry_after:
                try:
                    return float(retry_after)
                except ValueError:
                    pass
        return self.backoff_base * (2 ** attempt)

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        retry: bool = True,
    ) -> httpx.Response:
        """
        Send one request, retrying transient failures.

        Returns the final response for any status; callers decide what a
        non-2xx means. Raises asyncio.TimeoutError when the total budget runs
        out and httpx.TransportError when the last attempt failed at transport
        level.
        """
        start = time.monotonic()
        max_retries = self.max_retries if retry else 0
        url = f"{self.base_url}/{path.lstrip('/')}"
        attempt = 0

        while True:
            elapsed = time.monotonic() - start
            if elapsed >= self.total_timeout:
                logger.error(f"Total timeout exceeded ({self.total_timeout}s) after {attempt} attempts: {method} {path}")
                raise asyncio.TimeoutError(f"Request exceeded total timeout of {self.total_timeout}s")

            remaining = self.total_timeout - elapsed
            timeout = httpx.Timeout(
                connect=min(self.connect_timeout, remaining),
                read=min(self.read_timeout, remaining),
                write=5.0,
                pool=5.0,
            )

            try:
                async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                    response = await client.request(method, url, params=params, json=json, headers=self.headers)
            except httpx.TimeoutException:
                logger.warning(f"Timeout on {method} {path}, attempt {attempt + 1}/{max_retries + 1}")
                if attempt >= max_retries:
                    raise
                await asyncio.sleep(self._delay(attempt))
                attempt += 1
                continue

            logger.debug(
                f"{method} {path}: status={response.status_code}, "
                f"latency={int((time.monotonic() - start) * 1000)}ms, attempt={attempt + 1}"
            )

            transient = response.status_code == 429 or response.status_code >= 500
            if transient and attempt < max_retries:
                delay = self._delay(attempt, response)
                logger.warning(
                    f"Transient status {response.status_code} on {method} {path}, "
                    f"attempt {attempt + 1}/{max_retries + 1}, retrying in {delay:.1f}s"
                )
                await asyncio.sleep(delay)
                attempt += 1
                continue

            return response

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, json: Optional[Dict[str, Any]] = None, retry: bool = False) -> httpx.Response:
        return await self.request("POST", path, json=json, retry=retry)
