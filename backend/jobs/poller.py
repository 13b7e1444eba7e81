"""
Client-side polling for generation jobs.

JobPoller is transport-agnostic: it is given a coroutine that returns the
status dict for a job id. Sleep and clock are injected so the loop can be
driven without wall-clock waits. GenerationJobClient wires it to the HTTP
API with httpx.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from backend.config import config
from backend.jobs.errors import (
    JobFailedError,
    NotFoundError,
    PollTimeoutError,
    ValidationError,
)


FAILED_STATES = ("failed", "stuck")


class JobPoller:
    """Sleep, poll, repeat until a terminal state or a limit is reached."""

    def __init__(
        self,
        fetch_status: Callable[[str], Awaitable[Dict[str, Any]]],
        interval: float = config.POLL_INTERVAL_SECONDS,
        max_attempts: Optional[int] = config.POLL_MAX_ATTEMPTS,
        timeout: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_attempts is None and timeout is None:
            raise ValueError("JobPoller needs max_attempts, timeout, or both")
        self.fetch_status = fetch_status
        self.interval = interval
        self.max_attempts = max_attempts
        self.timeout = timeout
        self.sleep = sleep
        self.clock = clock

    async def wait(self, job_id: str) -> Optional[Dict[str, Any]]:
        """
        Poll until the job completes and return its result.

        Raises:
            JobFailedError: the job reached failed or stuck
            PollTimeoutError: max_attempts or timeout ran out first
        """
        started = self.clock()
        attempts = 0
        last_status: Optional[str] = None

        while True:
            if self.max_attempts is not None and attempts >= self.max_attempts:
                raise PollTimeoutError(job_id, attempts, last_status)
            if self.timeout is not None and self.clock() - started >= self.timeout:
                raise PollTimeoutError(job_id, attempts, last_status)

            await self.sleep(self.interval)
            attempts += 1

            status = await self.fetch_status(job_id)
            last_status = status.get("status")

            if last_status == "completed":
                return status.get("result")
            if last_status in FAILED_STATES:
                raise JobFailedError(job_id, last_status, status.get("error"))


class GenerationJobClient:
    """HTTP client for the generation job API."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        tenant_id: Optional[str] = None,
        user_id: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        headers = {}
        if api_key:
            headers["X-API-Key"] = api_key
        if tenant_id:
            headers["X-Tenant-Id"] = tenant_id
        if user_id:
            headers["X-User-Id"] = user_id

        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(base_url=base_url, timeout=30.0)
        self._headers = headers

    async def __aenter__(self) -> "GenerationJobClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    async def aclose(self):
        if self._owns_client:
            await self._client.aclose()

    async def submit(self, job_type: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._client.post(
            "/api/ai/jobs",
            json={"type": job_type, "payload": payload},
            headers=self._headers,
        )
        if response.status_code == 400:
            body = response.json()
            raise ValidationError(body.get("detail", "Invalid generation request"), details=body.get("errors"))
        response.raise_for_status()
        return response.json()

    async def get_status(self, job_id: str) -> Dict[str, Any]:
        response = await self._client.get(f"/api/ai/jobs/{job_id}", headers=self._headers)
        if response.status_code == 404:
            raise NotFoundError(job_id)
        response.raise_for_status()
        return response.json()

    async def run_job(
        self,
        job_type: str,
        payload: Dict[str, Any],
        interval: float = config.POLL_INTERVAL_SECONDS,
        max_attempts: Optional[int] = config.POLL_MAX_ATTEMPTS,
        timeout: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> Optional[Dict[str, Any]]:
        """Submit a job and poll it to completion."""
        handle = await self.submit(job_type, payload)
        poller = JobPoller(
            self.get_status,
            interval=interval,
            max_attempts=max_attempts,
            timeout=timeout,
            sleep=sleep,
            clock=clock,
        )
        return await poller.wait(handle["jobId"])
