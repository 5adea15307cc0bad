"""
Resilient invocation of the multi-modal inference service.

Endpoints are tried in priority order, each with a bounded number of
attempts. Every attempt yields an ``AttemptOutcome``; ``next_transition``
maps that outcome to one of four transitions and the driver loop in
``InvocationEngine.invoke`` only executes them:

    Success           -> SUCCESS        return at once
    RetryableFailure  -> RETRY          sleep a random backoff, same endpoint
                      -> NEXT_ENDPOINT  when the endpoint's attempts are used up
    TerminalFailure   -> ABORT          4xx, return at once, no failover

Attempts are strictly sequential: one request in flight at a time.
"""
from __future__ import annotations

import asyncio
import json
import random
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Sequence, Union

import httpx

from core.config import settings
from core.errors import ErrorKind, truncate
from core.logger import logger
from services.ocr.request_builder import RecognitionRequest, build_headers, build_payload

PREVIEW_LIMIT = 200
MESSAGE_EXCERPT_LIMIT = 100
SSL_HANDSHAKE_FAILED = 525


# ----------------------------------------------------------
# ATTEMPT OUTCOMES
# ----------------------------------------------------------

@dataclass(frozen=True)
class Success:
    raw_body: str
    data: Any


@dataclass(frozen=True)
class RetryableFailure:
    reason: str
    raw: str = ""


@dataclass(frozen=True)
class TerminalFailure:
    reason: str
    raw: str = ""
    status_code: Optional[int] = None


AttemptOutcome = Union[Success, RetryableFailure, TerminalFailure]


@dataclass(frozen=True)
class InvocationSuccess:
    raw_body: str
    data: Any
    endpoint: str
    attempts: int


@dataclass(frozen=True)
class InvocationFailure:
    reason: str
    raw: str
    kind: ErrorKind
    attempts: int


InvocationResult = Union[InvocationSuccess, InvocationFailure]

UNREACHABLE_REASON = "All API endpoints are unreachable"


# ----------------------------------------------------------
# CLASSIFICATION
# ----------------------------------------------------------

class Transition(str, Enum):
    SUCCESS = "success"
    RETRY = "retry"
    NEXT_ENDPOINT = "next_endpoint"
    ABORT = "abort"


_TRANSITIONS: dict[type, Transition] = {
    Success: Transition.SUCCESS,
    RetryableFailure: Transition.RETRY,
    TerminalFailure: Transition.ABORT,
}


def next_transition(outcome: AttemptOutcome, attempt: int, attempts_per_endpoint: int) -> Transition:
    """Decide what follows ``outcome`` on the zero-based ``attempt`` of an endpoint."""
    transition = _TRANSITIONS[type(outcome)]
    if transition is Transition.RETRY and attempt + 1 >= attempts_per_endpoint:
        return Transition.NEXT_ENDPOINT
    return transition


def describe_http_error(status_code: int, body: str) -> str:
    message = f"API request failed ({status_code})"
    try:
        error_data = json.loads(body)
    except ValueError:
        return f"{message}: {body[:MESSAGE_EXCERPT_LIMIT]}"
    error = error_data.get("error") if isinstance(error_data, dict) else None
    if isinstance(error, dict) and error.get("message"):
        message += f": {error['message']}"
    return message


def classify_response(status_code: int, body: str, endpoint_number: int = 1) -> AttemptOutcome:
    """Map an HTTP status and body to an attempt outcome."""
    if status_code == SSL_HANDSHAKE_FAILED:
        return RetryableFailure(
            f"SSL handshake failed (525) - endpoint {endpoint_number}",
            f"525 error: {body[:PREVIEW_LIMIT]}",
        )
    if 400 <= status_code < 500:
        return TerminalFailure(describe_http_error(status_code, body), truncate(body), status_code)
    if not 200 <= status_code < 300:
        return RetryableFailure(describe_http_error(status_code, body), truncate(body))
    try:
        return Success(body, json.loads(body))
    except ValueError:
        return RetryableFailure("Response parse error", truncate(body))


def classify_transport_error(exc: BaseException) -> RetryableFailure:
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return RetryableFailure("Request timed out", repr(exc))
    detail = str(exc) or type(exc).__name__
    return RetryableFailure(f"Network request failed: {detail}", repr(exc))


# ----------------------------------------------------------
# BACKOFF
# ----------------------------------------------------------

class RandomBackoff:
    """Sleep for a delay drawn uniformly from ``[low, high]`` seconds."""

    def __init__(
        self,
        low: float = 1.0,
        high: float = 3.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.low = low
        self.high = high
        self._sleep = sleep
        self._rng = rng or random.Random()

    async def __call__(self) -> float:
        delay = self._rng.uniform(self.low, self.high)
        await self._sleep(delay)
        return delay


DelayProvider = Callable[[], Awaitable[Any]]


# ----------------------------------------------------------
# ENGINE
# ----------------------------------------------------------

class InvocationEngine:
    """Call the inference service with per-endpoint retries and failover."""

    def __init__(
        self,
        endpoints: Sequence[str] | None = None,
        model: str | None = None,
        attempts_per_endpoint: int | None = None,
        attempt_timeout: float | None = None,
        delay: DelayProvider | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.endpoints = tuple(endpoints if endpoints is not None else settings.endpoints)
        self.model = model or settings.model
        self.attempts_per_endpoint = attempts_per_endpoint or settings.attempts_per_endpoint
        self.attempt_timeout = attempt_timeout or settings.attempt_timeout
        self.delay = delay or RandomBackoff(settings.backoff_min, settings.backoff_max)
        self._transport = transport
        self._clock = clock

    async def invoke(self, request: RecognitionRequest, time_budget: float | None = None) -> InvocationResult:
        """Return the first successful response or the last failure seen."""
        payload = build_payload(request, self.model, settings.max_tokens, settings.temperature)
        headers = build_headers(request)
        started = self._clock()
        last_failure: RetryableFailure | None = None
        attempts = 0

        async with httpx.AsyncClient(timeout=self.attempt_timeout, transport=self._transport) as client:
            for index, endpoint in enumerate(self.endpoints):
                number = index + 1
                logger.info("Trying API endpoint %d/%d: %s", number, len(self.endpoints), endpoint)

                for attempt in range(self.attempts_per_endpoint):
                    if attempt > 0:
                        logger.info("Retry %d for endpoint %d", attempt + 1, number)
                        await self.delay()

                    # Checked after the backoff, right before the attempt starts
                    if time_budget is not None and self._clock() - started >= time_budget:
                        logger.warning("Invocation time budget of %.1fs exhausted", time_budget)
                        return self._exhausted(last_failure, attempts)

                    attempts += 1
                    outcome = await self._attempt(client, endpoint, number, attempt, payload, headers)
                    transition = next_transition(outcome, attempt, self.attempts_per_endpoint)

                    if transition is Transition.SUCCESS:
                        logger.info("Got result (endpoint: %d, attempt: %d)", number, attempt + 1)
                        return InvocationSuccess(outcome.raw_body, outcome.data, endpoint, attempts)

                    if transition is Transition.ABORT:
                        logger.error("Client error from endpoint %d, not retrying: %s", number, outcome.reason)
                        return InvocationFailure(outcome.reason, outcome.raw, ErrorKind.UPSTREAM_PERMANENT, attempts)

                    last_failure = outcome
                    if transition is Transition.NEXT_ENDPOINT:
                        logger.warning("Endpoint %d exhausted: %s", number, outcome.reason)
                        break

        logger.error("All API endpoints failed")
        return self._exhausted(last_failure, attempts)

    async def _attempt(
        self,
        client: httpx.AsyncClient,
        endpoint: str,
        number: int,
        attempt: int,
        payload: dict[str, Any],
        headers: dict[str, str],
    ) -> AttemptOutcome:
        try:
            response = await asyncio.wait_for(
                client.post(endpoint, json=payload, headers=headers),
                timeout=self.attempt_timeout,
            )
        except (asyncio.TimeoutError, httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning("API request error (endpoint: %d, attempt: %d): %r", number, attempt + 1, exc)
            return classify_transport_error(exc)

        body = response.text
        logger.info(
            "API response status: %d (endpoint: %d, attempt: %d)",
            response.status_code, number, attempt + 1,
        )
        logger.debug("API response body: %s", body[:PREVIEW_LIMIT])
        outcome = classify_response(response.status_code, body, number)
        if isinstance(outcome, RetryableFailure):
            logger.warning("Retryable failure: %s", outcome.reason)
        return outcome

    @staticmethod
    def _exhausted(last_failure: RetryableFailure | None, attempts: int) -> InvocationFailure:
        if last_failure is None:
            return InvocationFailure(
                UNREACHABLE_REASON,
                "Network connection problem, please try again later",
                ErrorKind.UPSTREAM_TRANSIENT,
                attempts,
            )
        return InvocationFailure(last_failure.reason, last_failure.raw, ErrorKind.UPSTREAM_TRANSIENT, attempts)
