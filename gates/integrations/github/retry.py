"""
httpx transport retrying GitHub calls on transient statuses.
"""

import asyncio
import uuid
from typing import Awaitable, Callable, Optional

import httpx
from tenacity import AsyncRetrying, RetryCallState, retry_if_result, stop_after_attempt

from gates.core.logging import get_logger

logger = get_logger(__name__)

RETRY_STATUS_CODES = frozenset({500, 502, 503, 504, 408})


def _is_transient(response: httpx.Response) -> bool:
    return response.status_code in RETRY_STATUS_CODES


def _last_response(retry_state: RetryCallState) -> httpx.Response:
    return retry_state.outcome.result()


class RetryTransport(httpx.AsyncBaseTransport):
    """
    Wraps a transport and retries requests answered with a transient status.

    ``max_retries`` counts retries after the first attempt. Retry ``n`` waits
    ``sleep_base ** n`` seconds. Once retries are exhausted the last response
    is returned untouched; callers deal with the status.
    """

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_retries: int = 3,
        sleep_base: float = 2,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._transport = transport or httpx.AsyncHTTPTransport()
        self.max_retries = max_retries
        self.sleep_base = sleep_base
        self._sleep = sleep

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=self._backoff,
            retry=retry_if_result(_is_transient),
            before_sleep=self._discard,
            retry_error_callback=_last_response,
            sleep=self._sleep,
        )
        return await retrying(self._send, request)

    def _backoff(self, retry_state: RetryCallState) -> float:
        return self.sleep_base**retry_state.attempt_number

    async def _discard(self, retry_state: RetryCallState) -> None:
        logger.info(
            "Retrying request %d of %d after %s seconds",
            retry_state.attempt_number,
            self.max_retries,
            retry_state.next_action.sleep,
        )
        await retry_state.outcome.result().aclose()

    async def _send(self, request: httpx.Request) -> httpx.Response:
        call_id = uuid.uuid4().hex[:6]
        logger.info("NET Req: %s %s %s", call_id, request.method, request.url)

        response = await self._transport.handle_async_request(request)

        logger.info(
            "NET Res: %s %s Status: %d",
            call_id,
            response.headers.get("X-GitHub-Request-Id"),
            response.status_code,
        )
        return response

    async def aclose(self) -> None:
        await self._transport.aclose()
