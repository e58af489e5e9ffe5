"""
Request coalescing to prevent duplicate upstream loads.

When multiple concurrent coroutines ask for the same data, only one
upstream call is made and all requesters share the result.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict

from .core import ReferenceDataError

logger = logging.getLogger("cache.coalescer")


@dataclass
class InFlightRequest:
    """Tracks an in-progress upstream request."""
    future: asyncio.Future
    started_at: float = field(default_factory=time.time)
    waiter_count: int = 0


class AsyncRequestCoalescer:
    """
    Ensures concurrent requests for the same cache key share one upstream call.

    Pattern:
    - First request for a key initiates the fetch
    - Subsequent requests for the same key await the same future
    - When the fetch completes, all waiters receive the same result or error

    Runs on a single event loop, so the in-flight table needs no lock.

    Usage:
        coalescer = AsyncRequestCoalescer()
        result = await coalescer.get_or_fetch(
            cache_key="races:by-id",
            fetch_fn=load_all_races,
        )
    """

    def __init__(self, timeout: float = 30.0):
        """
        Initialize the coalescer.

        Args:
            timeout: Max seconds a waiter will wait for an in-flight request
        """
        self._in_flight: Dict[str, InFlightRequest] = {}
        self._timeout = timeout

    async def get_or_fetch(
        self,
        cache_key: str,
        fetch_fn: Callable[[], Awaitable[Any]],
    ) -> Any:
        """
        Either join an existing in-flight request or initiate a new one.

        Raises:
            asyncio.TimeoutError: If waiting for an in-flight request times out
            ReferenceDataError: If the caller running the fetch was cancelled
                while others were waiting on it
            Exception: Any error from fetch_fn is propagated to every caller
        """
        in_flight = self._in_flight.get(cache_key)
        if in_flight is not None:
            in_flight.waiter_count += 1
            logger.debug(
                f"Coalescing request for {cache_key} "
                f"(waiters: {in_flight.waiter_count})"
            )
            # shield: a timed-out waiter must not cancel the shared future
            return await asyncio.wait_for(
                asyncio.shield(in_flight.future), timeout=self._timeout
            )

        loop = asyncio.get_running_loop()
        in_flight = InFlightRequest(future=loop.create_future())
        self._in_flight[cache_key] = in_flight
        logger.debug(f"Initiating fetch for {cache_key}")

        try:
            result = await fetch_fn()
        except asyncio.CancelledError:
            # Waiters were not cancelled themselves; fail them instead
            if in_flight.waiter_count:
                logger.warning(f"Fetch for {cache_key} cancelled with {in_flight.waiter_count} waiters")
                in_flight.future.set_exception(ReferenceDataError(f"Load for {cache_key} was cancelled"))
            else:
                in_flight.future.cancel()
            raise
        except Exception as e:
            logger.warning(f"Fetch failed for {cache_key}: {e}")
            in_flight.future.set_exception(e)
            if in_flight.waiter_count == 0:
                # Nobody else will retrieve it; mark the exception as seen
                in_flight.future.exception()
            raise
        else:
            in_flight.future.set_result(result)
            return result
        finally:
            self._in_flight.pop(cache_key, None)

    @property
    def active_requests(self) -> int:
        """Number of currently in-flight requests."""
        return len(self._in_flight)

    def get_stats(self) -> Dict[str, Any]:
        """Get coalescer statistics."""
        return {
            "active_requests": len(self._in_flight),
            "active_keys": list(self._in_flight.keys()),
        }
