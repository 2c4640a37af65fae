"""Boundary coordination for recomputing summaries when inputs change.

The calculator is pure and synchronous; everything asynchronous lives
here. A refresh fetches trips and fuel entries from a RecordSource,
computes a new summary and publishes it to subscribers.

Refreshes may overlap when triggers arrive faster than fetches complete.
Each refresh is tagged with a generation number from a GenerationCounter
and a result is only published when its generation is still the latest
("last request wins"). A stale result is dropped, never merged.

Example:
    ```python
    refresher = SummaryRefresher(source)
    refresher.subscribe(lambda update: render(update.summary))

    await refresher.refresh("user-1", "2025-Q1")
    await refresher.handle_records_changed(RecordsChanged(user_id="user-1"))
    ```
"""

from __future__ import annotations

import asyncio
import inspect
import itertools
import threading
from typing import Any, Awaitable, Callable, Optional, Protocol, Sequence, Union, runtime_checkable

import structlog
from pydantic import BaseModel, ConfigDict, Field

from .calculator import QuarterlyIftaCalculator
from .models import QuarterlySummary
from .quarters import Quarter, QuarterLike, coerce_quarter

logger = structlog.get_logger()


# =============================================================================
# PROTOCOLS AND EVENTS
# =============================================================================

@runtime_checkable
class RecordSource(Protocol):
    """Persistence collaborator that supplies the engine's inputs.

    Any object with these coroutine methods is compatible; no inheritance
    required.
    """

    async def fetch_trips(self, user_id: str, quarter: Quarter) -> Sequence[Any]:
        """Return trip rows for the user and quarter."""
        ...

    async def fetch_fuel_entries(
        self, user_id: str, quarter: Quarter, *, ifta_eligible_only: bool = True
    ) -> Sequence[Any]:
        """Return fuel purchase rows for the user and quarter."""
        ...


class RecordsChanged(BaseModel):
    """Emitted by the persistence collaborator when trips or fuel change."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    quarter: Optional[Quarter] = Field(
        default=None,
        description="Quarter whose records changed; None means any quarter",
    )


class RefreshRequest(BaseModel):
    """Parameters of one summary computation."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    quarter: Quarter
    vehicle_filter: Optional[str] = None


class SummaryUpdate(BaseModel):
    """A published summary together with the request that produced it."""

    model_config = ConfigDict(frozen=True)

    generation: int = Field(ge=1)
    request: RefreshRequest
    summary: QuarterlySummary


Subscriber = Callable[[SummaryUpdate], Union[None, Awaitable[None]]]


# =============================================================================
# GENERATIONS
# =============================================================================

class GenerationCounter:
    """Hands out monotonically increasing generation numbers.

    Safe to share between threads.
    """

    def __init__(self) -> None:
        self._counter = itertools.count(1)
        self._lock = threading.Lock()
        self._latest = 0

    def next(self) -> int:
        """Issue a new generation, which becomes the latest."""
        with self._lock:
            self._latest = next(self._counter)
            return self._latest

    @property
    def latest(self) -> int:
        with self._lock:
            return self._latest

    def is_current(self, generation: int) -> bool:
        """True if no newer generation has been issued."""
        with self._lock:
            return generation == self._latest


# =============================================================================
# REFRESHER
# =============================================================================

class SummaryRefresher:
    """
    Fetch inputs, recompute the quarterly summary and publish it.

    Holds the last request so a RecordsChanged event can re-run it. Summaries
    are never mutated; every refresh publishes a fresh object, so subscribers
    can diff old and new results.
    """

    def __init__(
        self,
        source: RecordSource,
        calculator: Optional[QuarterlyIftaCalculator] = None,
        generations: Optional[GenerationCounter] = None,
    ):
        """
        Initialize the refresher.

        Args:
            source: Persistence collaborator supplying trips and fuel
            calculator: Calculator to run (default: configured from environment)
            generations: Shared generation counter (default: a private one)
        """
        self.source = source
        self.calculator = calculator or QuarterlyIftaCalculator()
        self.generations = generations or GenerationCounter()
        self._subscribers: list[Subscriber] = []
        self._last_request: Optional[RefreshRequest] = None
        self._latest: Optional[SummaryUpdate] = None

    @property
    def latest(self) -> Optional[SummaryUpdate]:
        """Most recently published update."""
        return self._latest

    @property
    def last_request(self) -> Optional[RefreshRequest]:
        return self._last_request

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Register a callback for published summaries.

        Args:
            callback: Plain function or coroutine function taking a SummaryUpdate

        Returns:
            A function that removes the subscription
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def refresh(
        self,
        user_id: str,
        quarter: QuarterLike,
        vehicle_filter: Optional[str] = None,
    ) -> Optional[QuarterlySummary]:
        """
        Recompute the summary for a user, quarter and optional vehicle.

        Args:
            user_id: Owner of the records
            quarter: Reporting quarter
            vehicle_filter: Restrict the report to one vehicle

        Returns:
            The new summary, or None when a newer refresh superseded this one
            while its inputs were being fetched. A summary superseded while
            it is being published is not delivered to the remaining
            subscribers.

        Raises:
            ValidationError: Malformed quarter or inputs
        """
        request = RefreshRequest(
            user_id=user_id,
            quarter=coerce_quarter(quarter),
            vehicle_filter=vehicle_filter,
        )
        generation = self.generations.next()
        self._last_request = request
        logger.info(
            "summary_refresh_started",
            generation=generation,
            user_id=user_id,
            quarter=str(request.quarter),
            vehicle_filter=vehicle_filter,
        )

        trips, fuel_entries = await asyncio.gather(
            self.source.fetch_trips(user_id, request.quarter),
            self.source.fetch_fuel_entries(user_id, request.quarter, ifta_eligible_only=True),
        )

        if not self.generations.is_current(generation):
            logger.info(
                "stale_summary_discarded",
                generation=generation,
                latest=self.generations.latest,
            )
            return None

        summary = self.calculator.calculate(
            list(trips),
            list(fuel_entries),
            request.quarter,
            request.vehicle_filter,
        )
        update = SummaryUpdate(generation=generation, request=request, summary=summary)
        self._latest = update
        await self._publish(update)
        return summary

    async def handle_records_changed(self, event: RecordsChanged) -> Optional[QuarterlySummary]:
        """
        Re-run the last request when its records changed.

        Events for another user or another quarter are ignored.
        """
        request = self._last_request
        if request is None or request.user_id != event.user_id:
            return None
        if event.quarter is not None and event.quarter != request.quarter:
            return None

        logger.info(
            "records_changed",
            user_id=event.user_id,
            quarter=str(request.quarter),
        )
        return await self.refresh(request.user_id, request.quarter, request.vehicle_filter)

    async def _publish(self, update: SummaryUpdate) -> None:
        """Deliver an update to subscribers until a newer generation starts."""
        for delivered, callback in enumerate(list(self._subscribers)):
            if not self.generations.is_current(update.generation):
                logger.info(
                    "stale_publish_stopped",
                    generation=update.generation,
                    latest=self.generations.latest,
                    delivered=delivered,
                )
                return
            result = callback(update)
            if inspect.isawaitable(result):
                await result
        logger.info(
            "summary_published",
            generation=update.generation,
            subscribers=len(self._subscribers),
        )
