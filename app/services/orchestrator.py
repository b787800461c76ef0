"""
Multi-provider generation orchestrator.

This module fans one GenerationRequest out to N (provider, model)
selections concurrently and aggregates their outcomes progressively:

1. Init      - one Pending outcome per selection; the all-Pending snapshot is
               published synchronously before any provider call starts.
2. Dispatch  - one task per selection resolves its provider through the
               registry and calls generate().
3. Settle    - each dispatch task sends its terminal outcome to a queue. A
               single aggregator task is the only writer of the result set
               and publishes a fresh snapshot after every settlement.
4. Complete  - once every slot is terminal the invocation is done. If none
               succeeded an AllSelectionsFailedError is attached.

Selections are fully isolated: a registry error, provider failure or slow
call in one selection never changes or delays another selection's outcome.
Every call to start() builds a new result set; nothing carries over between
invocations.

Usage:
    orchestrator = GenerationOrchestrator(registry)
    invocation = orchestrator.start(request, selections)
    async for snapshot in invocation.updates():
        render(snapshot)
"""
from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import AsyncIterator, Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING

from app.config import get_logger
from app.exceptions import (
    AllSelectionsFailedError,
    ErrorCategory,
    ProviderResolutionError,
    ValidationError,
)
from app.providers.image.interface import GenerationRequest, GenerationResult, ImageData

if TYPE_CHECKING:
    from app.providers.image import ProviderRegistry

logger = get_logger("services.orchestrator")


# =============================================================================
# Data Classes
# =============================================================================

class OutcomeStatus(str, Enum):
    """Lifecycle of one selection within an invocation."""
    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class ProviderSelection:
    """
    One fan-out branch: a (provider, model) pairing.

    ``selection_id`` must be unique within an invocation. The same provider
    may appear several times with different models.
    """
    selection_id: str
    provider_id: str
    model_id: str = ""
    display_label: str = ""

    def __post_init__(self) -> None:
        if not self.selection_id or not self.selection_id.strip():
            raise ValidationError("Selection id cannot be empty")
        if not self.provider_id or not self.provider_id.strip():
            raise ValidationError(f"Selection '{self.selection_id}' has no provider id")

    @property
    def label(self) -> str:
        if self.display_label:
            return self.display_label
        return f"{self.provider_id} / {self.model_id}" if self.model_id else self.provider_id


@dataclass(frozen=True)
class GenerationOutcome:
    """
    Pending or terminal result of one selection.

    ``images`` is non-empty iff status is SUCCESS and ``error_message`` is set
    iff status is FAILURE. ``duration_ms`` is measured by the orchestrator
    from dispatch to settlement of this selection only.
    """
    selection_id: str
    provider_id: str
    model_id: str
    status: OutcomeStatus = OutcomeStatus.PENDING
    images: tuple[ImageData, ...] = ()
    error_message: str | None = None
    error_category: ErrorCategory | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: float | None = None
    provider_time_ms: float | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status is not OutcomeStatus.PENDING

    @property
    def succeeded(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS

    @classmethod
    def pending(cls, selection: ProviderSelection) -> "GenerationOutcome":
        return cls(
            selection_id=selection.selection_id,
            provider_id=selection.provider_id,
            model_id=selection.model_id,
        )

    @classmethod
    def failure(
        cls,
        selection: ProviderSelection,
        message: str,
        category: ErrorCategory,
        started_at: datetime,
        duration_ms: float,
        model_id: str | None = None,
        provider_time_ms: float | None = None,
    ) -> "GenerationOutcome":
        return cls(
            selection_id=selection.selection_id,
            provider_id=selection.provider_id,
            model_id=model_id or selection.model_id,
            status=OutcomeStatus.FAILURE,
            error_message=message,
            error_category=category,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc),
            duration_ms=duration_ms,
            provider_time_ms=provider_time_ms,
        )

    @classmethod
    def from_result(
        cls,
        selection: ProviderSelection,
        result: GenerationResult,
        started_at: datetime,
        duration_ms: float,
    ) -> "GenerationOutcome":
        if result.success and result.images:
            return cls(
                selection_id=selection.selection_id,
                provider_id=selection.provider_id,
                model_id=result.model or selection.model_id,
                status=OutcomeStatus.SUCCESS,
                images=tuple(result.images),
                started_at=started_at,
                completed_at=datetime.now(timezone.utc),
                duration_ms=duration_ms,
                provider_time_ms=result.generation_time_ms,
            )
        return cls.failure(
            selection,
            result.error or "Generation failed",
            result.error_category or ErrorCategory.NO_IMAGE_RETURNED,
            started_at,
            duration_ms,
            model_id=result.model,
            provider_time_ms=result.generation_time_ms,
        )


class InvocationResultSet:
    """
    selection_id -> GenerationOutcome, in selection order.

    Slots move from Pending to a terminal state at most once; settle()
    refuses to overwrite a terminal slot.
    """

    def __init__(self, selections: Iterable[ProviderSelection]) -> None:
        self._outcomes: dict[str, GenerationOutcome] = {
            s.selection_id: GenerationOutcome.pending(s) for s in selections
        }

    def settle(self, outcome: GenerationOutcome) -> bool:
        """
        Record a terminal outcome.

        Returns:
            False if the selection is unknown, already terminal, or the
            outcome is not terminal; True otherwise.
        """
        current = self._outcomes.get(outcome.selection_id)
        if current is None or current.is_terminal or not outcome.is_terminal:
            return False
        self._outcomes[outcome.selection_id] = outcome
        return True

    def snapshot(self) -> Mapping[str, GenerationOutcome]:
        """Read-only copy of the current outcomes."""
        return MappingProxyType(dict(self._outcomes))

    @property
    def is_settled(self) -> bool:
        return all(o.is_terminal for o in self._outcomes.values())

    @property
    def all_failed(self) -> bool:
        return self.is_settled and all(
            o.status is OutcomeStatus.FAILURE for o in self._outcomes.values()
        )

    def __len__(self) -> int:
        return len(self._outcomes)


@dataclass(frozen=True)
class InvocationSnapshot:
    """Immutable view of an invocation published to observers."""
    invocation_id: str
    outcomes: Mapping[str, GenerationOutcome]
    sequence: int = 0
    complete: bool = False
    error: AllSelectionsFailedError | None = None

    def _count(self, status: OutcomeStatus) -> int:
        return sum(1 for o in self.outcomes.values() if o.status is status)

    @property
    def pending_count(self) -> int:
        return self._count(OutcomeStatus.PENDING)

    @property
    def success_count(self) -> int:
        return self._count(OutcomeStatus.SUCCESS)

    @property
    def failure_count(self) -> int:
        return self._count(OutcomeStatus.FAILURE)

    @property
    def all_failed(self) -> bool:
        return self.complete and self.success_count == 0


SnapshotListener = Callable[[InvocationSnapshot], None]


# =============================================================================
# Invocation
# =============================================================================

class Invocation:
    """
    One user-initiated generation across all selections.

    Created by GenerationOrchestrator.start(); observers read snapshot(),
    iterate updates() or await wait().
    """

    def __init__(
        self,
        invocation_id: str,
        request: GenerationRequest,
        selections: Sequence[ProviderSelection],
        registry: "ProviderRegistry",
        timer: Callable[[], float],
    ) -> None:
        self.id = invocation_id
        self.request = request
        self.selections: tuple[ProviderSelection, ...] = tuple(selections)
        self.error: AllSelectionsFailedError | None = None

        self._registry = registry
        self._timer = timer
        self._results = InvocationResultSet(self.selections)
        self._settlements: asyncio.Queue[GenerationOutcome] = asyncio.Queue()
        self._subscribers: list[asyncio.Queue[InvocationSnapshot]] = []
        self._listeners: list[SnapshotListener] = []
        self._tasks: set[asyncio.Task] = set()
        self._done = asyncio.Event()
        self._sequence = 0
        self._latest = InvocationSnapshot(self.id, self._results.snapshot())

    # -------------------------------------------------------------------------
    # Observation
    # -------------------------------------------------------------------------

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def snapshot(self) -> InvocationSnapshot:
        """Most recently published snapshot."""
        return self._latest

    def add_listener(self, listener: SnapshotListener) -> None:
        """Call ``listener`` synchronously with every published snapshot."""
        self._listeners.append(listener)

    async def updates(self) -> AsyncIterator[InvocationSnapshot]:
        """
        Yield the current snapshot, then each new one until completion.

        Safe to start at any time; late subscribers begin from the latest
        state and never miss a later settlement.
        """
        queue: asyncio.Queue[InvocationSnapshot] = asyncio.Queue()
        self._subscribers.append(queue)
        try:
            current = self._latest
            yield current
            if current.complete:
                return
            while True:
                snapshot = await queue.get()
                if snapshot.sequence <= current.sequence:
                    continue
                current = snapshot
                yield snapshot
                if snapshot.complete:
                    return
        finally:
            self._subscribers.remove(queue)

    async def wait(self) -> InvocationSnapshot:
        """Wait until every selection is terminal and return the final snapshot."""
        await self._done.wait()
        return self._latest

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def _publish(self) -> None:
        self._latest = InvocationSnapshot(
            invocation_id=self.id,
            outcomes=self._results.snapshot(),
            sequence=self._sequence,
            complete=self._results.is_settled,
            error=self.error,
        )
        self._sequence += 1

        for queue in self._subscribers:
            queue.put_nowait(self._latest)
        for listener in self._listeners:
            try:
                listener(self._latest)
            except Exception:
                logger.exception("Snapshot listener failed | invocation=%s", self.id)

    def _spawn(self, coro, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _launch(self) -> asyncio.Task:
        for selection in self.selections:
            self._spawn(
                self._dispatch(selection),
                name=f"generate:{self.id}:{selection.selection_id}",
            )
        return self._spawn(self._aggregate(), name=f"aggregate:{self.id}")

    async def _dispatch(self, selection: ProviderSelection) -> None:
        started_at = datetime.now(timezone.utc)
        start = self._timer()

        def elapsed_ms() -> float:
            return (self._timer() - start) * 1000

        try:
            provider = self._registry.create_provider(selection.provider_id, selection.model_id or None)
            result = await provider.generate(self.request)
        except ProviderResolutionError as e:
            logger.warning(
                "Selection failed before dispatch | invocation=%s | selection=%s | category=%s | error=%s",
                self.id,
                selection.selection_id,
                e.category.value,
                e.message,
            )
            outcome = GenerationOutcome.failure(selection, e.message, e.category, started_at, elapsed_ms())
        except Exception as e:
            logger.exception(
                "Provider raised instead of returning a failure | invocation=%s | selection=%s",
                self.id,
                selection.selection_id,
            )
            outcome = GenerationOutcome.failure(
                selection,
                f"Generation failed: {e}",
                ErrorCategory.GENERIC,
                started_at,
                elapsed_ms(),
            )
        else:
            outcome = GenerationOutcome.from_result(selection, result, started_at, elapsed_ms())

        self._settlements.put_nowait(outcome)

    async def _aggregate(self) -> None:
        while not self._results.is_settled:
            outcome = await self._settlements.get()
            if not self._results.settle(outcome):
                logger.warning(
                    "Ignoring repeated settlement | invocation=%s | selection=%s",
                    self.id,
                    outcome.selection_id,
                )
                continue

            logger.info(
                "Selection settled | invocation=%s | selection=%s | status=%s | duration_ms=%.1f",
                self.id,
                outcome.selection_id,
                outcome.status.value,
                outcome.duration_ms or 0.0,
            )

            if self._results.is_settled and self._results.all_failed:
                self.error = AllSelectionsFailedError(len(self._results))
                logger.warning(
                    "All selections failed | invocation=%s | count=%d",
                    self.id,
                    len(self._results),
                )
            self._publish()

        self._done.set()


# =============================================================================
# Orchestrator
# =============================================================================

class GenerationOrchestrator:
    """
    Entry point for parallel multi-provider generation.

    The provider registry is injected so tests (and alternative deployments)
    can supply their own providers.
    """

    def __init__(
        self,
        registry: "ProviderRegistry",
        timer: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._registry = registry
        self._timer = timer
        self._active: set[Invocation] = set()

    @property
    def registry(self) -> "ProviderRegistry":
        return self._registry

    @staticmethod
    def _validate_selections(selections: Sequence[ProviderSelection]) -> None:
        if not selections:
            raise ValidationError("At least one provider selection is required")
        seen: set[str] = set()
        for selection in selections:
            if selection.selection_id in seen:
                raise ValidationError(
                    f"Duplicate selection id '{selection.selection_id}'"
                )
            seen.add(selection.selection_id)

    def start(
        self,
        request: GenerationRequest,
        selections: Iterable[ProviderSelection],
        on_update: SnapshotListener | None = None,
    ) -> Invocation:
        """
        Begin a new invocation and return immediately.

        Must be called from a running event loop. ``on_update`` receives the
        all-Pending snapshot before this method returns.

        Raises:
            ValidationError: No selections or duplicate selection ids
        """
        selections = tuple(selections)
        self._validate_selections(selections)

        invocation = Invocation(
            invocation_id=uuid.uuid4().hex,
            request=request,
            selections=selections,
            registry=self._registry,
            timer=self._timer,
        )
        if on_update is not None:
            invocation.add_listener(on_update)

        logger.info(
            "Invocation started | invocation=%s | selections=%s | template=%s",
            invocation.id,
            ",".join(f"{s.provider_id}:{s.model_id or 'default'}" for s in selections),
            request.has_template,
        )

        invocation._publish()
        aggregator = invocation._launch()

        # keep the invocation (and its tasks) alive until it settles
        self._active.add(invocation)
        aggregator.add_done_callback(lambda _: self._active.discard(invocation))
        return invocation

    async def generate(
        self,
        request: GenerationRequest,
        selections: Iterable[ProviderSelection],
        on_update: SnapshotListener | None = None,
    ) -> InvocationSnapshot:
        """Run an invocation to completion and return its final snapshot."""
        invocation = self.start(request, selections, on_update)
        return await invocation.wait()
