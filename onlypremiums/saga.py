"""
Saga — sequential steps with compensation.

Each step pairs an action (a LazyCoroResult) with an optional compensator.
When a step succeeds its compensator is recorded; when a later step fails,
the recorded compensators run newest first.

    from onlypremiums import saga as S

    checkout = (
        S.step(create_order, compensate=lambda order: cancel(order.id), name="create order")
        .then(lambda order: S.step(take_payment(order), name="pay"))
        .then(lambda payment: S.step(confirm(payment), name="confirm"))
    )

    match await S.run(checkout):
        case Ok(r):
            r.value
        case Error(e):
            e.error, e.step_failed, e.rollback_complete
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from combinators import lift as L
from kungfu import Error, LazyCoroResult, Ok, Result

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# Types
# ═══════════════════════════════════════════════════════════════════════════════

type Compensator[T] = Callable[[T], Awaitable[None]]
"""Receives the step's value and undoes it."""


@dataclass(frozen=True, slots=True)
class SagaStep[T, E]:
    action: LazyCoroResult[T, E]
    compensate: Compensator[T] | None = None
    name: str = "step"

    def then[U](self, f: Callable[[T], SagaStep[U, E]]) -> Then[T, U, E]:
        return Then(self, f)


@dataclass(frozen=True, slots=True)
class Then[T, U, E]:
    """Run `inner`, feed its value to `f`, run the step `f` returns."""
    inner: SagaStep[T, E] | Then[object, T, E]
    f: Callable[[T], SagaStep[U, E]]

    def then[V](self, g: Callable[[U], SagaStep[V, E]]) -> Then[U, V, E]:
        return Then(self, g)


type SagaExpr[T, E] = SagaStep[T, E] | Then[object, T, E]


@dataclass(frozen=True, slots=True)
class SagaResult[T]:
    value: T
    steps_executed: int
    compensators_recorded: int


@dataclass(frozen=True, slots=True)
class SagaError[E]:
    """`step_failed` is 1-based."""
    error: E
    step_failed: int
    failed_step_name: str
    compensators_run: int
    compensators_failed: int

    @property
    def rollback_complete(self) -> bool:
        return self.compensators_failed == 0


# ═══════════════════════════════════════════════════════════════════════════════
# Constructors
# ═══════════════════════════════════════════════════════════════════════════════

def step[T, E](
    action: LazyCoroResult[T, E],
    compensate: Compensator[T] | None = None,
    *,
    name: str = "step",
) -> SagaStep[T, E]:
    return SagaStep(action=action, compensate=compensate, name=name)


def from_async[T, E](
    action: Callable[[], Awaitable[T]],
    on_error: Callable[[Exception], E],
    compensate: Compensator[T] | None = None,
    *,
    name: str = "step",
) -> SagaStep[T, E]:
    """Step from a plain coroutine function; exceptions become `on_error(e)`."""
    return SagaStep(
        action=L.catching_async(action, on_error=on_error),
        compensate=compensate,
        name=name,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Execution
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(slots=True)
class _Journal:
    steps: int = 0
    last_name: str = ""
    compensators: list[tuple[str, object, Compensator[object]]] = field(default_factory=list)


async def _run_step[T, E](saga_step: SagaStep[T, E], journal: _Journal) -> Result[T, E]:
    journal.steps += 1
    journal.last_name = saga_step.name
    result = await saga_step.action
    match result:
        case Ok(value):
            if saga_step.compensate is not None:
                journal.compensators.append((saga_step.name, value, saga_step.compensate))  # type: ignore[arg-type]
            return Ok(value)
        case Error(e):
            logger.info("saga step %d (%s) failed: %r", journal.steps, saga_step.name, e)
            return Error(e)


async def _walk(expr: SagaExpr[object, object], journal: _Journal) -> Result[object, object]:
    match expr:
        case SagaStep():
            return await _run_step(expr, journal)
        case Then(inner, f):
            match await _walk(inner, journal):
                case Ok(value):
                    return await _walk(f(value), journal)
                case Error(e):
                    return Error(e)


async def run_compensators(journal: _Journal) -> tuple[int, int]:
    """Run recorded compensators in reverse. Returns (run, failed)."""
    comp_run = 0
    comp_failed = 0
    for name, value, compensate in reversed(journal.compensators):
        try:
            await compensate(value)
            comp_run += 1
        except Exception:
            logger.exception("compensator for %s failed", name)
            comp_failed += 1
    return comp_run, comp_failed


async def run[T, E](saga: SagaExpr[T, E]) -> Result[SagaResult[T], SagaError[E]]:
    """Run every step in order; on the first failure roll back and report."""
    journal = _Journal()
    result = await _walk(saga, journal)  # type: ignore[arg-type]
    match result:
        case Ok(value):
            return Ok(SagaResult(
                value=value,  # type: ignore[arg-type]
                steps_executed=journal.steps,
                compensators_recorded=len(journal.compensators),
            ))
        case Error(error):
            comp_run, comp_failed = await run_compensators(journal)
            if comp_failed:
                logger.error("saga rollback incomplete: %d of %d compensators failed",
                             comp_failed, comp_run + comp_failed)
            return Error(SagaError(
                error=error,  # type: ignore[arg-type]
                step_failed=journal.steps,
                failed_step_name=journal.last_name,
                compensators_run=comp_run,
                compensators_failed=comp_failed,
            ))


__all__ = (
    "Compensator",
    "SagaStep",
    "Then",
    "SagaExpr",
    "SagaResult",
    "SagaError",
    "step",
    "from_async",
    "run",
    "run_compensators",
)
