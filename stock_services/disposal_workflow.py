"""
Disposal Workflow (``stock_services.disposal_workflow``).

Responsibility
--------------
Two-step removal of an expired batch: an operator targets the batch, a
countdown runs, and only when it has fully elapsed is the batch removed
from the ledger and archived.  Cancelling during the countdown leaves the
ledger untouched.

Architecture
------------
Layer: **Services**.  The state machine is declared with the kernel
workflow value types (``Guard``, ``Transition``, ``Workflow``); this class
evaluates the guards and drives the transitions.  The ledger mutation goes
through ``InventoryService.dispose_batch`` so it runs under the item lock
in its own transaction.

States::

    idle --target--> targeted --confirm--> confirmed --complete--> idle
                        |                      |
                        +--cancel--> cancelled +--fail--> idle
                                        |
                                        +--reset--> idle

Invariants
----------
- At most one batch is targeted per workflow instance.
- ``remove_batch`` is invoked only on the ``confirm`` transition, and only
  after the full countdown has elapsed on the injected clock.
- The instance owns at most one armed timer; retargeting or cancelling
  disarms it, and a stale timer firing is ignored.

Failure Modes
-------------
- ``NotFoundError``: targeted batch does not exist.
- ``InvalidStateError``: batch not expired, action not allowed from the
  current state, or confirmation before the countdown elapsed.
- Errors from the removal itself return the workflow to idle and
  propagate to the caller of ``poll()``/``confirm()``.  On a timer thread
  there is no caller: the error is logged and kept in ``last_error``.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any, Protocol
from uuid import UUID

from stock_kernel.domain.clock import Clock
from stock_kernel.domain.dtos import DisposalRecordInfo, ExpiryRisk
from stock_kernel.domain.workflow import Guard, Transition, Workflow
from stock_kernel.exceptions import InvalidStateError
from stock_kernel.logging_config import LogContext, get_logger
from stock_services.inventory_service import InventoryService

logger = get_logger("services.disposal_workflow")

IDLE = "idle"
TARGETED = "targeted"
CONFIRMED = "confirmed"
CANCELLED = "cancelled"

BATCH_EXPIRED = Guard(
    name="batch_expired",
    description="The batch's expiry date is before the inventory service's today",
)
COUNTDOWN_ELAPSED = Guard(
    name="countdown_elapsed",
    description="The full disposal countdown has elapsed on the clock",
)

DISPOSAL_WORKFLOW = Workflow(
    name="batch_disposal",
    description="Targeted, count-down-confirmed removal of an expired batch",
    initial_state=IDLE,
    states=(IDLE, TARGETED, CONFIRMED, CANCELLED),
    transitions=(
        Transition(IDLE, TARGETED, "target", guard=BATCH_EXPIRED),
        Transition(TARGETED, CANCELLED, "cancel"),
        Transition(CANCELLED, IDLE, "reset"),
        Transition(
            TARGETED, CONFIRMED, "confirm",
            guard=COUNTDOWN_ELAPSED, mutates_ledger=True,
        ),
        Transition(CONFIRMED, IDLE, "complete"),
        Transition(CONFIRMED, IDLE, "fail"),
    ),
)


class Timer(Protocol):
    def start(self) -> None: ...

    def cancel(self) -> None: ...


# ``threading.Timer`` satisfies this signature.
TimerFactory = Callable[[float, Callable[[], None]], Timer]


class DisposalWorkflow:
    """
    One operator's disposal dialog.

    Contract
    --------
    Without a ``timer_factory`` the host drives the countdown by calling
    ``poll()`` (for instance from a UI tick).  With one, the workflow arms
    a timer for the remaining countdown and disposes when it fires; the
    service's session must then not be used concurrently by the host.

    Guarantees
    ----------
    - Every successful disposal yields the ``DisposalRecordInfo`` returned
      by ``poll()``/``confirm()``, kept in ``last_record`` and passed to
      ``on_disposed``.

    Non-goals
    ---------
    - No queue of targets; a second target while one is pending fails.
    """

    def __init__(
        self,
        service: InventoryService,
        clock: Clock | None = None,
        countdown_seconds: float | None = None,
        timer_factory: TimerFactory | None = None,
        on_disposed: Callable[[DisposalRecordInfo], Any] | None = None,
        operator: str | None = None,
    ):
        countdown = (
            service.config.disposal_countdown_seconds
            if countdown_seconds is None
            else countdown_seconds
        )
        if countdown <= 0:
            raise ValueError(f"countdown_seconds must be positive: {countdown}")

        self._service = service
        self._clock = clock or service.clock
        self._countdown = timedelta(seconds=countdown)
        self._timer_factory = timer_factory
        self._on_disposed = on_disposed
        self._operator = operator

        self._lock = threading.RLock()
        self._state = DISPOSAL_WORKFLOW.initial_state
        self._batch_id: UUID | None = None
        self._started_at: datetime | None = None
        self._timer: Timer | None = None
        self._generation = 0

        self.last_record: DisposalRecordInfo | None = None
        self.last_error: BaseException | None = None

    # ------------------------------------------------------------------
    # Display state
    # ------------------------------------------------------------------

    @property
    def state(self) -> str:
        return self._state

    @property
    def targeted_batch_id(self) -> UUID | None:
        return self._batch_id

    @property
    def started_at(self) -> datetime | None:
        return self._started_at

    @property
    def countdown_seconds(self) -> float:
        return self._countdown.total_seconds()

    def remaining_seconds(self) -> float:
        """Seconds left on the countdown; 0.0 when nothing is targeted."""
        with self._lock:
            if self._state != TARGETED or self._started_at is None:
                return 0.0
            elapsed = self._clock.now() - self._started_at
            return max(0.0, (self._countdown - elapsed).total_seconds())

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def target(self, batch_id: UUID) -> None:
        """
        Select an expired batch and start the countdown.

        Raises:
            NotFoundError: batch does not exist.
            InvalidStateError: batch not expired, or a disposal is pending.
        """
        with self._lock:
            if self._state != IDLE:
                raise InvalidStateError(
                    self._state, "target", "a disposal is already in progress"
                )
            batch = self._service.get_batch(batch_id)
            risk = self._service.classify_expiry(batch_id)
            if risk is not ExpiryRisk.EXPIRED:
                raise InvalidStateError(
                    self._state,
                    "target",
                    f"batch {batch.batch_number} is not expired ({risk.value})",
                )

            self._batch_id = batch.batch_id
            self._fire("target")
            self._started_at = self._clock.now()
            self._generation += 1
            self._arm_timer(self._generation)

    def cancel(self) -> None:
        """Abort the pending disposal; the ledger is not touched."""
        with self._lock:
            batch_id = self._batch_id
            self._fire("cancel")
            self._disarm_timer()
            self._fire("reset")
            self._clear()
            logger.info(
                "disposal_cancelled",
                extra={"batch_id": str(batch_id) if batch_id else None},
            )

    def poll(self) -> DisposalRecordInfo | None:
        """Dispose if the countdown has elapsed; otherwise return None."""
        with self._lock:
            if self._state != TARGETED or self.remaining_seconds() > 0:
                return None
            return self._confirm()

    def confirm(self) -> DisposalRecordInfo:
        """
        Dispose now.

        Raises:
            InvalidStateError: nothing targeted, or countdown still running.
        """
        with self._lock:
            if self._state != TARGETED:
                raise InvalidStateError(self._state, "confirm", "no batch is targeted")
            remaining = self.remaining_seconds()
            if remaining > 0:
                raise InvalidStateError(
                    self._state,
                    "confirm",
                    f"countdown has {remaining:.1f}s remaining",
                )
            return self._confirm()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _fire(self, action: str) -> Transition:
        transition = DISPOSAL_WORKFLOW.transition_for(self._state, action)
        if transition is None:
            allowed = ", ".join(DISPOSAL_WORKFLOW.actions_from(self._state)) or "none"
            raise InvalidStateError(self._state, action, f"allowed actions: {allowed}")
        logger.info(
            "disposal_transition",
            extra={
                "workflow": DISPOSAL_WORKFLOW.name,
                "action": action,
                "from_state": transition.from_state,
                "to_state": transition.to_state,
                "batch_id": str(self._batch_id) if self._batch_id else None,
            },
        )
        self._state = transition.to_state
        return transition

    def _confirm(self) -> DisposalRecordInfo:
        batch_id = self._batch_id
        self._disarm_timer()
        self._fire("confirm")
        with LogContext.bind(batch_id=str(batch_id)):
            try:
                record = self._service.dispose_batch(batch_id, disposed_by=self._operator)
            except Exception as exc:
                logger.error(
                    "disposal_failed",
                    extra={
                        "batch_id": str(batch_id),
                        "error_type": type(exc).__name__,
                        "error_code": getattr(exc, "code", None),
                    },
                )
                self._fire("fail")
                self._clear()
                raise
            self._fire("complete")
            self._clear()

        self.last_record = record
        self.last_error = None
        if self._on_disposed is not None:
            self._on_disposed(record)
        return record

    def _clear(self) -> None:
        self._batch_id = None
        self._started_at = None
        self._timer = None

    def _arm_timer(self, generation: int) -> None:
        if self._timer_factory is None:
            return
        timer = self._timer_factory(
            self.remaining_seconds(), lambda: self._on_timer(generation)
        )
        self._timer = timer
        timer.start()

    def _disarm_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or self._state != TARGETED:
                return
            try:
                record = self.poll()
            except Exception as exc:
                self.last_error = exc
                logger.exception(
                    "disposal_timer_failed",
                    extra={"error_type": type(exc).__name__},
                )
                return
            if record is None:
                # Clock has not reached the deadline yet.
                self._arm_timer(generation)
