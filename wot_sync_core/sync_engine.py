"""Optimistic-update state machine shared by every bound control.

Status moves ``idle -> loading -> success|error -> idle``. The return to idle
is a scheduled transition tagged with the state generation it was scheduled
under; if any other transition happened first, it does nothing.

Display ordering: a later ``set_value`` call always wins. An earlier call that
settles afterwards still updates the status, but never reverts or overwrites a
display value applied after it.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .config import SyncConfig
from .models import OperationResult, now_ms

_LOGGER = logging.getLogger(__name__)

ValueListener = Callable[[OperationResult], None]
Operation = Callable[[], Awaitable[Any]]


class OperationStatus(str, Enum):
    """Status shown by a control."""

    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class OperationState:
    """Operation status of one control; mutated only by SyncEngine."""

    status: OperationStatus = OperationStatus.IDLE
    last_error: str | None = None
    last_update_ts: int | None = None
    generation: int = 0


@dataclass(frozen=True)
class RetryOptions:
    """Automatic retry of a failed ``set_value``.

    Attributes:
        attempts: Retries left
        delay: Seconds to wait before each retry
    """

    attempts: int
    delay: float


@dataclass(frozen=True)
class SetValueOptions:
    """Options for ``SyncEngine.set_value``.

    Attributes:
        write_operation: Awaitable factory performing the remote write
        read_operation: Awaitable factory used when no write is given
        optimistic: Apply the value before the operation settles
        auto_retry: Retry budget after a failure
        custom_status: Set this status directly, bypassing the machine
        error_message: Message for ``custom_status=ERROR``
        is_revert: Internal flag for calls that restore a prior value
    """

    write_operation: Operation | None = None
    read_operation: Operation | None = None
    optimistic: bool = True
    auto_retry: RetryOptions | None = None
    custom_status: OperationStatus | None = None
    error_message: str | None = None
    is_revert: bool = False


class Control:
    """A bound UI control: its display value, status and value listeners.

    Subclasses override ``current_value``/``update_value`` to mirror the
    value onto a concrete widget.
    """

    def __init__(self, source: str, value: Any = None) -> None:
        self.source = source
        self.state = OperationState()
        self._value = value
        self._listeners: list[ValueListener] = []

        # Display bookkeeping for compare-and-swap reverts
        self._display_generation = 0
        self._display_sequence = 0
        self._call_sequence = 0

        # Pending engine work
        self._clear_timer: asyncio.TimerHandle | None = None
        self._retry_timers: set[asyncio.TimerHandle] = set()
        self._tasks: set[asyncio.Task[bool]] = set()

    def current_value(self) -> Any:
        return self._value

    def update_value(self, value: Any) -> None:
        self._value = value

    @property
    def value(self) -> Any:
        return self.current_value()

    @property
    def status(self) -> OperationStatus:
        return self.state.status

    def get_value(self, include_metadata: bool = False) -> Any:
        """Current value, optionally with status metadata."""
        if not include_metadata:
            return self.current_value()
        return {
            "value": self.current_value(),
            "last_updated": self.state.last_update_ts,
            "status": self.state.status.value,
            "error": self.state.last_error,
        }

    def on_value_msg(self, listener: ValueListener) -> None:
        """Register a ``valueMsg`` listener."""
        self._listeners.append(listener)

    def remove_value_listener(self, listener: ValueListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def emit_value_msg(self, value: Any, prev: Any) -> OperationResult:
        message = OperationResult.success(value, self.source, prev=prev, operation="value")
        for listener in list(self._listeners):
            try:
                listener(message)
            except Exception:
                _LOGGER.exception("[%s] valueMsg listener failed", self.source)
        return message


class SyncEngine:
    """Coordinates optimistic value updates with remote operations."""

    def __init__(self, config: SyncConfig | None = None) -> None:
        self._config = config or SyncConfig()

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def set_value(
        self,
        control: Control,
        value: Any,
        options: SetValueOptions | None = None,
    ) -> bool:
        """Apply ``value`` to ``control`` and run the optional remote operation.

        Returns:
            True on success, False on failure. Never raises for operation
            failures; they are captured into ``control.state``.
        """
        opts = options or SetValueOptions()
        prev = control.current_value()
        control._call_sequence += 1
        sequence = control._call_sequence

        if opts.custom_status is not None:
            return self._apply_custom_status(control, value, prev, sequence, opts)

        # A fresh user action acknowledges a lingering error.
        if control.state.status is OperationStatus.ERROR and not opts.is_revert:
            self._transition(control, OperationStatus.IDLE)

        optimistic = opts.optimistic
        applied_generation: int | None = None
        if optimistic and not opts.is_revert:
            applied_generation = self._apply(control, value, sequence)
            control.emit_value_msg(value, prev)

        operation = opts.write_operation or opts.read_operation
        if operation is None:
            if applied_generation is None and not opts.is_revert:
                self._apply(control, value, sequence)
                control.emit_value_msg(value, prev)
            return True

        self._transition(control, OperationStatus.LOADING)

        try:
            outcome = await operation()
        except Exception as err:
            message = str(err) or type(err).__name__
            return self._fail(control, value, prev, sequence, applied_generation, message, opts)

        if isinstance(outcome, OperationResult) and not outcome.ok:
            message = outcome.error.message if outcome.error else "Operation failed"
            return self._fail(control, value, prev, sequence, applied_generation, message, opts)

        self._transition(control, OperationStatus.SUCCESS)
        if not optimistic and control._display_sequence <= sequence:
            self._apply(control, value, sequence)
            control.emit_value_msg(value, prev)
        return True

    def set_value_silent(self, control: Control, value: Any) -> None:
        """Apply an externally sourced value without events or status change."""
        control.update_value(value)
        control.state.last_update_ts = now_ms()
        control._display_generation += 1

    def set_status(
        self,
        control: Control,
        status: OperationStatus | str,
        message: str | None = None,
    ) -> None:
        """Set status from outside the machine, with the usual auto-clear."""
        status = OperationStatus(status)
        if status is OperationStatus.SUCCESS:
            control.state.last_update_ts = now_ms()
        self._transition(
            control,
            status,
            (message or "Operation failed") if status is OperationStatus.ERROR else None,
        )

    def cancel(self, control: Control) -> None:
        """Drop pending auto-clear timers and retries of ``control``."""
        if control._clear_timer is not None:
            control._clear_timer.cancel()
            control._clear_timer = None
        for timer in list(control._retry_timers):
            timer.cancel()
        control._retry_timers.clear()
        for task in list(control._tasks):
            task.cancel()

    # -------------------------------------------------------------------------
    # Internal: transitions
    # -------------------------------------------------------------------------

    def _apply(self, control: Control, value: Any, sequence: int) -> int:
        control.update_value(value)
        control.state.last_update_ts = now_ms()
        control._display_generation += 1
        control._display_sequence = sequence
        return control._display_generation

    def _apply_custom_status(
        self,
        control: Control,
        value: Any,
        prev: Any,
        sequence: int,
        opts: SetValueOptions,
    ) -> bool:
        status = OperationStatus(opts.custom_status)
        if status is OperationStatus.ERROR:
            self._transition(control, status, opts.error_message or "Operation failed")
            return False
        self._transition(control, status)
        if status is OperationStatus.SUCCESS:
            self._apply(control, value, sequence)
            control.emit_value_msg(value, prev)
        return True

    def _fail(
        self,
        control: Control,
        value: Any,
        prev: Any,
        sequence: int,
        applied_generation: int | None,
        message: str,
        opts: SetValueOptions,
    ) -> bool:
        _LOGGER.debug("[%s] Operation failed: %s", control.source, message)
        self._transition(control, OperationStatus.ERROR, message)

        # Roll back only if nothing replaced the optimistic value meanwhile.
        if (
            applied_generation is not None
            and control._display_generation == applied_generation
        ):
            control.update_value(prev)

        retry = opts.auto_retry
        if retry is not None and retry.attempts > 0:
            self._schedule_retry(
                control,
                value,
                sequence,
                dataclasses.replace(
                    opts,
                    auto_retry=RetryOptions(retry.attempts - 1, retry.delay),
                    is_revert=False,
                ),
                retry.delay,
            )
        return False

    def _transition(
        self,
        control: Control,
        status: OperationStatus,
        error: str | None = None,
    ) -> None:
        state = control.state
        if state.status is not status:
            _LOGGER.debug(
                "[%s] Status: %s → %s", control.source, state.status.value, status.value
            )
        state.status = status
        state.last_error = error if status is OperationStatus.ERROR else None
        state.generation += 1

        if control._clear_timer is not None:
            control._clear_timer.cancel()
            control._clear_timer = None

        if status is OperationStatus.SUCCESS:
            self._schedule_clear(control, status, self._config.success_clear_delay)
        elif status is OperationStatus.ERROR:
            self._schedule_clear(control, status, self._config.error_clear_delay)

    def _schedule_clear(
        self, control: Control, status: OperationStatus, delay: float
    ) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            _LOGGER.debug(
                "[%s] No running loop, %s will not auto-clear", control.source, status.value
            )
            return
        control._clear_timer = loop.call_later(
            delay, self._clear_if_current, control, status, control.state.generation
        )

    def _clear_if_current(
        self, control: Control, status: OperationStatus, generation: int
    ) -> None:
        state = control.state
        if state.generation != generation or state.status is not status:
            return
        control._clear_timer = None
        self._transition(control, OperationStatus.IDLE)

    def _schedule_retry(
        self,
        control: Control,
        value: Any,
        sequence: int,
        options: SetValueOptions,
        delay: float,
    ) -> None:
        if control._call_sequence != sequence:
            _LOGGER.debug("[%s] Skipping retry, a later value was set", control.source)
            return
        loop = asyncio.get_running_loop()
        _LOGGER.debug(
            "[%s] Retrying in %.2fs (%d left)",
            control.source,
            delay,
            options.auto_retry.attempts if options.auto_retry else 0,
        )

        def fire() -> None:
            control._retry_timers.discard(timer)
            if control._call_sequence != sequence:
                _LOGGER.debug("[%s] Dropping retry, a later value was set", control.source)
                return
            task = asyncio.create_task(self.set_value(control, value, options))
            control._tasks.add(task)
            task.add_done_callback(control._tasks.discard)

        timer = loop.call_later(delay, fire)
        control._retry_timers.add(timer)
