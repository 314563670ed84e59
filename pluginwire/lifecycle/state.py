"""Process lifecycle state and the in-flight call set."""

from __future__ import annotations

import threading
import time
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum

from loguru import logger

from pluginwire.lifecycle.commit import CommitGate
from pluginwire.utils.exceptions import LifecycleViolation


class LifecycleState(str, Enum):
    STARTING = "starting"
    SERVING = "serving"
    DRAINING = "draining"
    TERMINATED = "terminated"


_ALLOWED: dict[LifecycleState, frozenset[LifecycleState]] = {
    LifecycleState.STARTING: frozenset({LifecycleState.SERVING, LifecycleState.TERMINATED}),
    LifecycleState.SERVING: frozenset({LifecycleState.DRAINING, LifecycleState.TERMINATED}),
    LifecycleState.DRAINING: frozenset({LifecycleState.TERMINATED}),
    LifecycleState.TERMINATED: frozenset(),
}

Listener = Callable[[LifecycleState, LifecycleState, str], None]


@dataclass(frozen=True, slots=True)
class RpcCallRecord:
    id: str
    method: str
    started_at: float


class Lifecycle:
    """Owns LifecycleState and the in-flight RPC set.

    State and the set share one condition so a call can only be admitted while
    SERVING, and a drain never observes an empty set while a call is being
    admitted. The lock is never held across a call body.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._cond = threading.Condition()
        self._state = LifecycleState.STARTING
        self._in_flight: dict[str, RpcCallRecord] = {}
        self._listeners: list[Listener] = []
        self.reason: str | None = None
        self.commits = CommitGate()

    @property
    def state(self) -> LifecycleState:
        with self._cond:
            return self._state

    def add_listener(self, listener: Listener) -> None:
        """Register fn(old, new, reason); called outside the lock after each transition."""
        with self._cond:
            self._listeners.append(listener)

    def _transition(self, target: LifecycleState, reason: str) -> bool:
        with self._cond:
            current = self._state
            if current is target or target not in _ALLOWED[current]:
                return False
            self._state = target
            self.reason = reason
            listeners = list(self._listeners)
            self._cond.notify_all()
        logger.info("Lifecycle {} -> {} ({})", current.value, target.value, reason)
        for listener in listeners:
            try:
                listener(current, target, reason)
            except Exception:
                logger.exception("Lifecycle listener failed on {} -> {}", current.value, target.value)
        return True

    def mark_serving(self) -> bool:
        return self._transition(LifecycleState.SERVING, "negotiation line emitted")

    def request_shutdown(self, reason: str = "shutdown requested") -> bool:
        """Begin a cooperative drain. Before serving there is nothing to drain."""
        with self._cond:
            starting = self._state is LifecycleState.STARTING
        if starting:
            return self._transition(LifecycleState.TERMINATED, reason)
        return self._transition(LifecycleState.DRAINING, reason)

    def terminate(self, reason: str) -> bool:
        return self._transition(LifecycleState.TERMINATED, reason)

    def begin_call(self, method: str) -> RpcCallRecord:
        with self._cond:
            if self._state is not LifecycleState.SERVING:
                raise LifecycleViolation(f"plugin is {self._state.value}; not accepting {method}", self._state.value)
            record = RpcCallRecord(id=uuid.uuid4().hex, method=method, started_at=self._clock())
            self._in_flight[record.id] = record
            return record

    def end_call(self, record: RpcCallRecord) -> None:
        with self._cond:
            self._in_flight.pop(record.id, None)
            if not self._in_flight:
                self._cond.notify_all()

    @contextmanager
    def track(self, method: str) -> Iterator[RpcCallRecord]:
        record = self.begin_call(method)
        try:
            yield record
        finally:
            self.end_call(record)

    def in_flight(self) -> list[RpcCallRecord]:
        with self._cond:
            return sorted(self._in_flight.values(), key=lambda r: r.started_at)

    def wait_until_idle(self, timeout: float | None = None) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: not self._in_flight, timeout=timeout)

    def wait_for_state(self, state: LifecycleState, timeout: float | None = None) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: self._state is state, timeout=timeout)

    def commit_point(self, name: str):
        return self.commits.commit_point(name)

    def async_commit_point(self, name: str):
        return self.commits.async_commit_point(name)
