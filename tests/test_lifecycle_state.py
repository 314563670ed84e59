"""Tests for lifecycle transitions and the in-flight call set."""

import threading

import pytest

from pluginwire.lifecycle.state import Lifecycle, LifecycleState
from pluginwire.utils.exceptions import LifecycleViolation


def _serving() -> Lifecycle:
    lifecycle = Lifecycle()
    assert lifecycle.mark_serving()
    return lifecycle


def test_initial_state_is_starting() -> None:
    assert Lifecycle().state is LifecycleState.STARTING


def test_happy_path_transitions_and_listener_order() -> None:
    lifecycle = Lifecycle()
    seen = []
    lifecycle.add_listener(lambda old, new, reason: seen.append((old, new, reason)))
    lifecycle.mark_serving()
    lifecycle.request_shutdown("host asked")
    lifecycle.terminate("drained")
    assert [(o.value, n.value) for o, n, _ in seen] == [
        ("starting", "serving"),
        ("serving", "draining"),
        ("draining", "terminated"),
    ]
    assert seen[1][2] == "host asked"
    assert lifecycle.reason == "drained"


def test_shutdown_before_serving_terminates_directly() -> None:
    lifecycle = Lifecycle()
    assert lifecycle.request_shutdown("SIGTERM")
    assert lifecycle.state is LifecycleState.TERMINATED


def test_repeated_shutdown_is_acknowledged_without_transition() -> None:
    lifecycle = _serving()
    assert lifecycle.request_shutdown()
    assert not lifecycle.request_shutdown()
    assert lifecycle.state is LifecycleState.DRAINING


def test_terminated_is_final() -> None:
    lifecycle = _serving()
    lifecycle.terminate("orphaned")
    assert not lifecycle.mark_serving()
    assert not lifecycle.request_shutdown()
    assert not lifecycle.terminate("again")
    assert lifecycle.reason == "orphaned"


def test_listener_failure_does_not_block_transition() -> None:
    lifecycle = Lifecycle()

    def broken(old, new, reason):
        raise RuntimeError("listener bug")

    lifecycle.add_listener(broken)
    assert lifecycle.mark_serving()
    assert lifecycle.state is LifecycleState.SERVING


def test_calls_only_admitted_while_serving() -> None:
    lifecycle = Lifecycle()
    with pytest.raises(LifecycleViolation):
        lifecycle.begin_call("/svc/Early")
    lifecycle.mark_serving()
    record = lifecycle.begin_call("/svc/Ok")
    assert [r.method for r in lifecycle.in_flight()] == ["/svc/Ok"]
    lifecycle.request_shutdown()
    with pytest.raises(LifecycleViolation) as exc_info:
        lifecycle.begin_call("/svc/Late")
    assert exc_info.value.details == {"state": "draining"}
    lifecycle.end_call(record)
    assert lifecycle.in_flight() == []


def test_track_removes_call_on_error() -> None:
    lifecycle = _serving()
    with pytest.raises(ValueError):
        with lifecycle.track("/svc/Fails"):
            raise ValueError("boom")
    assert lifecycle.in_flight() == []


def test_in_flight_sorted_by_start_time() -> None:
    ticks = iter([3.0, 1.0, 2.0])
    lifecycle = Lifecycle(clock=lambda: next(ticks))
    lifecycle.mark_serving()
    for name in ("c", "a", "b"):
        lifecycle.begin_call(name)
    assert [r.method for r in lifecycle.in_flight()] == ["a", "b", "c"]


def test_wait_until_idle_wakes_when_last_call_ends() -> None:
    lifecycle = _serving()
    record = lifecycle.begin_call("/svc/Slow")
    assert not lifecycle.wait_until_idle(timeout=0.01)
    timer = threading.Timer(0.05, lifecycle.end_call, args=(record,))
    timer.start()
    assert lifecycle.wait_until_idle(timeout=2.0)
    timer.join()


def test_wait_for_state() -> None:
    lifecycle = _serving()
    threading.Timer(0.05, lifecycle.terminate, args=("done",)).start()
    assert lifecycle.wait_for_state(LifecycleState.TERMINATED, timeout=2.0)
