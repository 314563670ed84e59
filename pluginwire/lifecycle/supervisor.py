"""Drives drain-to-exit and watches for the launching parent going away."""

from __future__ import annotations

import asyncio
import os
import signal
import threading
from collections.abc import Callable

from loguru import logger

from pluginwire.config.schema import LifecycleConfig
from pluginwire.lifecycle.state import Lifecycle, LifecycleState


class Supervisor:
    """Runs the drain and orphan-watch threads for one Lifecycle.

    Both run on daemon threads so they keep working while the event loop is
    busy with RPC traffic. ``on_terminate(reason)`` fires once, from whichever
    thread drove the TERMINATED transition.
    """

    def __init__(
        self,
        lifecycle: Lifecycle,
        config: LifecycleConfig | None = None,
        on_terminate: Callable[[str], None] | None = None,
        getppid: Callable[[], int] = os.getppid,
    ):
        self.lifecycle = lifecycle
        self.config = config or LifecycleConfig()
        self._on_terminate = on_terminate
        self._getppid = getppid
        self._parent_pid = getppid()
        self._stop = threading.Event()
        self._orphan_thread: threading.Thread | None = None
        self._drain_thread: threading.Thread | None = None
        self._started = False

    @property
    def parent_pid(self) -> int:
        return self._parent_pid

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        self.lifecycle.add_listener(self._on_transition)
        if self.config.orphan_watch:
            self._orphan_thread = threading.Thread(target=self._watch_parent, name="pluginwire-orphan-watch", daemon=True)
            self._orphan_thread.start()
            logger.debug(
                "Orphan watch started (parent pid {}, every {}s)",
                self._parent_pid,
                self.config.orphan_poll_interval_seconds,
            )

    def stop(self) -> None:
        self._stop.set()

    def install_signal_handlers(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Ignore SIGINT (the host owns Ctrl-C) and treat SIGTERM as a shutdown request."""
        try:
            signal.signal(signal.SIGINT, signal.SIG_IGN)
        except (ValueError, OSError) as exc:
            logger.debug("Cannot ignore SIGINT here: {}", exc)

        def handler(*_args: object) -> None:
            self.lifecycle.request_shutdown("SIGTERM")

        if loop is not None:
            try:
                loop.add_signal_handler(signal.SIGTERM, handler)
                return
            except NotImplementedError:
                logger.debug("Loop signal handlers unsupported; falling back to signal.signal")
        try:
            signal.signal(signal.SIGTERM, handler)
        except (ValueError, OSError) as exc:
            logger.warning("Signal handler for SIGTERM not installed: {}", exc)

    def _on_transition(self, old: LifecycleState, new: LifecycleState, reason: str) -> None:
        if new is LifecycleState.DRAINING:
            self._drain_thread = threading.Thread(target=self._drain, name="pluginwire-drain", daemon=True)
            self._drain_thread.start()
        elif new is LifecycleState.TERMINATED:
            self._stop.set()
            if self._on_terminate is not None:
                self._on_terminate(reason)

    def _drain(self) -> None:
        grace = self.config.drain_grace_seconds
        pending = len(self.lifecycle.in_flight())
        logger.info("Draining {} in-flight call(s), grace {}s", pending, grace)
        if self.lifecycle.wait_until_idle(timeout=grace):
            self.lifecycle.terminate("drained")
            return
        # expected hard stop; the host's own kill follows regardless
        outstanding = [r.method for r in self.lifecycle.in_flight()]
        logger.info("Grace deadline passed with {} call(s) outstanding: {}", len(outstanding), outstanding)
        self.lifecycle.terminate("drain grace deadline elapsed")

    def check_parent(self) -> bool:
        """Return True if the parent is unchanged; drive TERMINATED otherwise."""
        current = self._getppid()
        if current == self._parent_pid:
            return True
        logger.warning("Parent process changed from {} to {}; plugin is orphaned", self._parent_pid, current)
        self.lifecycle.terminate(f"orphaned (parent {self._parent_pid} -> {current})")
        return False

    def _watch_parent(self) -> None:
        interval = self.config.orphan_poll_interval_seconds
        while not self._stop.wait(interval):
            if not self.check_parent():
                return
