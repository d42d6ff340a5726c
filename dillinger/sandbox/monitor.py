# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Background exit monitoring of sandboxed processes.

A session's process may be removed by the runtime the moment it exits,
taking its output with it. The monitor therefore follows the output
from the start into a bounded ring buffer and, on a non-zero exit,
logs what it captured before reporting the exit code.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Callable

from dillinger.runtime.client import ContainerRuntime
from dillinger.runtime.errors import ContainerRuntimeError


logger = logging.getLogger(__name__)

ExitCallback = Callable[[int | None], None]


class LogRingBuffer:
    """Thread-safe bounded buffer of output chunks.

    Oldest chunks are dropped once ``maxlen`` is reached.
    """

    def __init__(self, maxlen: int = 200) -> None:
        self._chunks: deque[str] = deque(maxlen=maxlen)
        self._lock = threading.Lock()

    def append(self, chunk: str) -> None:
        with self._lock:
            self._chunks.append(chunk)

    def snapshot(self) -> list[str]:
        with self._lock:
            return list(self._chunks)

    def text(self) -> str:
        return "".join(self.snapshot()).strip()

    def __len__(self) -> int:
        with self._lock:
            return len(self._chunks)


class SessionMonitor:
    """Waits for one process to exit on a daemon thread.

    A second daemon thread follows the process output into the ring
    buffer. The exit callback receives the exit code, or None when the
    process vanished before its exit code could be read.
    """

    def __init__(
        self,
        runtime: ContainerRuntime,
        handle: str,
        on_exit: ExitCallback,
        *,
        buffer_size: int = 200,
        tail: int = 100,
    ) -> None:
        self._runtime = runtime
        self._handle = handle
        self._on_exit = on_exit
        self._tail = tail
        self.buffer = LogRingBuffer(buffer_size)
        self._wait_thread: threading.Thread | None = None
        self._log_thread: threading.Thread | None = None
        self._done = threading.Event()

    @property
    def done(self) -> bool:
        """True once the exit callback has run."""
        return self._done.is_set()

    def start(self) -> None:
        """Start capturing output and waiting for exit."""
        short = self._handle[:12]
        logger.info("Monitoring process %s", short)
        self._log_thread = threading.Thread(
            target=self._capture_logs,
            daemon=True,
            name=f"SessionLogs-{short}",
        )
        self._log_thread.start()
        self._wait_thread = threading.Thread(
            target=self._wait_for_exit,
            daemon=True,
            name=f"SessionMonitor-{short}",
        )
        self._wait_thread.start()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the exit callback to complete.

        Returns:
            True if the monitor finished within the timeout.
        """
        return self._done.wait(timeout)

    def _capture_logs(self) -> None:
        try:
            for line in self._runtime.follow_logs(self._handle, self._tail):
                self.buffer.append(line)
        except ContainerRuntimeError as e:
            logger.warning(
                "Could not follow output of %s: %s", self._handle[:12], e
            )

    def _wait_for_exit(self) -> None:
        short = self._handle[:12]
        exit_code: int | None
        try:
            exit_code = self._runtime.wait(self._handle)
        except ContainerRuntimeError as e:
            logger.error("Error waiting for process %s: %s", short, e)
            exit_code = None
        else:
            logger.info("Process %s exited with code %d", short, exit_code)
            if exit_code != 0:
                self._log_failure_output()

        try:
            self._on_exit(exit_code)
        except Exception:
            logger.exception("Exit callback failed for process %s", short)
        finally:
            self._done.set()

    def _log_failure_output(self) -> None:
        short = self._handle[:12]
        if self._log_thread is not None:
            self._log_thread.join(timeout=2)
        captured = self.buffer.text()
        if captured:
            logger.error("Output of %s (last captured):\n%s", short, captured)
            return
        try:
            output = self._runtime.logs(self._handle, tail=50)
        except ContainerRuntimeError as e:
            logger.warning("Could not fetch output of %s: %s", short, e)
            return
        logger.error("Output of %s:\n%s", short, output.strip())
