"""Device events, commands and the threaded worker shared by all drivers."""

from __future__ import annotations

import queue
import threading
from dataclasses import dataclass
from typing import Iterator, Optional, Union

# ---------------------------------------------------------------------------
# Events emitted by a device worker
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Connected:
    """The connection to the device was opened."""


@dataclass(frozen=True)
class Disconnected:
    """The connection to the device was closed."""


@dataclass(frozen=True)
class LineReceived:
    """A raw response line from the machine."""

    line: str


@dataclass(frozen=True)
class PositionUpdate:
    """Machine position in millimetres."""

    x: float
    y: float


@dataclass(frozen=True)
class JobProgress:
    """Job progress, 0 to 100."""

    percent: int


@dataclass(frozen=True)
class JobFinished:
    """The job ended; ``success`` tells whether it went through."""

    success: bool


@dataclass(frozen=True)
class Message:
    """A status or error message."""

    text: str


DeviceEvent = Union[
    Connected, Disconnected, LineReceived, PositionUpdate, JobProgress, JobFinished, Message
]

# ---------------------------------------------------------------------------
# Commands sent to a device worker
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Connect:
    """Open the device at ``port``."""

    port: str
    baud_rate: int


@dataclass(frozen=True)
class Disconnect:
    """Close the device."""


@dataclass(frozen=True)
class SendJob:
    """Send a job made of command lines."""

    lines: tuple[str, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "lines", tuple(self.lines))


@dataclass(frozen=True)
class SendRaw:
    """Send a raw ASCII command to the device, with no line ending added."""

    text: str


@dataclass(frozen=True)
class FeedHold:
    """Pause motion."""


@dataclass(frozen=True)
class CycleStart:
    """Resume motion."""


@dataclass(frozen=True)
class SoftReset:
    """Reset the controller."""


@dataclass(frozen=True)
class Home:
    """Run the homing cycle."""


@dataclass(frozen=True)
class Jog:
    """Move relatively by ``x``/``y`` millimetres."""

    x: float
    y: float
    feed_mm_min: float


@dataclass(frozen=True)
class PollStatus:
    """Ask the device for its status."""


DeviceCommand = Union[
    Connect, Disconnect, SendJob, SendRaw, FeedHold, CycleStart, SoftReset, Home, Jog, PollStatus
]

COMMAND_CAPACITY = 64

_STOP = object()


def progress_percent(done: int, total: int) -> int:
    """Percentage of ``done`` out of ``total``, treating an empty total as one."""
    return done * 100 // max(total, 1)


class DeviceWorker:
    """Runs commands on a background thread and queues the resulting events.

    The thread starts with the first :meth:`send`. Subclasses override
    :meth:`handle`; the base class only answers :class:`Disconnect`.
    """

    def __init__(self) -> None:
        self._commands: queue.Queue = queue.Queue(maxsize=COMMAND_CAPACITY)
        self._events: queue.Queue = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._closed = False
        self._lock = threading.Lock()

    def __enter__(self) -> "DeviceWorker":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def send(self, command: DeviceCommand) -> None:
        """Queue a command for the worker thread."""
        with self._lock:
            if self._closed:
                raise RuntimeError("device worker is closed")
            if self._thread is None:
                self._thread = threading.Thread(
                    target=self._run, name=type(self).__name__, daemon=True
                )
                self._thread.start()
        self._commands.put(command)

    def emit(self, event: DeviceEvent) -> None:
        """Queue an event for the consumer."""
        self._events.put(event)

    def handle(self, command: DeviceCommand) -> None:
        """Carry out one command."""
        if isinstance(command, Disconnect):
            self._release()
            self.emit(Disconnected())

    def events(self, timeout: float = 0.0) -> Iterator[DeviceEvent]:
        """Yield queued events until none arrives within ``timeout`` seconds."""
        while True:
            try:
                if timeout > 0:
                    event = self._events.get(timeout=timeout)
                else:
                    event = self._events.get_nowait()
            except queue.Empty:
                return
            yield event

    def close(self) -> None:
        """Stop the worker thread and release the device."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            thread = self._thread
        if thread is not None:
            self._commands.put(_STOP)
            thread.join()
        self._release()

    def _release(self) -> None:
        """Free whatever connection the worker holds."""

    def _run(self) -> None:
        while True:
            command = self._commands.get()
            if command is _STOP:
                return
            try:
                self.handle(command)
            except OSError as exc:
                self.emit(Message(str(exc)))