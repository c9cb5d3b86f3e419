"""GRBL laser/spindle driver over a serial line."""

from __future__ import annotations

import time
from typing import Callable, Optional

import serial

from .base import (
    Connect,
    Connected,
    CycleStart,
    DeviceWorker,
    Disconnect,
    Disconnected,
    FeedHold,
    Home,
    JobFinished,
    JobProgress,
    Jog,
    LineReceived,
    Message,
    PollStatus,
    PositionUpdate,
    SendJob,
    SendRaw,
    SoftReset,
    progress_percent,
)

POLL_INTERVAL = 1.0


def _parse_float(text: str) -> float:
    if text != text.strip() or "_" in text:
        return 0.0
    try:
        return float(text)
    except ValueError:
        return 0.0


def parse_grbl_response(line: str) -> list:
    """Events for one response line from GRBL."""
    events: list = [LineReceived(line)]
    if line.startswith("<"):
        for part in line.strip("<>").split("|"):
            if part.startswith("MPos:"):
                numbers = part[len("MPos:"):].split(",")
                if len(numbers) >= 2:
                    events.append(
                        PositionUpdate(_parse_float(numbers[0]), _parse_float(numbers[1]))
                    )
    elif line.startswith("error:"):
        events.append(Message(f"GRBL {line}"))
    return events


def format_jog(x: float, y: float, feed_mm_min: float) -> str:
    """The GRBL relative jog command line."""
    return f"$J=G91 G21 X{x:.3f} Y{y:.3f} F{feed_mm_min:.0f}\n"


def _open_serial(port: str, baud_rate: int):
    return serial.Serial(port, baud_rate, timeout=2)


class GrblWorker(DeviceWorker):
    """Worker that streams G-code to a GRBL controller.

    One job line is sent after each command handled, followed by a status
    poll when due and a read of whatever the controller has answered.
    """

    banner_delay = 2.0

    def __init__(self, serial_factory: Optional[Callable] = None) -> None:
        super().__init__()
        self._serial_factory = serial_factory or _open_serial
        self._port = None
        self._job_lines: list[str] = []
        self._job_index = 0
        self._last_poll = time.monotonic()

    def handle(self, command) -> None:
        match command:
            case Connect(port=name, baud_rate=baud):
                self._connect(name, baud)
            case Disconnect():
                self._release()
                self._job_lines = []
                self._job_index = 0
                self.emit(Disconnected())
            case SendJob(lines=lines):
                self._job_lines = list(lines)
                self._job_index = 0
            case FeedHold():
                self._write(b"!")
            case CycleStart():
                self._write(b"~")
            case SoftReset():
                self._write(b"\x18")
            case Home():
                self._write(b"$H\n")
            case Jog(x=x, y=y, feed_mm_min=feed):
                self._write(format_jog(x, y, feed).encode("ascii"))
            case PollStatus():
                self._write(b"?")
            case SendRaw(text=text):
                self._write(text.encode("utf-8"))

        if self._port is not None:
            self._advance_job()
            self._poll_if_due()
            self._read_responses()

    def _connect(self, name: str, baud: int) -> None:
        try:
            port = self._serial_factory(name, baud)
        except (OSError, ValueError) as exc:
            self.emit(Message(f"Connection error: {exc}"))
            return
        # Give GRBL time to print its start-up banner.
        time.sleep(self.banner_delay)
        try:
            port.write(b"\r\n")
        except OSError:
            pass
        self._release()
        self._port = port
        self.emit(Connected())
        self.emit(Message("GRBL connected"))

    def _write(self, data: bytes) -> bool:
        if self._port is None:
            return False
        try:
            self._port.write(data)
        except OSError:
            return False
        return True

    def _advance_job(self) -> None:
        total = len(self._job_lines)
        if self._job_index < total:
            line = self._job_lines[self._job_index]
            if self._write(f"{line}\n".encode("utf-8")):
                self._job_index += 1
                self.emit(JobProgress(progress_percent(self._job_index, total)))
        elif self._job_index > 0:
            self.emit(JobFinished(True))
            self._job_lines = []
            self._job_index = 0

    def _poll_if_due(self) -> None:
        if time.monotonic() - self._last_poll >= POLL_INTERVAL:
            self._write(b"?")
            self._last_poll = time.monotonic()

    def _read_responses(self) -> None:
        try:
            waiting = self._port.in_waiting
            if waiting <= 0:
                return
            data = self._port.read(waiting)
        except OSError:
            return
        for raw in data.decode("utf-8", errors="replace").splitlines():
            line = raw.strip()
            if line:
                for event in parse_grbl_response(line):
                    self.emit(event)

    def _release(self) -> None:
        port, self._port = self._port, None
        if port is not None:
            try:
                port.close()
            except OSError:
                pass


def spawn(serial_factory: Optional[Callable] = None) -> GrblWorker:
    """Create a GRBL worker; its thread starts with the first command."""
    return GrblWorker(serial_factory)