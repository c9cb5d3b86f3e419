"""Vinyl cutter driver: HPGL over a serial line.

Plotter units: 1 unit = 1/40 mm.
"""

from __future__ import annotations

import math
import time
from typing import Callable, Optional

import serial

from .base import (
    Connect,
    Connected,
    DeviceWorker,
    Disconnect,
    Disconnected,
    JobFinished,
    JobProgress,
    Message,
    SendJob,
    progress_percent,
)

HPGL_PER_MM = 40.0


def mm_to_hpgl(mm: float) -> int:
    """Millimetres to plotter units, rounding halves away from zero."""
    scaled = mm * HPGL_PER_MM
    return int(math.copysign(math.floor(abs(scaled) + 0.5), scaled))


def _open_serial(port: str, baud_rate: int):
    # Many vinyl cutters use RTS/CTS flow control.
    return serial.Serial(port, baud_rate, timeout=2, rtscts=True)


class VinylWorker(DeviceWorker):
    """Worker that sends HPGL jobs to a serial vinyl cutter."""

    line_delay = 0.005

    def __init__(self, serial_factory: Optional[Callable] = None) -> None:
        super().__init__()
        self._serial_factory = serial_factory or _open_serial
        self._port = None

    def handle(self, command) -> None:
        match command:
            case Connect(port=name, baud_rate=baud):
                self._connect(name, baud)
            case Disconnect():
                self._release()
                self.emit(Disconnected())
            case SendJob(lines=lines):
                self._send_job(lines)
            case _:
                # No feed hold, cycle start, homing, jog or raw commands.
                pass

    def _connect(self, name: str, baud: int) -> None:
        try:
            port = self._serial_factory(name, baud)
        except (OSError, ValueError) as exc:
            self.emit(Message(f"Connection error: {exc}"))
            return
        try:
            port.write(b"IN;\r\n")
        except OSError:
            pass
        self._release()
        self._port = port
        self.emit(Connected())
        self.emit(Message("Vinyl cutter connected"))

    def _send_job(self, lines) -> None:
        if self._port is None:
            return
        total = len(lines)
        for done, line in enumerate(lines, start=1):
            try:
                self._port.write(f"{line.strip()}\r\n".encode("utf-8"))
            except OSError as exc:
                self.emit(Message(f"Send error: {exc}"))
                self.emit(JobFinished(False))
                break
            time.sleep(self.line_delay)
            self.emit(JobProgress(progress_percent(done, total)))
        self.emit(JobFinished(True))

    def _release(self) -> None:
        port, self._port = self._port, None
        if port is not None:
            try:
                port.close()
            except OSError:
                pass


def spawn(serial_factory: Optional[Callable] = None) -> VinylWorker:
    """Create a vinyl cutter worker; its thread starts with the first command."""
    return VinylWorker(serial_factory)