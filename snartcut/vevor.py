"""Vevor Smart 1 vinyl cutter driver.

The cutter takes plain HPGL. It is reached either as a USB printer-class
device opened as a file (``/dev/usb/lp0``, ``LPT1``, ``\\\\.\\USB001``) or,
for other paths, over a serial line without flow control.
Raw commands are wrapped in the Vevor USB message framing.
"""

from __future__ import annotations

import os
import sys
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
    LineReceived,
    Message,
    SendJob,
    SendRaw,
    progress_percent,
)
from .vevor_detect import extract_usb_port_token, is_usb_printer_path
from .vevor_usb_protocol import generate_hpgl_message

WORK_AREA_W_MM = 304.8
WORK_AREA_H_MM = 347.8

INIT_COMMAND = b"IN;\r\n"


class FileTransport:
    """A USB printer-class device written to as a file."""

    def __init__(self, file) -> None:
        self.file = file

    def write_all(self, data: bytes) -> None:
        """Write every byte of ``data``."""
        view = memoryview(bytes(data))
        while view:
            written = self.file.write(view)
            if written is None:
                written = len(view)
            if written <= 0:
                raise OSError("device accepted no data")
            view = view[written:]
        self.file.flush()

    def close(self) -> None:
        self.file.close()


class SerialTransport:
    """Serial fallback link."""

    def __init__(self, port) -> None:
        self.port = port

    def write_all(self, data: bytes) -> None:
        """Write every byte of ``data``."""
        self.port.write(bytes(data))

    def close(self) -> None:
        self.port.close()


def _open_serial(path: str, baud_rate: int):
    return serial.Serial(path, baud_rate, timeout=2, rtscts=False, xonxoff=False)


def _open_device_file(path: str):
    fd = os.open(path, os.O_WRONLY)
    return os.fdopen(fd, "wb", buffering=0)


class VevorWorker(DeviceWorker):
    """Worker that sends HPGL jobs to a Vevor Smart 1 cutter."""

    line_delay = 0.005

    def __init__(
        self,
        serial_factory: Optional[Callable] = None,
        file_opener: Optional[Callable] = None,
    ) -> None:
        super().__init__()
        self._serial_factory = serial_factory or _open_serial
        self._file_opener = file_opener or _open_device_file
        self._transport = None

    def handle(self, command) -> None:
        match command:
            case Connect(port=path, baud_rate=baud):
                self._connect(path, baud)
            case Disconnect():
                self._release()
                self.emit(Disconnected())
            case SendJob(lines=lines):
                self._send_job(lines)
            case SendRaw(text=text):
                self._send_raw(text)
            case _:
                # No feed hold, cycle start, reset, homing, jog or polling.
                pass

    def _open_file(self, path: str):
        try:
            return self._file_opener(path)
        except OSError:
            token = extract_usb_port_token(path)
            if sys.platform == "win32" and token is not None:
                return self._file_opener(f"\\\\.\\{token}")
            raise

    def _connect(self, path: str, baud: int) -> None:
        if is_usb_printer_path(path):
            try:
                transport = FileTransport(self._open_file(path))
            except OSError as exc:
                self.emit(
                    Message(
                        f"Vevor connect failed for '{path}': {exc}. No usable printer queue "
                        "found. Install/enable a printer queue for VID_045B&PID_5310, then "
                        "select 'Printer Queue: ...'."
                    )
                )
                return
        else:
            try:
                transport = SerialTransport(self._serial_factory(path, baud))
            except (OSError, ValueError) as exc:
                self.emit(
                    Message(
                        f"Connection error: {exc}. If this is Vevor USB, select a "
                        "'Printer Queue: ...' target instead of serial."
                    )
                )
                return
        try:
            transport.write_all(INIT_COMMAND)
        except OSError:
            pass
        self._release()
        self._transport = transport
        self.emit(Connected())
        self.emit(Message("Vevor Smart 1 connected"))

    def _send_job(self, lines) -> None:
        if self._transport is None:
            return
        total = len(lines)
        for done, line in enumerate(lines, start=1):
            try:
                self._transport.write_all(f"{line.strip()}\r\n".encode("utf-8"))
            except OSError as exc:
                self.emit(Message(f"Send error: {exc}"))
                self.emit(JobFinished(False))
                break
            time.sleep(self.line_delay)
            self.emit(JobProgress(progress_percent(done, total)))
        self.emit(JobFinished(True))

    def _send_raw(self, text: str) -> None:
        if self._transport is None:
            self.emit(Message("Not connected – cannot send command"))
            return
        try:
            self._transport.write_all(generate_hpgl_message(text))
        except OSError as exc:
            self.emit(Message(f"SendRaw error: {exc}"))
            return
        self.emit(LineReceived(f"→ {text}"))

    def _release(self) -> None:
        transport, self._transport = self._transport, None
        if transport is not None:
            try:
                transport.close()
            except OSError:
                pass


def spawn(
    serial_factory: Optional[Callable] = None,
    file_opener: Optional[Callable] = None,
) -> VevorWorker:
    """Create a Vevor worker; its thread starts with the first command."""
    return VevorWorker(serial_factory, file_opener)