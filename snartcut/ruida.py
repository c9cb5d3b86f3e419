"""Ruida laser controller driver.

The controller is reached over UDP when the port string is an IP address
(machine port 50200, local port 50300) and over a serial line otherwise.
Every byte on the wire is XOR-scrambled with ``0x88``; each packet is a
command byte, its data and a one-byte checksum.
"""

from __future__ import annotations

import ipaddress
import math
import re
import socket
import time
from typing import Callable, Iterable, Optional

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
    SoftReset,
    progress_percent,
)

XOR_KEY = 0x88

CMD_PING = 0xDA
CMD_GET_POS = 0xD8
CMD_JOG = 0xD9
CMD_FEED_HOLD = 0x24
CMD_CYCLE_START = 0x25
CMD_SOFT_RESET = 0x26
CMD_HOME = 0xD8
CMD_FILE_BEGIN = 0xD4
CMD_FILE_END = 0xD5
CMD_FILE_DATA = 0xD3

UDP_MACHINE_PORT = 50200
UDP_LOCAL_PORT = 50300

JOB_CHUNK = 500
RECV_SIZE = 64
PING_INTERVAL = 2.0

_U32_MAX = 0xFFFFFFFF
_HEX_BYTE = re.compile(r"\+?[0-9A-Fa-f]+")


def scramble(data: bytes) -> bytes:
    """XOR every byte with the key; applying it twice gives the input back."""
    return bytes(b ^ XOR_KEY for b in data)


def make_packet(cmd: int, data: bytes = b"") -> bytes:
    """Scrambled packet of ``cmd``, ``data`` and a trailing byte-sum checksum."""
    raw = bytes([cmd]) + bytes(data)
    checksum = sum(raw) & 0xFF
    return scramble(raw + bytes([checksum]))


def encode_coord(mm: float) -> bytes:
    """Coordinate in micrometres as 4 big-endian bytes, clamped to the u32 range."""
    scaled = mm * 1000.0
    if math.isnan(scaled):
        units = 0
    elif math.isinf(scaled):
        units = _U32_MAX if scaled > 0 else 0
    else:
        units = int(math.copysign(math.floor(abs(scaled) + 0.5), scaled))
        units = min(max(units, 0), _U32_MAX)
    return units.to_bytes(4, "big")


def looks_like_ip(s: str) -> bool:
    """Whether ``s`` is a plain IPv4 or IPv6 address."""
    if "%" in s:
        return False
    try:
        ipaddress.ip_address(s)
    except ValueError:
        return False
    return True


def decode_rd_lines(lines: Iterable[str]) -> bytes:
    """Bytes from hex-per-line job data; lines that are not a byte are skipped."""
    out = bytearray()
    for line in lines:
        text = line.strip()
        if _HEX_BYTE.fullmatch(text):
            value = int(text, 16)
            if value <= 0xFF:
                out.append(value)
    return bytes(out)


def parse_ruida_response(data: bytes) -> list:
    """Events for one unscrambled response from the controller."""
    if not data:
        return []
    events: list = [LineReceived(" ".join(f"{b:02X}" for b in data))]
    if len(data) >= 9 and data[0] == CMD_GET_POS:
        x = int.from_bytes(data[1:5], "big") / 1000.0
        y = int.from_bytes(data[5:9], "big") / 1000.0
        events.append(PositionUpdate(x, y))
    return events


class UdpTransport:
    """Datagram link to a controller at ``remote``."""

    def __init__(self, sock, remote: tuple) -> None:
        self.socket = sock
        self.remote = remote

    def send(self, packet: bytes) -> None:
        self.socket.sendto(packet, self.remote)

    def try_recv(self, size: int = RECV_SIZE) -> bytes:
        """Read one datagram without blocking; empty if none is waiting."""
        try:
            self.socket.setblocking(False)
            return self.socket.recv(size)
        except OSError:
            return b""

    def close(self) -> None:
        self.socket.close()


class SerialTransport:
    """Serial (USB-CDC) link to a controller."""

    def __init__(self, port) -> None:
        self.port = port

    def send(self, packet: bytes) -> None:
        self.port.write(packet)

    def try_recv(self, size: int = RECV_SIZE) -> bytes:
        """Read what is waiting, up to ``size`` bytes; empty if nothing is."""
        try:
            waiting = self.port.in_waiting
            if waiting <= 0:
                return b""
            return self.port.read(min(waiting, size))
        except OSError:
            return b""

    def close(self) -> None:
        self.port.close()


def _open_serial(port: str, baud_rate: int):
    return serial.Serial(port, baud_rate, timeout=0.5)


def _open_udp():
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.bind(("0.0.0.0", UDP_LOCAL_PORT))
        sock.settimeout(0.2)
    except OSError:
        sock.close()
        raise
    return sock


class RuidaWorker(DeviceWorker):
    """Worker that drives a Ruida controller.

    After each command a heartbeat is sent when due and one response, if
    any is waiting, is read and turned into events.
    """

    ping_interval = PING_INTERVAL

    def __init__(
        self,
        serial_factory: Optional[Callable] = None,
        udp_factory: Optional[Callable] = None,
    ) -> None:
        super().__init__()
        self._serial_factory = serial_factory or _open_serial
        self._udp_factory = udp_factory or _open_udp
        self._transport = None
        self._last_ping = time.monotonic()

    def handle(self, command) -> None:
        match command:
            case Connect(port=address, baud_rate=baud):
                self._connect(address, baud)
            case Disconnect():
                self._release()
                self.emit(Disconnected())
            case SendJob(lines=lines):
                if self._transport is not None:
                    self.send_job(decode_rd_lines(lines))
            case FeedHold():
                self._send(make_packet(CMD_FEED_HOLD))
            case CycleStart():
                self._send(make_packet(CMD_CYCLE_START))
            case SoftReset():
                self._send(make_packet(CMD_SOFT_RESET))
            case Home():
                self._send(make_packet(CMD_HOME, b"\x2c"))
            case Jog(x=x, y=y):
                data = b"\x01" + encode_coord(x) + encode_coord(y)
                self._send(make_packet(CMD_JOG, data))
            case PollStatus():
                self._send(make_packet(CMD_GET_POS))
            case _:
                pass

        if self._transport is not None:
            if time.monotonic() - self._last_ping >= self.ping_interval:
                self._send(make_packet(CMD_PING, b"\x00"))
                self._last_ping = time.monotonic()
            raw = self._transport.try_recv(RECV_SIZE)
            if raw:
                for event in parse_ruida_response(scramble(raw)):
                    self.emit(event)

    def send_job(self, data: bytes) -> None:
        """Transfer job bytes in chunks wrapped in begin/end packets."""
        if self._transport is None:
            return
        if not self._send(make_packet(CMD_FILE_BEGIN)):
            self.emit(Message("Transfer error"))
            return
        total = len(data)
        sent = 0
        for start in range(0, total, JOB_CHUNK):
            chunk = data[start:start + JOB_CHUNK]
            if not self._send(make_packet(CMD_FILE_DATA, chunk)):
                self.emit(Message("Transfer error"))
                return
            sent += len(chunk)
            self.emit(JobProgress(progress_percent(sent, total)))
        self._send(make_packet(CMD_FILE_END))
        self.emit(JobFinished(True))

    def _connect(self, address: str, baud: int) -> None:
        if looks_like_ip(address):
            try:
                sock = self._udp_factory()
            except OSError as exc:
                self.emit(Message(f"UDP bind error: {exc}"))
                return
            transport = UdpTransport(sock, (address, UDP_MACHINE_PORT))
        else:
            try:
                port = self._serial_factory(address, baud)
            except (OSError, ValueError) as exc:
                self.emit(Message(f"Serial error: {exc}"))
                return
            transport = SerialTransport(port)
        self._release()
        self._transport = transport
        self.emit(Connected())
        self.emit(Message("Ruida connected"))

    def _send(self, packet: bytes) -> bool:
        if self._transport is None:
            return False
        try:
            self._transport.send(packet)
        except OSError:
            return False
        return True

    def _release(self) -> None:
        transport, self._transport = self._transport, None
        if transport is not None:
            try:
                transport.close()
            except OSError:
                pass


def spawn(
    serial_factory: Optional[Callable] = None,
    udp_factory: Optional[Callable] = None,
) -> RuidaWorker:
    """Create a Ruida worker; its thread starts with the first command."""
    return RuidaWorker(serial_factory, udp_factory)