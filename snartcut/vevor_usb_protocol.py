"""Framing for the Vevor Smart1 USB protocol.

Each message is a 28-byte header followed by an ASCII payload:

* byte 0: ``0x1B`` marker, byte 1: ``0x00``
* bytes 2-5: CRC-32 (little-endian) over bytes 6.. of the header and the payload
* bytes 6-23: fixed constant
* bytes 24-25: payload length (little-endian)
* bytes 26-27: ``0x00``
"""

from __future__ import annotations

import enum
import zlib

HEADER_LEN = 28
ESC = 0x1B

FIXED_HEADER = bytes(
    [
        0x09, 0x91, 0xFF, 0xFF, 0x00, 0x00, 0x00, 0x00, 0x09,
        0x00, 0x00, 0x01, 0x03, 0x00, 0x18, 0x00, 0x02, 0x03,
    ]
)

EVENT_KEYWORDS = (
    "LOADPRESSED",
    "LOADSUCCESS",
    "START",
    "BUSY",
    "IDLE",
    "CUTSUCCESS",
    "CUTOVER",
    "ERROR",
)


class ProtocolError(ValueError):
    """A device response could not be decoded."""


class VevorJobState(enum.Enum):
    """States of the Vevor job workflow."""

    IDLE = "Idle"
    AWAITING_MEDIA_LOAD = "Awaiting Media Load"
    MEDIA_LOADED = "Media Loaded"
    AWAITING_START = "Awaiting Start"
    CUTTING = "Cutting"
    CUT_FINISHED = "Cut Finished"
    ERROR = "Error"

    def label(self) -> str:
        """Human-readable name of the state."""
        return self.value


def generate_message(payload: bytes) -> bytes:
    """Wrap ``payload`` in a header with length and CRC."""
    payload = bytes(payload)
    tail = FIXED_HEADER + (len(payload) & 0xFFFF).to_bytes(2, "little") + b"\x00\x00"
    crc = zlib.crc32(tail + payload) & 0xFFFFFFFF
    return bytes([ESC, 0x00]) + crc.to_bytes(4, "little") + tail + payload


def generate_hpgl_message(hpgl_commands: str) -> bytes:
    """Message carrying HPGL commands."""
    return generate_message(hpgl_commands.encode("utf-8"))


def generate_prepare_job_command() -> bytes:
    """The "prepare for loading" command."""
    return generate_message(b"setmat:0;")


def generate_prepare_job_with_size(material: int, width_units: int, height_units: int) -> bytes:
    """The "prepare for loading" command with material and sheet size."""
    payload = f"setmat:{material};JS{width_units},{height_units};"
    return generate_message(payload.encode("ascii"))


def generate_status_poll_command() -> bytes:
    """The status poll command."""
    return generate_message(b"TB42;")


def generate_eject_command() -> bytes:
    """The eject media command."""
    return generate_message(b"PG;")


def generate_stream_reset_command() -> bytes:
    """The stream reset command."""
    return generate_message(b"JS;")


def parse_device_response(data: bytes) -> str:
    """Return the text payload of a device message."""
    if len(data) < HEADER_LEN:
        raise ProtocolError("Response too short: insufficient header")
    if data[0] != ESC:
        raise ProtocolError("Invalid response: missing ESC marker")
    payload_len = int.from_bytes(data[24:26], "little")
    if len(data) < HEADER_LEN + payload_len:
        raise ProtocolError("Response truncated: insufficient payload data")
    payload = bytes(data[HEADER_LEN:HEADER_LEN + payload_len])
    try:
        return payload.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ProtocolError("Invalid UTF-8 in device response") from exc


def extract_event_keywords(response: str) -> list[str]:
    """Known event keywords found in ``response``, in a fixed order."""
    return [keyword for keyword in EVENT_KEYWORDS if keyword in response]