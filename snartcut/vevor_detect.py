"""Locating a Vevor cutter's USB printer target and parsing target strings.

Target strings are the ones offered to the user:

* ``Printer Queue: <name> [<port>]``: a raw printer queue
* ``USB PnP: <instance> | <friendly name>``: a Plug-and-Play device
* ``USB Path: \\\\.\\USBnnn``: a direct USB printer port
"""

from __future__ import annotations

import re
import subprocess
import sys
from typing import Optional

VENDOR_PRODUCT = "VID_045B&PID_5310"

_QUEUE_PREFIX = "Printer Queue: "
_PNP_PREFIX = "USB PnP: "
_USB_PORT_PATTERN = re.compile(rb"USB[0-9]{3}")

_VID_PID_QUEUE_CMD = (
    "Get-CimInstance Win32_Printer | Where-Object { $_.PNPDeviceID -match 'VID_045B&PID_5310' "
    "-or $_.PNPDeviceID -match 'VID_045B.*PID_5310' } | Select-Object -First 1 | "
    "ForEach-Object { \"Printer Queue: $($_.Name) [$($_.PortName)]\" }"
)
_NAMED_QUEUE_CMD = (
    "Get-Printer | Where-Object { $_.Name -match 'PosteK|POSTEK|Q8/200|Vevor' "
    "-or $_.DriverName -match 'PosteK|POSTEK|Q8/200|Vevor' } | Select-Object -First 1 | "
    "ForEach-Object { \"Printer Queue: $($_.Name) [$($_.PortName)]\" }"
)
_USB_PORT_QUEUE_CMD = (
    "Get-Printer | Where-Object { $_.PortName -match 'USB\\d{3}' } | Select-Object -First 1 | "
    "ForEach-Object { \"Printer Queue: $($_.Name) [$($_.PortName)]\" }"
)
_CLASS_QUEUE_CMD = (
    "Get-CimInstance Win32_Printer | Where-Object { $_.PortName -match '^USB\\d{3}$' "
    "-or $_.PNPDeviceID -like 'USBPRINT*' } | Select-Object -First 1 | "
    "ForEach-Object { \"Printer Queue: $($_.Name) [$($_.PortName)]\" }"
)
_PNP_CMD = (
    "Get-PnpDevice -PresentOnly | Where-Object { $_.InstanceId -like 'USBPRINT*' "
    "-or $_.InstanceId -match 'VID_045B&PID_5310' "
    "-or $_.FriendlyName -match 'PosteK|POSTEK|Q8/200|Vevor' } | Select-Object -First 1 | "
    "ForEach-Object { \"$($_.InstanceId)||$($_.FriendlyName)\" }"
)
_VID_PID_NAME_CMD = (
    "Get-CimInstance Win32_Printer | Where-Object { $_.PNPDeviceID -match 'VID_045B&PID_5310' "
    "-or $_.PNPDeviceID -match 'VID_045B.*PID_5310' } | Select-Object -First 1 "
    "-ExpandProperty Name"
)


def _powershell_first_line(command: str) -> Optional[str]:
    """First non-empty output line of a PowerShell command, or None on failure."""
    try:
        result = subprocess.run(
            ["powershell", "-NoProfile", "-Command", command],
            capture_output=True,
            check=False,
        )
    except OSError:
        return None
    if result.returncode != 0:
        return None
    text = result.stdout.decode("utf-8", errors="replace")
    return next((line.strip() for line in text.splitlines() if line.strip()), None)


def is_usb_printer_path(path: str) -> bool:
    """Whether ``path`` names a USB printer-class device that is opened as a file."""
    lowered = path.lower()
    return (
        "/usb/lp" in lowered
        or "lpt" in lowered
        or lowered.startswith("\\\\.\\usb")
        or "usb001" in lowered
        or "usb002" in lowered
    )


def extract_usb_port_token(path: str) -> Optional[str]:
    """The first ``USBnnn`` port name in ``path``, upper-cased.

    A match only counts when at least one character follows it.
    """
    upper = path.upper().encode("utf-8")
    match = _USB_PORT_PATTERN.search(upper)
    if match is None or match.start() >= len(upper) - 6:
        return None
    return match.group().decode("ascii")


def parse_printer_queue_name(path: str) -> Optional[str]:
    """Queue name from a ``Printer Queue: <name> [<port>]`` target."""
    text = path.strip()
    if not text.startswith(_QUEUE_PREFIX):
        return None
    name = text[len(_QUEUE_PREFIX):].split("[", 1)[0].strip()
    return name or None


def parse_usb_pnp_instance(path: str) -> Optional[str]:
    """Instance id from a ``USB PnP: <instance> | <name>`` target."""
    text = path.strip()
    if not text.startswith(_PNP_PREFIX):
        return None
    instance = text[len(_PNP_PREFIX):].split(" | ", 1)[0].strip()
    return instance or None


def resolve_printer_queue_for_port(port: str) -> Optional[str]:
    """Name of the printer queue bound to ``port``."""
    command = (
        f"Get-Printer | Where-Object {{ $_.PortName -eq '{port}' }} | "
        "Select-Object -First 1 -ExpandProperty Name"
    )
    return _powershell_first_line(command)


def resolve_printer_queue_for_vid_pid() -> Optional[str]:
    """Name of the printer queue whose device matches the Vevor vendor/product id."""
    return _powershell_first_line(_VID_PID_NAME_CMD)


def auto_detect_windows_target() -> Optional[str]:
    """Best connection target for a Vevor cutter on Windows; None elsewhere."""
    if sys.platform != "win32":
        return None

    for command in (
        _VID_PID_QUEUE_CMD,
        _NAMED_QUEUE_CMD,
        _USB_PORT_QUEUE_CMD,
        _CLASS_QUEUE_CMD,
    ):
        line = _powershell_first_line(command)
        if line is not None:
            return line

    joined = _powershell_first_line(_PNP_CMD)
    if joined is None:
        return None
    instance, _, friendly = joined.partition("||")
    instance = instance.strip()
    friendly = friendly.strip()

    port_name = extract_usb_port_token(instance)
    if port_name is not None:
        return f"USB Path: \\\\.\\{port_name}"
    if instance:
        if not friendly:
            return f"USB PnP: {instance}"
        return f"USB PnP: {instance} | {friendly}"
    return None