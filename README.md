# snartcut

Device workers and wire protocols for hobby cutting machines:

- **GRBL** lasers and spindles over serial (`snartcut.grbl`)
- **Ruida** laser controllers over UDP or USB serial (`snartcut.ruida`)
- **HPGL vinyl cutters** such as Roland, Graphtec and Silhouette, over serial
  with RTS/CTS flow control (`snartcut.vinyl`)
- **Vevor Smart 1** vinyl cutter, opened as a USB printer-class file or over
  serial (`snartcut.vevor`), with its framed USB message format
  (`snartcut.vevor_usb_protocol`) and helpers for finding it
  (`snartcut.vevor_detect`)

## Requirements

Python 3.10 or later and `pyserial`.

## Commands and events

Every driver is a worker. You give it commands and read back events. Both are
frozen dataclasses in `snartcut.base`:

| Commands | Events |
|---|---|
| `Connect(port, baud_rate)`, `Disconnect()` | `Connected()`, `Disconnected()` |
| `SendJob(lines)`, `SendRaw(text)` | `JobProgress(percent)`, `JobFinished(success)` |
| `FeedHold()`, `CycleStart()`, `SoftReset()` | `LineReceived(line)` |
| `Home()`, `Jog(x, y, feed_mm_min)`, `PollStatus()` | `PositionUpdate(x, y)`, `Message(text)` |

A driver ignores commands its machine does not support:

- `vinyl` acts only on `Connect`, `Disconnect` and `SendJob`.
- `vevor` also acts on `SendRaw`. It wraps the text in a Vevor USB frame, and
  answers with `Message("Not connected – cannot send command")` when no device
  is open.
- `ruida` ignores `SendRaw`. Its `Jog` ignores the feed rate.

## Workers

Each driver module has a `spawn(...)` function that returns a worker:

- `grbl.spawn(serial_factory)`
- `vinyl.spawn(serial_factory)`
- `ruida.spawn(serial_factory, udp_factory)`
- `vevor.spawn(serial_factory, file_opener)`

Every factory argument is optional. A serial factory is called as
`factory(port, baud_rate)`. When it is left out, a `serial.Serial` is opened
with the driver's own timeout and flow-control settings. The factories let
tests pass in stand-ins.

A `DeviceWorker` has the following methods:

- `send(command)` puts the command on a queue and starts the background thread
  the first time it is called. It raises `RuntimeError` once the worker is
  closed. An `OSError` raised while a command runs on the thread is turned
  into a `Message` event.
- `handle(command)` runs one command at once on the calling thread. This is
  handy in scripts and tests.
- `events(timeout=0.0)` yields queued events. It stops when no event arrives
  within `timeout` seconds, or at once when the queue is empty and `timeout`
  is 0.
- `close()` stops the thread and releases the port. A worker can also be used
  as a context manager.

```python
import serial
from snartcut import vinyl
from snartcut.base import Connect, SendJob, JobFinished, Message

with vinyl.spawn(serial.Serial) as worker:
    worker.send(Connect(port="/dev/ttyUSB0", baud_rate=9600))
    worker.send(SendJob(["IN;", "SP1;", "PU0,0;", "PD400,0;", "PU0,0;"]))
    for event in worker.events(timeout=2.0):
        if isinstance(event, Message):
            print(event.text)
        elif isinstance(event, JobFinished):
            break
```

### GRBL

The GRBL worker streams a job one line at a time. Each command it handles
moves the job forward by one line. After the last line, the next command
handled emits `JobFinished(True)`. Each handled command also sends a `?`
status poll, at most once a second, and reads whatever the controller has
answered. To drive a job through, keep sending commands such as
`PollStatus()`:

```python
from snartcut import grbl
from snartcut.base import Connect, SendJob, PollStatus, JobFinished

worker = grbl.spawn()
worker.handle(Connect(port="/dev/ttyUSB0", baud_rate=115200))  # waits 2 s for the banner
worker.handle(SendJob(["G21", "G90", "G0 X0 Y0"]))
done = False
while not done:
    worker.handle(PollStatus())
    done = any(isinstance(e, JobFinished) for e in worker.events())
worker.close()
```

GRBL sends these bytes for the control commands:

| Command | Bytes sent |
|---|---|
| `FeedHold` | `!` |
| `CycleStart` | `~` |
| `SoftReset` | `0x18` |
| `Home` | `$H` |
| `PollStatus` | `?` |

`SendRaw` writes its text unchanged.

### Ruida

A `Connect` port that is an IP address opens UDP. The worker sends to port
50200 from local port 50300. Any other port string opens serial.

`SendJob` lines are job bytes written as hex, one byte per line. Lines that
are not a byte are skipped. The bytes are sent in 500-byte chunks between
begin and end packets.

After each command the worker sends a heartbeat every 2 seconds. It then reads
one waiting response and emits it as `LineReceived`, holding the bytes in hex.
Position replies also produce a `PositionUpdate`.

### Vevor Smart 1

A path such as `/dev/usb/lp0`, `LPT1` or `\\.\USB001` is opened as a file.
On Windows, if opening it fails and the path holds a `USBnnn` name, `\\.\USBnnn`
is tried next. Any other path is opened as serial without flow control. On
connect the worker writes `IN;\r\n`. Job lines are written one by one, each
ending in `\r\n`.

## Protocol helpers

These encoding and decoding functions can be used on their own.

```python
from snartcut.vinyl import mm_to_hpgl
mm_to_hpgl(10.0)        # 400; HPGL uses 40 units per millimetre

from snartcut.grbl import format_jog, parse_grbl_response
format_jog(5.0, -2.5, 1200.0)     # "$J=G91 G21 X5.000 Y-2.500 F1200\n"
parse_grbl_response("<Idle|MPos:12.500,3.000,0.000|FS:0,0>")
# [LineReceived(...), PositionUpdate(x=12.5, y=3.0)]

from snartcut.ruida import make_packet, scramble, encode_coord, decode_rd_lines, looks_like_ip
packet = make_packet(0xDA, b"\x00")  # command, data, byte-sum checksum, XOR 0x88
scramble(packet)                      # XOR again: the plain packet
encode_coord(1.5)                     # micrometres as 4 big-endian bytes
decode_rd_lines(["D4", "00"])         # b"\xd4\x00"
looks_like_ip("192.168.1.100")        # True
```

`ruida.parse_ruida_response(data)` turns an unscrambled reply into events.

### Vevor USB framing

Each message has a 28-byte header followed by the payload. The header holds an
ESC marker, a CRC-32 over the rest of the message, a block of fixed bytes and
the payload length in little-endian order.

```python
from snartcut.vevor_usb_protocol import (
    generate_hpgl_message,
    generate_prepare_job_with_size,
    parse_device_response,
    extract_event_keywords,
    VevorJobState,
)

frame = generate_hpgl_message("IN;SP1;PU40,40;PD40,60;")
parse_device_response(frame)                 # "IN;SP1;PU40,40;PD40,60;"
generate_prepare_job_with_size(1, 12192, 13912)   # payload "setmat:1;JS12192,13912;"
extract_event_keywords("TB42:LOADSUCCESS;")  # ["LOADSUCCESS"]
VevorJobState.CUTTING.label()                # "Cutting"
```

The module also has these command builders:

- `generate_prepare_job_command()`
- `generate_status_poll_command()`
- `generate_eject_command()`
- `generate_stream_reset_command()`
- `generate_message(payload)`

`parse_device_response` raises `ProtocolError`, a `ValueError`, in these cases:

- the data is shorter than the header
- the ESC marker is missing
- the payload is truncated
- the payload is not valid UTF-8

### Finding a Vevor cutter

`snartcut.vevor_detect` works with the target strings a user picks from.

- `is_usb_printer_path(path)` tells whether a path names a USB printer-class
  device.
- `extract_usb_port_token(path)` returns the first `USBnnn` name in a path.
- `parse_printer_queue_name("Printer Queue: Name [USB001]")` returns `"Name"`.
- `parse_usb_pnp_instance("USB PnP: id | name")` returns `"id"`.

These functions ask Windows PowerShell and return `None` when it is missing or
fails:

- `resolve_printer_queue_for_port(port)`
- `resolve_printer_queue_for_vid_pid()`
- `auto_detect_windows_target()`, which returns `None` at once on systems
  other than Windows.

## What this package does not do

- It does not turn drawings into jobs. It has no G-code, HPGL or Ruida job
  generator and no SVG or DXF import. A job must already be a list of command
  lines, or of hex bytes for Ruida.
- It has no graphical interface and no command-line program.
- The Vevor worker cannot print to a Windows printer queue or to a USBPRINT
  device interface. A `Printer Queue: ...` or `USB PnP: ...` target found by
  `vevor_detect` can be shown to the user, but the worker can only open plain
  file paths and serial ports. The worker also does not run the cutter's
  media-load, eject or stream-reset sequence. The frames for those steps are
  available from `vevor_usb_protocol`.

## Running the tests

Install the package with its `test` extra, then run pytest from the project
directory.