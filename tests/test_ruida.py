import pytest

from snartcut.base import (
    Connect,
    Connected,
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
)
from snartcut.ruida import (
    CMD_FEED_HOLD,
    CMD_FILE_BEGIN,
    CMD_FILE_DATA,
    CMD_FILE_END,
    CMD_GET_POS,
    CMD_HOME,
    CMD_JOG,
    CMD_PING,
    UDP_MACHINE_PORT,
    SerialTransport,
    UdpTransport,
    decode_rd_lines,
    encode_coord,
    looks_like_ip,
    make_packet,
    parse_ruida_response,
    scramble,
    spawn,
)


class FakeSerial:
    def __init__(self, incoming=b"", fail_writes=False):
        self.written = []
        self.incoming = incoming
        self.fail_writes = fail_writes
        self.closed = False

    def write(self, data):
        if self.fail_writes:
            raise OSError("write failed")
        self.written.append(bytes(data))
        return len(data)

    @property
    def in_waiting(self):
        return len(self.incoming)

    def read(self, n):
        data, self.incoming = self.incoming[:n], self.incoming[n:]
        return data

    def close(self):
        self.closed = True


class FakeSocket:
    def __init__(self, incoming=None):
        self.sent = []
        self.incoming = list(incoming or [])
        self.closed = False

    def sendto(self, data, addr):
        self.sent.append((bytes(data), addr))

    def setblocking(self, flag):
        pass

    def recv(self, size):
        if not self.incoming:
            raise BlockingIOError()
        return self.incoming.pop(0)[:size]

    def close(self):
        self.closed = True


def connected_serial(port=None):
    port = port or FakeSerial()
    worker = spawn(serial_factory=lambda name, baud: port)
    worker.ping_interval = 1e9
    worker.handle(Connect("/dev/ttyUSB0", 115200))
    list(worker.events())
    return worker, port


def test_scramble_round_trip():
    data = bytes(range(256))
    assert scramble(scramble(data)) == data
    assert scramble(b"\x88") == b"\x00"


def test_make_packet_has_checksum():
    raw = scramble(make_packet(0xD9, b"\x01\x02"))
    assert raw[:3] == b"\xd9\x01\x02"
    assert raw[-1] == sum(raw[:-1]) & 0xFF


def test_make_packet_checksum_wraps():
    raw = scramble(make_packet(0xFF, b"\xff"))
    assert len(raw) == 3
    assert raw[2] == (0xFF + 0xFF) & 0xFF


def test_encode_coord_micrometres():
    assert int.from_bytes(encode_coord(1.5), "big") == 1500
    assert len(encode_coord(12.345)) == 4


def test_encode_coord_clamps():
    assert encode_coord(-5.0) == b"\x00\x00\x00\x00"
    assert encode_coord(1e12) == b"\xff\xff\xff\xff"
    assert encode_coord(float("nan")) == b"\x00\x00\x00\x00"


@pytest.mark.parametrize(
    "text,expected",
    [
        ("192.168.1.100", True),
        ("::1", True),
        ("/dev/ttyUSB0", False),
        ("COM3", False),
        ("192.168.1", False),
    ],
)
def test_looks_like_ip(text, expected):
    assert looks_like_ip(text) is expected


def test_decode_rd_lines_skips_bad_lines():
    assert decode_rd_lines(["D4", "  0a ", "zz", "100", ""]) == bytes([0xD4, 0x0A])


def test_decode_rd_lines_round_trip():
    data = bytes(range(0, 256, 7))
    assert decode_rd_lines([f"{b:02X}" for b in data]) == data


def test_parse_response_position():
    data = bytes([CMD_GET_POS]) + (1500).to_bytes(4, "big") + (2500).to_bytes(4, "big")
    events = parse_ruida_response(data)
    assert isinstance(events[0], LineReceived)
    assert events[1] == PositionUpdate(1.5, 2.5)


def test_parse_response_summary_only():
    assert parse_ruida_response(b"\x01\xab") == [LineReceived("01 AB")]
    assert parse_ruida_response(b"") == []


def test_serial_transport_recv_limits_size():
    port = FakeSerial(incoming=b"abcdef")
    transport = SerialTransport(port)
    assert transport.try_recv(4) == b"abcd"
    assert transport.try_recv(4) == b"ef"
    assert transport.try_recv(4) == b""


def test_udp_transport_send_and_recv():
    sock = FakeSocket(incoming=[b"xyz"])
    transport = UdpTransport(sock, ("10.0.0.2", UDP_MACHINE_PORT))
    transport.send(b"pkt")
    assert sock.sent == [(b"pkt", ("10.0.0.2", UDP_MACHINE_PORT))]
    assert transport.try_recv(64) == b"xyz"
    assert transport.try_recv(64) == b""


def test_connect_serial_events():
    port = FakeSerial()
    worker = spawn(serial_factory=lambda name, baud: port)
    worker.handle(Connect("/dev/ttyUSB0", 115200))
    assert list(worker.events()) == [Connected(), Message("Ruida connected")]


def test_connect_serial_error():
    def failing(name, baud):
        raise OSError("no such port")

    worker = spawn(serial_factory=failing)
    worker.handle(Connect("COM3", 9600))
    assert list(worker.events()) == [Message("Serial error: no such port")]


def test_connect_udp_and_home():
    sock = FakeSocket()
    worker = spawn(udp_factory=lambda: sock)
    worker.ping_interval = 1e9
    worker.handle(Connect("192.168.1.100", 0))
    worker.handle(Home())
    assert sock.sent == [(make_packet(CMD_HOME, b"\x2c"), ("192.168.1.100", UDP_MACHINE_PORT))]


def test_connect_udp_bind_error():
    def failing():
        raise OSError("boom")

    worker = spawn(udp_factory=failing)
    worker.handle(Connect("10.1.2.3", 0))
    assert list(worker.events()) == [Message("UDP bind error: boom")]


def test_feed_hold_and_jog_packets():
    worker, port = connected_serial()
    worker.handle(FeedHold())
    worker.handle(Jog(1.0, 2.0, 600.0))
    assert port.written == [
        make_packet(CMD_FEED_HOLD),
        make_packet(CMD_JOG, b"\x01" + encode_coord(1.0) + encode_coord(2.0)),
    ]


def test_send_raw_is_ignored():
    worker, port = connected_serial()
    worker.handle(SendRaw("hello"))
    assert port.written == []


def test_response_read_after_command():
    reply = bytes([CMD_GET_POS]) + (1000).to_bytes(4, "big") + (3000).to_bytes(4, "big")
    worker, port = connected_serial(FakeSerial())
    port.incoming = scramble(reply)
    worker.handle(PollStatus())
    events = list(worker.events())
    assert port.written == [make_packet(CMD_GET_POS)]
    assert PositionUpdate(1.0, 3.0) in events


def test_heartbeat_sent_when_due():
    worker, port = connected_serial()
    worker.ping_interval = 0
    worker.handle(PollStatus())
    assert port.written[-1] == make_packet(CMD_PING, b"\x00")


def test_send_job_small():
    worker, port = connected_serial()
    worker.handle(SendJob(["D4", "01"]))
    assert port.written == [
        make_packet(CMD_FILE_BEGIN),
        make_packet(CMD_FILE_DATA, b"\xd4\x01"),
        make_packet(CMD_FILE_END),
    ]
    assert list(worker.events()) == [JobProgress(100), JobFinished(True)]


def test_send_job_chunks():
    worker, port = connected_serial()
    worker.send_job(bytes(1000))
    assert len(port.written) == 4
    assert list(worker.events()) == [JobProgress(50), JobProgress(100), JobFinished(True)]


def test_send_job_transfer_error():
    worker, port = connected_serial(FakeSerial())
    port.fail_writes = True
    worker.handle(SendJob(["01"]))
    assert list(worker.events()) == [Message("Transfer error")]


def test_send_job_without_connection():
    worker = spawn(serial_factory=lambda name, baud: FakeSerial())
    worker.handle(SendJob(["01"]))
    assert list(worker.events()) == []


def test_disconnect_closes_port():
    worker, port = connected_serial()
    worker.handle(Disconnect())
    assert port.closed is True
    assert list(worker.events()) == [Disconnected()]
    worker.handle(FeedHold())
    assert port.written == []


def test_threaded_worker():
    port = FakeSerial()
    with spawn(serial_factory=lambda name, baud: port) as worker:
        worker.send(Connect("/dev/ttyUSB0", 115200))
        events = list(worker.events(timeout=1.0))
    assert events == [Connected(), Message("Ruida connected")]
    assert port.closed is True