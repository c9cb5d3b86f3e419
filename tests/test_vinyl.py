import itertools

from snartcut.base import (
    Connect,
    Connected,
    Disconnect,
    Disconnected,
    JobFinished,
    JobProgress,
    Jog,
    Message,
    SendJob,
)
from snartcut.vinyl import VinylWorker, mm_to_hpgl, spawn


class FakeSerial:
    def __init__(self, fail_writes=False):
        self.written = bytearray()
        self.fail_writes = fail_writes
        self.closed = False

    def write(self, data):
        if self.fail_writes:
            raise OSError("write failed")
        self.written += data
        return len(data)

    def close(self):
        self.closed = True


def make_worker(fake):
    worker = VinylWorker(lambda port, baud: fake)
    worker.line_delay = 0
    return worker


def test_mm_to_hpgl_round_trip_integers():
    for units in range(-50, 51):
        assert mm_to_hpgl(units / 40) == units


def test_mm_to_hpgl_is_odd():
    for mm in (0.3, 1.234, 17.9, 250.01):
        assert mm_to_hpgl(-mm) == -mm_to_hpgl(mm)


def test_connect_initialises_cutter():
    fake = FakeSerial()
    worker = make_worker(fake)
    worker.handle(Connect("/dev/ttyUSB0", 9600))
    assert fake.written == b"IN;\r\n"
    assert list(worker.events()) == [Connected(), Message("Vinyl cutter connected")]


def test_connect_failure_reports_error():
    def failing(port, baud):
        raise OSError("no such port")

    worker = VinylWorker(failing)
    worker.handle(Connect("/dev/missing", 9600))
    events = list(worker.events())
    assert len(events) == 1
    assert events[0].text.startswith("Connection error:")


def test_send_job_writes_trimmed_lines():
    fake = FakeSerial()
    worker = make_worker(fake)
    worker.handle(Connect("p", 9600))
    list(worker.events())
    worker.handle(SendJob([" PU0,0; ", "PD40,40;"]))
    assert fake.written == b"IN;\r\nPU0,0;\r\nPD40,40;\r\n"
    events = list(worker.events())
    progress = [e.percent for e in events if isinstance(e, JobProgress)]
    assert progress == sorted(progress) and progress[-1] == 100
    assert events[-1] == JobFinished(True)


def test_send_job_write_error():
    fake = FakeSerial(fail_writes=True)
    worker = make_worker(fake)
    worker.handle(Connect("p", 9600))
    list(worker.events())
    worker.handle(SendJob(["PU0,0;"]))
    events = list(worker.events())
    assert events[0].text.startswith("Send error:")
    assert events[1:] == [JobFinished(False), JobFinished(True)]


def test_job_without_connection_is_ignored():
    worker = make_worker(FakeSerial())
    worker.handle(SendJob(["PU0,0;"]))
    assert list(worker.events()) == []


def test_jog_is_ignored():
    fake = FakeSerial()
    worker = make_worker(fake)
    worker.handle(Connect("p", 9600))
    list(worker.events())
    worker.handle(Jog(1.0, 1.0, 100.0))
    assert fake.written == b"IN;\r\n"
    assert list(worker.events()) == []


def test_disconnect_closes_port():
    fake = FakeSerial()
    worker = make_worker(fake)
    worker.handle(Connect("p", 9600))
    list(worker.events())
    worker.handle(Disconnect())
    assert fake.closed
    assert list(worker.events()) == [Disconnected()]


def test_spawned_worker_runs_in_thread():
    fake = FakeSerial()
    worker = spawn(lambda port, baud: fake)
    worker.send(Connect("p", 9600))
    events = list(itertools.islice(worker.events(timeout=2.0), 2))
    worker.close()
    assert events == [Connected(), Message("Vinyl cutter connected")]
    assert fake.closed