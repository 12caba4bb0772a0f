import hashlib
import logging
import threading
import time

import pytest
import requests

from teldrive_uploader.api import PartResult
from teldrive_uploader.context import OperationContext
from teldrive_uploader.pacer import Pacer
from teldrive_uploader.transport import ApiError
from teldrive_uploader.uploader import FileUploader


def make_response(status: int, body: bytes = b"") -> requests.Response:
    resp = requests.Response()
    resp.status_code = status
    resp._content = body
    resp.reason = "Test"
    return resp


def api_error(status: int, body: bytes = b"{}") -> ApiError:
    return ApiError(make_response(status, body))


class RecordingContext(OperationContext):
    """Context whose backoff sleeps are recorded instead of slept."""

    def __init__(self, timeout=None) -> None:
        super().__init__(timeout)
        self.sleeps = []

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.check()


class FakeDriveAPI:
    """In-memory stand-in for DriveAPI recording every call in order."""

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.calls = []
        self.parts = []
        self.payloads = []
        self.remote = {}
        self.page_size = 500
        self.fail_parts = set()
        self.reject_parts = set()
        self.part_delays = {}
        self.mkdir_errors = {}
        self.list_errors = {}
        self.create_errors = []
        self.delete_errors = []
        self.next_part_id = 100
        self.part_delay = 0.0
        self.in_flight = 0
        self.peak_in_flight = 0

    def _record(self, *call):
        with self.lock:
            self.calls.append(call)

    def ops(self, name):
        return [c for c in self.calls if c[0] == name]

    def make_dir(self, path):
        self._record("make_dir", path)
        if path in self.mkdir_errors:
            raise self.mkdir_errors[path]
        self.remote.setdefault(path, [])

    def list_page(self, path, page_token=""):
        self._record("list_page", path, page_token)
        if path in self.list_errors:
            raise self.list_errors[path]
        names = sorted(self.remote.get(path, []))
        start = int(page_token or 0)
        chunk = names[start:start + self.page_size]
        nxt = start + self.page_size
        return {
            "results": [{"id": f"id-{n}", "name": n, "type": "file"} for n in chunk],
            "nextPageToken": str(nxt) if nxt < len(names) else "",
        }

    def upload_part(self, fingerprint, reader, length, file_name, part_no, total_parts, channel_id=None):
        with self.lock:
            self.in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            return self._upload_part(fingerprint, reader, file_name, part_no, total_parts, channel_id)
        finally:
            with self.lock:
                self.in_flight -= 1

    def _upload_part(self, fingerprint, reader, file_name, part_no, total_parts, channel_id):
        delay = self.part_delays.get(part_no, self.part_delay)
        if delay:
            time.sleep(delay)
        data = reader.read()
        self._record("upload_part", fingerprint, file_name, part_no, total_parts, channel_id)
        if (file_name, part_no) in self.fail_parts or part_no in self.fail_parts:
            raise requests.ConnectionError("connection reset")
        if part_no in self.reject_parts:
            return 500, None
        with self.lock:
            self.parts.append((fingerprint, file_name, part_no, data))
            part_id = self.next_part_id + part_no
        return 200, PartResult(
            part_id=part_id,
            part_no=part_no,
            size=len(data),
            channel_id=channel_id,
            name=file_name,
            total_parts=total_parts,
        )

    def create_file(self, payload):
        self._record("create_file", payload.name, payload.path)
        if self.create_errors:
            raise self.create_errors.pop(0)
        self.payloads.append(payload)
        self.remote.setdefault(payload.path, []).append(payload.name)

    def delete_session(self, fingerprint):
        self._record("delete_session", fingerprint)
        if self.delete_errors:
            raise self.delete_errors.pop(0)


@pytest.fixture
def logger():
    log = logging.getLogger("tests.uploader")
    log.setLevel(logging.DEBUG)
    return log


@pytest.fixture
def fake_api():
    return FakeDriveAPI()


@pytest.fixture
def pacer(logger):
    return Pacer(logger, min_sleep=0.001, max_sleep=0.01)


@pytest.fixture
def ctx():
    return OperationContext()


@pytest.fixture
def make_uploader(fake_api, pacer, logger):
    def _make(part_size=1000, workers=4, channel_id=None):
        return FileUploader(
            fake_api,
            pacer,
            logger,
            part_size=part_size,
            workers=workers,
            channel_id=channel_id,
            show_progress=False,
        )

    return _make


@pytest.fixture
def make_file(tmp_path):
    def _make(name, size=0, content=None, directory=None):
        base = directory or tmp_path
        base.mkdir(parents=True, exist_ok=True)
        path = base / name
        if content is None:
            content = bytes((i * 7) % 251 for i in range(size))
        path.write_bytes(content)
        return path

    return _make


def fingerprint(name, dest, size):
    return hashlib.md5(f"{name}:{dest}:{size}".encode()).hexdigest()
