"""Chunked upload of a single file.

A file is cut into fixed-size parts. Parts are POSTed concurrently to a
temporary upload session whose path is derived from (name, destination,
size); once every part is accepted the file is registered in one finalize
call and the session is discarded.
"""

import hashlib
import logging
import math
import mimetypes
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Callable, List, Optional

from tqdm import tqdm

from .api import DriveAPI, FilePayload, Part, PartResult
from .context import OperationContext
from .pacer import Pacer
from .sizes import format_bytes


class UploadIncompleteError(Exception):
    def __init__(self, name: str, collected: int, expected: int) -> None:
        self.name = name
        self.collected = collected
        self.expected = expected
        super().__init__(f"upload failed: {name}")


# ---------------------------------------------------------------------------
# Progress tracking
# ---------------------------------------------------------------------------

class ProgressSink:
    """Thread-safe byte counter, optionally mirrored to a tqdm bar."""

    def __init__(self, total: int, desc: str = "", enabled: bool = True) -> None:
        self.total = total
        self.count = 0
        self._lock = threading.Lock()
        self._bar = (
            tqdm(
                total=total,
                desc=desc,
                unit="B",
                unit_scale=True,
                unit_divisor=1024,
                leave=False,
            )
            if enabled
            else None
        )

    def add(self, n: int) -> None:
        if n <= 0:
            return
        with self._lock:
            self.count += n
            if self._bar is not None:
                self._bar.update(n)

    def close(self) -> None:
        if self._bar is not None:
            self._bar.close()


class CountingReader:
    """Reports every read to *report* before handing the bytes on."""

    def __init__(self, fh: BinaryIO, report: Callable[[int], None]) -> None:
        self._fh = fh
        self._report = report

    def read(self, size: int = -1) -> bytes:
        data = self._fh.read(size)
        self._report(len(data))
        return data


class LimitedReader:
    """Yields at most *limit* bytes from *reader*."""

    def __init__(self, reader, limit: int) -> None:
        self._reader = reader
        self._limit = limit
        self._remaining = limit

    def __len__(self) -> int:
        return self._limit

    def read(self, size: int = -1) -> bytes:
        if self._remaining <= 0:
            return b""
        if size is None or size < 0 or size > self._remaining:
            size = self._remaining
        data = self._reader.read(size)
        self._remaining -= len(data)
        return data


# ---------------------------------------------------------------------------
# Part planning
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PartTask:
    part_no: int
    start: int
    end: int
    name: str

    @property
    def length(self) -> int:
        return self.end - self.start


def session_fingerprint(file_name: str, dest_dir: str, file_size: int) -> str:
    return hashlib.md5(f"{file_name}:{dest_dir}:{file_size}".encode("utf-8")).hexdigest()


def count_parts(file_size: int, part_size: int) -> int:
    if part_size <= 0:
        raise ValueError("part_size must be positive")
    return max(1, math.ceil(file_size / part_size))


def part_name(file_name: str, part_no: int, total_parts: int) -> str:
    if total_parts == 1:
        return file_name
    return f"{file_name}.part.{part_no:03d}"


def plan_parts(file_name: str, file_size: int, part_size: int) -> List[PartTask]:
    total = count_parts(file_size, part_size)
    tasks = []
    for i in range(total):
        start = i * part_size
        end = min(start + part_size, file_size)
        tasks.append(PartTask(i + 1, start, end, part_name(file_name, i + 1, total)))
    return tasks


# ---------------------------------------------------------------------------
# Uploader core
# ---------------------------------------------------------------------------

class PartUploader:
    """Uploads one byte range as one part. Failures are logged and dropped."""

    def __init__(
        self,
        api: DriveAPI,
        logger: logging.Logger,
        channel_id: Optional[int] = None,
    ) -> None:
        self.api = api
        self.logger = logger
        self.channel_id = channel_id

    def upload(
        self,
        file_path: Path,
        task: PartTask,
        fingerprint: str,
        total_parts: int,
        progress: ProgressSink,
    ) -> Optional[PartResult]:
        try:
            with file_path.open("rb") as fh:
                fh.seek(task.start)
                reader = LimitedReader(CountingReader(fh, progress.add), task.length)
                status, result = self.api.upload_part(
                    fingerprint,
                    reader,
                    task.length,
                    file_name=task.name,
                    part_no=task.part_no,
                    total_parts=total_parts,
                    channel_id=self.channel_id,
                )
        except Exception as exc:
            self.logger.error(f"{task.name}: part {task.part_no}/{total_parts} failed — {exc}")
            return None

        if result is None:
            self.logger.error(
                f"{task.name}: part {task.part_no}/{total_parts} rejected with HTTP {status}"
            )
            return None

        self.logger.debug(
            f"{task.name}: part {task.part_no}/{total_parts} stored as id {result.part_id}"
        )
        return result


class FileUploader:
    """Runs one file through split, parallel upload, collect, finalize and cleanup."""

    def __init__(
        self,
        api: DriveAPI,
        pacer: Pacer,
        logger: logging.Logger,
        part_size: int,
        workers: int,
        channel_id: Optional[int] = None,
        show_progress: bool = True,
    ) -> None:
        if part_size <= 0:
            raise ValueError("part_size must be positive")
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self.api = api
        self.pacer = pacer
        self.logger = logger
        self.part_size = part_size
        self.workers = workers
        self.show_progress = show_progress
        self.part_uploader = PartUploader(api, logger, channel_id)

    def upload(self, ctx: OperationContext, file_path: Path, dest_dir: str) -> None:
        """Upload *file_path* into remote *dest_dir*.

        Raises the context error without sending anything if *ctx* is already
        done. Raises ``UploadIncompleteError`` when any part is missing; errors from
        the paced finalize call propagate. A failed session cleanup is only
        logged since the file is already registered by then.
        """
        file_size = file_path.stat().st_size
        file_name = file_path.name
        mime_type = detect_content_type(file_path)

        fingerprint = session_fingerprint(file_name, dest_dir, file_size)
        tasks = plan_parts(file_name, file_size, self.part_size)
        total = len(tasks)

        self.logger.info(
            f"File : {file_path}  ({format_bytes(file_size)})  →  {dest_dir}"
        )
        self.logger.debug(
            f"Session {fingerprint}  |  Parts: {total}  |  Threads: {self.workers}"
        )

        # a cancelled run must not open a new session
        ctx.check()
        results = self._upload_parts(file_path, tasks, fingerprint, file_size)

        if len(results) != total:
            self.logger.error(
                f"Incomplete: {total - len(results)} of {total} part(s) missing for {file_name}."
            )
            raise UploadIncompleteError(file_name, len(results), total)

        results.sort(key=lambda r: r.part_no)
        payload = FilePayload(
            name=file_name,
            mimeType=mime_type,
            path=dest_dir,
            size=file_size,
            parts=[Part(id=r.part_id, partNo=r.part_no) for r in results],
        )

        self.pacer.call(ctx, lambda: self.api.create_file(payload), label=f"finalize {file_name}")
        self.logger.info(f"Registered '{file_name}' in '{dest_dir}'.")

        try:
            self.pacer.call(
                ctx,
                lambda: self.api.delete_session(fingerprint),
                label=f"discard session {fingerprint}",
            )
        except Exception as exc:
            self.logger.warning(f"Could not discard upload session for {file_name}: {exc}")

    def _upload_parts(
        self,
        file_path: Path,
        tasks: List[PartTask],
        fingerprint: str,
        file_size: int,
    ) -> List[PartResult]:
        results: List[PartResult] = []
        progress = ProgressSink(file_size, desc=file_path.name, enabled=self.show_progress)
        t0 = time.monotonic()
        try:
            with ThreadPoolExecutor(max_workers=self.workers) as pool:
                futures = [
                    pool.submit(
                        self.part_uploader.upload,
                        file_path,
                        task,
                        fingerprint,
                        len(tasks),
                        progress,
                    )
                    for task in tasks
                ]
                for future in as_completed(futures):
                    result = future.result()
                    if result is not None:
                        results.append(result)
        finally:
            progress.close()

        elapsed = max(time.monotonic() - t0, 0.001)
        self.logger.debug(
            f"{file_path.name}: {len(results)}/{len(tasks)} part(s) in {elapsed:.1f}s "
            f"({format_bytes(int(progress.count / elapsed))}/s)"
        )
        return results


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_MAGIC = (
    (b"%PDF-", "application/pdf"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"PK\x03\x04", "application/zip"),
    (b"\x1f\x8b\x08", "application/x-gzip"),
    (b"Rar!\x1a\x07", "application/x-rar-compressed"),
    (b"7z\xbc\xaf\x27\x1c", "application/x-7z-compressed"),
    (b"OggS", "application/ogg"),
    (b"ID3", "audio/mpeg"),
    (b"\x1aE\xdf\xa3", "video/webm"),
)


def sniff_content_type(head: bytes) -> Optional[str]:
    """Guess a MIME type from the first bytes of a file, or None."""
    if not head:
        return None
    for magic, mime in _MAGIC:
        if head.startswith(magic):
            return mime
    if len(head) >= 12 and head[4:8] == b"ftyp":
        return "video/mp4"
    if head[:4] == b"RIFF" and head[8:12] == b"WAVE":
        return "audio/wave"
    if head[:4] == b"RIFF" and head[8:12] == b"WEBP":
        return "image/webp"
    if b"\x00" not in head:
        try:
            head.decode("utf-8")
        except UnicodeDecodeError:
            # a multi-byte sequence may be cut at the 512 byte boundary
            try:
                head[:-3].decode("utf-8")
            except UnicodeDecodeError:
                return None
        return "text/plain; charset=utf-8"
    return None


def detect_content_type(path: Path) -> str:
    with path.open("rb") as fh:
        head = fh.read(512)
    sniffed = sniff_content_type(head)
    if sniffed and not sniffed.startswith("text/plain"):
        return sniffed
    guessed, _ = mimetypes.guess_type(path.name)
    return guessed or sniffed or "application/octet-stream"
