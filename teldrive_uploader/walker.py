import logging
import posixpath
from pathlib import Path
from typing import List, Optional, Set

from .api import DriveAPI, FileInfo
from .context import ContextError, OperationContext
from .pacer import Pacer
from .uploader import FileUploader


class WalkStats:
    def __init__(self) -> None:
        self.uploaded: List[str] = []
        self.skipped: List[str] = []
        self.failed: List[tuple] = []  # (remote path, reason)


class DirectoryWalker:
    """Mirrors a local directory tree under a remote directory.

    Files are uploaded one at a time; a file whose name already appears in
    the remote listing of its destination is skipped. A subdirectory that
    cannot be created or read is abandoned and its siblings carry on. When
    only the remote listing fails, that directory's files are left alone
    but its subdirectories are still walked. No new file is started once
    *ctx* is done.
    """

    def __init__(
        self,
        api: DriveAPI,
        pacer: Pacer,
        uploader: FileUploader,
        logger: logging.Logger,
    ) -> None:
        self.api = api
        self.pacer = pacer
        self.uploader = uploader
        self.logger = logger

    def list_remote(self, ctx: OperationContext, path: str) -> List[FileInfo]:
        entries: List[FileInfo] = []
        token = ""
        while True:
            page = self.pacer.call(
                ctx,
                lambda: self.api.list_page(path, token),
                label=f"list {path}",
            )
            entries.extend(FileInfo.from_json(item) for item in page.get("results") or [])
            token = page.get("nextPageToken") or ""
            if not token:
                return entries

    def make_dir(self, ctx: OperationContext, path: str) -> None:
        self.pacer.call(ctx, lambda: self.api.make_dir(path), label=f"mkdir {path}")

    def walk(
        self,
        ctx: OperationContext,
        source: Path,
        dest_dir: str,
        stats: Optional[WalkStats] = None,
    ) -> WalkStats:
        """Walk *source* into *dest_dir*, filling *stats* as files finish.

        Pass your own *stats* to keep the partial counts when a
        ``ContextError`` ends the walk early.
        """
        if stats is None:
            stats = WalkStats()
        self._walk(ctx, source, dest_dir, stats)
        return stats

    def _walk(self, ctx: OperationContext, source: Path, dest_dir: str, stats: WalkStats) -> None:
        try:
            entries = sorted(source.iterdir(), key=lambda p: p.name)
        except OSError as exc:
            self.logger.error(f"Cannot read directory {source}: {exc}")
            stats.failed.append((dest_dir, str(exc)))
            return

        files = [e for e in entries if not e.is_dir()]
        # None: listing failed, files here are left alone but subdirectories still run
        existing: Optional[Set[str]] = set()
        if files:
            try:
                existing = {info.name for info in self.list_remote(ctx, dest_dir)}
            except ContextError:
                raise
            except Exception as exc:
                self.logger.error(f"Cannot list remote directory {dest_dir}: {exc}")
                stats.failed.append((dest_dir, str(exc)))
                existing = None

        for entry in entries:
            if entry.is_dir():
                sub_dir = posixpath.join(dest_dir, entry.name)
                try:
                    self.make_dir(ctx, sub_dir)
                except ContextError:
                    raise
                except Exception as exc:
                    self.logger.error(f"Cannot create remote directory {sub_dir}: {exc}")
                    stats.failed.append((sub_dir, str(exc)))
                    continue
                self._walk(ctx, entry, sub_dir, stats)
                continue

            if existing is None:
                continue

            remote = posixpath.join(dest_dir, entry.name)
            if entry.name in existing:
                self.logger.info(f"Already exists, skipping: {remote}")
                stats.skipped.append(remote)
                continue

            ctx.check()
            try:
                self.uploader.upload(ctx, entry, dest_dir)
            except ContextError:
                raise
            except Exception as exc:
                self.logger.error(f"Upload failed for {entry} → {remote}: {exc}")
                stats.failed.append((remote, str(exc)))
                continue
            stats.uploaded.append(remote)
