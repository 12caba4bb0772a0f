"""
Command-line entry point.

Usage:
    teldrive-upload --path <file_or_directory> --dest <remote_directory>

Environment (``upload.env`` or the process environment):
    API_URL, SESSION_TOKEN       required
    PART_SIZE                    e.g. "500MB", default "1GB"
    WORKERS                      concurrent part uploads per file, default 4
    CHANNEL_ID                   optional storage channel
    LOG_PATH                     log directory or file, default ./logs
    LOG_LEVEL                    console level, default INFO
"""

import argparse
import signal
import sys
from pathlib import Path
from typing import List, Optional

from .api import DriveAPI
from .config import DEFAULT_ENV_FILE, SESSION_COOKIE, Config
from .context import ContextError, OperationContext
from .log import build_logger, resolve_log_file
from .pacer import Pacer
from .sizes import format_bytes
from .transport import RestClient
from .uploader import FileUploader, count_parts
from .walker import DirectoryWalker, WalkStats


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="teldrive-upload",
        description=(
            "Upload a file or an entire directory tree to a drive backend "
            "with chunked, parallel part transfers."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  teldrive-upload --path movie.mkv --dest /videos\n"
            "  teldrive-upload --path ./exports --dest /backups/exports\n"
            "  teldrive-upload --path ./exports --dest /backups --dry-run\n"
        ),
    )
    parser.add_argument("--path", required=True, help="File or directory path to upload.")
    parser.add_argument("--dest", required=True, help="Remote directory for uploaded files.")
    parser.add_argument(
        "--env-file",
        default=DEFAULT_ENV_FILE,
        metavar="FILE",
        help=f"Environment file to load (default: {DEFAULT_ENV_FILE}).",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        metavar="SECONDS",
        help="Give up retrying control-plane calls after this many seconds.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List the files that would be uploaded, without uploading.",
    )
    return parser.parse_args(argv)


def _collect_files(root: Path) -> List[Path]:
    return sorted(f for f in root.rglob("*") if f.is_file())


def build_client(cfg: Config) -> RestClient:
    client = RestClient(cfg.api_url, timeout=cfg.http_timeout)
    client.set_cookie(SESSION_COOKIE, cfg.session_token)
    return client


def main(argv: Optional[List[str]] = None) -> None:
    args = _parse_args(argv)

    try:
        cfg = Config(env_file=args.env_file)
    except KeyError as exc:
        print(
            f"ERROR: {exc.args[0]} not set. Add it to {args.env_file} or the environment.",
            file=sys.stderr,
        )
        sys.exit(1)
    except ValueError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        sys.exit(1)

    logger = build_logger(resolve_log_file(cfg.log_path, Path.cwd()), cfg.log_level)

    source = Path(args.path).expanduser()
    if not source.exists():
        logger.error(f"Path not found: {source}")
        sys.exit(1)

    dest = args.dest if args.dest.startswith("/") else "/" + args.dest

    logger.info(f"Source    : {source}")
    logger.info(f"Dest      : {dest}")
    logger.info(
        f"Part size : {format_bytes(cfg.part_size)}  |  Threads: {cfg.workers}"
    )

    if args.dry_run:
        files = [source] if source.is_file() else _collect_files(source)
        logger.info("[DRY RUN] Files that would be uploaded:")
        for fp in files:
            size = fp.stat().st_size
            logger.info(
                f"  {size:>14,} bytes  {count_parts(size, cfg.part_size):>4} part(s)  {fp}"
            )
        logger.info("[DRY RUN] No files were uploaded.")
        return

    ctx = OperationContext(timeout=args.timeout)

    def _handle_interrupt(signum, frame):
        logger.warning("Interrupt received. Letting running parts finish, then stopping...")
        ctx.cancel()

    signal.signal(signal.SIGINT, _handle_interrupt)
    signal.signal(signal.SIGTERM, _handle_interrupt)

    api = DriveAPI(build_client(cfg))
    pacer = Pacer(logger, min_sleep=cfg.pacer_min_sleep, max_sleep=cfg.pacer_max_sleep)
    uploader = FileUploader(
        api,
        pacer,
        logger,
        part_size=cfg.part_size,
        workers=cfg.workers,
        channel_id=cfg.channel_id,
    )
    walker = DirectoryWalker(api, pacer, uploader, logger)

    try:
        walker.make_dir(ctx, dest)
    except Exception as exc:
        logger.error(f"Cannot create remote directory {dest}: {exc}")
        return

    stats = WalkStats()
    try:
        if source.is_dir():
            walker.walk(ctx, source, dest, stats)
        else:
            try:
                uploader.upload(ctx, source, dest)
                stats.uploaded.append(f"{dest.rstrip('/')}/{source.name}")
            except ContextError:
                raise
            except Exception as exc:
                logger.error(f"Error uploading file {source}: {exc}")
                stats.failed.append((source.name, str(exc)))
    except ContextError as exc:
        logger.error(f"Stopped: {exc}")

    logger.info("=" * 60)
    logger.info(
        f"  Summary: {len(stats.uploaded)} uploaded, {len(stats.skipped)} skipped, "
        f"{len(stats.failed)} failed"
    )
    for remote, reason in stats.failed:
        logger.warning(f"    - {remote}  ({reason})")
    logger.info("=" * 60)

    print("Uploads complete!")
