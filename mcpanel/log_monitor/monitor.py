"""Incremental log tailing using watchfiles."""

import asyncio
import gzip
from pathlib import Path
from typing import Callable, List, Optional

import aiofiles
from aiofiles import os as aioos
from watchfiles import Change, awatch

from ..events.base import LogEvent
from ..logger import logger
from .parser import parse_line


def read_gzip_lines(path: Path) -> List[str]:
    """Decompress an archived log and split it into lines."""
    with gzip.open(path, "rt", encoding="utf-8", errors="replace") as f:
        return f.read().splitlines()


class LogTailer:
    """Tails the live server log and forwards classified events to a queue.

    The tailer owns the byte offset of the live file. Every wake-up, whether it
    comes from a filesystem notification or from polling, goes through
    read_delta(), which handles rotation and partial lines.
    """

    def __init__(
        self,
        log_path: Path,
        queue: "asyncio.Queue[LogEvent]",
        archive_glob: str = "*.log.gz",
        force_polling: bool = False,
        poll_interval_ms: int = 1000,
        classify: Callable[[str], Optional[LogEvent]] = parse_line,
    ):
        """Initialize log tailer.

        Args:
            log_path: Path to the live log file (typically logs/latest.log)
            queue: Queue receiving classified events
            archive_glob: Pattern of compressed archives next to the live log
            force_polling: Poll the directory instead of using notifications
            poll_interval_ms: Polling interval, also used while waiting for the file
            classify: Line classifier
        """
        self.log_path = Path(log_path)
        self.queue = queue
        self.archive_glob = archive_glob
        self.force_polling = force_polling
        self.poll_interval_ms = poll_interval_ms
        self.classify = classify

        self._offset = 0
        self._inode: Optional[int] = None
        self._history_imported = False

        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    @property
    def offset(self) -> int:
        return self._offset

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the tailing worker."""
        if self.running:
            logger.warning(f"Already tailing {self.log_path}")
            return

        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run())
        logger.info(f"Started tailing {self.log_path}")

    async def stop(self) -> None:
        """Stop the tailing worker and wait for it to exit."""
        self._stop_event.set()

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info(f"Stopped tailing {self.log_path}")

    async def import_history(self) -> int:
        """Import the live log from the start, then every compressed archive.

        Returns:
            Number of events forwarded
        """
        forwarded = 0

        if await aioos.path.exists(self.log_path):
            self._offset = 0
            self._inode = None
            forwarded += await self.read_delta()
            logger.info(
                f"Imported {self.log_path.name} up to offset {self._offset} ({forwarded} events)"
            )

        forwarded += await self._import_archives()
        self._history_imported = True
        return forwarded

    async def read_delta(self) -> int:
        """Read everything appended since the last call.

        Returns:
            Number of events forwarded
        """
        try:
            stat = await aioos.stat(self.log_path)
        except FileNotFoundError:
            return 0

        if self._inode is not None and stat.st_ino != self._inode:
            logger.info(f"Log file {self.log_path} was replaced, reading from beginning")
            self._offset = 0
        elif stat.st_size < self._offset:
            logger.info(f"Log file {self.log_path} was truncated, reading from beginning")
            self._offset = 0
        self._inode = stat.st_ino

        if stat.st_size == self._offset:
            return 0

        async with aiofiles.open(self.log_path, "rb") as f:
            await f.seek(self._offset)
            chunk = await f.read(stat.st_size - self._offset)

        # A trailing line without its terminator stays unread until the next call
        end = chunk.rfind(b"\n")
        if end < 0:
            return 0
        complete = chunk[: end + 1]
        self._offset += len(complete)

        return await self._forward(complete.decode("utf-8", errors="replace").splitlines())

    async def _import_archives(self) -> int:
        log_dir = self.log_path.parent
        if not await aioos.path.isdir(log_dir):
            return 0

        forwarded = 0
        for archive in sorted(log_dir.glob(self.archive_glob)):
            try:
                lines = await asyncio.to_thread(read_gzip_lines, archive)
            except (OSError, EOFError) as e:
                logger.warning(f"Skipping unreadable archive {archive.name}: {e}")
                continue

            count = await self._forward(lines)
            logger.info(f"Imported archive {archive.name} ({count} events)")
            forwarded += count

        return forwarded

    async def _forward(self, lines: List[str]) -> int:
        forwarded = 0
        for line in lines:
            if not line.strip():
                continue
            event = self.classify(line)
            if event is not None:
                await self.queue.put(event)
                forwarded += 1
        return forwarded

    async def _wait(self, seconds: float) -> bool:
        """Sleep unless stopped first. Returns True when stop was requested."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    async def _run(self) -> None:
        """Worker: history import once, then follow the live file."""
        poll_seconds = self.poll_interval_ms / 1000

        if not self._history_imported:
            try:
                await self.import_history()
            except Exception as e:
                logger.error(f"Historical log import failed: {e}", exc_info=True)
                self._history_imported = True

        # wait for the log file to be created
        while not await aioos.path.exists(self.log_path):
            if await self._wait(poll_seconds):
                return

        while not self._stop_event.is_set():
            # Catch up on anything written while no watcher was running
            await self._process_change()

            try:
                async for changes in awatch(
                    self.log_path.parent,
                    stop_event=self._stop_event,
                    recursive=False,
                    force_polling=self.force_polling,
                    poll_delay_ms=self.poll_interval_ms,
                ):
                    relevant = False
                    for change_type, changed_path in changes:
                        if Path(changed_path).name != self.log_path.name:
                            continue
                        if change_type == Change.deleted:
                            logger.info(f"Log file deleted: {self.log_path}")
                            continue
                        if change_type == Change.added:
                            logger.info(f"Log file created: {self.log_path}")
                            self._offset = 0
                        relevant = True

                    if relevant:
                        await self._process_change()

            except asyncio.CancelledError:
                logger.debug(f"Tail loop cancelled for {self.log_path}")
                raise
            except Exception as e:
                logger.error(f"Error watching {self.log_path}: {e}", exc_info=True)
                if await self._wait(poll_seconds):
                    return

    async def _process_change(self) -> None:
        try:
            await self.read_delta()
        except Exception as e:
            logger.error(
                f"Error reading log changes from {self.log_path}: {e}", exc_info=True
            )
