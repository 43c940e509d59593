"""Folder-polling ingest loop.

Every tick lists the watched folder and starts one task per file. Each task
reads the file, parses it, publishes the message and moves the file to the
processed or failed folder. Files whose task is still running are not picked
up again, and at most ``max_concurrent_files`` tasks do work at once.
"""

from __future__ import annotations

import asyncio
import enum
import errno
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol, Set

from instrument_status.core.config import Settings
from instrument_status.core.logging import get_logger
from instrument_status.ingestion.file_reader import read_file_with_retry
from instrument_status.ingestion.xml_parser import StatusXmlParser
from instrument_status.schemas.message import encode_message

log = get_logger("ingestion.watcher")


class Publisher(Protocol):
    async def publish(self, body: bytes) -> None: ...


class FileOutcome(str, enum.Enum):
    PROCESSED = "processed"
    FAILED = "failed"


@dataclass
class WatcherStats:
    processed: int = 0
    failed: int = 0


class FolderWatcher:
    """Turns files dropped into ``watch_folder`` into published status messages."""

    def __init__(
        self,
        watch_folder: Path,
        processed_folder: Path,
        failed_folder: Path,
        publisher: Publisher,
        parser: Optional[StatusXmlParser] = None,
        poll_interval_seconds: float = 1.0,
        max_concurrent_files: int = 8,
        read_attempts: int = 5,
        read_backoff_seconds: float = 0.1,
    ):
        self.watch_folder = Path(watch_folder)
        self.processed_folder = Path(processed_folder)
        self.failed_folder = Path(failed_folder)
        self.publisher = publisher
        self.parser = parser or StatusXmlParser()
        self.poll_interval_seconds = poll_interval_seconds
        self.read_attempts = read_attempts
        self.read_backoff_seconds = read_backoff_seconds
        self.stats = WatcherStats()

        self._slots = asyncio.Semaphore(max_concurrent_files)
        self._in_flight: Set[str] = set()
        self._tasks: Set[asyncio.Task] = set()

        for folder in (self.watch_folder, self.processed_folder, self.failed_folder):
            folder.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_settings(cls, settings: Settings, publisher: Publisher) -> "FolderWatcher":
        return cls(
            watch_folder=Path(settings.WATCH_FOLDER),
            processed_folder=Path(settings.WATCH_PROCESSED_FOLDER),
            failed_folder=Path(settings.WATCH_FAILED_FOLDER),
            publisher=publisher,
            parser=StatusXmlParser(randomize_states=settings.PARSER_RANDOMIZE_STATE),
            poll_interval_seconds=settings.poll_interval_seconds,
            max_concurrent_files=settings.WATCH_MAX_CONCURRENT_FILES,
            read_attempts=settings.FILE_READ_ATTEMPTS,
            read_backoff_seconds=settings.read_backoff_seconds,
        )

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    async def run(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Scan on a fixed interval until ``stop_event`` is set or the task is cancelled."""
        stop_event = stop_event or asyncio.Event()
        log.info(f"Folder watcher started. Watching folder: {self.watch_folder}")
        try:
            while not stop_event.is_set():
                try:
                    self.scan_once()
                except Exception as exc:
                    log.exception(f"Error while polling directory {self.watch_folder}: {exc}")

                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=self.poll_interval_seconds)
                except asyncio.TimeoutError:
                    pass
        except asyncio.CancelledError:
            log.info("Folder watcher cancelled")
            raise
        finally:
            await self.drain()
            log.info(f"Folder watcher stopped | processed={self.stats.processed} failed={self.stats.failed}")

    def scan_once(self) -> int:
        """Start a task for every file not already in flight; returns how many were started."""
        started = 0
        for path in sorted(p for p in self.watch_folder.iterdir() if p.is_file()):
            if path.name in self._in_flight:
                continue
            self._in_flight.add(path.name)
            task = asyncio.create_task(self._process_guarded(path), name=f"ingest:{path.name}")
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            started += 1
        if started:
            log.debug(f"Scan started {started} file task(s), {len(self._tasks)} in flight")
        return started

    async def drain(self) -> None:
        """Wait for every in-flight file task to finish."""
        if self._tasks:
            log.info(f"Waiting for {len(self._tasks)} in-flight file task(s)")
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def _process_guarded(self, path: Path) -> None:
        try:
            async with self._slots:
                await self.process_file(path)
        finally:
            self._in_flight.discard(path.name)

    async def process_file(self, path: Path) -> FileOutcome:
        log.info(f"Processing file {path}")
        try:
            content = await read_file_with_retry(
                path, attempts=self.read_attempts, backoff_seconds=self.read_backoff_seconds
            )
            message = self.parser.parse(content)
            if message is None:
                dest = self._move(path, self.failed_folder)
                log.warning(f"File {path} could not be parsed. Moved to {dest}")
                self.stats.failed += 1
                return FileOutcome.FAILED

            await self.publisher.publish(encode_message(message))
            dest = self._move(path, self.processed_folder)
            log.info(
                f"File {path} published (PackageID={message.package_id}, modules={len(message.modules)}) "
                f"and moved to {dest}"
            )
            self.stats.processed += 1
            return FileOutcome.PROCESSED
        except Exception as exc:
            log.exception(f"Error processing file {path}: {exc}")
            try:
                self._move(path, self.failed_folder)
            except Exception as move_exc:  # noqa: BLE001
                log.error(f"Could not move {path} to failed folder: {move_exc}")
            self.stats.failed += 1
            return FileOutcome.FAILED

    @staticmethod
    def _move(path: Path, folder: Path) -> Path:
        """Move ``path`` into ``folder``, overwriting a same-named file there."""
        dest = folder / path.name
        try:
            os.replace(path, dest)
        except OSError as exc:
            if exc.errno != errno.EXDEV:
                raise
            # Different filesystem: copy next to the target, swap it in, then drop the source
            partial = dest.with_name(f".{dest.name}.partial")
            shutil.copy2(path, partial)
            os.replace(partial, dest)
            path.unlink()
        return dest
