"""Folder watcher tests"""

import asyncio
import errno
import os

import pytest

from instrument_status.ingestion import file_reader
from instrument_status.ingestion.watcher import FileOutcome, FolderWatcher
from instrument_status.schemas.message import decode_message
from instrument_status.tests.fakes import status_xml


class BlockingPublisher:
    """Publisher that holds every publish until released and tracks concurrency"""

    def __init__(self):
        self.release = asyncio.Event()
        self.published = []
        self.active = 0
        self.peak = 0

    async def publish(self, body: bytes) -> None:
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await self.release.wait()
            self.published.append(body)
        finally:
            self.active -= 1


def _watcher(folders, publisher, **kwargs):
    kwargs.setdefault("read_backoff_seconds", 0)
    return FolderWatcher(publisher=publisher, **folders, **kwargs)


class TestProcessFile:
    """Test the per-file unit of work"""

    @pytest.mark.asyncio
    async def test_valid_file_published_and_processed(self, folders, broker):
        """N device statuses → one message with N updates, file moved to processed"""
        watcher = _watcher(folders, broker)
        path = folders["watch_folder"] / "status_001.xml"
        path.write_text(status_xml("PKG1", [("M1", "Online"), ("M2", "Run"), ("M3", "Offline")]), encoding="utf-8")

        outcome = await watcher.process_file(path)

        assert outcome is FileOutcome.PROCESSED
        assert len(broker.published) == 1
        message = decode_message(broker.published[0])
        assert message.package_id == "PKG1"
        assert [m.module_category_id for m in message.modules] == ["M1", "M2", "M3"]
        assert not path.exists()
        assert (folders["processed_folder"] / "status_001.xml").exists()
        assert watcher.stats.processed == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", ["", "<InstrumentStatus><PackageID>PKG1"])
    async def test_malformed_file_moved_to_failed(self, folders, broker, content):
        """Unparseable files publish nothing and land in the failed folder"""
        watcher = _watcher(folders, broker)
        path = folders["watch_folder"] / "bad.xml"
        path.write_text(content, encoding="utf-8")

        outcome = await watcher.process_file(path)

        assert outcome is FileOutcome.FAILED
        assert broker.published == []
        assert (folders["failed_folder"] / "bad.xml").exists()
        assert not (folders["processed_folder"] / "bad.xml").exists()

    @pytest.mark.asyncio
    async def test_publish_failure_moves_to_failed(self, folders, broker):
        """Broker errors route the file to the failed folder"""
        broker.publish_error = ConnectionError("broker unreachable")
        watcher = _watcher(folders, broker)
        path = folders["watch_folder"] / "status.xml"
        path.write_text(status_xml(), encoding="utf-8")

        outcome = await watcher.process_file(path)

        assert outcome is FileOutcome.FAILED
        assert (folders["failed_folder"] / "status.xml").exists()

    @pytest.mark.asyncio
    async def test_read_exhaustion_moves_to_failed(self, folders, broker, monkeypatch):
        def locked_read(path):
            raise PermissionError("locked")

        monkeypatch.setattr(file_reader, "_read_text", locked_read)
        watcher = _watcher(folders, broker)
        path = folders["watch_folder"] / "locked.xml"
        path.write_text(status_xml(), encoding="utf-8")

        assert await watcher.process_file(path) is FileOutcome.FAILED
        assert broker.published == []
        assert (folders["failed_folder"] / "locked.xml").exists()

    @pytest.mark.asyncio
    async def test_failed_move_is_swallowed(self, folders, broker):
        """A move that fails after a processing error does not raise"""
        broker.publish_error = ConnectionError("broker unreachable")
        watcher = _watcher(folders, broker)
        folders["failed_folder"].rmdir()
        path = folders["watch_folder"] / "status.xml"
        path.write_text(status_xml(), encoding="utf-8")

        assert await watcher.process_file(path) is FileOutcome.FAILED
        assert path.exists()

    @pytest.mark.asyncio
    async def test_processed_file_overwrites_existing(self, folders, broker):
        watcher = _watcher(folders, broker)
        (folders["processed_folder"] / "status.xml").write_text("old", encoding="utf-8")
        path = folders["watch_folder"] / "status.xml"
        path.write_text(status_xml("PKG2"), encoding="utf-8")

        await watcher.process_file(path)

        assert "PKG2" in (folders["processed_folder"] / "status.xml").read_text(encoding="utf-8")


    @pytest.mark.asyncio
    async def test_move_across_filesystems(self, folders, broker, monkeypatch):
        """Renames that fail with EXDEV fall back to copy + unlink, once per file"""
        real_replace = os.replace
        watch_folder = folders["watch_folder"]

        def cross_device_replace(src, dst):
            if os.path.dirname(os.fspath(src)) == os.fspath(watch_folder):
                raise OSError(errno.EXDEV, "Invalid cross-device link")
            return real_replace(src, dst)

        monkeypatch.setattr(os, "replace", cross_device_replace)
        watcher = _watcher(folders, broker)
        (folders["processed_folder"] / "status.xml").write_text("old", encoding="utf-8")
        (watch_folder / "status.xml").write_text(status_xml("PKG7"), encoding="utf-8")

        for _ in range(3):
            watcher.scan_once()
            await watcher.drain()

        assert len(broker.published) == 1
        assert list(watch_folder.iterdir()) == []
        assert [p.name for p in folders["processed_folder"].iterdir()] == ["status.xml"]
        assert "PKG7" in (folders["processed_folder"] / "status.xml").read_text(encoding="utf-8")
        assert watcher.stats.processed == 1
        assert watcher.stats.failed == 0

    @pytest.mark.asyncio
    async def test_other_move_errors_propagate_to_failed_routing(self, folders, broker, monkeypatch):
        def denied_replace(src, dst):
            raise PermissionError(errno.EACCES, "Permission denied")

        monkeypatch.setattr(os, "replace", denied_replace)
        watcher = _watcher(folders, broker)
        path = folders["watch_folder"] / "status.xml"
        path.write_text(status_xml(), encoding="utf-8")

        assert await watcher.process_file(path) is FileOutcome.FAILED
        assert path.exists()
        assert list(folders["failed_folder"].iterdir()) == []


class TestScanning:
    """Test the scan loop and per-file fan-out"""

    @pytest.mark.asyncio
    async def test_scan_spawns_one_task_per_file(self, folders, broker):
        watcher = _watcher(folders, broker)
        for i in range(3):
            (folders["watch_folder"] / f"status_{i}.xml").write_text(status_xml(f"PKG{i}"), encoding="utf-8")
        (folders["watch_folder"] / "nested").mkdir()

        assert watcher.scan_once() == 3
        await watcher.drain()

        assert len(broker.published) == 3
        assert sorted(p.name for p in folders["processed_folder"].iterdir()) == [
            "status_0.xml",
            "status_1.xml",
            "status_2.xml",
        ]

    @pytest.mark.asyncio
    async def test_in_flight_file_not_rescanned(self, folders):
        """A file still being processed is not triggered again on the next tick"""
        publisher = BlockingPublisher()
        watcher = _watcher(folders, publisher)
        (folders["watch_folder"] / "slow.xml").write_text(status_xml(), encoding="utf-8")

        assert watcher.scan_once() == 1
        await asyncio.sleep(0.05)
        assert watcher.scan_once() == 0
        assert watcher.in_flight == 1

        publisher.release.set()
        await watcher.drain()

        assert len(publisher.published) == 1
        assert watcher.in_flight == 0
        assert watcher.scan_once() == 0

    @pytest.mark.asyncio
    async def test_concurrent_file_tasks_are_bounded(self, folders):
        publisher = BlockingPublisher()
        watcher = _watcher(folders, publisher, max_concurrent_files=2)
        for i in range(6):
            (folders["watch_folder"] / f"status_{i}.xml").write_text(status_xml(f"PKG{i}"), encoding="utf-8")

        assert watcher.scan_once() == 6
        await asyncio.sleep(0.1)
        assert publisher.active == 2

        publisher.release.set()
        await watcher.drain()

        assert publisher.peak == 2
        assert len(publisher.published) == 6
        assert watcher.stats.processed == 6

    @pytest.mark.asyncio
    async def test_run_until_stopped(self, folders, broker):
        """The loop picks up new files each tick and drains on stop"""
        watcher = _watcher(folders, broker, poll_interval_seconds=0.01)
        stop = asyncio.Event()
        task = asyncio.create_task(watcher.run(stop))

        (folders["watch_folder"] / "late.xml").write_text(status_xml("LATE"), encoding="utf-8")
        for _ in range(200):
            if (folders["processed_folder"] / "late.xml").exists():
                break
            await asyncio.sleep(0.01)

        stop.set()
        await asyncio.wait_for(task, timeout=2)

        assert (folders["processed_folder"] / "late.xml").exists()
        assert decode_message(broker.published[0]).package_id == "LATE"

    @pytest.mark.asyncio
    async def test_run_survives_scan_errors(self, folders, broker, monkeypatch):
        watcher = _watcher(folders, broker, poll_interval_seconds=0.01)
        calls = []

        def failing_scan():
            calls.append(1)
            raise OSError("watch folder unavailable")

        monkeypatch.setattr(watcher, "scan_once", failing_scan)
        stop = asyncio.Event()
        task = asyncio.create_task(watcher.run(stop))
        await asyncio.sleep(0.1)
        stop.set()
        await asyncio.wait_for(task, timeout=2)

        assert len(calls) > 1
