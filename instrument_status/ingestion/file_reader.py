"""Lock-tolerant file reads."""

from __future__ import annotations

import asyncio
from pathlib import Path

from instrument_status.core.errors import FileReadError
from instrument_status.core.logging import get_logger

log = get_logger("ingestion.file_reader")

DEFAULT_ATTEMPTS = 5
DEFAULT_BACKOFF_SECONDS = 0.1


def _read_text(path: Path) -> str:
    with path.open("r", encoding="utf-8-sig") as f:
        return f.read()


async def read_file_with_retry(
    path: Path,
    attempts: int = DEFAULT_ATTEMPTS,
    backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
) -> str:
    """Read ``path`` as UTF-8 (BOM tolerated), retrying OS-level failures such as a writer still holding a lock."""
    for attempt in range(1, attempts + 1):
        try:
            return await asyncio.to_thread(_read_text, path)
        except OSError as exc:
            log.debug(f"Read attempt {attempt}/{attempts} failed for {path}: {exc}")
            if attempt < attempts:
                await asyncio.sleep(backoff_seconds)
    raise FileReadError(path, attempts)
