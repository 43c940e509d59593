"""Applies broker status messages to the status store."""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Protocol

from instrument_status.core.errors import MessageDecodeError
from instrument_status.core.logging import get_logger
from instrument_status.schemas.message import decode_message
from instrument_status.services.status_store import StatusStore

log = get_logger("apply_consumer")

PAYLOAD_PREVIEW_CHARS = 2000


class IncomingMessage(Protocol):
    """The parts of an aio-pika delivery the consumer relies on."""

    body: bytes

    async def ack(self, multiple: bool = False) -> None: ...

    async def reject(self, requeue: bool = False) -> None: ...


@dataclass
class ConsumerStats:
    acked: int = 0
    rejected: int = 0
    in_flight: int = 0
    peak_in_flight: int = 0

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


def _preview(body: bytes) -> str:
    return body[:PAYLOAD_PREVIEW_CHARS].decode("utf-8", errors="replace")


class ApplyConsumer:
    """Consumes status messages with at most ``max_unacked`` deliveries in flight.

    A message is acknowledged only after every module update in it was
    upserted. Undecodable payloads and failed updates reject the message
    without requeue; updates applied before a failure stay committed.
    """

    def __init__(self, store: StatusStore, max_unacked: int = 10):
        self.store = store
        self.max_unacked = max_unacked
        self.stats = ConsumerStats()

        self._broker: Optional[Any] = None
        self._consumer_tag: Optional[str] = None
        self._idle = asyncio.Event()
        self._idle.set()

    async def start(self, broker) -> None:
        self._broker = broker
        self._consumer_tag = await broker.subscribe(self.handle, self.max_unacked)

    async def stop(self, timeout: float = 10.0) -> None:
        """Stop taking deliveries and wait up to ``timeout`` seconds for in-flight ones."""
        if self._broker is not None and self._consumer_tag is not None:
            try:
                await self._broker.unsubscribe(self._consumer_tag)
            except Exception as exc:  # noqa: BLE001
                log.warning(f"Error cancelling consumer {self._consumer_tag}: {exc}")
        self._consumer_tag = None

        try:
            await asyncio.wait_for(self._idle.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            log.warning(f"Abandoning {self.stats.in_flight} in-flight message(s) after {timeout}s")

    async def handle(self, message: IncomingMessage) -> bool:
        """Apply one delivery; returns True when it was acknowledged."""
        self._enter()
        try:
            return await self._apply(message)
        finally:
            self._leave()

    async def _apply(self, message: IncomingMessage) -> bool:
        try:
            decoded = decode_message(message.body)
        except MessageDecodeError as exc:
            log.error(f"Failed to process message: {exc} | payload={_preview(message.body)}")
            await self._reject(message)
            return False

        log.info(f"Received message PackageID={decoded.package_id} with {len(decoded.modules)} modules")
        applied = 0
        try:
            for update in decoded.modules:
                await asyncio.to_thread(self.store.upsert, update.module_category_id, update.module_state)
                applied += 1
        except Exception as exc:
            log.error(
                f"Failed to apply PackageID={decoded.package_id} after {applied}/{len(decoded.modules)} "
                f"updates: {exc} | payload={_preview(message.body)}"
            )
            await self._reject(message)
            return False

        await message.ack()
        self.stats.acked += 1
        return True

    async def _reject(self, message: IncomingMessage) -> None:
        await message.reject(requeue=False)
        self.stats.rejected += 1

    def _enter(self) -> None:
        self.stats.in_flight += 1
        self.stats.peak_in_flight = max(self.stats.peak_in_flight, self.stats.in_flight)
        self._idle.clear()

    def _leave(self) -> None:
        self.stats.in_flight -= 1
        if self.stats.in_flight == 0:
            self._idle.set()
