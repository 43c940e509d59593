"""RabbitMQ connection lifecycle shared by the publish and consume paths."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional

import aio_pika
from aio_pika.abc import (
    AbstractChannel,
    AbstractExchange,
    AbstractIncomingMessage,
    AbstractQueue,
    AbstractRobustConnection,
)

from instrument_status.core.config import Settings
from instrument_status.core.errors import BrokerNotConnectedError
from instrument_status.core.logging import get_logger

log = get_logger("broker")

MessageHandler = Callable[[AbstractIncomingMessage], Awaitable[Any]]


class BrokerConnection:
    """One connection + channel per process, with the exchange/queue topology declared on connect.

    The exchange is a durable direct exchange bound to one durable queue by a
    fixed routing key. Declarations are idempotent, so either process may
    start first.
    """

    def __init__(self, url: str, exchange_name: str, queue_name: str, routing_key: str):
        self.url = url
        self.exchange_name = exchange_name
        self.queue_name = queue_name
        self.routing_key = routing_key

        self._connection: Optional[AbstractRobustConnection] = None
        self._channel: Optional[AbstractChannel] = None
        self._exchange: Optional[AbstractExchange] = None
        self._queue: Optional[AbstractQueue] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "BrokerConnection":
        return cls(
            url=settings.broker_url,
            exchange_name=settings.RABBITMQ_EXCHANGE,
            queue_name=settings.RABBITMQ_QUEUE,
            routing_key=settings.RABBITMQ_ROUTING_KEY,
        )

    @property
    def is_connected(self) -> bool:
        return self._channel is not None and not self._channel.is_closed

    async def connect(self) -> None:
        try:
            self._connection = await aio_pika.connect_robust(self.url)
            self._channel = await self._connection.channel()
            self._exchange = await self._channel.declare_exchange(
                self.exchange_name, aio_pika.ExchangeType.DIRECT, durable=True, auto_delete=False
            )
            self._queue = await self._channel.declare_queue(
                self.queue_name, durable=True, exclusive=False, auto_delete=False
            )
            await self._queue.bind(self._exchange, routing_key=self.routing_key)
        except Exception:
            log.exception("Couldn't connect to RabbitMQ")
            await self.close()
            raise

        log.info(
            f"Connected to RabbitMQ and bound queue {self.queue_name} to exchange "
            f"{self.exchange_name} with routing key {self.routing_key}"
        )

    async def publish(self, body: bytes, routing_key: Optional[str] = None) -> None:
        if self._exchange is None:
            raise BrokerNotConnectedError("publish() called before connect()")
        key = routing_key or self.routing_key
        message = aio_pika.Message(
            body,
            delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
            content_type="application/json",
            content_encoding="utf-8",
        )
        await self._exchange.publish(message, routing_key=key)
        log.info(f"Published message to exchange {self.exchange_name} routingKey {key}")

    async def subscribe(self, handler: MessageHandler, max_unacked: int) -> str:
        """Consume the queue with manual acks; the broker holds back deliveries beyond ``max_unacked``."""
        if self._channel is None or self._queue is None:
            raise BrokerNotConnectedError("subscribe() called before connect()")
        await self._channel.set_qos(prefetch_count=max_unacked)
        consumer_tag = await self._queue.consume(handler, no_ack=False)
        log.info(f"Consuming queue {self.queue_name} (prefetch={max_unacked}, tag={consumer_tag})")
        return consumer_tag

    async def unsubscribe(self, consumer_tag: str) -> None:
        if self._queue is None:
            return
        await self._queue.cancel(consumer_tag)
        log.info(f"Cancelled consumer {consumer_tag}")

    async def close(self) -> None:
        """Release channel and connection; errors during release are logged, never raised."""
        channel, connection = self._channel, self._connection
        self._channel = self._exchange = self._queue = None
        self._connection = None

        if channel is not None:
            try:
                await channel.close()
            except Exception as exc:  # noqa: BLE001
                log.warning(f"Error closing RabbitMQ channel: {exc}")
        if connection is not None:
            try:
                await connection.close()
            except Exception as exc:  # noqa: BLE001
                log.warning(f"Error closing RabbitMQ connection: {exc}")

    async def __aenter__(self) -> "BrokerConnection":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
