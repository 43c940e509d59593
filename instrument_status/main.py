"""Processor service: applies status messages from RabbitMQ to the status store."""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from instrument_status.api.routes import health
from instrument_status.core.broker import BrokerConnection
from instrument_status.core.config import settings
from instrument_status.core.db import engine
from instrument_status.core.logging import get_logger
from instrument_status.services.apply_consumer import ApplyConsumer
from instrument_status.services.status_store import StatusStore

log = get_logger("processor")


@asynccontextmanager
async def lifespan(app: FastAPI):
    log.info(f"Starting processor in {settings.ENV.upper()} mode")

    # Startup: the store must be ready before any delivery is accepted
    store = StatusStore(engine)
    try:
        store.initialize()
    except Exception:
        log.exception("Failed to initialize status store on startup")
        raise
    app.state.store = store

    broker = BrokerConnection.from_settings(settings)
    await broker.connect()

    consumer = ApplyConsumer(store, max_unacked=settings.RABBITMQ_PREFETCH)
    try:
        await consumer.start(broker)
    except Exception:
        log.exception("Failed to start consumer")
        await broker.close()
        raise
    app.state.broker = broker
    app.state.consumer = consumer

    yield

    # Shutdown
    log.info("Shutting down processor...")
    await consumer.stop(timeout=settings.CONSUMER_SHUTDOWN_TIMEOUT_SECONDS)
    await broker.close()
    engine.dispose()
    log.info(f"Processor shutdown complete | acked={consumer.stats.acked} rejected={consumer.stats.rejected}")


app = FastAPI(
    title="Instrument Status Processor",
    description="Applies instrument module status messages to the latest-state store",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.docs_enabled else None,
    redoc_url="/redoc" if settings.docs_enabled else None,
    openapi_url="/openapi.json" if settings.docs_enabled else None,
    debug=settings.debug_enabled,
)


app.include_router(health.router)
