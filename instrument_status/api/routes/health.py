"""Health routes - System health and readiness checks."""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Response

from instrument_status.api.deps import get_broker, get_consumer, get_store
from instrument_status.core.broker import BrokerConnection
from instrument_status.schemas.api import ConsumerStatsOut, HealthResponse
from instrument_status.services.apply_consumer import ApplyConsumer
from instrument_status.services.status_store import StatusStore

router = APIRouter(prefix="/health", tags=["health"])


@router.get("", response_model=HealthResponse)
def health(
    response: Response,
    store: StatusStore = Depends(get_store),
    consumer: Optional[ApplyConsumer] = Depends(get_consumer),
):
    """
    Health check endpoint for container health checks.

    Checks status store connectivity and reports consumer counters.
    Returns 503 if the store is unreachable.
    """
    if store.ping():
        db_status = "ok"
        modules_tracked = store.count()
    else:
        db_status = "down"
        modules_tracked = None
        response.status_code = 503

    return HealthResponse(
        database=db_status,
        modules_tracked=modules_tracked,
        consumer=ConsumerStatsOut(**consumer.stats.as_dict()) if consumer else None,
    )


@router.get("/ready")
def readiness(
    response: Response,
    store: StatusStore = Depends(get_store),
    consumer: Optional[ApplyConsumer] = Depends(get_consumer),
    broker: Optional[BrokerConnection] = Depends(get_broker),
):
    """
    Readiness check: ready once the store answers, the broker channel is open
    and the consumer is subscribed.

    Returns 200 if ready, 503 otherwise.
    """
    timestamp = datetime.now(timezone.utc).isoformat()
    if not store.ping():
        response.status_code = 503
        return {"status": "not_ready", "error": "status store unreachable", "timestamp": timestamp}
    if broker is None or not broker.is_connected:
        response.status_code = 503
        return {"status": "not_ready", "error": "broker not connected", "timestamp": timestamp}
    if consumer is None:
        response.status_code = 503
        return {"status": "not_ready", "error": "consumer not started", "timestamp": timestamp}
    return {"status": "ready", "timestamp": timestamp}
