"""API dependencies"""

from typing import Optional

from fastapi import Request

from instrument_status.core.broker import BrokerConnection
from instrument_status.services.apply_consumer import ApplyConsumer
from instrument_status.services.status_store import StatusStore


def get_store(request: Request) -> StatusStore:
    """Status store created by the application lifespan"""
    return request.app.state.store


def get_consumer(request: Request) -> Optional[ApplyConsumer]:
    """Running consumer, or None before startup completes"""
    return getattr(request.app.state, "consumer", None)


def get_broker(request: Request) -> Optional[BrokerConnection]:
    """Broker connection opened by the application lifespan"""
    return getattr(request.app.state, "broker", None)
