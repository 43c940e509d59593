# Services package
from instrument_status.services.apply_consumer import ApplyConsumer, ConsumerStats
from instrument_status.services.status_store import StatusStore

__all__ = [
    "ApplyConsumer",
    "ConsumerStats",
    "StatusStore",
]
