from pydantic import BaseModel


class ConsumerStatsOut(BaseModel):
    acked: int
    rejected: int
    in_flight: int
    peak_in_flight: int


class HealthResponse(BaseModel):
    database: str
    modules_tracked: int | None
    consumer: ConsumerStatsOut | None
