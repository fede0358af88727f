from typing import Literal

from pydantic import BaseModel

CompletionMode = Literal["push", "pull"]


class HealthResponse(BaseModel):
    status: Literal["ok"]


class ReadinessDependency(BaseModel):
    name: str
    status: Literal["ok", "error"]


class ReadinessResponse(BaseModel):
    status: Literal["ok", "degraded"]
    completion_mode: CompletionMode
    dependencies: list[ReadinessDependency]


class TimingStats(BaseModel):
    count: int
    avg_s: float
    max_s: float


class MetricsResponse(BaseModel):
    counters: dict[str, int]
    timings: dict[str, TimingStats]
