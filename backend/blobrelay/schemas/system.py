"""System status schemas."""

from datetime import datetime

from pydantic import BaseModel


class HealthResponse(BaseModel):
    """Liveness check response."""
    status: str = "ok"
    version: str
    service: str = "blobrelay"


class BackendNodeStatus(BaseModel):
    """Health of one backend node. Credentials are never included."""
    id: str
    name: str
    active: bool
    consecutive_failures: int = 0
    total_failures: int = 0
    rate_limit_hits: int = 0
    last_failure_at: datetime | None = None
    last_failure_reason: str | None = None


class BackendPoolStatus(BaseModel):
    is_available: bool
    total_nodes: int
    active_nodes: int
    nodes: list[BackendNodeStatus] = []
