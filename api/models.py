"""
API request/response models for the FastAPI endpoint.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field


class SessionRequest(BaseModel):
    """Request body for triggering a trading session."""

    dry_run: bool = Field(default=False, description="Run the decision pipeline without trading")
    single_model: Optional[str] = Field(
        default=None,
        description="Only process participants of this model id (e.g. claude)",
    )


class ModelResultResponse(BaseModel):
    model_id: str
    model_name: str
    mode: str
    participant_id: Optional[int] = None
    success: bool
    sentiment: Optional[str] = None
    trades_executed: int = 0
    trades: list[dict[str, Any]] = Field(default_factory=list)
    tokens_used: int = 0
    latency_ms: int = 0
    error: Optional[str] = None


class SessionReportResponse(BaseModel):
    """Session report as returned by POST /session."""

    timestamp: str
    dry_run: bool = False
    market_hours: bool
    competition_active: bool
    models_processed: int
    trades_executed: int
    total_tokens_used: int
    results: list[ModelResultResponse] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = ""
    market_open: bool = False
    market_status: str = ""
    competition_active: bool = False
    num_participants: int = 0
    num_trades: int = 0


class ProviderTestRequest(BaseModel):
    model_id: Optional[str] = Field(
        default=None,
        description="Backend to test; omit to test every available backend",
    )


class ProviderTestResult(BaseModel):
    model_id: str
    name: str
    success: bool
    latency_ms: int = 0
    tokens_used: int = 0
    response_preview: str = ""
    error: Optional[str] = None


class SnapshotResponse(BaseModel):
    snapshot_date: str
    recorded: int
