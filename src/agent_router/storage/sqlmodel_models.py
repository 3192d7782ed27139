"""SQLModel ORM tables for persisted router metrics."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, Index
from sqlmodel import Field, SQLModel


class MetricsRecordRow(SQLModel, table=True):
    __tablename__ = "metrics_records"  # type: ignore[bad-override]
    __table_args__ = (Index("ix_metrics_records_agent_timestamp", "agent_id", "timestamp"),)

    record_id: int | None = Field(default=None, primary_key=True)
    task_id: str = Field(index=True)
    agent_id: str
    cost_usd: float = 0.0
    duration_ms: int = 0
    success: bool = False
    timestamp: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    error_kind: str | None = None


class RoutingDecisionRow(SQLModel, table=True):
    __tablename__ = "routing_decisions"  # type: ignore[bad-override]

    decision_id: int | None = Field(default=None, primary_key=True)
    task_id: str = Field(index=True)
    task_summary: str = ""
    primary_agent: str
    tier: str
    expected_cost_usd: float = 0.0
    fallbacks: str = ""
    reasoning: str = ""
    timestamp: datetime = Field(
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )
