"""SQLite persistence for the metrics feed."""

from __future__ import annotations

from datetime import UTC, date, datetime, time, timedelta
from pathlib import Path

from sqlalchemy import func
from sqlmodel import Session, SQLModel, col, select

from agent_router.router.models import ErrorKind, MetricsRecord, RoutingDecision, Tier
from agent_router.storage.common import build_sqlite_engine, ensure_utc
from agent_router.storage.sqlmodel_models import MetricsRecordRow, RoutingDecisionRow


class MetricsRepository:
    """Append-only metrics persistence backed by SQLModel + SQLite.

    Implements the metrics sink protocol so a `MetricsStore` can write
    through to disk, and lets a fresh process restore today's spend.
    """

    def __init__(self, db_path: Path, *, busy_timeout_ms: int = 5000) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=busy_timeout_ms)

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        SQLModel.metadata.create_all(
            self.engine,
            tables=[
                MetricsRecordRow.__table__,  # type: ignore[attr-defined]
                RoutingDecisionRow.__table__,  # type: ignore[attr-defined]
            ],
        )

    def append(self, record: MetricsRecord) -> None:
        with Session(self.engine) as session:
            session.add(
                MetricsRecordRow(
                    task_id=record.task_id,
                    agent_id=record.agent_id,
                    cost_usd=record.cost_usd,
                    duration_ms=record.duration_ms,
                    success=record.success,
                    timestamp=record.timestamp,
                    error_kind=record.error_kind.value if record.error_kind else None,
                ),
            )
            session.commit()

    def append_decision(self, decision: RoutingDecision) -> None:
        with Session(self.engine) as session:
            session.add(
                RoutingDecisionRow(
                    task_id=decision.task_id,
                    task_summary=decision.task_summary,
                    primary_agent=decision.primary_agent,
                    tier=decision.tier.value,
                    expected_cost_usd=decision.expected_cost_usd,
                    fallbacks=",".join(decision.fallbacks),
                    reasoning=decision.reasoning,
                    timestamp=decision.timestamp,
                ),
            )
            session.commit()

    def list_records(
        self,
        *,
        since: datetime | None = None,
        agent_id: str | None = None,
        limit: int | None = None,
    ) -> list[MetricsRecord]:
        """Records in append order, optionally filtered."""

        statement = select(MetricsRecordRow).order_by(col(MetricsRecordRow.record_id))
        if since is not None:
            statement = statement.where(col(MetricsRecordRow.timestamp) >= since)
        if agent_id is not None:
            statement = statement.where(MetricsRecordRow.agent_id == agent_id)
        if limit is not None:
            statement = statement.limit(limit)
        with Session(self.engine) as session:
            rows = session.exec(statement).all()
        return [_to_record(row) for row in rows]

    def list_decisions(self, *, since: datetime | None = None) -> list[RoutingDecision]:
        statement = select(RoutingDecisionRow).order_by(col(RoutingDecisionRow.decision_id))
        if since is not None:
            statement = statement.where(col(RoutingDecisionRow.timestamp) >= since)
        with Session(self.engine) as session:
            rows = session.exec(statement).all()
        return [_to_decision(row) for row in rows]

    def spent_on(self, day: date) -> float:
        """Total successful spend recorded on one UTC day."""

        start = datetime.combine(day, time.min, tzinfo=UTC)
        end = start + timedelta(days=1)
        statement = select(func.coalesce(func.sum(MetricsRecordRow.cost_usd), 0.0)).where(
            col(MetricsRecordRow.success).is_(True),
            col(MetricsRecordRow.timestamp) >= start,
            col(MetricsRecordRow.timestamp) < end,
        )
        with Session(self.engine) as session:
            total = session.exec(statement).one()
        return float(total or 0.0)


def _to_record(row: MetricsRecordRow) -> MetricsRecord:
    return MetricsRecord(
        task_id=row.task_id,
        agent_id=row.agent_id,
        cost_usd=row.cost_usd,
        duration_ms=row.duration_ms,
        success=row.success,
        timestamp=ensure_utc(row.timestamp),
        error_kind=ErrorKind(row.error_kind) if row.error_kind else None,
    )


def _to_decision(row: RoutingDecisionRow) -> RoutingDecision:
    return RoutingDecision(
        timestamp=ensure_utc(row.timestamp),
        task_id=row.task_id,
        task_summary=row.task_summary,
        primary_agent=row.primary_agent,
        tier=Tier(row.tier),
        expected_cost_usd=row.expected_cost_usd,
        fallbacks=tuple(item for item in row.fallbacks.split(",") if item),
        reasoning=row.reasoning,
    )
