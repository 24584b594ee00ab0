"""Report payload construction and persistence of generated reports."""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from sqlalchemy.orm import Session

from . import crud, models, schemas
from .aggregation import entry_minutes
from .durations import format_clock

logger = logging.getLogger(__name__)

UNKNOWN_USER = "Unbekannt"


class ReportBuildError(RuntimeError):
    """Raised when the data for a report could not be read completely."""


class ReportDataSource(Protocol):
    async def work_logs(self, start: date, end: date) -> List[schemas.WorkLogEntry]:
        ...

    async def streets(self) -> List[schemas.StreetRecord]:
        ...

    async def daily_statuses(self, start: date, end: date) -> List[schemas.DailyStreetStatusRecord]:
        ...


class SqlReportDataSource:
    """Reads report inputs from the database.

    Each read runs in a worker thread with its own session, so the three
    reads do not share a transaction and may observe different snapshots
    under concurrent writes.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    async def _run(self, reader):
        def run():
            db = self._session_factory()
            try:
                return reader(db)
            finally:
                db.close()

        return await asyncio.to_thread(run)

    async def work_logs(self, start: date, end: date) -> List[schemas.WorkLogEntry]:
        return await self._run(
            lambda db: [
                schemas.WorkLogEntry.model_validate(log)
                for log in crud.get_work_logs(db, start=start, end=end)
            ]
        )

    async def streets(self) -> List[schemas.StreetRecord]:
        return await self._run(
            lambda db: [schemas.StreetRecord.model_validate(street) for street in crud.get_streets(db)]
        )

    async def daily_statuses(self, start: date, end: date) -> List[schemas.DailyStreetStatusRecord]:
        return await self._run(
            lambda db: [
                schemas.DailyStreetStatusRecord.model_validate(row)
                for row in crud.get_daily_statuses(db, start, end)
            ]
        )


def _work_log_row(entry: schemas.WorkLogEntry) -> schemas.ReportWorkLogRow:
    return schemas.ReportWorkLogRow(
        id=entry.id,
        user_name=entry.user_name or UNKNOWN_USER,
        date=entry.work_date,
        start_time=format_clock(entry.start_time),
        end_time=format_clock(entry.end_time),
        street=entry.street_name or "",
        notes=entry.notes or "",
        duration_minutes=entry_minutes(entry),
    )


def _latest_statuses(rows: List[schemas.DailyStreetStatusRecord]) -> Dict[int, str]:
    # same-date duplicates: the row read last wins
    latest: Dict[int, Tuple[date, str]] = {}
    for row in rows:
        current = latest.get(row.street_id)
        if current is None or row.work_date >= current[0]:
            latest[row.street_id] = (row.work_date, row.status)
    return {street_id: status for street_id, (_, status) in latest.items()}


def summarize_statuses(latest: Dict[int, str]) -> Tuple[int, int, int]:
    completed = in_progress = open_ = 0
    for status in latest.values():
        if status == models.StreetStatus.DONE:
            completed += 1
        elif status == models.StreetStatus.EN_ROUTE:
            in_progress += 1
        else:
            open_ += 1
    return completed, in_progress, open_


async def build_report_data(
    source: ReportDataSource,
    period_start: date,
    period_end: date,
    *,
    generated_by: Optional[int],
    customer_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> schemas.ReportPayload:
    """Join work logs, the street inventory and daily statuses for a period.

    The three reads are issued concurrently. If any of them fails a
    :class:`ReportBuildError` is raised and no payload is produced.
    """
    results = await asyncio.gather(
        source.work_logs(period_start, period_end),
        source.streets(),
        source.daily_statuses(period_start, period_end),
        return_exceptions=True,
    )
    failures = [result for result in results if isinstance(result, BaseException)]
    for failure in failures[1:]:
        logger.warning("Additional report read failed: %r", failure)
    if failures:
        raise ReportBuildError("Berichtsdaten konnten nicht geladen werden") from failures[0]
    logs, streets, statuses = results

    work_log_rows = [_work_log_row(entry) for entry in logs]
    total_minutes = sum(row.duration_minutes for row in work_log_rows)

    history: Dict[int, List[schemas.DailyStreetStatusRecord]] = {}
    for row in statuses:
        history.setdefault(row.street_id, []).append(row)

    street_rows = []
    for street in streets:
        rows = sorted(history.get(street.id, []), key=lambda item: item.work_date)
        street_rows.append(
            schemas.ReportStreetRow(
                id=street.id,
                name=street.name,
                city=street.city_name or "",
                area=street.area_name or "",
                status_history=[
                    schemas.StatusHistoryEntry(
                        date=row.work_date,
                        status=row.status,
                        started_at=row.started_at,
                        finished_at=row.finished_at,
                        assigned_users=list(row.assigned_users or []),
                    )
                    for row in rows
                ],
            )
        )

    completed, in_progress, open_ = summarize_statuses(_latest_statuses(statuses))

    return schemas.ReportPayload(
        work_logs=work_log_rows,
        streets=street_rows,
        summary=schemas.ReportSummary(
            total_hours=total_minutes / 60,
            total_streets=len(streets),
            streets_completed=completed,
            streets_in_progress=in_progress,
            streets_open=open_,
        ),
        metadata=schemas.ReportMetadata(
            generated_at=now or datetime.utcnow(),
            generated_by=generated_by,
            period=schemas.ReportPeriod(start=period_start, end=period_end),
            customer_id=customer_id,
        ),
    )


async def create_report(
    db: Session,
    source: ReportDataSource,
    report: schemas.ReportCreate,
    *,
    user_id: Optional[int],
    now: Optional[datetime] = None,
) -> models.Report:
    """Build the payload and store it as a draft report with the next number."""
    payload = await build_report_data(
        source,
        report.period_start,
        report.period_end,
        generated_by=user_id,
        customer_id=report.customer_id,
        now=now,
    )
    report_number = crud.generate_report_number(db, (now or datetime.utcnow()).date())
    db_report = crud.create_report(
        db,
        report,
        report_number=report_number,
        data=payload.model_dump(mode="json"),
        created_by=user_id,
    )
    logger.info("Created report %s for %s to %s", report_number, report.period_start, report.period_end)
    return db_report
