"""Daily street status: transitions, rounds and reconciliation after log deletion."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import models

logger = logging.getLogger(__name__)

StatusKey = Tuple[int, date]


def get_daily_status(db: Session, street_id: int, work_date: date) -> Optional[models.DailyStreetStatus]:
    return (
        db.query(models.DailyStreetStatus)
        .filter(models.DailyStreetStatus.street_id == street_id)
        .filter(models.DailyStreetStatus.work_date == work_date)
        .first()
    )


def get_round_entries(db: Session, street_id: int, work_date: date) -> List[models.StreetStatusEntry]:
    return (
        db.query(models.StreetStatusEntry)
        .filter(models.StreetStatusEntry.street_id == street_id)
        .filter(models.StreetStatusEntry.work_date == work_date)
        .order_by(models.StreetStatusEntry.round_number)
        .all()
    )


def _get_or_create_daily_status(db: Session, street_id: int, work_date: date) -> models.DailyStreetStatus:
    row = get_daily_status(db, street_id, work_date)
    if row is None:
        row = models.DailyStreetStatus(
            street_id=street_id,
            work_date=work_date,
            status=models.StreetStatus.OPEN,
            assigned_users=[],
            current_round=1,
            total_rounds=1,
        )
        db.add(row)
        db.flush()
    return row


def set_street_status(
    db: Session,
    street_id: int,
    work_date: date,
    status: str,
    user_id: int,
    assigned_users: Optional[Iterable[int]] = None,
    *,
    now: Optional[datetime] = None,
) -> models.DailyStreetStatus:
    if status not in models.StreetStatus.ALL:
        raise ValueError("INVALID_STATUS")
    moment = now or datetime.utcnow()
    row = _get_or_create_daily_status(db, street_id, work_date)
    previous = row.status
    assigned = list(row.assigned_users or []) if assigned_users is None else list(assigned_users)

    if status == models.StreetStatus.EN_ROUTE and previous == models.StreetStatus.OPEN:
        row.started_at = moment
    if status == models.StreetStatus.DONE:
        if previous == models.StreetStatus.OPEN:
            row.started_at = moment
            if user_id not in assigned:
                assigned.append(user_id)
        row.finished_at = moment
    if status == models.StreetStatus.OPEN:
        row.started_at = None
        row.finished_at = None
        assigned = []

    row.status = status
    row.assigned_users = assigned
    row.changed_by = user_id

    round_number = row.current_round or 1
    entry = (
        db.query(models.StreetStatusEntry)
        .filter(models.StreetStatusEntry.street_id == street_id)
        .filter(models.StreetStatusEntry.work_date == work_date)
        .filter(models.StreetStatusEntry.round_number == round_number)
        .first()
    )
    if entry is None:
        entry = models.StreetStatusEntry(street_id=street_id, work_date=work_date, round_number=round_number)
        db.add(entry)
    entry.status = status
    entry.assigned_users = list(assigned)
    entry.changed_by = user_id
    # round entries keep their timestamps when the street is reset to open
    if row.started_at:
        entry.started_at = row.started_at
    if row.finished_at:
        entry.finished_at = row.finished_at

    db.commit()
    db.refresh(row)
    return row


def start_new_round(db: Session, street_id: int, work_date: date, user_id: int) -> int:
    """Open a further clearance round for the street and reset its daily status."""
    current = (
        db.query(func.max(models.StreetStatusEntry.round_number))
        .filter(models.StreetStatusEntry.street_id == street_id)
        .filter(models.StreetStatusEntry.work_date == work_date)
        .scalar()
    )
    new_round = (current or 0) + 1
    db.add(
        models.StreetStatusEntry(
            street_id=street_id,
            work_date=work_date,
            round_number=new_round,
            status=models.StreetStatus.OPEN,
            assigned_users=[],
            changed_by=user_id,
        )
    )
    row = get_daily_status(db, street_id, work_date)
    if row is not None:
        row.status = models.StreetStatus.OPEN
        row.current_round = new_round
        row.total_rounds = new_round
        row.started_at = None
        row.finished_at = None
        row.assigned_users = []
        row.changed_by = user_id
    db.commit()
    return new_round


def remaining_log_user_ids(db: Session, street_id: int, work_date: date) -> tuple[bool, List[int]]:
    """Return whether any log is left for the key and the distinct user ids among them."""
    rows = (
        db.query(models.WorkLog.user_id)
        .filter(models.WorkLog.street_id == street_id)
        .filter(models.WorkLog.work_date == work_date)
        .distinct()
        .all()
    )
    user_ids = sorted({user_id for (user_id,) in rows if user_id is not None})
    return bool(rows), user_ids


def reconcile_street_status(db: Session, street_id: int, work_date: date) -> None:
    """Bring the daily status of a street in line with the logs that are left.

    Reads every log for the key regardless of who triggered the deletion.
    Without any remaining log the status is reset to open and the round
    history for the day is removed; otherwise the assignments are narrowed to
    the users that still have a log. Changes are flushed, not committed.
    """
    row = get_daily_status(db, street_id, work_date)
    if row is None:
        return
    has_logs, remaining = remaining_log_user_ids(db, street_id, work_date)

    if not has_logs:
        row.status = models.StreetStatus.OPEN
        row.assigned_users = []
        row.started_at = None
        row.finished_at = None
        row.current_round = 1
        (
            db.query(models.StreetStatusEntry)
            .filter(models.StreetStatusEntry.street_id == street_id)
            .filter(models.StreetStatusEntry.work_date == work_date)
            .delete(synchronize_session=False)
        )
    else:
        keep = set(remaining)
        row.assigned_users = list(remaining)
        for entry in get_round_entries(db, street_id, work_date):
            entry.assigned_users = [uid for uid in (entry.assigned_users or []) if uid in keep]
    db.flush()


def reconcile_after_delete(db: Session, keys: Iterable[StatusKey]) -> None:
    """Best-effort reconciliation; failures are logged and never undo the deletion."""
    for street_id, work_date in sorted(set(keys)):
        try:
            reconcile_street_status(db, street_id, work_date)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception(
                "Status reconciliation failed for street %s on %s", street_id, work_date.isoformat()
            )


def remove_user_from_assignments(db: Session, user_id: int) -> None:
    for model in (models.DailyStreetStatus, models.StreetStatusEntry):
        for row in db.query(model).all():
            assigned = list(row.assigned_users or [])
            if user_id in assigned:
                row.assigned_users = [uid for uid in assigned if uid != user_id]
    db.flush()
