from __future__ import annotations

from datetime import date
from typing import Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from . import models, schemas
from .invoices import calculate_totals, line_total, resolve_dates
from .street_status import reconcile_after_delete, remove_user_from_assignments

REPORT_SEQUENCE = "report_number"
INVOICE_SEQUENCE = "invoice_number"
SEQUENCE_START = 1000

_REPORT_TRANSITIONS = {
    models.ReportStatus.DRAFT: models.ReportStatus.FINALIZED,
    models.ReportStatus.FINALIZED: models.ReportStatus.ARCHIVED,
}


def get_user(db: Session, user_id: int) -> Optional[models.User]:
    return db.query(models.User).filter(models.User.id == user_id).first()


def get_users(db: Session) -> List[models.User]:
    return db.query(models.User).order_by(models.User.name).all()


def create_user(db: Session, user: schemas.UserCreate) -> models.User:
    if db.query(models.User).filter(models.User.email == user.email).first():
        raise ValueError("DUPLICATE_EMAIL")
    db_user = models.User(**user.model_dump())
    db.add(db_user)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ValueError("DUPLICATE_EMAIL") from exc
    db.refresh(db_user)
    return db_user


def delete_user(db: Session, user_id: int) -> bool:
    db_user = get_user(db, user_id)
    if not db_user:
        return False
    remove_user_from_assignments(db, user_id)
    db.query(models.WorkLog).filter(models.WorkLog.user_id == user_id).update(
        {models.WorkLog.user_id: None}, synchronize_session=False
    )
    db.delete(db_user)
    db.commit()
    return True


def get_city(db: Session, city_id: int) -> Optional[models.City]:
    return db.query(models.City).filter(models.City.id == city_id).first()


def get_cities(db: Session) -> List[models.City]:
    return db.query(models.City).order_by(models.City.name).all()


def create_city(db: Session, city: schemas.CityCreate) -> models.City:
    if db.query(models.City).filter(models.City.name == city.name).first():
        raise ValueError("DUPLICATE_NAME")
    db_city = models.City(name=city.name)
    db.add(db_city)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ValueError("DUPLICATE_NAME") from exc
    db.refresh(db_city)
    return db_city


def get_area(db: Session, area_id: int) -> Optional[models.Area]:
    return db.query(models.Area).filter(models.Area.id == area_id).first()


def get_areas_for_city(db: Session, city_id: int) -> List[models.Area]:
    return db.query(models.Area).filter(models.Area.city_id == city_id).order_by(models.Area.name).all()


def create_area(db: Session, city_id: int, area: schemas.AreaCreate) -> models.Area:
    existing = (
        db.query(models.Area).filter(models.Area.city_id == city_id).filter(models.Area.name == area.name).first()
    )
    if existing:
        raise ValueError("DUPLICATE_NAME")
    payload = area.model_dump(exclude_none=True)
    db_area = models.Area(city_id=city_id, **payload)
    db.add(db_area)
    db.commit()
    db.refresh(db_area)
    return db_area


def get_street(db: Session, street_id: int) -> Optional[models.Street]:
    return db.query(models.Street).filter(models.Street.id == street_id).first()


def _streets_query(db: Session):
    return db.query(models.Street).options(joinedload(models.Street.area).joinedload(models.Area.city))


def get_streets(db: Session) -> List[models.Street]:
    return _streets_query(db).order_by(models.Street.id).all()


def get_streets_for_city(db: Session, city_id: int) -> List[models.Street]:
    return (
        _streets_query(db)
        .join(models.Area, models.Street.area_id == models.Area.id)
        .filter(models.Area.city_id == city_id)
        .order_by(models.Street.name)
        .all()
    )


def create_street(db: Session, street: schemas.StreetCreate) -> models.Street:
    db_street = models.Street(**street.model_dump())
    db.add(db_street)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ValueError("DUPLICATE_NAME") from exc
    db.refresh(db_street)
    return db_street


def get_customer(db: Session, customer_id: int) -> Optional[models.Customer]:
    return db.query(models.Customer).filter(models.Customer.id == customer_id).first()


def get_customers(db: Session, active_only: bool = False) -> List[models.Customer]:
    query = db.query(models.Customer)
    if active_only:
        query = query.filter(models.Customer.is_active.is_(True))
    return query.order_by(models.Customer.name).all()


def create_customer(db: Session, customer: schemas.CustomerCreate) -> models.Customer:
    db_customer = models.Customer(**customer.model_dump())
    db.add(db_customer)
    db.commit()
    db.refresh(db_customer)
    return db_customer


def update_customer(
    db: Session, customer_id: int, customer: schemas.CustomerUpdate
) -> Optional[models.Customer]:
    db_customer = get_customer(db, customer_id)
    if not db_customer:
        return None
    for key, value in customer.model_dump().items():
        setattr(db_customer, key, value)
    db.commit()
    db.refresh(db_customer)
    return db_customer


def get_pricing(db: Session) -> List[models.Pricing]:
    return (
        db.query(models.Pricing)
        .filter(models.Pricing.is_active.is_(True))
        .order_by(models.Pricing.name)
        .all()
    )


def get_templates(db: Session) -> List[models.InvoiceTemplate]:
    return (
        db.query(models.InvoiceTemplate)
        .order_by(models.InvoiceTemplate.is_default.desc(), models.InvoiceTemplate.name)
        .all()
    )


def _work_logs_query(db: Session):
    return db.query(models.WorkLog).options(
        joinedload(models.WorkLog.user),
        joinedload(models.WorkLog.street).joinedload(models.Street.area).joinedload(models.Area.city),
    )


def get_work_log(db: Session, log_id: int) -> Optional[models.WorkLog]:
    return _work_logs_query(db).filter(models.WorkLog.id == log_id).first()


def get_work_logs(
    db: Session,
    user_id: Optional[int] = None,
    *,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> List[models.WorkLog]:
    query = _work_logs_query(db)
    if user_id:
        query = query.filter(models.WorkLog.user_id == user_id)
    if start:
        query = query.filter(models.WorkLog.work_date >= start)
    if end:
        query = query.filter(models.WorkLog.work_date <= end)
    return query.order_by(models.WorkLog.work_date, models.WorkLog.start_time, models.WorkLog.id).all()


def get_work_logs_for_user(db: Session, user_id: int, start: date, end: date) -> List[models.WorkLog]:
    return get_work_logs(db, user_id, start=start, end=end)


def create_work_log(db: Session, user_id: int, entry: schemas.WorkLogCreate) -> models.WorkLog:
    db_log = models.WorkLog(user_id=user_id, **entry.model_dump())
    db.add(db_log)
    db.commit()
    db.refresh(db_log)
    return db_log


def update_work_log(db: Session, log_id: int, entry: schemas.WorkLogUpdate) -> Optional[models.WorkLog]:
    db_log = get_work_log(db, log_id)
    if not db_log:
        return None
    for key, value in entry.model_dump().items():
        setattr(db_log, key, value)
    db.commit()
    db.refresh(db_log)
    return db_log


def delete_work_logs(db: Session, log_ids: Iterable[int]) -> int:
    """Delete the given logs and reconcile every street/day they touched."""
    ids = list(dict.fromkeys(log_ids))
    if not ids:
        return 0
    logs = db.query(models.WorkLog).filter(models.WorkLog.id.in_(ids)).all()
    if not logs:
        return 0
    keys = {(log.street_id, log.work_date) for log in logs if log.street_id is not None}
    for log in logs:
        db.delete(log)
    db.commit()
    reconcile_after_delete(db, keys)
    return len(logs)


def delete_work_log(db: Session, log_id: int) -> bool:
    return delete_work_logs(db, [log_id]) == 1


def create_team_work_logs(
    db: Session, street_id: int, team: schemas.TeamLogCreate
) -> List[models.WorkLog]:
    """Create one log per team member, skipping members that already have this exact log."""
    created: List[models.WorkLog] = []
    for user_id in dict.fromkeys(team.user_ids):
        exists = (
            db.query(models.WorkLog.id)
            .filter(models.WorkLog.user_id == user_id)
            .filter(models.WorkLog.street_id == street_id)
            .filter(models.WorkLog.work_date == team.work_date)
            .filter(models.WorkLog.start_time == team.start_time)
            .filter(models.WorkLog.end_time == team.end_time)
            .first()
        )
        if exists:
            continue
        db_log = models.WorkLog(
            user_id=user_id,
            street_id=street_id,
            work_date=team.work_date,
            start_time=team.start_time,
            end_time=team.end_time,
            notes=team.notes,
        )
        db.add(db_log)
        created.append(db_log)
    db.commit()
    for db_log in created:
        db.refresh(db_log)
    return created


def get_daily_statuses(db: Session, start: date, end: date) -> List[models.DailyStreetStatus]:
    return (
        db.query(models.DailyStreetStatus)
        .filter(models.DailyStreetStatus.work_date >= start)
        .filter(models.DailyStreetStatus.work_date <= end)
        .order_by(models.DailyStreetStatus.work_date, models.DailyStreetStatus.id)
        .all()
    )


def _increment_sequence(db: Session, name: str) -> Optional[int]:
    # the UPDATE takes the write lock, the read-back sees only our own increment
    result = db.execute(
        update(models.NumberSequence)
        .where(models.NumberSequence.name == name)
        .values(next_value=models.NumberSequence.next_value + 1)
        .execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        return None
    drawn = db.execute(
        select(models.NumberSequence.next_value).where(models.NumberSequence.name == name)
    ).scalar_one()
    return drawn - 1


def _next_sequence_value(db: Session, name: str) -> int:
    """Draw the next value of a named counter, creating the counter on first use."""
    value = _increment_sequence(db, name)
    if value is None:
        db.add(models.NumberSequence(name=name, next_value=SEQUENCE_START + 1))
        try:
            db.commit()
            return SEQUENCE_START
        except IntegrityError:
            db.rollback()
        value = _increment_sequence(db, name)
        if value is None:
            raise ValueError("SEQUENCE_UNAVAILABLE")
    db.commit()
    return value


def generate_report_number(db: Session, today: Optional[date] = None) -> str:
    year = (today or date.today()).year
    return f"BR-{year}-{_next_sequence_value(db, REPORT_SEQUENCE):05d}"


def generate_invoice_number(db: Session, today: Optional[date] = None) -> str:
    year = (today or date.today()).year
    return f"RE-{year}-{_next_sequence_value(db, INVOICE_SEQUENCE):05d}"


def get_template(db: Session, template_id: int) -> Optional[models.InvoiceTemplate]:
    return db.query(models.InvoiceTemplate).filter(models.InvoiceTemplate.id == template_id).first()


def _invoice_items(items: List[schemas.InvoiceItemCreate]) -> List[models.InvoiceItem]:
    return [
        models.InvoiceItem(
            **item.model_dump(),
            line_total=line_total(item.quantity, item.price_per_unit),
            sort_order=index,
        )
        for index, item in enumerate(items)
    ]


def _check_invoice_references(db: Session, invoice: schemas.InvoiceCreate) -> None:
    if not get_customer(db, invoice.customer_id):
        raise ValueError("UNKNOWN_CUSTOMER")
    if invoice.template_id is not None and not get_template(db, invoice.template_id):
        raise ValueError("UNKNOWN_TEMPLATE")


def _apply_invoice_fields(db_invoice: models.Invoice, invoice: schemas.InvoiceCreate, today: Optional[date]) -> None:
    issue_date, due_date = resolve_dates(invoice.issue_date, invoice.due_date, today)
    totals = calculate_totals(invoice.items)
    db_invoice.customer_id = invoice.customer_id
    db_invoice.template_id = invoice.template_id
    db_invoice.issue_date = issue_date
    db_invoice.due_date = due_date
    db_invoice.period_start = invoice.period_start
    db_invoice.period_end = invoice.period_end
    db_invoice.notes = invoice.notes
    db_invoice.internal_notes = invoice.internal_notes
    db_invoice.subtotal = totals.subtotal
    db_invoice.tax_amount = totals.tax_amount
    db_invoice.total = totals.total
    db_invoice.items = _invoice_items(invoice.items)


def _invoices_query(db: Session):
    return db.query(models.Invoice).options(joinedload(models.Invoice.customer))


def get_invoice(db: Session, invoice_id: int) -> Optional[models.Invoice]:
    return _invoices_query(db).filter(models.Invoice.id == invoice_id).first()


def get_invoices(db: Session, status: Optional[str] = None) -> List[models.Invoice]:
    query = _invoices_query(db)
    if status:
        query = query.filter(models.Invoice.status == status)
    return query.order_by(models.Invoice.issue_date.desc(), models.Invoice.id.desc()).all()


def create_invoice(
    db: Session,
    invoice: schemas.InvoiceCreate,
    *,
    created_by: Optional[int],
    today: Optional[date] = None,
) -> models.Invoice:
    """Store a draft invoice with its line items and a freshly drawn RE number."""
    _check_invoice_references(db, invoice)
    db_invoice = models.Invoice(status=models.InvoiceStatus.DRAFT, created_by=created_by)
    _apply_invoice_fields(db_invoice, invoice, today)
    db_invoice.invoice_number = generate_invoice_number(db, today)
    db.add(db_invoice)
    db.commit()
    db.refresh(db_invoice)
    return db_invoice


def update_invoice(
    db: Session, invoice_id: int, invoice: schemas.InvoiceUpdate, *, today: Optional[date] = None
) -> Optional[models.Invoice]:
    """Replace fields and line items of an invoice; the number stays."""
    db_invoice = get_invoice(db, invoice_id)
    if not db_invoice:
        return None
    _check_invoice_references(db, invoice)
    _apply_invoice_fields(db_invoice, invoice, today)
    db.commit()
    db.refresh(db_invoice)
    return db_invoice


def set_invoice_status(db: Session, invoice_id: int, status: str) -> Optional[models.Invoice]:
    db_invoice = get_invoice(db, invoice_id)
    if not db_invoice:
        return None
    db_invoice.status = status
    db.commit()
    db.refresh(db_invoice)
    return db_invoice


def delete_invoice(db: Session, invoice_id: int) -> bool:
    db_invoice = get_invoice(db, invoice_id)
    if not db_invoice:
        return False
    db.delete(db_invoice)
    db.commit()
    return True


def get_report(db: Session, report_id: int) -> Optional[models.Report]:
    return db.query(models.Report).filter(models.Report.id == report_id).first()


def get_reports(db: Session, status: Optional[str] = None) -> List[models.Report]:
    query = db.query(models.Report)
    if status:
        query = query.filter(models.Report.status == status)
    return query.order_by(models.Report.created_at.desc(), models.Report.id.desc()).all()


def create_report(
    db: Session,
    report: schemas.ReportCreate,
    *,
    report_number: str,
    data: dict,
    created_by: Optional[int],
) -> models.Report:
    db_report = models.Report(
        report_number=report_number,
        report_type=report.report_type,
        title=report.title,
        period_start=report.period_start,
        period_end=report.period_end,
        customer_id=report.customer_id,
        data=data,
        status=models.ReportStatus.DRAFT,
        created_by=created_by,
    )
    db.add(db_report)
    db.commit()
    db.refresh(db_report)
    return db_report


def set_report_status(db: Session, report_id: int, status: str) -> Optional[models.Report]:
    db_report = get_report(db, report_id)
    if not db_report:
        return None
    if db_report.status == status:
        return db_report
    if _REPORT_TRANSITIONS.get(db_report.status) != status:
        raise ValueError("INVALID_STATUS_TRANSITION")
    db_report.status = status
    db.commit()
    db.refresh(db_report)
    return db_report


def delete_report(db: Session, report_id: int) -> bool:
    db_report = get_report(db, report_id)
    if not db_report:
        return False
    db.delete(db_report)
    db.commit()
    return True
