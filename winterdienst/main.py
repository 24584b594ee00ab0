from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Iterator, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from . import __version__ as APP_VERSION
from . import crud, database, models, schemas
from .aggregation import CATEGORIES, CATEGORY_ALL, aggregate_work_logs
from .cache import DataCache
from .config import Settings, get_settings
from .excel_export import export_work_logs
from .pdf_export import ExportError, export_invoice_pdf, export_report_pdf, export_work_hours_pdf
from .periods import GRANULARITIES, resolve_period, shift_reference
from .reference_data import ReferenceData
from .reports import ReportBuildError, SqlReportDataSource, create_report
from .street_status import set_street_status, start_new_round

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Winterdienst",
    description="Straßenstatus, Arbeitsstunden und Berichte für den Winterdienst",
    version=APP_VERSION,
)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def init_state(
    session_factory: Optional[Callable[[], Session]] = None,
    settings: Optional[Settings] = None,
) -> None:
    """Attach settings, session factory and the shared cache to the app."""
    settings = settings or get_settings()
    session_factory = session_factory or database.SessionLocal
    cache = DataCache()
    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.cache = cache
    app.state.reference = ReferenceData(cache, session_factory, settings)


init_state()


@app.on_event("startup")
def prepare_database():
    settings: Settings = app.state.settings
    logging.getLogger("winterdienst").setLevel(settings.log_level)
    bind = app.state.session_factory.kw.get("bind")
    if bind is not None:
        models.Base.metadata.create_all(bind=bind)
    logger.info("%s %s started", settings.service_name, APP_VERSION)


def get_db(request: Request) -> Iterator[Session]:
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def get_reference(request: Request) -> ReferenceData:
    return request.app.state.reference


def get_current_user(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
    db: Session = Depends(get_db),
) -> models.User:
    raw_id = (x_user_id or "").strip()
    if not (raw_id.isascii() and raw_id.isdecimal()):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Nicht angemeldet")
    user = crud.get_user(db, int(raw_id))
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unbekannter Benutzer")
    return user


def _ensure_admin(user: models.User) -> None:
    if not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Nur für Administratoren")


def _ensure_can_log(user: models.User) -> None:
    if not user.can_log_work:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Keine Berechtigung")


def _ensure_owner_or_admin(user: models.User, log: models.WorkLog) -> None:
    if not (user.is_admin or log.user_id == user.id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Nur eigene Einträge dürfen bearbeitet werden",
        )


@app.get("/api/health")
def health_check():
    return {"status": "ok", "version": APP_VERSION}


@app.get("/api/me", response_model=schemas.UserRoleInfo)
async def read_me(
    user: models.User = Depends(get_current_user),
    reference: ReferenceData = Depends(get_reference),
):
    info = await reference.user_role(user.id)
    if info is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unbekannter Benutzer")
    return info


@app.get("/api/cities", response_model=List[schemas.City])
async def list_cities(
    user: models.User = Depends(get_current_user),
    reference: ReferenceData = Depends(get_reference),
):
    return await reference.cities()


@app.post("/api/cities", response_model=schemas.City, status_code=status.HTTP_201_CREATED)
def create_city(
    city: schemas.CityCreate,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    reference: ReferenceData = Depends(get_reference),
):
    _ensure_admin(user)
    try:
        db_city = crud.create_city(db, city)
    except ValueError as exc:
        if str(exc) == "DUPLICATE_NAME":
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Stadt existiert bereits") from exc
        raise
    reference.invalidate_city_caches()
    return db_city


def _require_city(db: Session, city_id: int) -> None:
    if not crud.get_city(db, city_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Stadt nicht gefunden")


@app.get("/api/cities/{city_id}/areas", response_model=List[schemas.Area])
async def list_areas(
    city_id: int,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    reference: ReferenceData = Depends(get_reference),
):
    _require_city(db, city_id)
    return await reference.areas(city_id)


@app.get("/api/cities/{city_id}/streets", response_model=List[schemas.StreetRecord])
async def list_streets(
    city_id: int,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    reference: ReferenceData = Depends(get_reference),
):
    _require_city(db, city_id)
    return await reference.streets(city_id)


@app.post("/api/cities/{city_id}/areas", response_model=schemas.Area, status_code=status.HTTP_201_CREATED)
def create_area(
    city_id: int,
    area: schemas.AreaCreate,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    reference: ReferenceData = Depends(get_reference),
):
    _ensure_admin(user)
    _require_city(db, city_id)
    try:
        db_area = crud.create_area(db, city_id, area)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Gebiet existiert bereits") from exc
    reference.invalidate_city_data_caches(city_id)
    return db_area


@app.post("/api/streets", response_model=schemas.StreetRecord, status_code=status.HTTP_201_CREATED)
def create_street(
    street: schemas.StreetCreate,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    reference: ReferenceData = Depends(get_reference),
):
    _ensure_admin(user)
    area = crud.get_area(db, street.area_id)
    if not area:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Gebiet nicht gefunden")
    city_id = area.city_id
    try:
        db_street = crud.create_street(db, street)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Straße existiert bereits") from exc
    reference.invalidate_city_data_caches(city_id)
    return schemas.StreetRecord.model_validate(db_street)


@app.get("/api/users", response_model=List[schemas.User])
def list_users(
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _ensure_admin(user)
    return crud.get_users(db)


@app.post("/api/users", response_model=schemas.User, status_code=status.HTTP_201_CREATED)
def create_user(
    new_user: schemas.UserCreate,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _ensure_admin(user)
    try:
        return crud.create_user(db, new_user)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="E-Mail wird bereits verwendet") from exc


@app.delete("/api/users/{user_id}")
def delete_user(
    user_id: int,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    reference: ReferenceData = Depends(get_reference),
):
    _ensure_admin(user)
    if user_id == user.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Das eigene Konto kann nicht gelöscht werden",
        )
    if not crud.delete_user(db, user_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Benutzer nicht gefunden")
    reference.invalidate_user_cache(user_id)
    logger.info("User %s deleted by %s", user_id, user.id)
    return {"detail": "Benutzer gelöscht"}


@app.get("/api/customers", response_model=List[schemas.Customer])
async def list_customers(
    active_only: bool = False,
    user: models.User = Depends(get_current_user),
    reference: ReferenceData = Depends(get_reference),
):
    return await reference.customers(active_only)


@app.post("/api/customers", response_model=schemas.Customer, status_code=status.HTTP_201_CREATED)
def create_customer(
    customer: schemas.CustomerCreate,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    reference: ReferenceData = Depends(get_reference),
):
    _ensure_admin(user)
    db_customer = crud.create_customer(db, customer)
    reference.invalidate_customers_cache()
    return db_customer


@app.put("/api/customers/{customer_id}", response_model=schemas.Customer)
def update_customer(
    customer_id: int,
    customer: schemas.CustomerUpdate,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    reference: ReferenceData = Depends(get_reference),
):
    _ensure_admin(user)
    db_customer = crud.update_customer(db, customer_id, customer)
    if not db_customer:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Kunde nicht gefunden")
    reference.invalidate_billing_caches()
    return db_customer


@app.get("/api/pricing", response_model=List[schemas.Pricing])
async def list_pricing(
    user: models.User = Depends(get_current_user),
    reference: ReferenceData = Depends(get_reference),
):
    return await reference.pricing()


@app.get("/api/templates", response_model=List[schemas.InvoiceTemplate])
async def list_templates(
    user: models.User = Depends(get_current_user),
    reference: ReferenceData = Depends(get_reference),
):
    return await reference.templates()


def _work_hours_overview(
    request: Request,
    db: Session,
    user: models.User,
    view: str,
    reference_date: Optional[date],
    category: str,
    user_id: Optional[int],
) -> tuple[models.User, schemas.WorkHoursOverview]:
    if view not in GRANULARITIES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unbekannte Ansicht: {view}")
    if category not in CATEGORIES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unbekannter Filter: {category}")
    target = user
    if user_id is not None and user_id != user.id:
        _ensure_admin(user)
        target = crud.get_user(db, user_id)
        if not target:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Benutzer nicht gefunden")
    settings: Settings = request.app.state.settings
    reference_day = reference_date or date.today()
    period = resolve_period(reference_day, view)
    logs = crud.get_work_logs_for_user(db, target.id, period.start, period.end)
    entries = [schemas.WorkLogEntry.model_validate(log) for log in logs]
    aggregation = aggregate_work_logs(
        entries,
        category,
        enable_category_filter=settings.enable_bg_filter,
    )
    applied = category if settings.enable_bg_filter else CATEGORY_ALL
    return target, schemas.WorkHoursOverview(
        period=period,
        previous_date=shift_reference(reference_day, view, -1),
        next_date=shift_reference(reference_day, view, 1),
        category=applied,
        aggregation=aggregation,
    )


@app.get("/api/work-logs", response_model=schemas.WorkHoursOverview)
def list_work_logs(
    request: Request,
    view: str = "week",
    day: Optional[date] = Query(default=None, alias="date"),
    category: str = CATEGORY_ALL,
    user_id: Optional[int] = None,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _, overview = _work_hours_overview(request, db, user, view, day, category, user_id)
    return overview


@app.get("/api/work-logs/export/pdf")
def export_work_logs_pdf(
    request: Request,
    view: str = "month",
    day: Optional[date] = Query(default=None, alias="date"),
    category: str = CATEGORY_ALL,
    user_id: Optional[int] = None,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    target, overview = _work_hours_overview(request, db, user, view, day, category, user_id)
    try:
        buffer = export_work_hours_pdf(
            user_name=target.name,
            period=overview.period,
            aggregation=overview.aggregation,
            settings=request.app.state.settings,
        )
    except ExportError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    filename = f"arbeitsstunden_{target.id}_{overview.period.start.isoformat()}.pdf"
    return StreamingResponse(
        buffer,
        media_type="application/pdf",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@app.get("/api/work-logs/export/xlsx")
def export_work_logs_xlsx(
    request: Request,
    view: str = "month",
    day: Optional[date] = Query(default=None, alias="date"),
    category: str = CATEGORY_ALL,
    user_id: Optional[int] = None,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    target, overview = _work_hours_overview(request, db, user, view, day, category, user_id)
    try:
        buffer = export_work_logs(overview.aggregation)
    except ExportError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    filename = f"arbeitsstunden_{target.id}_{overview.period.start.isoformat()}.xlsx"
    return StreamingResponse(
        buffer,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


def _require_street(db: Session, street_id: Optional[int]) -> models.Street:
    street = crud.get_street(db, street_id) if street_id is not None else None
    if not street:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Straße nicht gefunden")
    return street


@app.post("/api/work-logs", response_model=schemas.WorkLogEntry, status_code=status.HTTP_201_CREATED)
def create_work_log(
    entry: schemas.WorkLogCreate,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _ensure_can_log(user)
    _require_street(db, entry.street_id)
    db_log = crud.create_work_log(db, user.id, entry)
    return schemas.WorkLogEntry.model_validate(db_log)


@app.put("/api/work-logs/{log_id}", response_model=schemas.WorkLogEntry)
def update_work_log(
    log_id: int,
    entry: schemas.WorkLogUpdate,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    db_log = crud.get_work_log(db, log_id)
    if not db_log:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Eintrag nicht gefunden")
    _ensure_owner_or_admin(user, db_log)
    _require_street(db, entry.street_id)
    updated = crud.update_work_log(db, log_id, entry)
    return schemas.WorkLogEntry.model_validate(updated)


@app.delete("/api/work-logs/{log_id}")
def delete_work_log(
    log_id: int,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    db_log = crud.get_work_log(db, log_id)
    if not db_log:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Eintrag nicht gefunden")
    _ensure_owner_or_admin(user, db_log)
    crud.delete_work_log(db, log_id)
    return {"detail": "Eintrag gelöscht"}


@app.post("/api/work-logs/delete")
def delete_work_logs(
    payload: schemas.BulkDelete,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    for log_id in payload.ids:
        db_log = crud.get_work_log(db, log_id)
        if not db_log:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Eintrag {log_id} nicht gefunden")
        _ensure_owner_or_admin(user, db_log)
    deleted = crud.delete_work_logs(db, payload.ids)
    return {"deleted": deleted}


@app.post("/api/streets/{street_id}/status", response_model=schemas.DailyStreetStatusRecord)
def update_street_status(
    street_id: int,
    update: schemas.StreetStatusUpdate,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _ensure_can_log(user)
    _require_street(db, street_id)
    row = set_street_status(db, street_id, update.work_date, update.status, user.id, update.assigned_users)
    return schemas.DailyStreetStatusRecord.model_validate(row)


@app.post("/api/streets/{street_id}/rounds")
def start_round(
    street_id: int,
    payload: schemas.RoundCreate,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _ensure_can_log(user)
    _require_street(db, street_id)
    return {"round": start_new_round(db, street_id, payload.work_date, user.id)}


@app.post(
    "/api/streets/{street_id}/team-logs",
    response_model=List[schemas.WorkLogEntry],
    status_code=status.HTTP_201_CREATED,
)
def create_team_logs(
    street_id: int,
    team: schemas.TeamLogCreate,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _ensure_can_log(user)
    _require_street(db, street_id)
    created = crud.create_team_work_logs(db, street_id, team)
    return [schemas.WorkLogEntry.model_validate(log) for log in created]


@app.get("/api/reports", response_model=List[schemas.Report])
def list_reports(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _ensure_can_log(user)
    return crud.get_reports(db, status_filter)


@app.post("/api/reports", response_model=schemas.Report, status_code=status.HTTP_201_CREATED)
async def generate_report(
    request: Request,
    report: schemas.ReportCreate,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _ensure_can_log(user)
    source = SqlReportDataSource(request.app.state.session_factory)
    try:
        db_report = await create_report(db, source, report, user_id=user.id)
    except ReportBuildError as exc:
        logger.warning("Report generation failed", exc_info=exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Berichtsdaten konnten nicht geladen werden",
        ) from exc
    return db_report


def _require_report(db: Session, report_id: int) -> models.Report:
    db_report = crud.get_report(db, report_id)
    if not db_report:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Bericht nicht gefunden")
    return db_report


@app.get("/api/reports/{report_id}", response_model=schemas.Report)
def read_report(
    report_id: int,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _ensure_can_log(user)
    return _require_report(db, report_id)


@app.patch("/api/reports/{report_id}/status", response_model=schemas.Report)
def update_report_status(
    report_id: int,
    update: schemas.ReportStatusUpdate,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _ensure_admin(user)
    _require_report(db, report_id)
    try:
        return crud.set_report_status(db, report_id, update.status)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Statuswechsel nicht erlaubt",
        ) from exc


@app.delete("/api/reports/{report_id}")
def delete_report(
    report_id: int,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _ensure_admin(user)
    if not crud.delete_report(db, report_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Bericht nicht gefunden")
    return {"detail": "Bericht gelöscht"}


@app.get("/api/reports/{report_id}/pdf")
def download_report_pdf(
    request: Request,
    report_id: int,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _ensure_can_log(user)
    report = schemas.Report.model_validate(_require_report(db, report_id))
    try:
        buffer = export_report_pdf(report, request.app.state.settings)
    except ExportError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    filename = f"{report.report_number}.pdf"
    return StreamingResponse(
        buffer,
        media_type="application/pdf",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


_INVOICE_REFERENCE_ERRORS = {
    "UNKNOWN_CUSTOMER": "Kunde nicht gefunden",
    "UNKNOWN_TEMPLATE": "Vorlage nicht gefunden",
}


def _invoice_reference_error(exc: ValueError) -> HTTPException:
    detail = _INVOICE_REFERENCE_ERRORS.get(str(exc), "Rechnungsdaten ungültig")
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


def _require_invoice(db: Session, invoice_id: int) -> models.Invoice:
    db_invoice = crud.get_invoice(db, invoice_id)
    if not db_invoice:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Rechnung nicht gefunden")
    return db_invoice


@app.get("/api/invoices", response_model=List[schemas.InvoiceSummary])
async def list_invoices(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    user: models.User = Depends(get_current_user),
    reference: ReferenceData = Depends(get_reference),
):
    invoices = await reference.invoices()
    if status_filter:
        invoices = [invoice for invoice in invoices if invoice.status == status_filter]
    return invoices


@app.post("/api/invoices", response_model=schemas.Invoice, status_code=status.HTTP_201_CREATED)
def create_invoice(
    invoice: schemas.InvoiceCreate,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    reference: ReferenceData = Depends(get_reference),
):
    _ensure_admin(user)
    try:
        db_invoice = crud.create_invoice(db, invoice, created_by=user.id)
    except ValueError as exc:
        raise _invoice_reference_error(exc) from exc
    reference.invalidate_invoices_cache()
    logger.info("Invoice %s created by %s", db_invoice.invoice_number, user.id)
    return db_invoice


@app.get("/api/invoices/{invoice_id}", response_model=schemas.Invoice)
def read_invoice(
    invoice_id: int,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _require_invoice(db, invoice_id)


@app.put("/api/invoices/{invoice_id}", response_model=schemas.Invoice)
def update_invoice(
    invoice_id: int,
    invoice: schemas.InvoiceUpdate,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    reference: ReferenceData = Depends(get_reference),
):
    _ensure_admin(user)
    _require_invoice(db, invoice_id)
    try:
        db_invoice = crud.update_invoice(db, invoice_id, invoice)
    except ValueError as exc:
        raise _invoice_reference_error(exc) from exc
    reference.invalidate_invoices_cache()
    return db_invoice


@app.patch("/api/invoices/{invoice_id}/status", response_model=schemas.Invoice)
def update_invoice_status(
    invoice_id: int,
    update: schemas.InvoiceStatusUpdate,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    reference: ReferenceData = Depends(get_reference),
):
    _ensure_admin(user)
    _require_invoice(db, invoice_id)
    db_invoice = crud.set_invoice_status(db, invoice_id, update.status)
    reference.invalidate_invoices_cache()
    return db_invoice


@app.delete("/api/invoices/{invoice_id}")
def delete_invoice(
    invoice_id: int,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    reference: ReferenceData = Depends(get_reference),
):
    _ensure_admin(user)
    if not crud.delete_invoice(db, invoice_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Rechnung nicht gefunden")
    reference.invalidate_invoices_cache()
    return {"detail": "Rechnung gelöscht"}


@app.get("/api/invoices/{invoice_id}/pdf")
def download_invoice_pdf(
    request: Request,
    invoice_id: int,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    db_invoice = _require_invoice(db, invoice_id)
    invoice = schemas.Invoice.model_validate(db_invoice)
    customer = schemas.Customer.model_validate(db_invoice.customer)
    template = schemas.InvoiceTemplate.model_validate(db_invoice.template) if db_invoice.template else None
    try:
        buffer = export_invoice_pdf(invoice, customer, template, request.app.state.settings)
    except ExportError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    filename = f"{invoice.invoice_number}.pdf"
    return StreamingResponse(
        buffer,
        media_type="application/pdf",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
