from __future__ import annotations

import datetime as dt
from datetime import date, datetime, time
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from . import models
from .invoices import DEFAULT_TAX_RATE, DEFAULT_UNIT


class Period(BaseModel):
    start: date
    end: date
    label: str
    granularity: str


class CityCreate(BaseModel):
    name: str

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Name darf nicht leer sein")
        return value


class UserCreate(BaseModel):
    name: str
    email: str
    role: str = models.UserRole.WORKER

    @field_validator("role")
    @classmethod
    def validate_role(cls, value: str) -> str:
        if value not in (models.UserRole.ADMIN, models.UserRole.WORKER, models.UserRole.GUEST):
            raise ValueError("Unbekannte Rolle")
        return value


class User(BaseModel):
    id: int
    name: str
    email: str
    role: str
    model_config = ConfigDict(from_attributes=True)


class City(BaseModel):
    id: int
    name: str
    model_config = ConfigDict(from_attributes=True)


class AreaCreate(BaseModel):
    name: str
    color: Optional[str] = None


class StreetCreate(BaseModel):
    name: str
    area_id: int
    priority: int = Field(default=3, ge=1, le=5)
    length_meters: Optional[int] = None
    is_bg: bool = False
    notes: Optional[str] = None


class Area(BaseModel):
    id: int
    name: str
    city_id: int
    color: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class StreetRecord(BaseModel):
    id: int
    name: str
    area_id: int
    area_name: str = ""
    city_name: str = ""
    priority: Optional[int] = None
    is_bg: bool = False
    model_config = ConfigDict(from_attributes=True)


class WorkLogBase(BaseModel):
    street_id: Optional[int] = None
    work_date: date
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    notes: Optional[str] = None

    @field_validator("notes")
    @classmethod
    def strip_notes(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None


class WorkLogCreate(WorkLogBase):
    @model_validator(mode="after")
    def validate_entry(self) -> "WorkLogCreate":
        if self.street_id is None:
            raise ValueError("Bitte wähle eine Straße aus!")
        if self.start_time is None or self.end_time is None:
            raise ValueError("Bitte Start- und Endzeit eingeben!")
        if self.end_time <= self.start_time:
            raise ValueError("Endzeit muss nach Startzeit liegen!")
        return self


class WorkLogUpdate(WorkLogCreate):
    pass


class WorkLogEntry(BaseModel):
    """A work log as seen by the aggregation and export code."""

    id: int
    user_id: Optional[int] = None
    user_name: Optional[str] = None
    street_id: Optional[int] = None
    street_name: Optional[str] = None
    city_name: Optional[str] = None
    work_date: date
    start_time: time
    end_time: Optional[time] = None
    notes: Optional[str] = None
    is_bg: Optional[bool] = None
    model_config = ConfigDict(from_attributes=True)


class BulkDelete(BaseModel):
    ids: List[int] = Field(min_length=1)


class RoundCreate(BaseModel):
    work_date: date


class TeamLogCreate(BaseModel):
    work_date: date
    start_time: time
    end_time: time
    user_ids: List[int] = Field(min_length=1)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def validate_times(self) -> "TeamLogCreate":
        if self.end_time <= self.start_time:
            raise ValueError("Endzeit muss nach Startzeit liegen!")
        return self


class DailyStreetStatusRecord(BaseModel):
    id: int
    street_id: int
    work_date: date
    status: str
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    assigned_users: List[int] = Field(default_factory=list)
    current_round: int = 1
    total_rounds: int = 1
    model_config = ConfigDict(from_attributes=True)

    @field_validator("assigned_users", mode="before")
    @classmethod
    def default_assigned(cls, value: object) -> object:
        return [] if value is None else value


class StreetStatusUpdate(BaseModel):
    work_date: date
    status: str
    assigned_users: Optional[List[int]] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, value: str) -> str:
        if value not in models.StreetStatus.ALL:
            raise ValueError("Unbekannter Status")
        return value


class DayGroup(BaseModel):
    date: dt.date
    label: str
    entries: List[WorkLogEntry]
    total_minutes: int


class WorkLogAggregation(BaseModel):
    groups: List[DayGroup]
    total_minutes: int
    entry_count: int
    distinct_days: int
    unfiltered_count: int

    @property
    def total_hours(self) -> float:
        return self.total_minutes / 60


class WorkHoursOverview(BaseModel):
    period: Period
    previous_date: date
    next_date: date
    category: str
    aggregation: WorkLogAggregation


class ReportWorkLogRow(BaseModel):
    id: int
    user_name: str
    date: dt.date
    start_time: str
    end_time: str
    street: str = ""
    notes: str = ""
    duration_minutes: int


class StatusHistoryEntry(BaseModel):
    date: dt.date
    status: str
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    assigned_users: List[int] = Field(default_factory=list)


class ReportStreetRow(BaseModel):
    id: int
    name: str
    city: str = ""
    area: str = ""
    status_history: List[StatusHistoryEntry] = Field(default_factory=list)


class ReportSummary(BaseModel):
    total_hours: float
    total_streets: int
    streets_completed: int
    streets_in_progress: int
    streets_open: int


class ReportPeriod(BaseModel):
    start: date
    end: date


class ReportMetadata(BaseModel):
    generated_at: datetime
    generated_by: Optional[int] = None
    period: ReportPeriod
    customer_id: Optional[int] = None


class ReportPayload(BaseModel):
    work_logs: List[ReportWorkLogRow] = Field(default_factory=list)
    streets: List[ReportStreetRow] = Field(default_factory=list)
    summary: ReportSummary
    metadata: ReportMetadata


class ReportCreate(BaseModel):
    report_type: str = models.ReportType.MONTHLY
    title: str
    period_start: date
    period_end: date
    customer_id: Optional[int] = None

    @field_validator("report_type")
    @classmethod
    def validate_type(cls, value: str) -> str:
        if value not in models.ReportType.ALL:
            raise ValueError("Unbekannter Berichtstyp")
        return value

    @field_validator("title")
    @classmethod
    def validate_title(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Titel darf nicht leer sein")
        return value

    @model_validator(mode="after")
    def validate_period(self) -> "ReportCreate":
        if self.period_end < self.period_start:
            raise ValueError("Zeitraum-Ende liegt vor dem Beginn")
        return self


class ReportStatusUpdate(BaseModel):
    status: str

    @field_validator("status")
    @classmethod
    def validate_status(cls, value: str) -> str:
        if value not in models.ReportStatus.ALL:
            raise ValueError("Unbekannter Berichtsstatus")
        return value


class Report(BaseModel):
    id: int
    report_number: str
    report_type: str
    title: str
    period_start: date
    period_end: date
    customer_id: Optional[int] = None
    data: ReportPayload
    status: str
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class CustomerBase(BaseModel):
    name: str
    company: Optional[str] = None
    address: Optional[str] = None
    postal_code: Optional[str] = None
    city: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    tax_id: Optional[str] = None
    notes: Optional[str] = None
    is_active: bool = True

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Name darf nicht leer sein")
        return value


class CustomerCreate(CustomerBase):
    pass


class CustomerUpdate(CustomerBase):
    pass


class Customer(CustomerBase):
    id: int
    model_config = ConfigDict(from_attributes=True)


class Pricing(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    unit: str
    price_per_unit: float
    tax_rate: float
    is_active: bool
    valid_from: Optional[date] = None
    valid_until: Optional[date] = None
    model_config = ConfigDict(from_attributes=True)


class InvoiceTemplate(BaseModel):
    id: int
    name: str
    is_default: bool
    header_text: Optional[str] = None
    footer_text: Optional[str] = None
    company_name: Optional[str] = None
    company_address: Optional[str] = None
    payment_terms: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class InvoiceItemCreate(BaseModel):
    description: str
    quantity: float = Field(default=1.0, gt=0)
    unit: Optional[str] = DEFAULT_UNIT
    price_per_unit: float = Field(ge=0)
    tax_rate: float = Field(default=DEFAULT_TAX_RATE, ge=0, le=100)
    street_id: Optional[int] = None
    date_performed: Optional[date] = None

    @field_validator("description")
    @classmethod
    def validate_description(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Beschreibung darf nicht leer sein")
        return value


class InvoiceItem(InvoiceItemCreate):
    id: int
    line_total: float
    sort_order: int = 0
    model_config = ConfigDict(from_attributes=True)


class InvoiceCreate(BaseModel):
    customer_id: int
    template_id: Optional[int] = None
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    notes: Optional[str] = None
    internal_notes: Optional[str] = None
    items: List[InvoiceItemCreate] = Field(min_length=1)

    @model_validator(mode="after")
    def validate_dates(self) -> "InvoiceCreate":
        if self.issue_date and self.due_date and self.due_date < self.issue_date:
            raise ValueError("Fälligkeitsdatum liegt vor dem Rechnungsdatum")
        if (self.period_start is None) != (self.period_end is None):
            raise ValueError("Leistungszeitraum braucht Beginn und Ende")
        if self.period_start and self.period_end and self.period_end < self.period_start:
            raise ValueError("Zeitraum-Ende liegt vor dem Beginn")
        return self


class InvoiceUpdate(InvoiceCreate):
    pass


class InvoiceStatusUpdate(BaseModel):
    status: str

    @field_validator("status")
    @classmethod
    def validate_status(cls, value: str) -> str:
        if value not in models.InvoiceStatus.ALL:
            raise ValueError("Unbekannter Rechnungsstatus")
        return value


class InvoiceSummary(BaseModel):
    id: int
    invoice_number: str
    customer_id: int
    customer_name: str = ""
    status: str
    issue_date: date
    due_date: date
    subtotal: float
    tax_amount: float
    total: float
    model_config = ConfigDict(from_attributes=True)


class Invoice(InvoiceSummary):
    template_id: Optional[int] = None
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    notes: Optional[str] = None
    internal_notes: Optional[str] = None
    items: List[InvoiceItem] = Field(default_factory=list)
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None


class UserRoleInfo(BaseModel):
    role: str
    name: str
    model_config = ConfigDict(from_attributes=True)
