from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .database import Base


class UserRole:
    ADMIN = "admin"
    WORKER = "mitarbeiter"
    GUEST = "gast"


class StreetStatus:
    OPEN = "offen"
    EN_ROUTE = "auf_dem_weg"
    DONE = "erledigt"

    ALL = (OPEN, EN_ROUTE, DONE)


class ReportType:
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"
    WORK_SUMMARY = "work_summary"

    ALL = (DAILY, WEEKLY, MONTHLY, CUSTOM, WORK_SUMMARY)


class ReportStatus:
    DRAFT = "draft"
    FINALIZED = "finalized"
    ARCHIVED = "archived"

    ALL = (DRAFT, FINALIZED, ARCHIVED)


class InvoiceStatus:
    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    CANCELLED = "cancelled"
    OVERDUE = "overdue"

    ALL = (DRAFT, SENT, PAID, CANCELLED, OVERDUE)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False)
    role = Column(String, default=UserRole.GUEST, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    work_logs = relationship("WorkLog", back_populates="user")

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def can_log_work(self) -> bool:
        return self.role in (UserRole.ADMIN, UserRole.WORKER)


class City(Base):
    __tablename__ = "cities"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    areas = relationship("Area", back_populates="city", cascade="all, delete-orphan")


class Area(Base):
    __tablename__ = "areas"
    __table_args__ = (UniqueConstraint("name", "city_id"),)

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    city_id = Column(Integer, ForeignKey("cities.id"), nullable=False, index=True)
    color = Column(String, default="#6366f1")

    city = relationship("City", back_populates="areas")
    streets = relationship("Street", back_populates="area", cascade="all, delete-orphan")


class Street(Base):
    __tablename__ = "streets"
    __table_args__ = (UniqueConstraint("name", "area_id"),)

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    area_id = Column(Integer, ForeignKey("areas.id"), nullable=False, index=True)
    priority = Column(Integer, default=3)
    length_meters = Column(Integer, nullable=True)
    is_bg = Column(Boolean, default=False, nullable=False)
    notes = Column(Text, nullable=True)

    area = relationship("Area", back_populates="streets")

    @property
    def city_name(self) -> str:
        if self.area and self.area.city:
            return self.area.city.name
        return ""

    @property
    def area_name(self) -> str:
        return self.area.name if self.area else ""


class WorkLog(Base):
    __tablename__ = "work_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    street_id = Column(Integer, ForeignKey("streets.id", ondelete="SET NULL"), nullable=True, index=True)
    work_date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=True)
    activity_type = Column(String, default="winterdienst")
    notes = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="work_logs")
    street = relationship("Street")

    @property
    def is_bg(self) -> bool | None:
        if self.street is None:
            return None
        return bool(self.street.is_bg)

    @property
    def user_name(self) -> str | None:
        return self.user.name if self.user else None

    @property
    def street_name(self) -> str | None:
        return self.street.name if self.street else None

    @property
    def city_name(self) -> str | None:
        return self.street.city_name if self.street else None


class DailyStreetStatus(Base):
    __tablename__ = "daily_street_status"
    __table_args__ = (UniqueConstraint("street_id", "work_date"),)

    id = Column(Integer, primary_key=True, index=True)
    street_id = Column(Integer, ForeignKey("streets.id"), nullable=False, index=True)
    work_date = Column(Date, nullable=False, index=True)
    status = Column(String, default=StreetStatus.OPEN, nullable=False)
    started_at = Column(DateTime, nullable=True)
    finished_at = Column(DateTime, nullable=True)
    assigned_users = Column(JSON, default=list, nullable=False)
    changed_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    current_round = Column(Integer, default=1)
    total_rounds = Column(Integer, default=1)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    street = relationship("Street")


class StreetStatusEntry(Base):
    __tablename__ = "street_status_entries"
    __table_args__ = (UniqueConstraint("street_id", "work_date", "round_number"),)

    id = Column(Integer, primary_key=True, index=True)
    street_id = Column(Integer, ForeignKey("streets.id"), nullable=False, index=True)
    work_date = Column(Date, nullable=False, index=True)
    round_number = Column(Integer, default=1, nullable=False)
    status = Column(String, default=StreetStatus.OPEN, nullable=False)
    started_at = Column(DateTime, nullable=True)
    finished_at = Column(DateTime, nullable=True)
    assigned_users = Column(JSON, default=list, nullable=False)
    changed_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    company = Column(String, nullable=True)
    address = Column(String, nullable=True)
    postal_code = Column(String, nullable=True)
    city = Column(String, nullable=True)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    tax_id = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Pricing(Base):
    __tablename__ = "pricing"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    unit = Column(String, default="hour", nullable=False)
    price_per_unit = Column(Float, default=0.0, nullable=False)
    tax_rate = Column(Float, default=19.0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    valid_from = Column(Date, nullable=True)
    valid_until = Column(Date, nullable=True)


class InvoiceTemplate(Base):
    __tablename__ = "invoice_templates"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    is_default = Column(Boolean, default=False, nullable=False)
    header_text = Column(Text, nullable=True)
    footer_text = Column(Text, nullable=True)
    company_name = Column(String, nullable=True)
    company_address = Column(String, nullable=True)
    payment_terms = Column(Text, nullable=True)


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True)
    invoice_number = Column(String, unique=True, nullable=False)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    template_id = Column(Integer, ForeignKey("invoice_templates.id", ondelete="SET NULL"), nullable=True)
    status = Column(String, default=InvoiceStatus.DRAFT, nullable=False)
    issue_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)
    period_start = Column(Date, nullable=True)
    period_end = Column(Date, nullable=True)
    subtotal = Column(Float, default=0.0, nullable=False)
    tax_amount = Column(Float, default=0.0, nullable=False)
    total = Column(Float, default=0.0, nullable=False)
    notes = Column(Text, nullable=True)
    internal_notes = Column(Text, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    customer = relationship("Customer")
    template = relationship("InvoiceTemplate")
    items = relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.sort_order",
    )

    @property
    def customer_name(self) -> str:
        return self.customer.name if self.customer else ""


class InvoiceItem(Base):
    __tablename__ = "invoice_items"

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    description = Column(Text, nullable=False)
    quantity = Column(Float, default=1.0, nullable=False)
    unit = Column(String, nullable=True)
    price_per_unit = Column(Float, nullable=False)
    tax_rate = Column(Float, default=19.0, nullable=False)
    line_total = Column(Float, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)
    street_id = Column(Integer, ForeignKey("streets.id", ondelete="SET NULL"), nullable=True)
    date_performed = Column(Date, nullable=True)

    invoice = relationship("Invoice", back_populates="items")


class Report(Base):
    __tablename__ = "reports"

    id = Column(Integer, primary_key=True, index=True)
    report_number = Column(String, unique=True, nullable=False)
    report_type = Column(String, nullable=False)
    title = Column(String, nullable=False)
    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True)
    data = Column(JSON, nullable=False)
    status = Column(String, default=ReportStatus.DRAFT, nullable=False)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    customer = relationship("Customer")


class NumberSequence(Base):
    __tablename__ = "number_sequences"

    name = Column(String, primary_key=True)
    next_value = Column(Integer, default=1000, nullable=False)
