from __future__ import annotations

import logging
from datetime import date
from io import BytesIO
from xml.sax.saxutils import escape
from typing import List, Optional

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from .aggregation import entry_minutes
from .config import Settings, get_settings
from .durations import format_clock, format_hours, format_minutes
from .invoices import DEFAULT_UNIT, format_currency, format_quantity
from .periods import format_date
from .schemas import Customer, Invoice, InvoiceTemplate, Period, Report, WorkLogAggregation

logger = logging.getLogger(__name__)

STATUS_LABELS = {
    "offen": "Offen",
    "auf_dem_weg": "Auf dem Weg",
    "erledigt": "Erledigt",
}

_GRID_STYLE = [
    ("BACKGROUND", (0, 0), (-1, 0), colors.whitesmoke),
    ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.whitesmoke]),
    ("INNERGRID", (0, 0), (-1, -1), 0.25, colors.lightgrey),
    ("BOX", (0, 0), (-1, -1), 0.5, colors.grey),
    ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
    ("FONTSIZE", (0, 0), (-1, -1), 8),
]

_TOTAL_ROW_STYLE = [
    ("BACKGROUND", (0, -1), (-1, -1), colors.HexColor("#eef2ff")),
    ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
    ("LINEABOVE", (0, -1), (-1, -1), 0.5, colors.grey),
]


class ExportError(RuntimeError):
    """Raised when a document could not be rendered."""


def _new_document(buffer: BytesIO) -> SimpleDocTemplate:
    return SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=15 * mm,
        rightMargin=15 * mm,
        topMargin=18 * mm,
        bottomMargin=18 * mm,
    )


def _company_header(settings: Settings, styles) -> List[object]:
    story: List[object] = [Paragraph(escape(settings.company_name), styles["Heading3"])]
    if settings.company_subtitle:
        story.append(Paragraph(escape(settings.company_subtitle), styles["Normal"]))
    story.append(Spacer(1, 4 * mm))
    return story


def _build(doc: SimpleDocTemplate, buffer: BytesIO, story: List[object], footer_left: str) -> BytesIO:
    footer_right_template = "Seite {page}"

    def _add_footer(canvas, document):  # type: ignore[override]
        canvas.saveState()
        canvas.setFont("Helvetica", 9)
        y_position = 12 * mm
        canvas.drawString(document.leftMargin, y_position, footer_left)
        footer_right = footer_right_template.format(page=canvas.getPageNumber())
        right_width = canvas.stringWidth(footer_right, "Helvetica", 9)
        canvas.drawString(document.pagesize[0] - document.rightMargin - right_width, y_position, footer_right)
        canvas.restoreState()

    try:
        doc.build(story, onFirstPage=_add_footer, onLaterPages=_add_footer)
    except Exception as exc:
        logger.error("PDF rendering failed: %s", exc)
        raise ExportError("PDF konnte nicht erstellt werden") from exc
    buffer.seek(0)
    return buffer


def export_report_pdf(report: Report, settings: Optional[Settings] = None) -> BytesIO:
    settings = settings or get_settings()
    buffer = BytesIO()
    doc = _new_document(buffer)
    styles = getSampleStyleSheet()
    story = _company_header(settings, styles)

    story.append(Paragraph(escape(report.title), styles["Title"]))
    story.append(
        Paragraph(
            f"Berichtsnummer: {report.report_number} | "
            f"Zeitraum: {format_date(report.period_start)} - {format_date(report.period_end)}",
            styles["Normal"],
        )
    )
    story.append(Spacer(1, 6 * mm))

    summary = report.data.summary
    summary_table = Table(
        [
            ["Gesamtstunden", format_hours(summary.total_hours)],
            ["Straßen gesamt", str(summary.total_streets)],
            ["Erledigt", str(summary.streets_completed)],
            ["In Bearbeitung", str(summary.streets_in_progress)],
            ["Offen", str(summary.streets_open)],
        ],
        colWidths=[50 * mm, 40 * mm],
        hAlign="LEFT",
    )
    summary_table.setStyle(
        TableStyle(
            [
                ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
                ("INNERGRID", (0, 0), (-1, -1), 0.25, colors.lightgrey),
                ("BOX", (0, 0), (-1, -1), 0.5, colors.grey),
            ]
        )
    )
    story.append(Paragraph("Zusammenfassung", styles["Heading2"]))
    story.append(summary_table)
    story.append(Spacer(1, 5 * mm))

    if report.data.work_logs:
        log_data = [["Datum", "Mitarbeiter", "Von", "Bis", "Dauer", "Straße", "Notizen"]]
        for row in report.data.work_logs:
            log_data.append(
                [
                    format_date(row.date),
                    row.user_name,
                    row.start_time,
                    row.end_time,
                    format_minutes(row.duration_minutes),
                    row.street or "-",
                    row.notes or "-",
                ]
            )
        log_table = Table(log_data, repeatRows=1)
        log_table.setStyle(TableStyle(_GRID_STYLE))
        story.append(Paragraph("Arbeitsstunden", styles["Heading2"]))
        story.append(log_table)
        story.append(Spacer(1, 5 * mm))

    if report.data.streets:
        street_data = [["Straße", "Stadt", "Gebiet", "Status", "Zugewiesen"]]
        for street in report.data.streets:
            last = street.status_history[-1] if street.status_history else None
            street_data.append(
                [
                    street.name,
                    street.city or "-",
                    street.area or "-",
                    STATUS_LABELS.get(last.status, last.status) if last else "-",
                    ", ".join(str(user_id) for user_id in last.assigned_users) if last and last.assigned_users else "-",
                ]
            )
        street_table = Table(street_data, repeatRows=1)
        street_table.setStyle(TableStyle(_GRID_STYLE))
        story.append(Paragraph("Straßen-Status", styles["Heading2"]))
        story.append(street_table)

    return _build(doc, buffer, story, settings.footer_text)


def export_work_hours_pdf(
    *,
    user_name: str,
    period: Period,
    aggregation: WorkLogAggregation,
    settings: Optional[Settings] = None,
) -> BytesIO:
    """Day-grouped work hours of one employee with day and period totals."""
    settings = settings or get_settings()
    buffer = BytesIO()
    doc = _new_document(buffer)
    styles = getSampleStyleSheet()
    story = _company_header(settings, styles)

    story.append(Paragraph(f"Arbeitsstunden – {period.label}", styles["Title"]))
    story.append(Paragraph(f"Mitarbeiter: {escape(user_name)}", styles["Normal"]))
    story.append(Spacer(1, 5 * mm))

    if not aggregation.groups:
        story.append(Paragraph("Keine Einträge im gewählten Zeitraum.", styles["Normal"]))

    for group in aggregation.groups:
        data = [["Von", "Bis", "Dauer", "Straße", "Stadt", "Notizen"]]
        for entry in group.entries:
            data.append(
                [
                    format_clock(entry.start_time),
                    format_clock(entry.end_time) or "-",
                    format_minutes(entry_minutes(entry)),
                    entry.street_name or "-",
                    entry.city_name or "-",
                    entry.notes or "-",
                ]
            )
        data.append(["Summe", "", format_minutes(group.total_minutes), "", "", ""])
        table = Table(data, repeatRows=1, hAlign="LEFT")
        table.setStyle(TableStyle(_GRID_STYLE + _TOTAL_ROW_STYLE))
        story.append(Paragraph(group.label, styles["Heading3"]))
        story.append(table)
        story.append(Spacer(1, 4 * mm))

    total_table = Table(
        [
            ["Gesamt", format_minutes(aggregation.total_minutes)],
            ["Einträge", str(aggregation.entry_count)],
            ["Arbeitstage", str(aggregation.distinct_days)],
        ],
        colWidths=[40 * mm, 40 * mm],
        hAlign="LEFT",
    )
    total_table.setStyle(
        TableStyle(
            [
                ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
                ("INNERGRID", (0, 0), (-1, -1), 0.25, colors.lightgrey),
                ("BOX", (0, 0), (-1, -1), 0.5, colors.grey),
            ]
        )
    )
    story.append(total_table)

    footer_left = f"{settings.footer_text} | Erstellt am: {format_date(date.today())}"
    return _build(doc, buffer, story, footer_left)


def _tax_label(rate: float) -> str:
    return f"{rate:g}%".replace(".", ",")


def export_invoice_pdf(
    invoice: Invoice,
    customer: Customer,
    template: Optional[InvoiceTemplate] = None,
    settings: Optional[Settings] = None,
) -> BytesIO:
    """Invoice with recipient block, line items, VAT totals and payment terms.

    Sender name, header and footer come from the template where it sets them
    and from the company settings otherwise.
    """
    settings = settings or get_settings()
    buffer = BytesIO()
    doc = _new_document(buffer)
    styles = getSampleStyleSheet()

    sender = (template.company_name if template else None) or settings.company_name
    story: List[object] = [Paragraph(escape(sender), styles["Heading3"])]
    if template and template.company_address:
        story.append(Paragraph(escape(template.company_address), styles["Normal"]))
    elif settings.company_subtitle:
        story.append(Paragraph(escape(settings.company_subtitle), styles["Normal"]))
    if template and template.header_text:
        story.append(Paragraph(escape(template.header_text), styles["Normal"]))
    story.append(Spacer(1, 4 * mm))

    story.append(Paragraph("Rechnung", styles["Title"]))
    recipient = [customer.name, customer.company, customer.address]
    recipient.append(" ".join(part for part in (customer.postal_code, customer.city) if part))
    details = Table(
        [
            ["Datum:", format_date(invoice.issue_date)],
            ["RE.-Nr.:", invoice.invoice_number],
            ["Fällig am:", format_date(invoice.due_date)],
            ["Für:", Paragraph("<br/>".join(escape(line) for line in recipient if line), styles["Normal"])],
        ],
        colWidths=[30 * mm, 80 * mm],
        hAlign="LEFT",
    )
    details.setStyle(
        TableStyle(
            [
                ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
            ]
        )
    )
    story.append(details)
    story.append(Spacer(1, 5 * mm))

    if invoice.period_start and invoice.period_end:
        story.append(
            Paragraph(
                f"Leistungszeitraum: {format_date(invoice.period_start)} - {format_date(invoice.period_end)}",
                styles["Normal"],
            )
        )
        story.append(Spacer(1, 3 * mm))

    item_data: List[List[object]] = [["#", "Beschreibung", "Menge", "Einheit", "Einzelpreis", "MwSt.", "Gesamt"]]
    for index, item in enumerate(invoice.items, start=1):
        item_data.append(
            [
                str(index),
                Paragraph(escape(item.description), styles["Normal"]),
                format_quantity(item.quantity),
                item.unit or DEFAULT_UNIT,
                format_currency(item.price_per_unit),
                _tax_label(item.tax_rate),
                format_currency(item.line_total),
            ]
        )
    item_table = Table(
        item_data,
        colWidths=[8 * mm, 69 * mm, 18 * mm, 18 * mm, 25 * mm, 15 * mm, 27 * mm],
        repeatRows=1,
    )
    item_table.setStyle(
        TableStyle(_GRID_STYLE + [("ALIGN", (2, 1), (-1, -1), "RIGHT"), ("VALIGN", (0, 0), (-1, -1), "TOP")])
    )
    story.append(item_table)
    story.append(Spacer(1, 4 * mm))

    totals = Table(
        [
            ["Zwischensumme:", format_currency(invoice.subtotal)],
            ["MwSt.:", format_currency(invoice.tax_amount)],
            ["Gesamtbetrag:", format_currency(invoice.total)],
        ],
        colWidths=[40 * mm, 30 * mm],
        hAlign="RIGHT",
    )
    totals.setStyle(TableStyle([("ALIGN", (1, 0), (1, -1), "RIGHT")] + _TOTAL_ROW_STYLE))
    story.append(totals)
    story.append(Spacer(1, 6 * mm))

    if invoice.notes:
        story.append(Paragraph("Bemerkungen:", styles["Heading4"]))
        story.append(Paragraph(escape(invoice.notes), styles["Normal"]))
        story.append(Spacer(1, 3 * mm))
    if template and template.payment_terms:
        story.append(Paragraph(escape(template.payment_terms), styles["Normal"]))

    footer = (template.footer_text if template else None) or settings.footer_text
    return _build(doc, buffer, story, footer)
