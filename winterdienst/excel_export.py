from __future__ import annotations

import logging
from io import BytesIO

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font

from .aggregation import entry_minutes
from .durations import format_clock, format_minutes
from .pdf_export import ExportError
from .periods import format_date
from .schemas import WorkLogAggregation

logger = logging.getLogger(__name__)


def _style_header(ws) -> None:
    header_font = Font(bold=True)
    for cell in ws[1]:
        cell.font = header_font
        cell.alignment = Alignment(horizontal="center")


def _fit_columns(ws) -> None:
    for column_cells in ws.columns:
        max_length = max(len(str(cell.value)) if cell.value else 0 for cell in column_cells)
        ws.column_dimensions[column_cells[0].column_letter].width = max_length + 2


def export_work_logs(aggregation: WorkLogAggregation) -> BytesIO:
    """One row per work log plus a sheet with the total of every day."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Arbeitsstunden"
    ws.append(["Datum", "Mitarbeiter", "Von", "Bis", "Dauer (Min)", "Straße", "Stadt", "BG", "Notizen"])
    _style_header(ws)

    for group in aggregation.groups:
        for entry in group.entries:
            ws.append(
                [
                    format_date(entry.work_date),
                    entry.user_name or "",
                    format_clock(entry.start_time),
                    format_clock(entry.end_time),
                    entry_minutes(entry),
                    entry.street_name or "",
                    entry.city_name or "",
                    "ja" if entry.is_bg else "",
                    entry.notes or "",
                ]
            )
    _fit_columns(ws)

    summary_ws = wb.create_sheet(title="Tage")
    summary_ws.append(["Tag", "Einträge", "Dauer (Min)", "Dauer"])
    _style_header(summary_ws)
    for group in aggregation.groups:
        summary_ws.append(
            [group.label, len(group.entries), group.total_minutes, format_minutes(group.total_minutes)]
        )
    summary_ws.append(
        ["Gesamt", aggregation.entry_count, aggregation.total_minutes, format_minutes(aggregation.total_minutes)]
    )
    summary_ws.cell(row=summary_ws.max_row, column=1).font = Font(bold=True)
    _fit_columns(summary_ws)

    buffer = BytesIO()
    try:
        wb.save(buffer)
    except Exception as exc:
        logger.error("XLSX rendering failed: %s", exc)
        raise ExportError("Excel-Datei konnte nicht erstellt werden") from exc
    buffer.seek(0)
    return buffer
