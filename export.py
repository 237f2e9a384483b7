"""Excel export of a user's investment history."""

from io import BytesIO

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter

from tracker import latest_by_name

_HEADER_FONT = Font(bold=True, color="FFFFFF")
_HEADER_FILL = PatternFill("solid", fgColor="D4A017")


def _write_sheet(ws, headers: list, rows: list) -> None:
    ws.append(headers)
    for cell in ws[1]:
        cell.font = _HEADER_FONT
        cell.fill = _HEADER_FILL
    for row in rows:
        ws.append(row)
    for i, header in enumerate(headers, start=1):
        width = max([len(str(header))] + [len(str(r[i - 1])) for r in rows if r[i - 1] is not None])
        ws.column_dimensions[get_column_letter(i)].width = min(width + 2, 48)
    ws.freeze_panes = "A2"


def build_workbook(snapshots) -> bytes:
    """History sheet (every snapshot, oldest first) and Summary sheet (latest per investment)."""
    wb = Workbook()
    ws = wb.active
    ws.title = "History"
    ordered = sorted(snapshots, key=lambda s: s.timestamp)
    _write_sheet(
        ws,
        ["Investment", "Type", "Amount", "Value (USD)", "Timestamp (UTC)"],
        [[s.investment_name, s.investment_type.value, s.amount, round(s.value, 2), s.timestamp_iso] for s in ordered],
    )

    latest = latest_by_name(ordered)
    summary_rows = [
        [name, s.investment_type.value, s.amount, round(s.value, 2), s.timestamp_iso]
        for name, s in sorted(latest.items())
    ]
    total = round(sum(s.value for s in latest.values()), 2)
    summary = wb.create_sheet("Summary")
    _write_sheet(summary, ["Investment", "Type", "Amount", "Current Value (USD)", "As Of (UTC)"], summary_rows)
    summary.append([])
    summary.append(["Total", None, None, total, None])
    summary.cell(summary.max_row, 1).font = Font(bold=True)

    buf = BytesIO()
    wb.save(buf)
    return buf.getvalue()
