"""Mini README: Export member balances to spreadsheet workbooks.

Structure:
    * EXPORT_COLUMNS - column order shared by rows and the sheet header.
    * export_members - flatten members into one row per household.
    * MemberWorkbookExporter - serialise rows into an ``.xlsx`` workbook.

The projection is pure and keeps the order of the input collection. The
workbook exporter only lays rows out under a header; it never recomputes
values so the file always matches what ``export_members`` produced.
"""

from __future__ import annotations

from io import BytesIO
from pathlib import Path
from typing import Dict, Iterable, List, Sequence

from openpyxl import Workbook
from openpyxl.styles import Font

from ..finance import Member, monthly_total
from ..logging_utils import get_logger

LOGGER = get_logger(__name__)

EXPORT_COLUMNS: Sequence[str] = (
    "Name",
    "Balance",
    "WaterBill",
    "SecurityFee",
    "Operations",
    "ExtraFees",
    "MonthlyTotal",
)


def export_members(members: Iterable[Member]) -> List[Dict[str, object]]:
    """Return one export row per member in input order."""

    return [
        {
            "Name": member.name,
            "Balance": member.balance,
            "WaterBill": member.water_bill,
            "SecurityFee": member.security_fee,
            "Operations": member.operations,
            "ExtraFees": member.extra_fees or 0,
            "MonthlyTotal": monthly_total(member),
        }
        for member in members
    ]


class MemberWorkbookExporter:
    """Persist exported member rows as an Excel workbook."""

    def __init__(self, sheet_name: str = "Members", filename: str = "HOA_Members.xlsx") -> None:
        self.sheet_name = sheet_name
        self.filename = filename

    def build_workbook(self, rows: Sequence[Dict[str, object]]) -> Workbook:
        """Lay the rows out beneath a bold header row."""

        workbook = Workbook()
        worksheet = workbook.active
        worksheet.title = self.sheet_name
        worksheet.append(list(EXPORT_COLUMNS))
        for cell in worksheet[1]:
            cell.font = Font(bold=True)
        for row in rows:
            worksheet.append([row.get(column) for column in EXPORT_COLUMNS])
        return workbook

    def to_bytes(self, rows: Sequence[Dict[str, object]]) -> bytes:
        """Return the workbook contents for HTTP downloads."""

        buffer = BytesIO()
        self.build_workbook(rows).save(buffer)
        LOGGER.info("Serialised %s member rows into workbook bytes", len(rows))
        return buffer.getvalue()

    def write(self, rows: Sequence[Dict[str, object]], destination: Path) -> Path:
        """Write the workbook to ``destination``; directories get the default filename."""

        if destination.suffix.lower() != ".xlsx":
            destination = destination / self.filename
        destination.parent.mkdir(parents=True, exist_ok=True)
        self.build_workbook(rows).save(destination)
        LOGGER.info("Exported %s member rows to %s", len(rows), destination)
        return destination
