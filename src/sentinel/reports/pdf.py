"""
PDF reports.

- Patron Profile Report: patron details, CTR history table and totals
- CTR form: the stored CTR template with case fields filled in

Uses PyMuPDF for both drawing and form filling.
"""

import logging
import re
from datetime import date, datetime
from typing import Any, Optional, Sequence

import pymupdf  # PyMuPDF

from sentinel.db.orm import CTR, Patron
from sentinel.errors import NotFoundError
from sentinel.files.service import AttachmentService
from sentinel.storage.blobs import TEMPLATES_BUCKET, BlobNotFoundError, BlobStore
from sentinel.workflow.states import CaseKind

logger = logging.getLogger(__name__)

CTR_TEMPLATE_PATH = "CTR_Template.pdf"

# US Letter, points
PAGE_WIDTH = 612
PAGE_HEIGHT = 792
MARGIN = 56
LINE = 16

HISTORY_COLUMNS = (
    ("Date", 0),
    ("Ship", 90),
    ("Cash In", 230),
    ("Cash Out", 330),
    ("Status", 430),
)


class TemplateNotFoundError(NotFoundError):
    def __init__(self, path: str):
        self.path = path
        super().__init__(f"CTR template not found: {path}")


def format_currency(amount: Optional[float]) -> str:
    """Format as US dollars: 1234.5 -> $1,234.50, -5 -> -$5.00."""
    value = float(amount or 0)
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.2f}"


def format_date(value: Optional[date]) -> str:
    if value is None:
        return "Not provided"
    return f"{value.month}/{value.day}/{value.year}"


class _Writer:
    """Top-to-bottom text layout across as many pages as needed."""

    def __init__(self, doc: "pymupdf.Document"):
        self.doc = doc
        self.page = doc.new_page(width=PAGE_WIDTH, height=PAGE_HEIGHT)
        self.y = MARGIN

    def _ensure_room(self, height: float) -> None:
        if self.y + height > PAGE_HEIGHT - MARGIN - LINE:
            self.page = self.doc.new_page(width=PAGE_WIDTH, height=PAGE_HEIGHT)
            self.y = MARGIN

    def text(self, value: str, size: float = 12, bold: bool = False, x: float = MARGIN) -> None:
        self._ensure_room(size + 4)
        self.y += size + 4
        self.page.insert_text(
            (x, self.y), value, fontsize=size, fontname="hebo" if bold else "helv"
        )

    def centered(self, value: str, size: float, y: float, page=None) -> None:
        page = page or self.page
        width = pymupdf.get_text_length(value, fontname="helv", fontsize=size)
        page.insert_text(((PAGE_WIDTH - width) / 2, y), value, fontsize=size, fontname="helv")

    def gap(self, height: float = LINE / 2) -> None:
        self.y += height

    def row(self, cells: Sequence[str], bold: bool = False) -> None:
        self._ensure_room(LINE)
        self.y += LINE
        for (_, offset), cell in zip(HISTORY_COLUMNS, cells):
            self.page.insert_text(
                (MARGIN + offset, self.y),
                cell,
                fontsize=10,
                fontname="hebo" if bold else "helv",
            )

    def rule(self) -> None:
        self.page.draw_line(
            (MARGIN, self.y + 4), (PAGE_WIDTH - MARGIN, self.y + 4), color=(0.6, 0.6, 0.6)
        )
        self.y += 4


def generate_patron_report(
    patron: Patron,
    ctrs: Optional[Sequence[CTR]] = None,
    now: Optional[datetime] = None,
) -> bytes:
    """
    Render the Patron Profile Report.

    Args:
        patron: Patron to report on
        ctrs: CTR history; defaults to the patron's loaded CTRs
        now: Timestamp for the footer

    Returns:
        PDF document bytes
    """
    if ctrs is None:
        ctrs = list(patron.ctrs)
    if now is None:
        now = datetime.now()

    doc = pymupdf.open()
    try:
        writer = _Writer(doc)
        writer.centered("Patron Profile Report", 20, MARGIN + 20)
        writer.gap(40)

        writer.text("Patron Information", size=16, bold=True)
        writer.text(f"Name: {patron.first_name} {patron.last_name}")
        writer.text(f"Date of Birth: {format_date(patron.date_of_birth)}")
        writer.gap(LINE)

        if ctrs:
            writer.text("CTR History", size=16, bold=True)
            writer.row([label for label, _ in HISTORY_COLUMNS], bold=True)
            writer.rule()
            for ctr in ctrs:
                writer.row([
                    format_date(ctr.gaming_day),
                    ctr.ship or "",
                    format_currency(ctr.cash_in_total),
                    format_currency(ctr.cash_out_total),
                    ctr.status.value if ctr.status else "",
                ])

            total_in = sum(float(c.cash_in_total or 0) for c in ctrs)
            total_out = sum(float(c.cash_out_total or 0) for c in ctrs)
            writer.gap(LINE)
            writer.text("Statistics", size=16, bold=True)
            writer.text(f"Total Cash In: {format_currency(total_in)}")
            writer.text(f"Total Cash Out: {format_currency(total_out)}")
            writer.text(f"Average Cash In per CTR: {format_currency(total_in / len(ctrs))}")
            writer.text(f"Average Cash Out per CTR: {format_currency(total_out / len(ctrs))}")
        else:
            writer.text("No CTR history found.")

        footer = f"Generated on {now.strftime('%m/%d/%Y, %I:%M:%S %p')}"
        for page in doc:
            writer.centered(footer, 10, PAGE_HEIGHT - 20, page=page)

        data = doc.tobytes()
    finally:
        doc.close()

    logger.info(f"Generated patron report for {patron.id} with {len(ctrs)} CTR(s)")
    return data


def _field_key(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", name.lower()).strip("_")


def ctr_field_values(case: CTR) -> dict[str, str]:
    """Values stamped into template form fields, keyed by normalized field name."""
    values: dict[str, Any] = {
        "ctr_id": case.ctr_id,
        "gaming_day": format_date(case.gaming_day),
        "ship": case.ship,
        "first_name": case.first_name,
        "last_name": case.last_name,
        "date_of_birth": format_date(case.date_of_birth),
        "embark_date": format_date(case.embark_date),
        "debark_date": format_date(case.debark_date),
        "cash_in_total": format_currency(case.cash_in_total),
        "cash_out_total": format_currency(case.cash_out_total),
    }
    return {k: str(v) for k, v in values.items() if v is not None}


def fill_form(template: bytes, values: dict[str, str]) -> tuple[bytes, int]:
    """
    Fill form fields whose normalized names match a key in values.

    Returns:
        (document bytes, number of fields filled)
    """
    doc = pymupdf.open(stream=template, filetype="pdf")
    filled = 0
    try:
        for page in doc:
            for widget in page.widgets():
                key = _field_key(widget.field_name or "")
                if key in values:
                    widget.field_value = values[key]
                    widget.update()
                    filled += 1
        data = doc.tobytes()
    finally:
        doc.close()
    return data, filled


class CTRTemplateService:
    """Produces filled CTR forms from the stored template."""

    def __init__(self, blobs: BlobStore, attachments: AttachmentService):
        self.blobs = blobs
        self.attachments = attachments

    async def download_template(self) -> bytes:
        """
        Raises:
            TemplateNotFoundError: If no template has been uploaded
        """
        try:
            return await self.blobs.download(TEMPLATES_BUCKET, CTR_TEMPLATE_PATH)
        except BlobNotFoundError as e:
            logger.error(f"Error fetching template: {e}")
            raise TemplateNotFoundError(f"{TEMPLATES_BUCKET}/{CTR_TEMPLATE_PATH}") from e

    @staticmethod
    def ctr_filename(case: CTR, today: Optional[date] = None) -> str:
        """CTR_{first}_{last}_{YYYY-MM-DD}.pdf"""
        if today is None:
            today = date.today()
        return f"CTR_{case.first_name}_{case.last_name}_{today.isoformat()}.pdf"

    async def generate_ctr(self, case: CTR, today: Optional[date] = None) -> tuple[str, bytes]:
        """
        Fill the template for a case and save it back into the case files.

        Returns:
            (file name, PDF bytes)
        """
        template = await self.download_template()
        data, filled = fill_form(template, ctr_field_values(case))
        filename = self.ctr_filename(case, today)

        await self.attachments.upload_case_file(
            CaseKind.CTR,
            case.ctr_id,
            filename,
            data,
            content_type="application/pdf",
            upsert=True,
        )
        logger.info(f"Generated {filename} for CTR {case.ctr_id} ({filled} field(s) filled)")
        return filename, data
