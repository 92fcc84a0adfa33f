"""
PDF generator for invoices and estimates.

Uses fpdf2 (pure Python, no system dependencies).

Sections:
1. Business header + document number/date/status
2. Bill To
3. Services
4. Job details (concrete leveling calculations)
5. Totals
6. Notes
7. Customer approval (estimates)
8. Terms
"""

import base64
from datetime import date, datetime
from io import BytesIO

from fpdf import FPDF

from .document_service import SIGNATURE_PREFIX


def _fmt(amount) -> str:
    """Format a number as $X,XXX.XX"""
    try:
        return f"${float(amount):,.2f}"
    except (ValueError, TypeError):
        return "$0.00"


def _fmt_qty(qty) -> str:
    try:
        return f"{float(qty):g}"
    except (ValueError, TypeError):
        return "1"


def _fmt_date(value) -> str:
    if not value:
        return ""
    try:
        return date.fromisoformat(str(value)[:10]).strftime("%B %d, %Y")
    except ValueError:
        return str(value)


def _safe(text: str) -> str:
    """Replace Unicode chars that can't be rendered by built-in PDF fonts (latin-1)."""
    if not text:
        return ""
    return (
        str(text)
        .replace("•", "-")    # bullet
        .replace("—", " - ")  # em dash
        .replace("–", "-")    # en dash
        .replace("“", '"')    # left double quote
        .replace("”", '"')    # right double quote
        .replace("‘", "'")    # left single quote
        .replace("’", "'")    # right single quote
        .replace("³", "3")    # superscript three (yd³)
        .encode("latin-1", errors="replace")
        .decode("latin-1")
    )


class DocumentPDF(FPDF):
    """Custom PDF class for invoice and estimate documents."""

    def __init__(self, business_name=""):
        super().__init__()
        self.business_name = business_name
        self.set_auto_page_break(auto=True, margin=20)

    def header(self):
        pass  # Rendered manually on the first page

    def footer(self):
        self.set_y(-15)
        self.set_font("Helvetica", "I", 8)
        self.set_text_color(150, 150, 150)
        self.cell(0, 10, _safe(f"{self.business_name} - Page {self.page_no()}/{{nb}}"), align="C")

    def section_header(self, title):
        """Render a section header bar."""
        self.set_font("Helvetica", "B", 11)
        self.set_fill_color(45, 55, 72)
        self.set_text_color(255, 255, 255)
        self.cell(0, 8, f"  {title}", fill=True, new_x="LMARGIN", new_y="NEXT")
        self.set_text_color(0, 0, 0)
        self.ln(2)

    def table_header(self, cols):
        """Render a table header row. cols: [(label, width), ...]"""
        self.set_font("Helvetica", "B", 8)
        self.set_fill_color(240, 240, 240)
        for label, width in cols:
            align = "R" if label in ("Qty", "Rate", "Amount") else "L"
            self.cell(width, 6, label, border="B", fill=True, align=align)
        self.ln()

    def table_row(self, values, widths):
        """Render a table data row. Description wraps; numbers align right."""
        self.set_font("Helvetica", "", 8)
        lines = len(self.multi_cell(widths[0], 5.5, values[0], dry_run=True, output="LINES")) or 1
        y0 = self.get_y()
        self.multi_cell(widths[0], 5.5, values[0], new_x="RIGHT", new_y="TOP")
        for i, (val, width) in enumerate(zip(values[1:], widths[1:]), start=1):
            align = "L" if i == 2 else "R"
            self.cell(width, 5.5, str(val), align=align)
        self.set_xy(self.l_margin, y0 + 5.5 * lines)

    def total_row(self, label, amount):
        self.set_font("Helvetica", "", 10)
        self.cell(130, 6, label, align="R")
        self.cell(60, 6, _fmt(amount), align="R")
        self.ln()


def _job_details(items: list) -> list:
    """(description, [detail lines]) for every line item that carries a concrete calculation."""
    out = []
    for item in items:
        d = item.get("details") or {}
        if "void_volume_cubic_yards" not in d:
            continue
        inputs = d.get("inputs", {})
        lines = [
            f"Slab: {inputs.get('length', 0):g}' x {inputs.get('width', 0):g}' = "
            f"{d.get('square_footage', 0):g} sq ft, {inputs.get('lift_inches', 0):g}\" lift",
            f"Foam: {str(inputs.get('foam_type', '')).replace('_', ' ')} "
            f"({str(inputs.get('application_type', '')).replace('_', ' ')}), "
            f"{d.get('material_weight_pounds', 0):,.1f} lb for {d.get('void_volume_cubic_yards', 0):.4f} cu yd",
            f"Soil: {inputs.get('soil_type', 'mixed')}, sides settled: {inputs.get('sides_settled', '')}, "
            f"travel: {inputs.get('travel_distance_miles', 0):g} mi",
            f"Estimated range: {_fmt(d.get('estimated_price_low'))} - {_fmt(d.get('estimated_price_high'))}",
        ]
        out.append((item.get("description", ""), lines))
    return out


def _signature_image(data_url: str):
    if not data_url or not data_url.startswith(SIGNATURE_PREFIX):
        return None
    try:
        return BytesIO(base64.b64decode(data_url[len(SIGNATURE_PREFIX):]))
    except ValueError:
        return None


def generate_document_pdf(document: dict, business: dict) -> bytes:
    """
    Generate a PDF for an invoice or estimate.

    Args:
        document: document dict (document_service.document_to_dict)
        business: business profile (Settings.business_profile)

    Returns:
        PDF bytes
    """
    is_estimate = document.get("doc_type") == "estimate"
    kind = "ESTIMATE" if is_estimate else "INVOICE"
    business_name = business.get("name") or kind.title()

    pdf = DocumentPDF(business_name=business_name)
    pdf.alias_nb_pages()
    pdf.add_page()
    pw = pdf.w - pdf.l_margin - pdf.r_margin  # printable width

    # ── SECTION 1: Header ──
    pdf.set_font("Helvetica", "B", 18)
    pdf.cell(0, 10, _safe(business_name), new_x="LMARGIN", new_y="NEXT")
    info = " | ".join(p for p in [business.get("address"), business.get("phone"),
                                  business.get("email"), business.get("website")] if p)
    if info:
        pdf.set_font("Helvetica", "", 9)
        pdf.set_text_color(100, 100, 100)
        pdf.cell(0, 5, _safe(info), new_x="LMARGIN", new_y="NEXT")
        pdf.set_text_color(0, 0, 0)
    pdf.ln(4)

    pdf.set_font("Helvetica", "B", 14)
    pdf.cell(0, 8, _safe(f"{kind} #{document.get('number') or 'DRAFT'}"), new_x="LMARGIN", new_y="NEXT")
    pdf.set_font("Helvetica", "", 10)
    pdf.cell(0, 5, f"Date: {_fmt_date(document.get('issue_date'))}", new_x="LMARGIN", new_y="NEXT")
    if is_estimate and document.get("valid_until"):
        pdf.cell(0, 5, f"Valid until: {_fmt_date(document['valid_until'])}", new_x="LMARGIN", new_y="NEXT")
    if not is_estimate and document.get("due_date"):
        pdf.cell(0, 5, f"Due: {_fmt_date(document['due_date'])}", new_x="LMARGIN", new_y="NEXT")
    pdf.cell(0, 5, f"Status: {(document.get('status') or 'draft').upper()}", new_x="LMARGIN", new_y="NEXT")
    pdf.ln(4)

    # ── SECTION 2: Bill To ──
    customer = document.get("customer") or {}
    pdf.section_header("PREPARED FOR" if is_estimate else "BILL TO")
    pdf.set_font("Helvetica", "B", 10)
    pdf.cell(0, 5, _safe(customer.get("name") or ""), new_x="LMARGIN", new_y="NEXT")
    pdf.set_font("Helvetica", "", 9)
    for key in ("address", "phone", "email"):
        if customer.get(key):
            pdf.cell(0, 5, _safe(customer[key]), new_x="LMARGIN", new_y="NEXT")
    pdf.ln(4)

    # ── SECTION 3: Services ──
    items = document.get("line_items", [])
    pdf.section_header("SERVICES")
    cols = [("Description", 95), ("Qty", 20), ("Unit", 20), ("Rate", 25), ("Amount", 30)]
    widths = [c[1] for c in cols]
    pdf.table_header(cols)
    if not items:
        pdf.set_font("Helvetica", "I", 8)
        pdf.cell(0, 6, "No services listed.", new_x="LMARGIN", new_y="NEXT")
    for item in items:
        pdf.table_row(
            [_safe(item.get("description", "")), _fmt_qty(item.get("quantity")),
             _safe(item.get("unit", "")), _fmt(item.get("unit_price")), _fmt(item.get("amount"))],
            widths,
        )
    pdf.ln(4)

    # ── SECTION 4: Job details ──
    details = _job_details(items)
    if details:
        pdf.section_header("JOB DETAILS")
        for description, lines in details:
            pdf.set_font("Helvetica", "B", 8)
            pdf.multi_cell(pw, 4.5, _safe(description), new_x="LMARGIN", new_y="NEXT")
            pdf.set_font("Helvetica", "", 8)
            for line in lines:
                pdf.cell(pw, 4.5, _safe(f"  - {line}"), new_x="LMARGIN", new_y="NEXT")
            pdf.ln(2)

    # ── SECTION 5: Totals ──
    pdf.section_header("TOTAL")
    pdf.total_row("Subtotal", document.get("subtotal", 0))
    tax_pct = (document.get("tax_rate") or 0) * 100
    pdf.total_row(f"Tax ({tax_pct:g}%)", document.get("tax", 0))

    pdf.ln(1)
    pdf.set_fill_color(45, 55, 72)
    pdf.set_text_color(255, 255, 255)
    pdf.set_font("Helvetica", "B", 13)
    pdf.cell(130, 10, f"  {kind} TOTAL", fill=True)
    pdf.cell(60, 10, f"{_fmt(document.get('total', 0))}  ", fill=True, align="R")
    pdf.set_text_color(0, 0, 0)
    pdf.ln(14)

    # ── SECTION 6: Notes ──
    if document.get("notes"):
        pdf.section_header("NOTES")
        pdf.set_font("Helvetica", "", 9)
        pdf.multi_cell(pw, 4.5, _safe(document["notes"]), new_x="LMARGIN", new_y="NEXT")
        pdf.ln(4)

    # ── SECTION 7: Approval ──
    if is_estimate:
        pdf.section_header("CUSTOMER APPROVAL")
        signature = document.get("signature") or {}
        image = _signature_image(signature.get("data"))
        pdf.set_font("Helvetica", "", 9)
        if image is not None:
            pdf.image(image, w=60)
            signed_at = signature.get("signed_at") or ""
            try:
                signed_str = datetime.fromisoformat(signed_at).strftime("%B %d, %Y")
            except ValueError:
                signed_str = signed_at
            pdf.cell(0, 5, _safe(f"Approved by {signature.get('name', '')} on {signed_str}"),
                     new_x="LMARGIN", new_y="NEXT")
        else:
            pdf.ln(10)
            pdf.cell(90, 5, "Signature: ______________________________")
            pdf.cell(0, 5, "Date: ______________", new_x="LMARGIN", new_y="NEXT")
        pdf.ln(4)

    # ── SECTION 8: Terms ──
    pdf.set_font("Helvetica", "I", 8)
    pdf.set_text_color(100, 100, 100)
    pdf.set_x(pdf.l_margin)
    if is_estimate:
        pdf.cell(pw, 4, "This estimate is valid for 30 days. Work will begin upon customer approval.",
                 new_x="LMARGIN", new_y="NEXT")
    else:
        pdf.cell(pw, 4, "Payment is due within 30 days of invoice date.", new_x="LMARGIN", new_y="NEXT")
        pdf.cell(pw, 4, _safe(f"Make checks payable to: {business_name}"), new_x="LMARGIN", new_y="NEXT")
    pdf.cell(pw, 4, "Thank you for your business!", new_x="LMARGIN", new_y="NEXT")
    pdf.set_text_color(0, 0, 0)

    return bytes(pdf.output())
