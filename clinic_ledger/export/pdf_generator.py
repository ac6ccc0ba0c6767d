"""fpdf2-based invoice PDF renderer.

Generates in-memory PDF bytes for an invoice with its lines and payments.
No disk I/O; returns bytes directly via FPDF.output().
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from fpdf import FPDF

from clinic_ledger.core.schemas import InvoiceDetails


class InvoicePDF(FPDF):
    """PDF subclass with clinic letterhead and page footer."""

    def __init__(self, clinic_name: str = "Clinic"):
        super().__init__()
        self.clinic_name = clinic_name

    def header(self):
        self.set_font("Helvetica", "B", 12)
        self.cell(0, 6, _sanitize(self.clinic_name), new_x="LMARGIN", new_y="NEXT")
        self.set_font("Helvetica", "", 7)
        self.set_text_color(120, 120, 120)
        self.cell(0, 4, "INVOICE", new_x="LMARGIN", new_y="NEXT")
        self.set_text_color(0, 0, 0)
        self.line(10, self.get_y() + 1, 200, self.get_y() + 1)
        self.ln(4)

    def footer(self):
        self.set_y(-15)
        self.set_font("Helvetica", "I", 7)
        self.set_text_color(128, 128, 128)
        self.cell(0, 10, f"Page {self.page_no()}/{{nb}}", align="C")


def generate_invoice_pdf(invoice: InvoiceDetails, clinic_name: str = "Clinic") -> bytes:
    """Render ``invoice`` and return raw PDF bytes."""
    pdf = InvoicePDF(clinic_name=clinic_name)
    pdf.alias_nb_pages()
    pdf.add_page()
    pdf.set_auto_page_break(auto=True, margin=20)

    # --- Invoice header block ---
    pdf.set_font("Helvetica", "B", 14)
    pdf.cell(0, 8, f"Invoice {invoice.invoice_number}", new_x="LMARGIN", new_y="NEXT")

    pdf.set_font("Helvetica", "", 9)
    meta_parts = [
        f"Issued: {invoice.created_at:%Y-%m-%d}",
        f"Due: {invoice.due_date:%Y-%m-%d}",
        f"Status: {invoice.status.value.upper()}",
    ]
    pdf.cell(0, 5, "  |  ".join(meta_parts), new_x="LMARGIN", new_y="NEXT")
    if invoice.patient_name:
        pdf.cell(0, 5, f"Bill to: {_sanitize(invoice.patient_name)}", new_x="LMARGIN", new_y="NEXT")
    pdf.ln(3)

    # --- Line items ---
    _render_section_header(pdf, "Services")
    _render_table(
        pdf,
        ["Code", "Description", "Qty", "Unit Price", "Tax", "Amount"],
        [
            [
                item.code or "-",
                item.description,
                str(item.quantity),
                _money(item.unit_price),
                f"{item.tax_rate * 100:.2f}%",
                _money(item.total_price),
            ]
            for item in invoice.items
        ],
        widths=[25, 70, 12, 28, 20, 35],
    )

    # --- Totals ---
    for label, amount, bold in (
        ("Subtotal", invoice.subtotal, False),
        ("Tax", invoice.tax_amount, False),
        ("Total", invoice.total_amount, True),
        ("Paid", invoice.amount_paid, False),
        ("Balance due", invoice.balance_due, True),
    ):
        pdf.set_font("Helvetica", "B" if bold else "", 9)
        pdf.cell(155, 5, label, align="R")
        pdf.cell(35, 5, _money(amount), align="R", new_x="LMARGIN", new_y="NEXT")
    pdf.ln(3)

    # --- Payments ---
    if invoice.payments:
        _render_section_header(pdf, "Payments")
        _render_table(
            pdf,
            ["Date", "Method", "Reference", "Amount"],
            [
                [
                    f"{p.payment_date:%Y-%m-%d}",
                    p.payment_method.value.replace("_", " "),
                    p.reference_number or "",
                    _money(p.amount),
                ]
                for p in invoice.payments
            ],
        )

    if invoice.notes:
        _render_section_header(pdf, "Notes")
        pdf.set_font("Helvetica", "", 9)
        pdf.multi_cell(0, 5, _sanitize(invoice.notes))
        pdf.ln(2)

    # --- Generated timestamp ---
    pdf.ln(4)
    pdf.set_font("Helvetica", "I", 7)
    pdf.set_text_color(160, 160, 160)
    pdf.cell(0, 4, f"Generated on {datetime.now().strftime('%Y-%m-%d %H:%M')}", new_x="LMARGIN", new_y="NEXT")

    return bytes(pdf.output())


# --- Helpers ---

def _money(value: Decimal) -> str:
    return f"{value:,.2f}"


def _sanitize(text: str) -> str:
    """Replace Unicode characters that Helvetica (latin-1) can't render."""
    return (
        text
        .replace("\u2014", "-")
        .replace("\u2013", "-")
        .replace("\u2018", "'")
        .replace("\u2019", "'")
        .replace("\u201c", '"')
        .replace("\u201d", '"')
        .encode("latin-1", "replace")
        .decode("latin-1")
    )


def _render_section_header(pdf: FPDF, title: str) -> None:
    pdf.set_font("Helvetica", "B", 9)
    pdf.set_text_color(60, 60, 60)
    pdf.cell(0, 6, title.upper(), new_x="LMARGIN", new_y="NEXT")
    pdf.set_text_color(0, 0, 0)


def _render_table(
    pdf: FPDF, headers: list[str], rows: list[list[str]], widths: list[float] | None = None
) -> None:
    if widths is None:
        widths = [(pdf.w - 20) / len(headers)] * len(headers)
    pdf.set_font("Helvetica", "B", 8)
    pdf.set_fill_color(230, 230, 235)
    for h, w in zip(headers, widths):
        pdf.cell(w, 5, h, border=1, fill=True)
    pdf.ln()
    pdf.set_font("Helvetica", "", 8)
    for row in rows:
        for cell, w in zip(row, widths):
            pdf.cell(w, 5, _sanitize(str(cell))[:45], border=1)
        pdf.ln()
    pdf.ln(2)
