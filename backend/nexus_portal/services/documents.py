"""
Quote and invoice PDF generation.

Totals are computed with Decimal and rounded half-up to the cent; the layout
(header, parties, dates, line items, totals, payment terms, signature block
and legal footer) is drawn with ReportLab.
"""

import io
import logging
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Literal, Optional, Sequence
from xml.sax.saxutils import escape

from pydantic import BaseModel, EmailStr, Field
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_RIGHT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from ..core.config import settings

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

COMPANY = {
    "name": "Nexus Développement",
    "street": "4 rue de la ferme",
    "city": "78990 Élancourt",
    "siret": "995 394 095 00013",
    "email": "contact.nexus.developpement@gmail.com",
    "phone": "07 61 84 75 80",
    "legal": "Nexus Développement - SARL au capital de 500€ - RCS 995 394 095 R.C.S. Versailles - TVA FR49995394095",
}
PAYMENT_TERMS = "Acompte de 30% à la signature, solde à la livraison."
LATE_PENALTIES = "En cas de retard de paiement : taux d'intérêt légal en vigueur + indemnité forfaitaire de 40€."

BRAND = colors.HexColor("#1e3a8a")
MUTED = colors.HexColor("#6b7280")


class DocumentValidationError(ValueError):
    """Raised when a document lacks what its PDF needs."""


class DocumentClient(BaseModel):
    name: str = ""
    email: Optional[EmailStr] = None
    address: Optional[str] = None
    phone: Optional[str] = None


class LineItem(BaseModel):
    description: str
    quantity: Decimal = Field(gt=0)
    unit_price: Decimal = Field(ge=0)


class DocumentInput(BaseModel):
    kind: Literal["quote", "invoice"]
    number: str
    client: DocumentClient
    items: List[LineItem] = []
    tax_rate: Decimal = Decimal("20")
    issue_date: date
    due_date: Optional[date] = None
    valid_until: Optional[date] = None
    notes: Optional[str] = None
    terms: Optional[str] = None


class DocumentTotals(BaseModel):
    line_totals: List[Decimal]
    subtotal: Decimal
    tax: Decimal
    total: Decimal


def to_cents(value) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_totals(items: Sequence[LineItem], tax_rate) -> DocumentTotals:
    """
    Line totals, subtotal, tax and grand total in exact decimal arithmetic.

    Each line is rounded to the cent before summing, so the subtotal always
    equals the sum of the printed lines.
    """
    line_totals = [to_cents(item.quantity * item.unit_price) for item in items]
    subtotal = to_cents(sum(line_totals, Decimal("0")))
    tax = to_cents(subtotal * Decimal(tax_rate) / Decimal("100"))
    return DocumentTotals(line_totals=line_totals, subtotal=subtotal, tax=tax, total=subtotal + tax)


def validate_document(doc: DocumentInput) -> None:
    if not doc.client.name or not doc.client.name.strip():
        raise DocumentValidationError("Nom du client manquant")
    if not doc.items:
        raise DocumentValidationError("Le document doit contenir au moins une ligne")


def document_reference(number: Optional[str], record_id: str) -> str:
    """Printed reference: the document number, else the first 8 characters of its id."""
    return (number or record_id[:8]).upper()


def document_filename(doc: DocumentInput) -> str:
    prefix = "Devis" if doc.kind == "quote" else "Facture"
    return f"{prefix}_{doc.number}.pdf"


def format_amount(value: Decimal) -> str:
    """'1234.5' -> '1 234,50 €'"""
    text = f"{to_cents(value):,.2f}".replace(",", " ").replace(".", ",")
    return f"{text} €"


def _format_date(value: date) -> str:
    return value.strftime("%d/%m/%Y")


def _styles():
    styles = getSampleStyleSheet()
    styles.add(ParagraphStyle("DocTitle", parent=styles["Title"], fontSize=22, textColor=BRAND, alignment=TA_CENTER))
    styles.add(ParagraphStyle("DocRef", parent=styles["Normal"], fontSize=10, alignment=TA_RIGHT, textColor=MUTED))
    styles.add(ParagraphStyle("Party", parent=styles["Normal"], fontSize=9, leading=12))
    styles.add(ParagraphStyle("SectionHead", parent=styles["Normal"], fontName="Helvetica-Bold", fontSize=10, textColor=BRAND, spaceBefore=8, spaceAfter=4))
    styles.add(ParagraphStyle("Small", parent=styles["Normal"], fontSize=8, leading=10))
    styles.add(ParagraphStyle("Legal", parent=styles["Normal"], fontSize=7, leading=9, textColor=MUTED, alignment=TA_CENTER))
    return styles


def _lines(*parts: Optional[str]) -> str:
    return "<br/>".join(escape(p) for p in parts if p)


def render_document(doc: DocumentInput) -> bytes:
    """Render the quote or invoice to PDF bytes. Validates first."""
    validate_document(doc)
    totals = compute_totals(doc.items, doc.tax_rate)
    styles = _styles()
    is_quote = doc.kind == "quote"

    buffer = io.BytesIO()
    pdf = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=15 * mm,
        rightMargin=15 * mm,
        topMargin=15 * mm,
        bottomMargin=15 * mm,
        title=document_filename(doc),
        author=COMPANY["name"],
    )
    story = []

    # Header
    header = Table(
        [[
            Paragraph("<b>NEXUS</b><br/>DÉVELOPPEMENT", styles["Party"]),
            Paragraph("DEVIS" if is_quote else "FACTURE", styles["DocTitle"]),
            Paragraph(f"N° {escape(doc.number)}", styles["DocRef"]),
        ]],
        colWidths=[50 * mm, 80 * mm, 50 * mm],
    )
    header.setStyle(TableStyle([("VALIGN", (0, 0), (-1, -1), "MIDDLE")]))
    story.append(header)
    story.append(Spacer(1, 6 * mm))

    # Parties
    company = _lines(
        COMPANY["street"], COMPANY["city"], f"SIRET : {COMPANY['siret']}", COMPANY["email"], COMPANY["phone"]
    )
    client = doc.client
    parties = Table(
        [[
            Paragraph(f"<b>{escape(COMPANY['name'])}</b><br/>{company}", styles["Party"]),
            Paragraph(f"<b>{escape(client.name)}</b><br/>{_lines(client.address, client.email, client.phone)}", styles["Party"]),
        ]],
        colWidths=[90 * mm, 90 * mm],
    )
    parties.setStyle(TableStyle([
        ("BOX", (1, 0), (1, 0), 0.5, MUTED),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("LEFTPADDING", (1, 0), (1, 0), 6),
    ]))
    story.append(parties)
    story.append(Spacer(1, 5 * mm))

    # Dates
    if is_quote:
        second_label = "Date de validité"
        second_date = doc.valid_until or doc.issue_date + timedelta(days=settings.QUOTE_VALIDITY_DAYS)
    else:
        second_label = "Date d'échéance"
        second_date = doc.due_date or doc.issue_date
    dates = Table(
        [[f"Date d'émission : {_format_date(doc.issue_date)}", f"{second_label} : {_format_date(second_date)}"]],
        colWidths=[90 * mm, 90 * mm],
    )
    dates.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, -1), colors.HexColor("#f3f4f6")),
        ("FONTSIZE", (0, 0), (-1, -1), 9),
        ("ALIGN", (1, 0), (1, 0), "RIGHT"),
    ]))
    story.append(dates)
    story.append(Spacer(1, 5 * mm))

    # Line items
    rows = [["Description", "Qté", "PU HT", "Total HT"]]
    for item, line_total in zip(doc.items, totals.line_totals):
        rows.append([
            Paragraph(escape(item.description), styles["Small"]),
            f"{item.quantity.normalize():f}",
            format_amount(item.unit_price),
            format_amount(line_total),
        ])
    items_table = Table(rows, colWidths=[95 * mm, 20 * mm, 32 * mm, 33 * mm], repeatRows=1)
    items_table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), BRAND),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 9),
        ("ALIGN", (1, 0), (-1, -1), "RIGHT"),
        ("LINEBELOW", (0, 1), (-1, -1), 0.25, colors.HexColor("#e5e7eb")),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
    ]))
    story.append(items_table)
    story.append(Spacer(1, 4 * mm))

    # Totals
    tax_label = f"TVA ({Decimal(doc.tax_rate).normalize():f}%)"
    totals_table = Table(
        [
            ["Sous-total HT", format_amount(totals.subtotal)],
            [tax_label, format_amount(totals.tax)],
            ["Total TTC", format_amount(totals.total)],
        ],
        colWidths=[40 * mm, 35 * mm],
        hAlign="RIGHT",
    )
    totals_table.setStyle(TableStyle([
        ("FONTSIZE", (0, 0), (-1, -1), 9),
        ("ALIGN", (1, 0), (1, -1), "RIGHT"),
        ("FONTNAME", (0, 2), (-1, 2), "Helvetica-Bold"),
        ("BACKGROUND", (0, 2), (-1, 2), colors.HexColor("#dbeafe")),
        ("LINEABOVE", (0, 2), (-1, 2), 0.75, BRAND),
    ]))
    story.append(totals_table)
    story.append(Spacer(1, 8 * mm))

    # Signature block and conditions
    signature = [
        Paragraph("Signature du client", styles["SectionHead"]),
        Paragraph("Mention « Bon pour accord »<br/><br/><br/>Signature et cachet<br/><br/>Date : _______________", styles["Small"]),
    ]
    conditions = [
        Paragraph("Conditions de paiement", styles["SectionHead"]),
        Paragraph(escape(doc.terms or PAYMENT_TERMS), styles["Small"]),
        Paragraph("Pénalités de retard", styles["SectionHead"]),
        Paragraph(escape(LATE_PENALTIES), styles["Small"]),
    ]
    if doc.notes:
        conditions.append(Paragraph("Notes", styles["SectionHead"]))
        conditions.append(Paragraph(escape(doc.notes).replace("\n", "<br/>"), styles["Small"]))
    footer = Table([[signature, conditions]], colWidths=[90 * mm, 90 * mm])
    footer.setStyle(TableStyle([
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("BOX", (0, 0), (0, 0), 0.5, MUTED),
    ]))
    story.append(footer)
    story.append(Spacer(1, 10 * mm))

    # Legal footer
    story.append(Paragraph(escape(COMPANY["legal"]), styles["Legal"]))
    if is_quote:
        story.append(Paragraph(
            f"Devis valable jusqu'au {_format_date(second_date)} - En cas d'acceptation, merci de retourner "
            "ce devis signé avec la mention « Bon pour accord ».",
            styles["Legal"],
        ))

    pdf.build(story)
    pdf_bytes = buffer.getvalue()
    buffer.close()

    logger.info("Generated %s %s (%d bytes)", doc.kind, doc.number, len(pdf_bytes))
    return pdf_bytes
