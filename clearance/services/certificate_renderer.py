"""
Smart Clearance
Certificate Renderer — fixed A4 layout drawn with ReportLab.

The QR code encodes the public verification URL for the certificate's
verification code and is drawn with ReportLab's own barcode widget.
"""

from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO

from reportlab.graphics import renderPDF
from reportlab.graphics.barcode.qr import QrCodeWidget
from reportlab.graphics.shapes import Drawing
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

PRIMARY = colors.HexColor("#1e3a8a")
MUTED = colors.HexColor("#4b5563")
QR_SIZE = 38 * mm


@dataclass
class CertificateContent:
    certificate_number: str
    verification_code: str
    verification_url: str
    student_name: str
    student_number: str
    course_year: str
    document_name: str
    issued_on: str


def _draw_qr(pdf: canvas.Canvas, value: str, x: float, y: float, size: float = QR_SIZE) -> None:
    widget = QrCodeWidget(value)
    x1, y1, x2, y2 = widget.getBounds()
    drawing = Drawing(size, size, transform=[size / (x2 - x1), 0, 0, size / (y2 - y1), 0, 0])
    drawing.add(widget)
    renderPDF.draw(drawing, pdf, x, y)


def render_certificate_pdf(content: CertificateContent) -> bytes:
    """Render the certificate and return the PDF bytes."""
    buffer = BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=A4)
    width, height = A4
    pdf.setTitle(f"Clearance Certificate {content.certificate_number}")
    pdf.setAuthor("Smart Clearance System")

    # Border
    pdf.setStrokeColor(PRIMARY)
    pdf.setLineWidth(3)
    pdf.rect(12 * mm, 12 * mm, width - 24 * mm, height - 24 * mm)
    pdf.setLineWidth(0.8)
    pdf.rect(16 * mm, 16 * mm, width - 32 * mm, height - 32 * mm)

    # Header
    pdf.setFillColor(PRIMARY)
    pdf.setFont("Helvetica-Bold", 26)
    pdf.drawCentredString(width / 2, height - 50 * mm, "SMART CLEARANCE SYSTEM")
    pdf.setFont("Helvetica", 15)
    pdf.setFillColor(MUTED)
    pdf.drawCentredString(width / 2, height - 60 * mm, "Official Clearance Certificate")

    # Body
    pdf.setFillColor(colors.black)
    pdf.setFont("Helvetica", 13)
    pdf.drawCentredString(width / 2, height - 85 * mm, "This is to certify that")
    pdf.setFont("Helvetica-Bold", 22)
    pdf.drawCentredString(width / 2, height - 100 * mm, content.student_name)
    pdf.setFont("Helvetica", 12)
    pdf.drawCentredString(width / 2, height - 110 * mm,
                          f"Student No. {content.student_number or 'N/A'}")
    pdf.drawCentredString(width / 2, height - 118 * mm, content.course_year or "")
    pdf.setFont("Helvetica", 13)
    pdf.drawCentredString(width / 2, height - 135 * mm,
                          "has successfully completed all clearance requirements for")
    pdf.setFont("Helvetica-Bold", 17)
    pdf.setFillColor(PRIMARY)
    pdf.drawCentredString(width / 2, height - 147 * mm, content.document_name)
    pdf.setFillColor(colors.black)
    pdf.setFont("Helvetica", 12)
    pdf.drawCentredString(width / 2, height - 160 * mm, f"Issued on {content.issued_on}")

    # Number / verification box
    box_y = 40 * mm
    pdf.setStrokeColor(MUTED)
    pdf.setLineWidth(0.5)
    pdf.rect(25 * mm, box_y, 100 * mm, 28 * mm)
    pdf.setFont("Helvetica-Bold", 11)
    pdf.drawString(30 * mm, box_y + 18 * mm, f"Certificate No: {content.certificate_number}")
    pdf.drawString(30 * mm, box_y + 10 * mm, f"Verification Code: {content.verification_code}")
    pdf.setFont("Helvetica", 8)
    pdf.setFillColor(MUTED)
    pdf.drawString(30 * mm, box_y + 3 * mm, content.verification_url)

    # QR code
    qr_x = width - 25 * mm - QR_SIZE
    _draw_qr(pdf, content.verification_url, qr_x, box_y - 5 * mm)
    pdf.setFont("Helvetica", 8)
    pdf.drawCentredString(qr_x + QR_SIZE / 2, box_y - 9 * mm, "Scan to verify")

    pdf.showPage()
    pdf.save()
    return buffer.getvalue()
