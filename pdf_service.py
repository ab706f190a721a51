import io
import os
import re
from dataclasses import dataclass
from datetime import datetime

from loguru import logger
from reportlab.pdfgen import canvas
from reportlab.lib import colors
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from sqlalchemy import select

from config import Config
from invoice_data import ImageAsset, InvoiceDocument
from layout_engine import (
    DEFAULT_STYLE,
    PAGE_SIZES,
    FillRect,
    FillTriangle,
    Image,
    Line,
    StyleConfig,
    Text,
    TextMeasurer,
    layout_invoice,
    page_size_for,
    reportlab_measure,
)
from models import Invoice


class RenderFailure(Exception):
    """The paint pass failed; no bytes were produced."""


@dataclass(frozen=True)
class RenderedDocument:
    data: bytes
    width_pt: float
    height_pt: float

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class PaintState:
    """What the canvas currently has set; painters only emit what changes."""
    fill_color: tuple | None = None
    stroke_color: tuple | None = None
    font_weight: str = "normal"
    font: tuple | None = None  # (face, size) last passed to setFont


def _color(rgb) -> colors.Color:
    r, g, b = rgb
    return colors.Color(r / 255.0, g / 255.0, b / 255.0)


def _safe_filename(name: str) -> str:
    # strip characters not allowed on Windows/mac paths
    return re.sub(r'[\\/*?:"<>|]', "", (name or "")).strip() or "Invoice"


# -----------------------------
# Renderer
# -----------------------------
class PdfRenderer:
    """
    Paints a draw-command list onto a single reportlab page.

    Layout geometry is millimetres from the top-left corner; reportlab wants
    points from the bottom-left, so every command is flipped here.
    One renderer paints one document: idle -> painting -> done.
    """

    def __init__(self, page_size=PAGE_SIZES["A4"], *, title: str | None = None,
                 font_family: str = "Helvetica", invariant: bool = False):
        self.page_w = page_size[0] * mm
        self.page_h = page_size[1] * mm
        self.title = title
        self.font_family = font_family
        self.invariant = invariant
        self.state = "idle"
        self.paint = PaintState()
        self.dropped_images: list[str] = []

    def _font_name(self, weight: str) -> str:
        return f"{self.font_family}-Bold" if weight == "bold" else self.font_family

    def _y(self, y: float) -> float:
        return self.page_h - y * mm

    def _use_fill(self, pdf, rgb):
        # Text and shapes share the canvas fill colour.
        if self.paint.fill_color != rgb:
            pdf.setFillColor(_color(rgb))
            self.paint.fill_color = rgb

    def _use_stroke(self, pdf, rgb):
        if self.paint.stroke_color != rgb:
            pdf.setStrokeColor(_color(rgb))
            self.paint.stroke_color = rgb

    def _use_font(self, pdf, size: float):
        font = (self._font_name(self.paint.font_weight), size)
        if self.paint.font != font:
            pdf.setFont(*font)
            self.paint.font = font

    def _paint_rect(self, pdf, cmd: FillRect):
        self._use_fill(pdf, cmd.color)
        pdf.rect(cmd.x * mm, self._y(cmd.y + cmd.height), cmd.width * mm, cmd.height * mm, stroke=0, fill=1)

    def _paint_triangle(self, pdf, cmd: FillTriangle):
        self._use_fill(pdf, cmd.color)
        (x1, y1), (x2, y2), (x3, y3) = cmd.points
        path = pdf.beginPath()
        path.moveTo(x1 * mm, self._y(y1))
        path.lineTo(x2 * mm, self._y(y2))
        path.lineTo(x3 * mm, self._y(y3))
        path.close()
        pdf.drawPath(path, stroke=0, fill=1)

    def _paint_text(self, pdf, cmd: Text):
        previous_weight = self.paint.font_weight
        if cmd.weight:
            self.paint.font_weight = cmd.weight
        try:
            self._use_fill(pdf, cmd.color)
            self._use_font(pdf, cmd.font_size)
            x, y = cmd.x * mm, self._y(cmd.y)
            if cmd.align == "end":
                pdf.drawRightString(x, y, cmd.text)
            elif cmd.align == "center":
                pdf.drawCentredString(x, y, cmd.text)
            else:
                pdf.drawString(x, y, cmd.text)
        finally:
            self.paint.font_weight = previous_weight

    def _paint_image(self, pdf, cmd: Image):
        try:
            reader = ImageReader(io.BytesIO(cmd.asset.data))
            reader.getSize()
        except Exception as exc:
            logger.warning("Dropping {} image: cannot decode {} ({})", cmd.name, cmd.asset.mime_type, exc)
            self.dropped_images.append(cmd.name)
            return
        pdf.drawImage(reader, cmd.x * mm, self._y(cmd.y + cmd.height), width=cmd.width * mm,
                      height=cmd.height * mm, mask="auto")

    def _paint_line(self, pdf, cmd: Line):
        self._use_stroke(pdf, cmd.color)
        pdf.setLineWidth(cmd.width * mm)
        pdf.line(cmd.x1 * mm, self._y(cmd.y1), cmd.x2 * mm, self._y(cmd.y2))

    def render(self, commands) -> RenderedDocument:
        if self.state != "idle":
            raise RenderFailure(f"Renderer already {self.state}")
        self.state = "painting"

        painters = {
            FillRect: self._paint_rect,
            FillTriangle: self._paint_triangle,
            Text: self._paint_text,
            Image: self._paint_image,
            Line: self._paint_line,
        }
        buf = io.BytesIO()
        try:
            pdf = canvas.Canvas(buf, pagesize=(self.page_w, self.page_h), invariant=1 if self.invariant else 0)
            if self.title:
                pdf.setTitle(self.title)
            for cmd in commands:
                painter = painters.get(type(cmd))
                if painter is None:
                    raise TypeError(f"Unknown draw command: {cmd!r}")
                painter(pdf, cmd)
            pdf.showPage()
            pdf.save()
        except Exception as exc:
            logger.error("PDF render failed: {}", exc)
            raise RenderFailure(f"PDF render failed: {exc}") from exc
        finally:
            self.state = "done"

        return RenderedDocument(buf.getvalue(), self.page_w, self.page_h)


def render(commands, page_size=PAGE_SIZES["A4"], *, title: str | None = None,
           invariant: bool = False) -> RenderedDocument:
    return PdfRenderer(page_size, title=title, invariant=invariant).render(commands)


def generate_invoice_pdf(
    document: InvoiceDocument,
    style: StyleConfig = DEFAULT_STYLE,
    page_size=PAGE_SIZES["A4"],
    *,
    measure: TextMeasurer = reportlab_measure,
    invariant: bool = False,
) -> RenderedDocument:
    """Layout + paint for one invoice. Raises RenderFailure; never returns partial bytes."""
    try:
        commands = layout_invoice(document, style, page_size, measure)
    except Exception as exc:
        logger.error("Invoice layout failed for {}: {}", document.invoice.number, exc)
        raise RenderFailure(f"Invoice layout failed: {exc}") from exc

    renderer = PdfRenderer(page_size, title=f"Invoice - {document.invoice.number}",
                           font_family=style.font_family, invariant=invariant)
    return renderer.render(commands)


# -----------------------------
# Blob store (Option A: files under EXPORTS_DIR)
# -----------------------------
def pdf_filename(invoice_number: str) -> str:
    return f"invoice-{_safe_filename(invoice_number)}.pdf"


def store_pdf_bytes(invoice_number: str, data: bytes, exports_dir: str | None = None) -> str:
    """
    Write a finished PDF and return its absolute path.
    The file is written under a temp name and moved into place, so readers
    never see a half-written document.
    """
    out_dir = exports_dir or Config.EXPORTS_DIR
    os.makedirs(out_dir, exist_ok=True)
    pdf_path = os.path.abspath(os.path.join(out_dir, pdf_filename(invoice_number)))
    tmp_path = pdf_path + ".part"
    with open(tmp_path, "wb") as fh:
        fh.write(data)
    os.replace(tmp_path, pdf_path)
    logger.info("Stored {} ({} bytes)", pdf_path, len(data))
    return pdf_path


def generate_and_store_pdf(
    session,
    invoice_number: str,
    *,
    logo: ImageAsset | None = None,
    signature: ImageAsset | None = None,
    exports_dir: str | None = None,
    page_size_name: str | None = None,
) -> str:
    """
    Generates (or regenerates) the PDF for a stored invoice.
    Saves to disk and updates invoice.pdf_path + invoice.pdf_generated_at.

    Returns: absolute pdf path on disk.
    """
    inv = session.execute(
        select(Invoice).where(Invoice.invoice_number == invoice_number)
    ).scalar_one_or_none()
    if not inv:
        raise ValueError(f"Invoice not found: number={invoice_number}")

    document = inv.to_document().with_assets(logo=logo, signature=signature)
    style = StyleConfig(footer_text=Config.FOOTER_TEXT)
    page_size = page_size_for(page_size_name or Config.PAGE_SIZE)

    rendered = generate_invoice_pdf(document, style, page_size)
    pdf_path = store_pdf_bytes(inv.invoice_number, rendered.data, exports_dir)

    # Update DB record
    inv.pdf_path = pdf_path
    inv.pdf_generated_at = datetime.utcnow()
    session.add(inv)
    session.commit()

    return pdf_path
