from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence, Union

from reportlab.lib.pagesizes import A4, LETTER
from reportlab.lib.units import mm
from reportlab.pdfbase.pdfmetrics import stringWidth

from invoice_data import (
    ImageAsset,
    InvoiceDocument,
    LineItem,
    format_money,
    format_number,
)

RGB = tuple[int, int, int]

# Page sizes in layout units (millimetres).
PAGE_SIZES = {
    "A4": (A4[0] / mm, A4[1] / mm),
    "LETTER": (LETTER[0] / mm, LETTER[1] / mm),
}


def page_size_for(name: str | None) -> tuple[float, float]:
    key = (name or "").strip().upper()
    return PAGE_SIZES.get(key, PAGE_SIZES["A4"])


# -----------------------------
# Style
# -----------------------------
@dataclass(frozen=True)
class Palette:
    primary: RGB = (103, 101, 195)
    accent: RGB = (13, 148, 136)
    dark_gray: RGB = (17, 24, 39)
    medium_gray: RGB = (75, 85, 99)
    light_gray: RGB = (249, 250, 251)
    white: RGB = (255, 255, 255)
    rule: RGB = (229, 231, 235)


@dataclass(frozen=True)
class Decorative:
    triangle_size: float = 50.0
    corner_radius: float = 40.0


@dataclass(frozen=True)
class FontSizes:
    title: float = 11.0
    label: float = 9.0
    value: float = 10.0
    table: float = 9.0
    total: float = 11.0
    total_value: float = 12.0
    signature: float = 10.0
    footer: float = 8.0


@dataclass(frozen=True)
class StyleConfig:
    """
    Geometry is in millimetres (top-left origin, y grows downward);
    font sizes are in points.
    """
    margin: float = 27.0
    palette: Palette = field(default_factory=Palette)
    decorative: Decorative = field(default_factory=Decorative)
    fonts: FontSizes = field(default_factory=FontSizes)
    font_family: str = "Helvetica"

    line_height: float = 5.0
    min_row_height: float = 8.0

    # Header block
    logo_top: float = 36.0
    logo_size: tuple[float, float] = (50.0, 30.0)
    header_top: float = 50.0
    bill_to_offset: float = 20.0
    bill_to_name_gap: float = 7.0
    meta_label_offset: float = 50.0
    meta_row_gap: float = 6.0
    address_width: float = 80.0
    section_gap: float = 15.0

    # Line item table
    table_header_height: float = 10.0
    table_header_baseline: float = 6.5
    first_row_offset: float = 16.0
    row_top_offset: float = 4.0
    description_reserved: float = 80.0

    # Summary
    summary_gap: float = 10.0
    summary_label_offset: float = 60.0
    summary_row_gap: float = 6.0
    total_row_gap: float = 8.0
    total_box: tuple[float, float] = (65.0, 10.0)

    # Signature / footer
    signature_gap: float = 30.0
    signature_size: tuple[float, float] = (30.0, 15.0)
    footer_offset: float = 15.0
    footer_text: str = "Hoopoe Studios"

    def font_name(self, weight: str | None) -> str:
        if weight == "bold":
            return f"{self.font_family}-Bold"
        return self.font_family


DEFAULT_STYLE = StyleConfig()


# -----------------------------
# Draw commands
# -----------------------------
@dataclass(frozen=True)
class FillRect:
    x: float
    y: float
    width: float
    height: float
    color: RGB


@dataclass(frozen=True)
class FillTriangle:
    points: tuple[tuple[float, float], tuple[float, float], tuple[float, float]]
    color: RGB


@dataclass(frozen=True)
class Text:
    x: float
    y: float
    text: str
    font_size: float
    color: RGB
    align: str = "start"  # start | end | center
    weight: Optional[str] = None  # None keeps the renderer's active weight


@dataclass(frozen=True)
class Image:
    x: float
    y: float
    width: float
    height: float
    asset: ImageAsset
    name: str = "image"


@dataclass(frozen=True)
class Line:
    x1: float
    y1: float
    x2: float
    y2: float
    color: RGB
    width: float = 0.1


DrawCommand = Union[FillRect, FillTriangle, Text, Image, Line]


@dataclass
class LayoutResult:
    commands: list
    end_y: float

    @property
    def bottom_y(self) -> float:
        return self.end_y


# -----------------------------
# Text measurement / wrapping
# -----------------------------
TextMeasurer = Callable[[str, str, float], float]


def reportlab_measure(text: str, font_name: str, font_size: float) -> float:
    """Width of ``text`` in millimetres using reportlab's font metrics."""
    return stringWidth(text, font_name, font_size) / mm


def wrap_text(text, max_width: float, measure: TextMeasurer, font: str, size: float) -> list[str]:
    """
    Greedy word wrap. Explicit newlines start a new line; a single token
    wider than the column is broken into width-safe chunks.
    """
    def split_long_token(token: str) -> list[str]:
        if measure(token, font, size) <= max_width:
            return [token]
        chunks = []
        remaining = token
        while remaining:
            lo, hi = 1, len(remaining)
            fit = 1
            while lo <= hi:
                mid = (lo + hi) // 2
                if measure(remaining[:mid], font, size) <= max_width:
                    fit = mid
                    lo = mid + 1
                else:
                    hi = mid - 1
            chunks.append(remaining[:fit])
            remaining = remaining[fit:]
        return chunks

    lines: list[str] = []
    for paragraph in re.split(r"\r\n|\r|\n", str(text or "")):
        words: list[str] = []
        for w in paragraph.split():
            words.extend(split_long_token(w))

        current = ""
        for w in words:
            test = current + (" " if current else "") + w
            if measure(test, font, size) <= max_width:
                current = test
            else:
                if current:
                    lines.append(current)
                current = w
        if current:
            lines.append(current)
    return lines or [""]


# -----------------------------
# Layout operations
# -----------------------------
def compute_decorative_frame(page_size: tuple[float, float], style: StyleConfig = DEFAULT_STYLE) -> list:
    pw, ph = page_size
    ts = style.decorative.triangle_size
    cr = style.decorative.corner_radius
    color = style.palette.primary
    return [
        FillTriangle(((0.0, 0.0), (0.0, cr), (ts, 0.0)), color),
        FillTriangle(((pw - ts, 0.0), (pw, 0.0), (pw, cr)), color),
        FillTriangle(((pw, ph - cr * 2), (pw, ph), (pw - ts, ph)), color),
    ]


def layout_header(
    document: InvoiceDocument,
    style: StyleConfig = DEFAULT_STYLE,
    page_width: float = PAGE_SIZES["A4"][0],
    measure: TextMeasurer = reportlab_measure,
) -> LayoutResult:
    """
    Logo, the BILL TO block on the left and the invoice metadata on the right.
    ``end_y`` is the lower of the two cursors plus the section gap.
    """
    commands: list = []
    palette = style.palette
    fonts = style.fonts
    margin = style.margin
    lh = style.line_height

    if document.logo_image is not None:
        logo_w, logo_h = style.logo_size
        commands.append(Image(margin, style.logo_top, logo_w, logo_h, document.logo_image, "logo"))

    y = style.header_top + style.bill_to_offset
    commands.append(Text(margin, y, "BILL TO", fonts.title, palette.medium_gray, weight="bold"))

    client = document.client
    y += style.bill_to_name_gap
    commands.append(Text(margin, y, client.name, fonts.value, palette.dark_gray, weight="normal"))
    y += lh
    commands.append(Text(margin, y, client.email, fonts.value, palette.dark_gray, weight="normal"))

    if client.company:
        y += lh
        commands.append(Text(margin, y, client.company, fonts.value, palette.dark_gray, weight="normal"))

    if client.address:
        y += lh
        address_lines = wrap_text(client.address, style.address_width, measure,
                                  style.font_name("normal"), fonts.value)
        for i, ln in enumerate(address_lines):
            commands.append(Text(margin, y + i * lh, ln, fonts.value, palette.dark_gray, weight="normal"))
        y += (len(address_lines) - 1) * lh

    right_y = style.header_top
    label_x = page_width - margin - style.meta_label_offset
    value_x = page_width - margin
    details = document.invoice
    meta_rows = [
        ("Invoice Number:", details.number),
        ("Date:", details.issue_date),
        ("Due Date:", details.due_date),
    ]
    for i, (label, value) in enumerate(meta_rows):
        if i:
            right_y += style.meta_row_gap
        commands.append(Text(label_x, right_y, label, fonts.label, palette.medium_gray, weight="bold"))
        commands.append(Text(value_x, right_y, value, fonts.label, palette.dark_gray, align="end", weight="normal"))

    return LayoutResult(commands, max(y + style.section_gap, right_y + style.section_gap))


def layout_table(
    line_items: Sequence[LineItem],
    style: StyleConfig = DEFAULT_STYLE,
    start_y: float = 0.0,
    page_width: float = PAGE_SIZES["A4"][0],
    measure: TextMeasurer = reportlab_measure,
    currency_symbol: str = "$",
) -> LayoutResult:
    palette = style.palette
    size = style.fonts.table
    margin = style.margin
    right = page_width - margin
    table_w = page_width - margin * 2
    lh = style.line_height

    commands: list = [FillRect(margin, start_y, table_w, style.table_header_height, palette.primary)]
    header_y = start_y + style.table_header_baseline
    commands.extend([
        Text(margin + 3, header_y, "DESCRIPTION", size, palette.white, weight="bold"),
        Text(right - 65, header_y, "QTY", size, palette.white, weight="bold"),
        Text(right - 45, header_y, "RATE", size, palette.white, weight="bold"),
        Text(right - 3, header_y, "AMOUNT", size, palette.white, align="end", weight="bold"),
    ])

    table_y = start_y + style.first_row_offset
    desc_width = table_w - style.description_reserved
    regular = style.font_name("normal")

    for index, item in enumerate(line_items):
        desc_lines = wrap_text(item.description, desc_width, measure, regular, size)
        row_height = max(style.min_row_height, len(desc_lines) * lh)

        # Shading follows the in-memory item index, not the visual line count.
        if index % 2 == 0:
            commands.append(FillRect(margin, table_y - style.row_top_offset, table_w, row_height, palette.light_gray))

        for i, ln in enumerate(desc_lines):
            commands.append(Text(margin + 2, table_y + i * lh, ln, size, palette.dark_gray, weight="normal"))
        commands.append(Text(right - 70, table_y, format_number(item.quantity), size, palette.dark_gray, weight="normal"))
        commands.append(Text(right - 50, table_y, format_money(item.unit_rate, currency_symbol), size,
                             palette.dark_gray, weight="normal"))
        commands.append(Text(right - 3, table_y, format_money(item.amount, currency_symbol), size,
                             palette.dark_gray, align="end", weight="bold"))

        table_y += row_height

    commands.append(Line(margin, table_y, right, table_y, palette.rule, 0.1))
    return LayoutResult(commands, table_y)


def layout_summary(
    subtotal: float,
    tax: float,
    total: float,
    tax_rate_percent: float,
    currency_symbol: str,
    style: StyleConfig = DEFAULT_STYLE,
    start_y: float = 0.0,
    page_width: float = PAGE_SIZES["A4"][0],
) -> LayoutResult:
    palette = style.palette
    fonts = style.fonts
    summary_x = page_width - style.margin - style.summary_label_offset
    value_x = page_width - style.margin - 3

    y = start_y + style.summary_gap
    commands: list = [
        Text(summary_x, y, "Subtotal:", fonts.label, palette.medium_gray, weight="bold"),
        Text(value_x, y, format_money(subtotal, currency_symbol), fonts.label, palette.dark_gray,
             align="end", weight="normal"),
    ]

    y += style.summary_row_gap
    commands.extend([
        Text(summary_x, y, f"Tax ({format_number(tax_rate_percent)}%):", fonts.label, palette.medium_gray, weight="bold"),
        Text(value_x, y, format_money(tax, currency_symbol), fonts.label, palette.dark_gray,
             align="end", weight="normal"),
    ])

    y += style.total_row_gap
    box_w, box_h = style.total_box
    commands.extend([
        FillRect(summary_x - 5, y - 6, box_w, box_h, palette.accent),
        Text(summary_x, y, "Total:", fonts.total, palette.white, weight="bold"),
        Text(value_x, y, format_money(total, currency_symbol), fonts.total_value, palette.white,
             align="end", weight="bold"),
    ])
    return LayoutResult(commands, y)


def layout_signature_and_footer(
    style: StyleConfig = DEFAULT_STYLE,
    start_y: float = 0.0,
    page_width: float = PAGE_SIZES["A4"][0],
    page_height: float = PAGE_SIZES["A4"][1],
    signature_image: Optional[ImageAsset] = None,
) -> list:
    palette = style.palette
    y = start_y + style.signature_gap
    commands: list = [
        Text(style.margin, y, "Authorized Signature:", style.fonts.signature, palette.medium_gray, weight="bold"),
    ]
    if signature_image is not None:
        sig_w, sig_h = style.signature_size
        commands.append(Image(style.margin, y + 3, sig_w, sig_h, signature_image, "signature"))

    commands.append(Text(page_width / 2, page_height - style.footer_offset, style.footer_text,
                         style.fonts.footer, palette.medium_gray, align="center", weight="normal"))
    return commands


def layout_invoice(
    document: InvoiceDocument,
    style: StyleConfig = DEFAULT_STYLE,
    page_size: tuple[float, float] = PAGE_SIZES["A4"],
    measure: TextMeasurer = reportlab_measure,
) -> list:
    """Full ordered command list for one invoice page (paint order == list order)."""
    pw, ph = page_size
    commands: list = [FillRect(0.0, 0.0, pw, ph, style.palette.white)]
    commands.extend(compute_decorative_frame(page_size, style))

    header = layout_header(document, style, pw, measure)
    commands.extend(header.commands)

    table = layout_table(document.line_items, style, header.end_y, pw, measure, document.currency_symbol)
    commands.extend(table.commands)

    totals = document.totals
    summary = layout_summary(totals.subtotal, totals.tax, totals.total, document.tax_rate_percent,
                             document.currency_symbol, style, table.end_y, pw)
    commands.extend(summary.commands)

    commands.extend(layout_signature_and_footer(style, summary.end_y, pw, ph, document.signature_image))
    return commands
