from __future__ import annotations

import io

import pytest
from PIL import Image

from invoice_data import ClientInfo, ImageAsset, InvoiceDetails, InvoiceDocument, LineItem


def char_measure(text: str, font: str, size: float) -> float:
    """Deterministic stand-in for font metrics: every character is 2mm wide."""
    return len(text) * 2.0


@pytest.fixture
def measure():
    return char_measure


@pytest.fixture
def png_bytes() -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (8, 4), (103, 101, 195)).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def png_asset(png_bytes) -> ImageAsset:
    return ImageAsset(png_bytes, "image/png")


def make_document(**overrides) -> InvoiceDocument:
    fields = dict(
        client=ClientInfo(name="Ada Lovelace", email="ada@example.com"),
        invoice=InvoiceDetails(number="HOP-75300-001", issue_date="2026-10-19", due_date="2026-11-18"),
        currency_symbol="$",
        tax_rate_percent=10.0,
        line_items=(LineItem("Design", 2, 50),),
    )
    fields.update(overrides)
    return InvoiceDocument(**fields)


@pytest.fixture
def document() -> InvoiceDocument:
    return make_document()
