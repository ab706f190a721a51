from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP, localcontext
from typing import Iterable, Optional

from loguru import logger


# -----------------------------
# Numeric helpers
# -----------------------------
# Leading decimal number, read the way the browser form's parseFloat reads it.
_LEADING_NUMBER = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def coerce_number(value, *, field_name: str = "value") -> float:
    """
    Best-effort numeric coercion shared with the invoice form.
    Text keeps its leading number ("10hrs" -> 10, "1_000" -> 1);
    "", None, bools, unparsable text, NaN and +/-inf all become 0.0.
    """
    if isinstance(value, bool):
        logger.warning("Boolean {} {!r} coerced to 0", field_name, value)
        return 0.0
    if isinstance(value, (int, float)):
        try:
            num = float(value)
        except OverflowError:
            logger.warning("Out of range {} coerced to 0", field_name)
            return 0.0
    else:
        raw = str(value if value is not None else "").strip()
        if not raw:
            return 0.0
        m = _LEADING_NUMBER.match(raw)
        if not m:
            logger.warning("Invalid {} {!r} coerced to 0", field_name, value)
            return 0.0
        num = float(m.group(0))
    if not math.isfinite(num):
        logger.warning("Non-finite {} {!r} coerced to 0", field_name, value)
        return 0.0
    return num


def round2(value: float) -> float:
    # Half away from zero, on the shortest repr so 1.005 -> 1.01.
    try:
        num = float(value)
    except (TypeError, ValueError, OverflowError):
        return 0.0
    if not math.isfinite(num):
        return 0.0
    d = Decimal(repr(num))
    with localcontext() as ctx:
        # Enough digits for the integer part plus two decimals, however large.
        ctx.prec = max(28, len(d.as_tuple().digits) + d.adjusted() + 4)
        return float(d.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def format_money(value: float, currency_symbol: str = "$") -> str:
    return f"{currency_symbol} {round2(value):.2f}"


def format_number(value: float) -> str:
    """Plain rendering for quantities and the tax percent: 2 -> "2", 2.5 -> "2.5"."""
    num = float(value)
    if num.is_integer():
        return str(int(num))
    return ("%.10f" % num).rstrip("0").rstrip(".")


# -----------------------------
# Snapshot types
# -----------------------------
@dataclass(frozen=True)
class ClientInfo:
    name: str
    email: str
    company: Optional[str] = None
    address: Optional[str] = None


@dataclass(frozen=True)
class InvoiceDetails:
    number: str
    issue_date: str
    due_date: str


@dataclass(frozen=True)
class ImageAsset:
    data: bytes = field(repr=False)
    mime_type: str = "image/png"


@dataclass(frozen=True)
class LineItem:
    description: str
    quantity: float
    unit_rate: float

    @classmethod
    def from_raw(cls, description, quantity, unit_rate) -> "LineItem":
        return cls(
            description=(description or "").strip(),
            quantity=max(0.0, coerce_number(quantity, field_name="quantity")),
            unit_rate=max(0.0, coerce_number(unit_rate, field_name="rate")),
        )

    @property
    def amount(self) -> float:
        return round2(self.quantity * self.unit_rate)


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: float
    tax: float
    total: float


def compute_totals(line_items: Iterable[LineItem], tax_rate_percent: float) -> InvoiceTotals:
    subtotal = round2(sum(item.amount for item in line_items))
    tax = round2(subtotal * coerce_number(tax_rate_percent, field_name="tax rate") / 100.0)
    return InvoiceTotals(subtotal=subtotal, tax=tax, total=round2(subtotal + tax))


@dataclass(frozen=True)
class InvoiceDocument:
    """
    Immutable snapshot of one invoice, built fresh for every render.
    Numbers are already coerced; the layout engine never sees raw form text.
    """
    client: ClientInfo
    invoice: InvoiceDetails
    currency_symbol: str
    tax_rate_percent: float
    line_items: tuple[LineItem, ...]
    signature_image: Optional[ImageAsset] = None
    logo_image: Optional[ImageAsset] = None

    def __post_init__(self):
        if not self.line_items:
            raise ValueError("An invoice needs at least one line item")
        # Accept any sequence but store a tuple so the snapshot stays hashable/immutable.
        object.__setattr__(self, "line_items", tuple(self.line_items))

    @property
    def totals(self) -> InvoiceTotals:
        return compute_totals(self.line_items, self.tax_rate_percent)

    @property
    def subtotal(self) -> float:
        return self.totals.subtotal

    @property
    def tax(self) -> float:
        return self.totals.tax

    @property
    def total(self) -> float:
        return self.totals.total

    def with_assets(self, *, logo: Optional[ImageAsset] = None,
                    signature: Optional[ImageAsset] = None) -> "InvoiceDocument":
        return InvoiceDocument(
            client=self.client,
            invoice=self.invoice,
            currency_symbol=self.currency_symbol,
            tax_rate_percent=self.tax_rate_percent,
            line_items=self.line_items,
            signature_image=signature,
            logo_image=logo,
        )

    @classmethod
    def from_form(
        cls,
        *,
        name: str,
        email: str,
        company: str | None,
        address: str | None,
        number: str,
        issue_date: str,
        due_date: str,
        tax_rate,
        line_items: Iterable[tuple],
        currency_symbol: str = "$",
    ) -> "InvoiceDocument":
        """
        Build a snapshot from raw editable form values.
        This is the single place where string-vs-number ambiguity is resolved.
        """
        items = [LineItem.from_raw(desc, qty, rate) for desc, qty, rate in line_items]
        return cls(
            client=ClientInfo(
                name=(name or "").strip(),
                email=(email or "").strip(),
                company=(company or "").strip() or None,
                address=(address or "").strip() or None,
            ),
            invoice=InvoiceDetails(
                number=(number or "").strip(),
                issue_date=(issue_date or "").strip(),
                due_date=(due_date or "").strip(),
            ),
            currency_symbol=currency_symbol,
            tax_rate_percent=max(0.0, coerce_number(tax_rate, field_name="tax rate")),
            line_items=tuple(items),
        )
