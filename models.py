from __future__ import annotations

from datetime import datetime
from typing import Optional

from loguru import logger
from sqlalchemy import (
    create_engine,
    String,
    Integer,
    Float,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    select,
    update,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    relationship,
    sessionmaker,
)

from invoice_data import ClientInfo, InvoiceDetails, InvoiceDocument, LineItem


# -----------------------------
# SQLAlchemy base
# -----------------------------
class Base(DeclarativeBase):
    pass


# -----------------------------
# Tables
# -----------------------------
class InvoiceCounter(Base):
    """
    Last used sequence number per location code.
    Used to generate invoice_number like: HOP-75300-001.
    """
    __tablename__ = "invoice_counters"
    __table_args__ = (UniqueConstraint("location_code", name="uq_invoice_counters_location"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    location_code: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class Invoice(Base):
    """
    Document store for invoices, keyed by invoice_number (plus pdf storage metadata).
    """
    __tablename__ = "invoices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    invoice_number: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)

    client_name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    client_email: Mapped[str] = mapped_column(String(320), nullable=False)
    client_company: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    client_address: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    issue_date: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    due_date: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    currency_symbol: Mapped[str] = mapped_column(String(8), nullable=False, default="$")
    tax_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    # Stored PDF (file path on disk)
    pdf_path: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    pdf_generated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    line_items: Mapped[list["InvoiceLineItem"]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceLineItem.position",
    )

    def to_document(self) -> InvoiceDocument:
        """Fresh, immutable snapshot for rendering (no images attached)."""
        return InvoiceDocument(
            client=ClientInfo(
                name=self.client_name,
                email=self.client_email,
                company=self.client_company or None,
                address=self.client_address or None,
            ),
            invoice=InvoiceDetails(
                number=self.invoice_number,
                issue_date=self.issue_date,
                due_date=self.due_date,
            ),
            currency_symbol=self.currency_symbol,
            tax_rate_percent=float(self.tax_rate or 0.0),
            line_items=tuple(
                LineItem(li.description, float(li.quantity or 0.0), float(li.unit_rate or 0.0))
                for li in self.line_items
            ),
        )

    # Convenience totals (computed, not stored)
    def subtotal(self) -> float:
        return self.to_document().subtotal

    def invoice_total(self) -> float:
        return self.to_document().total


class InvoiceLineItem(Base):
    __tablename__ = "invoice_line_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    invoice_id: Mapped[int] = mapped_column(ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    quantity: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    unit_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    invoice: Mapped["Invoice"] = relationship(back_populates="line_items")


# -----------------------------
# Engine / Session factory
# -----------------------------
def make_engine(db_url: str, echo: bool = False):
    """
    Create SQLAlchemy engine.
    Note: SQLite path must exist (instance/ folder). db_init.py creates it.
    """
    return create_engine(db_url, echo=echo, future=True)


def make_session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


# -----------------------------
# Invoice number generator
# -----------------------------
def _insert_for(session):
    if session.get_bind().dialect.name == "postgresql":
        return postgresql.insert
    return sqlite.insert


def ensure_counter(session, location_code: str) -> None:
    """Create the counter row for ``location_code`` if it is missing (no-op otherwise)."""
    insert = _insert_for(session)
    session.execute(
        insert(InvoiceCounter)
        .values(location_code=location_code, count=0, updated_at=datetime.utcnow())
        .on_conflict_do_nothing(index_elements=["location_code"])
    )


def next_invoice_number(session, prefix: str, location_code: str, seq_width: int = 3) -> str:
    """
    Returns the next invoice number like HOP-75300-001.

    The increment is a single UPDATE ... RETURNING, so two sessions can never
    read the same count. Commit the session to publish the allocation.
    """
    ensure_counter(session, location_code)
    count = session.execute(
        update(InvoiceCounter)
        .where(InvoiceCounter.location_code == location_code)
        .values(count=InvoiceCounter.count + 1, updated_at=datetime.utcnow())
        .returning(InvoiceCounter.count)
    ).scalar_one()

    number = f"{prefix}-{location_code}-{count:0{seq_width}d}"
    logger.info("Allocated invoice number {}", number)
    return number


def current_count(session, location_code: str) -> int:
    row = session.execute(
        select(InvoiceCounter).where(InvoiceCounter.location_code == location_code)
    ).scalar_one_or_none()
    return row.count if row else 0


# -----------------------------
# Document store
# -----------------------------
class DuplicateInvoice(Exception):
    """An invoice with this number is already stored."""


def save_invoice(session, document: InvoiceDocument, *, replace: bool = False) -> Invoice:
    """
    Insert the stored record for ``document.invoice.number``.
    An existing record is only overwritten with ``replace=True``;
    otherwise DuplicateInvoice is raised and nothing changes.
    Images are not stored; they come from the asset sources at render time.
    """
    inv = session.execute(
        select(Invoice).where(Invoice.invoice_number == document.invoice.number)
    ).scalar_one_or_none()
    if inv is None:
        inv = Invoice(invoice_number=document.invoice.number)
        session.add(inv)
    elif not replace:
        raise DuplicateInvoice(document.invoice.number)
    else:
        logger.info("Replacing stored invoice {}", document.invoice.number)

    inv.client_name = document.client.name
    inv.client_email = document.client.email
    inv.client_company = document.client.company
    inv.client_address = document.client.address
    inv.issue_date = document.invoice.issue_date
    inv.due_date = document.invoice.due_date
    inv.currency_symbol = document.currency_symbol
    inv.tax_rate = document.tax_rate_percent

    inv.line_items.clear()
    for pos, item in enumerate(document.line_items):
        inv.line_items.append(InvoiceLineItem(
            position=pos,
            description=item.description,
            quantity=item.quantity,
            unit_rate=item.unit_rate,
        ))
    session.flush()
    return inv


def get_invoice(session, invoice_number: str) -> Optional[Invoice]:
    return session.execute(
        select(Invoice).where(Invoice.invoice_number == invoice_number)
    ).scalar_one_or_none()
