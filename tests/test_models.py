from __future__ import annotations

import threading

import pytest

from invoice_data import LineItem
from models import (
    Base,
    DuplicateInvoice,
    Invoice,
    current_count,
    ensure_counter,
    get_invoice,
    make_engine,
    make_session_factory,
    next_invoice_number,
    save_invoice,
)
from tests.conftest import make_document


@pytest.fixture
def session_factory(tmp_path):
    engine = make_engine(f"sqlite:///{(tmp_path / 'invoices.db').as_posix()}")
    Base.metadata.create_all(engine)
    yield make_session_factory(engine)
    engine.dispose()


def test_first_number_is_zero_padded(session_factory) -> None:
    with session_factory() as s:
        first = next_invoice_number(s, "HOP", "75300")
        second = next_invoice_number(s, "HOP", "75300")
        s.commit()
    assert first == "HOP-75300-001"
    assert second == "HOP-75300-002"


def test_counters_are_scoped_per_location(session_factory) -> None:
    with session_factory() as s:
        assert next_invoice_number(s, "HOP", "75300") == "HOP-75300-001"
        assert next_invoice_number(s, "HOP", "10115", seq_width=5) == "HOP-10115-00001"
        assert next_invoice_number(s, "HOP", "75300") == "HOP-75300-002"
        s.commit()
        assert current_count(s, "75300") == 2
        assert current_count(s, "99999") == 0


def test_ensure_counter_is_idempotent(session_factory) -> None:
    with session_factory() as s:
        ensure_counter(s, "75300")
        next_invoice_number(s, "HOP", "75300")
        ensure_counter(s, "75300")
        s.commit()
        assert current_count(s, "75300") == 1


def test_rolled_back_allocation_is_not_published(session_factory) -> None:
    with session_factory() as s:
        next_invoice_number(s, "HOP", "75300")
        s.commit()
    with session_factory() as s:
        next_invoice_number(s, "HOP", "75300")
        s.rollback()
    with session_factory() as s:
        assert next_invoice_number(s, "HOP", "75300") == "HOP-75300-002"


def test_concurrent_allocation_never_duplicates(session_factory) -> None:
    with session_factory() as s:
        ensure_counter(s, "75300")
        s.commit()

    numbers: list[str] = []
    errors: list[Exception] = []
    lock = threading.Lock()

    def worker():
        try:
            for _ in range(5):
                with session_factory() as s:
                    number = next_invoice_number(s, "HOP", "75300")
                    s.commit()
                with lock:
                    numbers.append(number)
        except Exception as exc:  # surfaced by the assertion below
            errors.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(numbers) == 40
    assert len(set(numbers)) == 40
    assert sorted(numbers) == [f"HOP-75300-{i:03d}" for i in range(1, 41)]


def test_save_invoice_round_trips_to_document(session_factory) -> None:
    doc = make_document(line_items=(LineItem("Design", 2, 50), LineItem("Hosting", 1, 19.99)))
    with session_factory() as s:
        save_invoice(s, doc)
        s.commit()

    with session_factory() as s:
        inv = get_invoice(s, doc.invoice.number)
        assert isinstance(inv, Invoice)
        restored = inv.to_document()
        assert restored == doc
        assert inv.subtotal() == 119.99
        assert inv.invoice_total() == 131.99


def test_save_invoice_replaces_line_items(session_factory) -> None:
    with session_factory() as s:
        save_invoice(s, make_document())
        s.commit()
        save_invoice(s, make_document(line_items=(LineItem("Review", 3, 10),)), replace=True)
        s.commit()

        inv = get_invoice(s, "HOP-75300-001")
        assert [li.description for li in inv.line_items] == ["Review"]
        assert s.query(Invoice).count() == 1


def test_save_invoice_refuses_existing_number(session_factory) -> None:
    with session_factory() as s:
        save_invoice(s, make_document())
        s.commit()
        with pytest.raises(DuplicateInvoice):
            save_invoice(s, make_document(line_items=(LineItem("Review", 3, 10),)))
        s.rollback()

        inv = get_invoice(s, "HOP-75300-001")
        assert [li.description for li in inv.line_items] == ["Design"]
        assert s.query(Invoice).count() == 1
