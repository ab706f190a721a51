from __future__ import annotations

import math
import random

import pytest

from invoice_data import (
    InvoiceDocument,
    LineItem,
    coerce_number,
    compute_totals,
    format_money,
    format_number,
    round2,
)


@pytest.mark.parametrize(
    "raw",
    ["", "   ", "abc", None, float("nan"), "NaN", float("inf"), "-inf", "Infinity", "1e400",
     True, False, 10**400],
)
def test_coerce_number_falls_back_to_zero(raw) -> None:
    assert coerce_number(raw) == 0.0


@pytest.mark.parametrize(
    "raw, expected",
    [(2, 2.0), ("2", 2.0), (" 2.5 ", 2.5), ("-3", -3.0), (0.1, 0.1)],
)
def test_coerce_number_keeps_finite_numbers(raw, expected) -> None:
    assert coerce_number(raw) == expected


@pytest.mark.parametrize(
    "raw, expected",
    [("10hrs", 10.0), ("50$", 50.0), ("1_000", 1.0), (".5x", 0.5), ("3.", 3.0),
     ("2e3 units", 2000.0), ("1e", 1.0), ("+4,5", 4.0)],
)
def test_coerce_number_reads_leading_number(raw, expected) -> None:
    assert coerce_number(raw) == expected


def test_round2_rounds_half_away_from_zero() -> None:
    assert round2(1.005) == 1.01
    assert round2(2.675) == 2.68
    assert round2(0.125) == 0.13
    assert round2(-0.125) == -0.13
    assert round2(10) == 10.0


def test_round2_keeps_huge_values() -> None:
    assert round2(1e27) == 1e27
    assert round2(1.5e300) == 1.5e300
    assert round2(float("inf")) == 0.0
    assert round2(float("nan")) == 0.0
    assert LineItem("big", 1e15, 1e12).amount == 1e27
    assert format_money(1e27, "$").startswith("$ 1000000000000000")


def test_format_money_and_number() -> None:
    assert format_money(100, "$") == "$ 100.00"
    assert format_money(0.005, "€") == "€ 0.01"
    assert format_number(2) == "2"
    assert format_number(2.5) == "2.5"
    assert format_number(7.25) == "7.25"


def test_line_item_from_raw_coerces_before_arithmetic() -> None:
    item = LineItem.from_raw("  Hosting ", "abc", "12.5")
    assert item.description == "Hosting"
    assert item.quantity == 0.0
    assert item.unit_rate == 12.5
    assert item.amount == 0.0


def test_scenario_single_item_totals(document) -> None:
    assert document.subtotal == 100.0
    assert document.tax == 10.0
    assert document.total == 110.0
    assert format_money(document.subtotal) == "$ 100.00"
    assert format_money(document.tax) == "$ 10.00"
    assert format_money(document.total) == "$ 110.00"


def test_totals_invariants_hold_for_random_items() -> None:
    rng = random.Random(1234)
    for _ in range(200):
        items = [
            LineItem("x", round(rng.uniform(0, 50), rng.randint(0, 3)), round(rng.uniform(0, 500), rng.randint(0, 3)))
            for _ in range(rng.randint(1, 8))
        ]
        rate = round(rng.uniform(0, 30), rng.randint(0, 2))
        totals = compute_totals(items, rate)

        for item in items:
            assert item.amount == round2(item.quantity * item.unit_rate)
        assert math.isclose(sum(i.amount for i in items), totals.subtotal, abs_tol=1e-9)
        assert totals.tax == round2(totals.subtotal * rate / 100)
        assert totals.total == round2(totals.subtotal + totals.tax)


def test_tax_rate_coerced_from_garbage() -> None:
    totals = compute_totals([LineItem("x", 1, 10)], "abc")
    assert totals.tax == 0.0
    assert totals.total == 10.0


def test_from_form_builds_immutable_snapshot() -> None:
    doc = InvoiceDocument.from_form(
        name=" Ada ",
        email="ada@example.com",
        company="",
        address=None,
        number="HOP-75300-002",
        issue_date="2026-10-19",
        due_date="2026-11-18",
        tax_rate="",
        line_items=[("Design", "2", "50"), ("Review", "", "NaN")],
    )
    assert doc.client.name == "Ada"
    assert doc.client.company is None
    assert doc.client.address is None
    assert doc.tax_rate_percent == 0.0
    assert isinstance(doc.line_items, tuple)
    assert doc.line_items[1].quantity == 0.0
    assert doc.line_items[1].unit_rate == 0.0
    assert doc.total == 100.0

    with pytest.raises(AttributeError):
        doc.currency_symbol = "€"  # type: ignore[misc]


def test_document_requires_line_items(document) -> None:
    with pytest.raises(ValueError):
        InvoiceDocument(
            client=document.client,
            invoice=document.invoice,
            currency_symbol="$",
            tax_rate_percent=0,
            line_items=(),
        )
