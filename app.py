import asyncio
import os
from datetime import datetime
from pathlib import Path

from flask import (
    Flask, render_template, request, redirect, url_for,
    flash, send_file, abort, jsonify
)
from loguru import logger

from assets import load_invoice_assets
from config import Config
from invoice_data import InvoiceDocument, format_money, format_number
from logging_config import configure_logging
from models import (
    Base, DuplicateInvoice, make_engine, make_session_factory,
    get_invoice, next_invoice_number, save_invoice
)
from pdf_service import RenderFailure, generate_and_store_pdf


# -----------------------------
# Helpers
# -----------------------------
def _parse_line_item_fields(descriptions, quantities, rates):
    """Zip the repeating form fields; rows with nothing typed in are skipped."""
    out = []
    n = max(len(descriptions), len(quantities), len(rates))
    for i in range(n):
        desc = (descriptions[i] if i < len(descriptions) else "").strip()
        qty = (quantities[i] if i < len(quantities) else "").strip()
        rate = (rates[i] if i < len(rates) else "").strip()
        if not desc and not qty and not rate:
            continue
        out.append((desc, qty, rate))
    return out


def validate_invoice_form(form, line_rows) -> list[str]:
    errors = []
    if not (form.get("name") or "").strip():
        errors.append("Client name is required")
    if not (form.get("email") or "").strip():
        errors.append("Client email is required")
    if not (form.get("number") or "").strip():
        errors.append("Invoice number is required")
    if not (form.get("issue_date") or "").strip():
        errors.append("Invoice date is required")
    if not (form.get("due_date") or "").strip():
        errors.append("Due date is required")
    if not line_rows:
        errors.append("Add at least one line item")
    elif any(not desc for desc, _qty, _rate in line_rows):
        errors.append("All line items must have descriptions")
    return errors


def _preview_rows(document: InvoiceDocument):
    sym = document.currency_symbol
    return [
        {
            "description": item.description,
            "quantity": format_number(item.quantity),
            "rate": format_money(item.unit_rate, sym),
            "amount": format_money(item.amount, sym),
        }
        for item in document.line_items
    ]


# -----------------------------
# App factory
# -----------------------------
def create_app(config: dict | None = None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if config:
        app.config.update(config)

    configure_logging(app.config["LOG_LEVEL"])

    db_url = app.config["SQLALCHEMY_DATABASE_URI"]
    if db_url.startswith("sqlite:///") and ":memory:" not in db_url:
        Path(db_url.replace("sqlite:///", "", 1)).parent.mkdir(parents=True, exist_ok=True)
    Path(app.config["EXPORTS_DIR"]).mkdir(parents=True, exist_ok=True)

    engine = make_engine(db_url, echo=app.config["SQLALCHEMY_ECHO"])
    Base.metadata.create_all(engine)

    SessionLocal = make_session_factory(engine)

    def db_session():
        return SessionLocal()

    def _load_assets():
        return asyncio.run(load_invoice_assets(
            app.config["LOGO_SOURCE"],
            app.config["SIGNATURE_SOURCE"],
            timeout=app.config["ASSET_TIMEOUT_SECONDS"],
        ))

    def _render_and_store(s, invoice_number: str) -> bool:
        logo, signature = _load_assets()
        try:
            generate_and_store_pdf(
                s, invoice_number,
                logo=logo, signature=signature,
                exports_dir=app.config["EXPORTS_DIR"],
                page_size_name=app.config["PAGE_SIZE"],
            )
        except RenderFailure as e:
            logger.error("PDF generation failed for {}: {}", invoice_number, e)
            flash("Failed to generate PDF. Please try again.", "error")
            return False
        return True

    # -----------------------------
    # Index
    # -----------------------------
    @app.route("/")
    def index():
        return redirect(url_for("invoice_new"))

    # -----------------------------
    # Invoice numbers
    # -----------------------------
    @app.route("/invoices/number", methods=["POST"])
    def invoice_number_allocate():
        with db_session() as s:
            number = next_invoice_number(
                s,
                app.config["INVOICE_PREFIX"],
                app.config["INVOICE_LOCATION_CODE"],
                app.config["INVOICE_SEQ_WIDTH"],
            )
            s.commit()
        return jsonify({"number": number})

    # -----------------------------
    # Create invoice
    # -----------------------------
    @app.route("/invoices/new", methods=["GET", "POST"])
    def invoice_new():
        if request.method == "POST":
            line_rows = _parse_line_item_fields(
                request.form.getlist("description"),
                request.form.getlist("quantity"),
                request.form.getlist("rate"),
            )
            errors = validate_invoice_form(request.form, line_rows)
            if errors:
                for err in errors:
                    flash(err, "error")
                return render_template("invoice_form.html", form=request.form,
                                       line_rows=line_rows or [("", "1", "0")])

            document = InvoiceDocument.from_form(
                name=request.form.get("name", ""),
                email=request.form.get("email", ""),
                company=request.form.get("company"),
                address=request.form.get("address"),
                number=request.form.get("number", ""),
                issue_date=request.form.get("issue_date", ""),
                due_date=request.form.get("due_date", ""),
                tax_rate=request.form.get("tax_rate"),
                line_items=line_rows,
                currency_symbol=app.config["CURRENCY_SYMBOL"],
            )

            with db_session() as s:
                try:
                    save_invoice(s, document)
                except DuplicateInvoice:
                    s.rollback()
                    flash("Invoice number already exists", "error")
                    return render_template("invoice_form.html", form=request.form,
                                           line_rows=line_rows)
                s.commit()
                _render_and_store(s, document.invoice.number)

            return redirect(url_for("invoice_view", invoice_number=document.invoice.number))

        return render_template(
            "invoice_form.html",
            form={"issue_date": datetime.now().strftime("%Y-%m-%d"), "tax_rate": "0"},
            line_rows=[("", "1", "0")],
        )

    # -----------------------------
    # Preview
    # -----------------------------
    @app.route("/invoices/<invoice_number>")
    def invoice_view(invoice_number):
        with db_session() as s:
            inv = get_invoice(s, invoice_number)
            if not inv:
                abort(404)
            document = inv.to_document()
            has_pdf = bool(inv.pdf_path) and os.path.exists(inv.pdf_path)

        sym = document.currency_symbol
        return render_template(
            "invoice_view.html",
            doc=document,
            rows=_preview_rows(document),
            subtotal=format_money(document.subtotal, sym),
            tax_label=f"Tax ({format_number(document.tax_rate_percent)}%):",
            tax=format_money(document.tax, sym),
            total=format_money(document.total, sym),
            has_pdf=has_pdf,
        )

    # -----------------------------
    # PDF routes
    # -----------------------------
    @app.route("/invoices/<invoice_number>/pdf/generate", methods=["POST"])
    def invoice_pdf_generate(invoice_number):
        with db_session() as s:
            if not get_invoice(s, invoice_number):
                abort(404)
            _render_and_store(s, invoice_number)
        return redirect(url_for("invoice_view", invoice_number=invoice_number))

    @app.route("/invoices/<invoice_number>/pdf")
    def invoice_pdf_download(invoice_number):
        with db_session() as s:
            inv = get_invoice(s, invoice_number)
            if not inv:
                abort(404)
            pdf_path = inv.pdf_path

        if not pdf_path or not os.path.exists(pdf_path):
            flash("PDF not found. Generate it first.", "error")
            return redirect(url_for("invoice_view", invoice_number=invoice_number))

        return send_file(
            pdf_path,
            as_attachment=True,
            download_name=os.path.basename(pdf_path),
            mimetype="application/pdf"
        )

    return app


if __name__ == "__main__":
    app = create_app()
    app.run(debug=True)
