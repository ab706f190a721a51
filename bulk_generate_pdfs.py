import argparse
import asyncio
import os
from pathlib import Path

from assets import load_invoice_assets
from config import Config
from logging_config import configure_logging
from models import Base, make_engine, make_session_factory, Invoice
from pdf_service import generate_and_store_pdf


def main(argv=None):
    parser = argparse.ArgumentParser(description="Bulk generate invoice PDFs.")
    parser.add_argument("--prefix", type=str, default="", help="Only invoices whose number starts with this.")
    parser.add_argument("--all", action="store_true", help="Regenerate PDFs even if one already exists.")
    args = parser.parse_args(argv)

    configure_logging(Config.LOG_LEVEL)

    # Ensure exports dir exists
    Path(Config.EXPORTS_DIR).mkdir(parents=True, exist_ok=True)

    engine = make_engine(Config.SQLALCHEMY_DATABASE_URI, echo=Config.SQLALCHEMY_ECHO)
    Base.metadata.create_all(engine)
    SessionLocal = make_session_factory(engine)

    # Assets are fetched once and shared by every invoice in the run
    logo, signature = asyncio.run(load_invoice_assets(
        Config.LOGO_SOURCE, Config.SIGNATURE_SOURCE, timeout=Config.ASSET_TIMEOUT_SECONDS
    ))

    with SessionLocal() as s:
        q = s.query(Invoice).order_by(Invoice.created_at.asc())

        if args.prefix:
            q = q.filter(Invoice.invoice_number.startswith(args.prefix))

        invoices = q.all()

        if not invoices:
            print("No invoices found for the given filter.")
            return

        total = len(invoices)
        generated = 0
        skipped = 0
        failed = 0

        for i, inv in enumerate(invoices, start=1):
            number = inv.invoice_number
            try:
                has_pdf = bool(inv.pdf_path) and os.path.exists(inv.pdf_path or "")
                if has_pdf and not args.all:
                    skipped += 1
                    print(f"[{i}/{total}] SKIP  {number} (already has PDF)")
                    continue

                path = generate_and_store_pdf(s, number, logo=logo, signature=signature)
                generated += 1
                print(f"[{i}/{total}] DONE  {number} -> {path}")

            except Exception as e:
                s.rollback()
                failed += 1
                print(f"[{i}/{total}] FAIL  {number}  ({e})")

        print("\n✅ Bulk PDF generation complete.")
        print(f"Generated: {generated}")
        print(f"Skipped:   {skipped}")
        print(f"Failed:    {failed}")
        print(f"Exports:   {Config.EXPORTS_DIR}")


if __name__ == "__main__":
    main()
