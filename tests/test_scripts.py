from __future__ import annotations

import os

import pytest

import bulk_generate_pdfs
import db_init
from config import Config
from models import Base, current_count, make_engine, make_session_factory, save_invoice
from tests.conftest import make_document


@pytest.fixture
def configured(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    db_url = f"sqlite:///{(tmp_path / 'instance' / 'invoices.db').as_posix()}"
    monkeypatch.setattr(Config, "SQLALCHEMY_DATABASE_URI", db_url)
    monkeypatch.setattr(Config, "EXPORTS_DIR", str(tmp_path / "exports"))
    monkeypatch.setattr(Config, "LOGO_SOURCE", "")
    monkeypatch.setattr(Config, "SIGNATURE_SOURCE", "")
    return db_url


def test_db_init_creates_tables_and_counter(configured, capsys) -> None:
    db_init.main()
    assert "Database initialized" in capsys.readouterr().out

    engine = make_engine(configured)
    with make_session_factory(engine)() as s:
        assert current_count(s, Config.INVOICE_LOCATION_CODE) == 0


def test_bulk_generate_skips_existing_pdfs(configured, capsys) -> None:
    db_init.main()
    engine = make_engine(configured)
    Base.metadata.create_all(engine)
    with make_session_factory(engine)() as s:
        save_invoice(s, make_document())
        s.commit()

    bulk_generate_pdfs.main([])
    out = capsys.readouterr().out
    assert "DONE  HOP-75300-001" in out
    assert os.path.exists(os.path.join(Config.EXPORTS_DIR, "invoice-HOP-75300-001.pdf"))

    bulk_generate_pdfs.main([])
    assert "SKIP  HOP-75300-001" in capsys.readouterr().out

    bulk_generate_pdfs.main(["--all"])
    assert "DONE  HOP-75300-001" in capsys.readouterr().out


def test_bulk_generate_with_no_matches(configured, capsys) -> None:
    db_init.main()
    bulk_generate_pdfs.main(["--prefix", "XYZ"])
    assert "No invoices found" in capsys.readouterr().out
