"""Tests for the command-line entry point and post-run artifacts."""

import json
from unittest.mock import MagicMock

import pytest
import requests

from catalog_import.artifacts import backup_assets, write_run_report
from catalog_import.cli import main, resolve_db_path
from catalog_import.config import DEFAULT_WORKERS, get_workers_from_env
from catalog_import.db import get_table_counts
from catalog_import.models import RecordResult, RunSummary


@pytest.fixture
def export_file(tmp_path):
    path = tmp_path / "ventura-products.json"
    path.write_text(json.dumps([
        {
            "name": "Midea 7kg Washing Machine",
            "priceNumeric": 299.99,
            "category": "All",
            "images": [{"url": "a.jpg", "isPrimary": True}],
            "sku": "MID-7KG",
        },
        {"name": ""},
    ]), encoding="utf-8")
    return path


class TestResolveDbPath:

    def test_cli_value_wins(self, monkeypatch):
        monkeypatch.setenv("CATALOG_DB_PATH", "env.db")
        assert resolve_db_path("cli.db") == "cli.db"

    def test_env_value(self, monkeypatch):
        monkeypatch.setenv("CATALOG_DB_PATH", "env.db")
        assert resolve_db_path(None) == "env.db"

    def test_default(self, monkeypatch):
        monkeypatch.delenv("CATALOG_DB_PATH", raising=False)
        assert resolve_db_path(None) == "data/catalog.db"


class TestWorkersFromEnv:

    def test_unset_uses_default(self, monkeypatch):
        monkeypatch.delenv("CATALOG_IMPORT_WORKERS", raising=False)
        assert get_workers_from_env() == DEFAULT_WORKERS

    def test_valid_value(self, monkeypatch):
        monkeypatch.setenv("CATALOG_IMPORT_WORKERS", "4")
        assert get_workers_from_env() == 4

    @pytest.mark.parametrize("value", ["four", "0", "-2"])
    def test_bad_value_falls_back(self, monkeypatch, value):
        monkeypatch.setenv("CATALOG_IMPORT_WORKERS", value)
        assert get_workers_from_env() == DEFAULT_WORKERS

    def test_bad_value_does_not_break_main(self, monkeypatch, tmp_path, export_file):
        monkeypatch.setenv("CATALOG_IMPORT_WORKERS", "many")
        db_path = str(tmp_path / "catalog.db")
        assert main(["--db", db_path, "--input", str(export_file), "--no-log-file"]) == 0
        assert get_table_counts(db_path)["products"] == 1


class TestMain:

    def test_import_export_file(self, tmp_path, export_file, capsys):
        db_path = str(tmp_path / "catalog.db")
        code = main(["--db", db_path, "--input", str(export_file), "--no-log-file"])

        assert code == 0
        counts = get_table_counts(db_path)
        assert counts["products"] == 1
        assert counts["product_images"] == 1
        out = capsys.readouterr().out
        assert "Products imported: 1/1" in out
        assert "Skipped records:   1" in out

    def test_missing_store_is_fatal(self, export_file):
        assert main(["--db", "", "--input", str(export_file), "--no-log-file"]) == 1

    def test_missing_input_is_fatal(self, tmp_path):
        db_path = str(tmp_path / "catalog.db")
        code = main(["--db", db_path, "--input", str(tmp_path / "nope.json"), "--no-log-file"])
        assert code == 1
        assert get_table_counts(db_path)["products"] == 0

    def test_stats(self, tmp_path, capsys):
        db_path = str(tmp_path / "catalog.db")
        assert main(["--db", db_path, "--stats", "--no-log-file"]) == 0
        assert "products:" in capsys.readouterr().out

    def test_purge_tag(self, tmp_path, export_file, capsys):
        db_path = str(tmp_path / "catalog.db")
        main(["--db", db_path, "--input", str(export_file), "--no-log-file"])
        assert main(["--db", db_path, "--purge-tag", "ventura", "--no-log-file"]) == 0
        assert get_table_counts(db_path)["products"] == 0
        assert "Deleted 1 products" in capsys.readouterr().out

    def test_report_dir(self, tmp_path, export_file):
        db_path = str(tmp_path / "catalog.db")
        report_dir = tmp_path / "reports"
        main(["--db", db_path, "--input", str(export_file), "--no-log-file",
              "--report-dir", str(report_dir)])
        reports = list(report_dir.glob("import_report_*.json"))
        assert len(reports) == 1


def make_summary() -> RunSummary:
    summary = RunSummary(source="ventura")
    summary.add(RecordResult(
        index=0, name="Beko Oven", handle="beko-oven", product_id=1, imported=True, images=2,
        image_urls=["https://cdn.test/o1.png", "relative/o2.jpg"],
    ))
    summary.add(RecordResult(index=1, name="Broken", errors=1))
    return summary


class TestArtifacts:

    def test_write_run_report(self, tmp_path):
        path = write_run_report(make_summary(), tmp_path)
        report = json.loads(path.read_text(encoding="utf-8"))

        assert report["summary"]["imported"] == 1
        assert report["summary"]["errors"] == 1
        assert "results" not in report["summary"]
        assert report["products"] == [{
            "index": 0,
            "name": "Beko Oven",
            "handle": "beko-oven",
            "images": ["https://cdn.test/o1.png", "relative/o2.jpg"],
        }]
        assert report["failed"] == [{"index": 1, "name": "Broken", "errors": 1}]

    def test_backup_assets_downloads_absolute_urls_only(self, tmp_path):
        resp = MagicMock()
        resp.content = b"png-bytes"
        resp.raise_for_status.return_value = None
        session = MagicMock()
        session.get.return_value = resp

        assert backup_assets(make_summary(), tmp_path, session=session) == 1
        assert (tmp_path / "assets" / "beko-oven" / "1.png").read_bytes() == b"png-bytes"
        session.get.assert_called_once()

        # Existing files are kept
        assert backup_assets(make_summary(), tmp_path, session=session) == 0

    def test_backup_failure_is_logged_not_raised(self, tmp_path):
        session = MagicMock()
        session.get.side_effect = requests.exceptions.ConnectionError("offline")
        assert backup_assets(make_summary(), tmp_path, session=session) == 0
