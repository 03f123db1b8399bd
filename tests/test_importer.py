"""Tests for the importer CLI."""
import json
from unittest.mock import patch

import pytest

import importer


def run_cli(store, *argv):
    with patch("importer.setup_store", return_value=store):
        with pytest.raises(SystemExit) as exc_info:
            importer.main(list(argv))
    return exc_info.value.code


def test_run_imports_and_prints_summary(store, write_csv, capsys):
    path = write_csv(["Dune;1965-08-01;Frank Herbert;Science Fiction"])

    code = run_cli(store, "run", "--input", str(path))

    out = capsys.readouterr().out
    assert code == 0
    assert "authorStep" in out
    assert "COMPLETED" in out
    assert store.get_stats()["books"] == 1


def test_run_exits_nonzero_on_failure(store, write_csv, capsys):
    path = write_csv(["Dune;sixties;Frank Herbert;Science Fiction"])

    code = run_cli(store, "run", "--input", str(path))

    out = capsys.readouterr().out
    assert code == 1
    assert "FAILED" in out
    assert "ParseError" in out


def test_run_clean_wipes_store_first(store, write_csv):
    path = write_csv(["Dune;1965-08-01;Frank Herbert;Science Fiction"])
    run_cli(store, "run", "--input", str(path))

    run_cli(store, "run", "--input", str(path), "--clean")

    assert store.get_stats()["books"] == 1


def test_list_json(store, write_csv, capsys):
    path = write_csv(["Good Omens;1990-05-01;Terry Pratchett, Neil Gaiman;Fantasy"])
    run_cli(store, "run", "--input", str(path))
    capsys.readouterr()

    code = run_cli(store, "list", "--format", "json")

    books = json.loads(capsys.readouterr().out)
    assert code == 0
    assert books[0]["title"] == "Good Omens"
    assert books[0]["authors"] == ["Neil Gaiman", "Terry Pratchett"]
    assert books[0]["genre"] == "Fantasy"


def test_no_command_prints_help():
    with pytest.raises(SystemExit) as exc_info:
        importer.main([])
    assert exc_info.value.code == 1


@pytest.mark.parametrize("option", ["--chunk-size", "--workers"])
def test_run_rejects_zero_sizes(store, write_csv, option):
    """Test that an explicit 0 is passed through and refused, not replaced by the default."""
    path = write_csv(["Dune;1965-08-01;Frank Herbert;Science Fiction"])

    code = run_cli(store, "run", "--input", str(path), option, "0")

    assert code == 1
    assert store.get_stats()["books"] == 0
