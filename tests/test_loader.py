"""Tests for delimited file loading and EIN validation."""

import pytest

from pdcsync.ein import is_valid_ein
from pdcsync.errors import ConfigurationError
from pdcsync.loader import load_rows, row_excerpt


def is_csv_row(row):
    return (
        isinstance(row, dict)
        and len(row) > 0
        and all(isinstance(k, str) and isinstance(v, str) for k, v in row.items())
    )


class TestLoadRows:
    def test_values_stay_text(self, tmp_path):
        path = tmp_path / "in.csv"
        path.write_text("EIN,Budget,Note\n012345678,1000,N/A\n", encoding="utf-8")

        rows = load_rows(str(path))

        assert rows == [{"EIN": "012345678", "Budget": "1000", "Note": "N/A"}]
        assert all(is_csv_row(r) for r in rows)

    def test_empty_cells_are_empty_strings(self, tmp_path):
        path = tmp_path / "in.csv"
        path.write_text("A,B\nx,\n", encoding="utf-8")
        assert load_rows(str(path)) == [{"A": "x", "B": ""}]

    def test_blank_lines_dropped(self, tmp_path):
        path = tmp_path / "in.csv"
        path.write_text("A,B\nx,y\n,\n", encoding="utf-8")
        assert len(load_rows(str(path))) == 1

    def test_pipe_delimited(self, tmp_path):
        path = tmp_path / "in.psv"
        path.write_text("Org Name|Budget\nAcme, Inc.|5\n", encoding="utf-8")
        assert load_rows(str(path), delimiter="|") == [{"Org Name": "Acme, Inc.", "Budget": "5"}]

    def test_headers_are_not_normalized(self, tmp_path):
        path = tmp_path / "in.csv"
        path.write_text("Org Name,org_name\na,b\n", encoding="utf-8")
        assert list(load_rows(str(path))[0]) == ["Org Name", "org_name"]

    def test_missing_required_column(self, tmp_path):
        path = tmp_path / "in.csv"
        path.write_text("A\nx\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="EIN"):
            load_rows(str(path), required_columns=["EIN"])

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_rows(str(tmp_path / "nope.csv"))

    def test_empty_file(self, tmp_path):
        path = tmp_path / "in.csv"
        path.write_text("", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="empty"):
            load_rows(str(path))

    def test_row_with_too_many_cells(self, tmp_path):
        path = tmp_path / "in.csv"
        path.write_text("A,B\nx,y\nx,y,z\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="parse"):
            load_rows(str(path))

    def test_duplicate_header_labels(self, tmp_path):
        path = tmp_path / "in.csv"
        path.write_text("Org Name,Budget,Org Name\na,1,b\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="Org Name"):
            load_rows(str(path))


class TestRowHelpers:
    def test_excerpt_is_truncated(self):
        text = row_excerpt({"Organization Name": "A very long organization name indeed"})
        assert text.endswith("...")
        assert len(text) == 43


class TestEin:
    @pytest.mark.parametrize("value", ["12-3456789", "123456789"])
    def test_valid(self, value):
        assert is_valid_ein(value)

    @pytest.mark.parametrize("value", ["12345", "AB-1234567", "12-3456789\n", "", None, 123456789])
    def test_invalid(self, value):
        assert not is_valid_ein(value)
