"""
Tests for the text data source.
"""

import pytest

from cipherscore.data.sources import TextDataSource
from cipherscore.errors import DataFormatError, StreamIOError


class TestTextDataSource:
    """Dense and sparse row parsing."""

    def test_dense_rows(self, tmp_path):
        path = tmp_path / "rows.txt"
        path.write_text("# label f0 f1\n1.0 4.0 2.0\n\n0 -1.5 0.25\n")
        rows = TextDataSource(path).read_all()
        assert [r.label for r in rows] == [1.0, 0.0]
        assert rows[0].features.values == [4.0, 2.0]
        assert not rows[0].features.is_sparse
        assert rows[1].line_number == 4

    def test_sparse_rows_sorted(self, tmp_path):
        path = tmp_path / "rows.txt"
        path.write_text("1 3:5.0 0:2.0\n")
        (row,) = TextDataSource(path, num_features=4).read_all()
        assert row.features.is_sparse
        assert row.features.length == 4
        assert row.features.indices == [0, 3]
        assert row.features.values == [2.0, 5.0]

    def test_separator_and_header(self, tmp_path):
        path = tmp_path / "rows.csv"
        path.write_text("label,a,b\n2,0.5,1.5\n")
        (row,) = TextDataSource(path, separator=",", has_header=True).read_all()
        assert row.label == 2.0
        assert row.features.values == [0.5, 1.5]

    def test_no_label_column(self, tmp_path):
        path = tmp_path / "rows.txt"
        path.write_text("4.0 2.0\n")
        (row,) = TextDataSource(path, label_column=None).read_all()
        assert row.label is None
        assert row.features.length == 2

    def test_width_mismatch_names_line(self, tmp_path):
        path = tmp_path / "rows.txt"
        path.write_text("1 1.0 2.0\n1 1.0\n")
        with pytest.raises(DataFormatError) as exc_info:
            TextDataSource(path, num_features=2).read_all()
        assert exc_info.value.details["line_number"] == 2

    @pytest.mark.parametrize(
        "line",
        ["1 abc 2.0", "x 1.0", "1 0:1.0 2.0", "1 1:1.0 1:2.0", "1 9:1.0", "1 -1:1.0"],
    )
    def test_malformed_lines(self, tmp_path, line):
        path = tmp_path / "rows.txt"
        path.write_text(line + "\n")
        with pytest.raises(DataFormatError):
            TextDataSource(path, num_features=4).read_all()

    def test_sparse_requires_width(self, tmp_path):
        path = tmp_path / "rows.txt"
        path.write_text("1 0:1.0\n")
        with pytest.raises(DataFormatError):
            TextDataSource(path).read_all()

    def test_missing_file(self, tmp_path):
        with pytest.raises(StreamIOError):
            list(TextDataSource(tmp_path / "absent.txt"))
