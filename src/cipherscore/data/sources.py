"""
Row-oriented text data source.

Each non-blank line is one row: a label followed by features. Features are
either all dense values or all `index:value` tokens (0-based indices), which
produce sparse vectors of length `num_features`. Lines starting with `#` are
comments.

    1.0  0.5 -2.0 3.25
    0    0:0.5 3:3.25
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Union

import numpy as np

from ..errors import DataFormatError, StreamIOError, VectorShapeError
from ..linear.vectors import ElementKind, FeatureVector


@dataclass
class Row:
    """One parsed data row."""

    label: Optional[float]
    features: FeatureVector
    line_number: int


class TextDataSource:
    """Iterates `Row`s from a delimited text file."""

    def __init__(
        self,
        path: Union[str, Path],
        num_features: Optional[int] = None,
        label_column: Optional[int] = 0,
        separator: Optional[str] = None,
        has_header: bool = False,
    ):
        self.path = Path(path)
        self.num_features = num_features
        self.label_column = label_column
        self.separator = separator
        self.has_header = has_header

    def __iter__(self) -> Iterator[Row]:
        if not self.path.is_file():
            raise StreamIOError("data file not found", path=str(self.path))
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                header_pending = self.has_header
                for line_number, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line or line.startswith("#"):
                        continue
                    if header_pending:
                        header_pending = False
                        continue
                    yield self.parse_line(line, line_number)
        except OSError as e:
            raise StreamIOError(f"cannot read data file: {e}", path=str(self.path)) from e

    def read_all(self) -> List[Row]:
        return list(self)

    def parse_line(self, line: str, line_number: int = 0) -> Row:
        tokens = [t for t in line.split(self.separator) if t.strip()] if self.separator else line.split()
        tokens = [t.strip() for t in tokens]

        label = None
        if self.label_column is not None:
            if self.label_column >= len(tokens):
                raise DataFormatError("missing label column", line_number=line_number)
            try:
                label = float(tokens.pop(self.label_column))
            except ValueError as e:
                raise DataFormatError(f"label is not numeric: {e}", line_number=line_number) from e

        try:
            if any(":" in t for t in tokens):
                features = self._parse_sparse(tokens, line_number)
            else:
                features = self._parse_dense(tokens, line_number)
        except VectorShapeError as e:
            raise DataFormatError(e.message, line_number=line_number) from e
        return Row(label=label, features=features, line_number=line_number)

    def _parse_dense(self, tokens: List[str], line_number: int) -> FeatureVector:
        try:
            values = np.array(tokens, dtype=np.float64)
        except ValueError as e:
            raise DataFormatError(f"non-numeric feature: {e}", line_number=line_number) from e
        if self.num_features is not None and values.shape[0] != self.num_features:
            raise DataFormatError(
                f"expected {self.num_features} features, got {values.shape[0]}",
                line_number=line_number,
            )
        return FeatureVector.from_numpy(values)

    def _parse_sparse(self, tokens: List[str], line_number: int) -> FeatureVector:
        if self.num_features is None:
            raise DataFormatError("sparse rows need num_features", line_number=line_number)
        pairs = [t.split(":", 1) for t in tokens]
        if any(len(p) != 2 for p in pairs):
            raise DataFormatError("mixed dense and sparse tokens", line_number=line_number)
        try:
            indices = np.array([p[0] for p in pairs], dtype=np.int64)
            values = np.array([p[1] for p in pairs], dtype=np.float64)
        except ValueError as e:
            raise DataFormatError(f"bad index:value token: {e}", line_number=line_number) from e

        order = np.argsort(indices, kind="stable")
        indices = indices[order]
        values = values[order]
        if indices.size and (indices[0] < 0 or np.any(np.diff(indices) == 0)):
            raise DataFormatError("sparse indices must be unique and non-negative", line_number=line_number)
        return FeatureVector.sparse(
            self.num_features, indices.tolist(), values.tolist(), kind=ElementKind.FLOAT
        )
