"""
Sparse-or-dense feature vectors.

A vector holds either floats (plaintext features and weights) or ciphertexts
(encrypted features and weights). Position `i` always names feature `i`;
`FeatureSchema` travels with a model so a vector of the wrong width is
rejected instead of silently misaligned.
"""

import numbers
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, List, NewType, Optional, Sequence, Tuple

import numpy as np

from ..errors import IncompatibleContextError, VectorShapeError
from ..he.context import Ciphertext

FeatureIndex = NewType("FeatureIndex", int)

INT32_MAX = 2**31 - 1


class ElementKind(Enum):
    """Closed set of element types a vector may carry."""

    FLOAT = "float"
    CIPHERTEXT = "ciphertext"


def _infer_kind(values: Sequence[Any]) -> ElementKind:
    if all(isinstance(v, Ciphertext) for v in values):
        return ElementKind.CIPHERTEXT if values else ElementKind.FLOAT
    if all(isinstance(v, numbers.Real) for v in values):
        return ElementKind.FLOAT
    raise VectorShapeError("values must be all floats or all ciphertexts")


class FeatureVector:
    """
    Dense or sparse vector of floats or ciphertexts.

    Dense: `indices is None` and `len(values) == length`.
    Sparse: `indices` strictly increasing within `[0, length)`, parallel to
    `values`; absent indices are implicit zeros.
    """

    __slots__ = ("length", "values", "indices", "kind", "_positions")

    def __init__(
        self,
        length: int,
        values: Sequence[Any],
        indices: Optional[Sequence[int]] = None,
        kind: Optional[ElementKind] = None,
    ):
        values = list(values)
        if kind is None:
            kind = _infer_kind(values)
        elif kind is ElementKind.CIPHERTEXT and not all(isinstance(v, Ciphertext) for v in values):
            raise VectorShapeError("ciphertext vector holds non-ciphertext values")
        if kind is ElementKind.FLOAT:
            try:
                values = [float(v) for v in values]
            except (TypeError, ValueError) as e:
                raise VectorShapeError(f"non-numeric value: {e}") from e

        if not isinstance(length, numbers.Integral) or length < 0 or length > INT32_MAX:
            raise VectorShapeError(f"length must be an int in [0, {INT32_MAX}], got {length!r}")
        length = int(length)

        if indices is None:
            if len(values) != length:
                raise VectorShapeError(f"dense vector has {len(values)} values for length {length}")
        else:
            indices = [int(i) for i in indices]
            if len(indices) != len(values):
                raise VectorShapeError(f"sparse vector has {len(indices)} indices but {len(values)} values")
            previous = -1
            for i in indices:
                if i <= previous:
                    raise VectorShapeError("sparse indices must be strictly increasing")
                if i >= length:
                    raise VectorShapeError(f"sparse index {i} out of range for length {length}")
                previous = i

        self.length = length
        self.values: List[Any] = values
        self.indices: Optional[List[int]] = indices
        self.kind = kind
        self._positions: Optional[Dict[int, int]] = None

    @classmethod
    def dense(cls, values: Sequence[Any], kind: Optional[ElementKind] = None) -> "FeatureVector":
        values = list(values)
        return cls(len(values), values, kind=kind)

    @classmethod
    def sparse(
        cls,
        length: int,
        indices: Sequence[int],
        values: Sequence[Any],
        kind: Optional[ElementKind] = None,
    ) -> "FeatureVector":
        return cls(length, values, indices=indices, kind=kind)

    @classmethod
    def from_numpy(cls, array: np.ndarray) -> "FeatureVector":
        """Dense float vector from a 1-D array."""
        array = np.asarray(array, dtype=np.float64)
        if array.ndim != 1:
            raise VectorShapeError(f"expected a 1-D array, got shape {array.shape}")
        return cls(array.shape[0], array.tolist(), kind=ElementKind.FLOAT)

    @property
    def count(self) -> int:
        """Number of explicitly stored entries."""
        return len(self.values)

    @property
    def is_sparse(self) -> bool:
        return self.indices is not None

    def items(self) -> Iterator[Tuple[FeatureIndex, Any]]:
        """Iterate (feature index, value) pairs of the stored entries."""
        if self.indices is None:
            for i, value in enumerate(self.values):
                yield FeatureIndex(i), value
        else:
            for i, value in zip(self.indices, self.values):
                yield FeatureIndex(i), value

    def get(self, index: int) -> Optional[Any]:
        """Stored value at a feature index, or None when absent."""
        if index < 0 or index >= self.length:
            return None
        if self.indices is None:
            return self.values[index]
        if self._positions is None:
            self._positions = {i: pos for pos, i in enumerate(self.indices)}
        pos = self._positions.get(index)
        return None if pos is None else self.values[pos]

    def to_dense(self) -> "FeatureVector":
        """Dense copy of a float vector with implicit zeros filled in."""
        if self.kind is not ElementKind.FLOAT:
            raise VectorShapeError("only float vectors can be densified")
        if self.indices is None:
            return FeatureVector(self.length, list(self.values), kind=ElementKind.FLOAT)
        return FeatureVector.from_numpy(self.to_numpy())

    def to_numpy(self) -> np.ndarray:
        if self.kind is not ElementKind.FLOAT:
            raise VectorShapeError("only float vectors convert to numpy")
        out = np.zeros(self.length, dtype=np.float64)
        if self.count:
            positions = self.indices if self.indices is not None else np.arange(self.length)
            out[positions] = self.values
        return out

    def to_dict(self) -> Dict[str, Any]:
        """JSON form of a float vector."""
        if self.kind is not ElementKind.FLOAT:
            raise VectorShapeError("only float vectors serialize to JSON")
        data: Dict[str, Any] = {"length": self.length, "values": list(self.values)}
        if self.indices is not None:
            data["indices"] = list(self.indices)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeatureVector":
        values = data.get("values", [])
        return cls(data.get("length", len(values)), values, indices=data.get("indices"), kind=ElementKind.FLOAT)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FeatureVector):
            return NotImplemented
        return (
            self.kind is other.kind
            and self.length == other.length
            and self.indices == other.indices
            and self.values == other.values
        )

    def __repr__(self) -> str:
        shape = f"sparse, count={self.count}" if self.is_sparse else "dense"
        return f"FeatureVector(length={self.length}, {shape}, kind={self.kind.value})"


@dataclass(frozen=True)
class FeatureSchema:
    """Feature count a model was trained with; paired with every vector it scores."""

    num_features: int

    def check(self, vector: FeatureVector) -> None:
        if vector.length != self.num_features:
            raise IncompatibleContextError(
                f"vector length {vector.length} does not match model feature count {self.num_features}"
            )
