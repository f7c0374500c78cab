"""
Tests for feature vectors and schemas.
"""

import numpy as np
import pytest

from cipherscore.errors import IncompatibleContextError, VectorShapeError
from cipherscore.linear.vectors import ElementKind, FeatureSchema, FeatureVector


class TestFeatureVector:
    """Shape invariants and accessors."""

    def test_dense(self):
        v = FeatureVector.dense([1, 2.5, -3])
        assert v.length == 3
        assert v.count == 3
        assert not v.is_sparse
        assert v.kind is ElementKind.FLOAT
        assert v.values == [1.0, 2.5, -3.0]

    def test_sparse(self):
        v = FeatureVector.sparse(4, [0, 3], [2.0, 5.0])
        assert v.is_sparse
        assert v.count == 2
        assert list(v.items()) == [(0, 2.0), (3, 5.0)]
        assert v.get(3) == 5.0
        assert v.get(1) is None
        assert v.get(10) is None

    def test_to_dense_fills_zeros(self):
        dense = FeatureVector.sparse(4, [0, 3], [2.0, 5.0]).to_dense()
        assert dense == FeatureVector.dense([2.0, 0.0, 0.0, 5.0])

    def test_from_numpy(self):
        v = FeatureVector.from_numpy(np.array([0.5, -1.5]))
        assert v.values == [0.5, -1.5]
        with pytest.raises(VectorShapeError):
            FeatureVector.from_numpy(np.zeros((2, 2)))

    def test_to_numpy(self):
        np.testing.assert_array_equal(
            FeatureVector.sparse(3, [1], [7.0]).to_numpy(),
            np.array([0.0, 7.0, 0.0]),
        )

    def test_dict_roundtrip(self):
        v = FeatureVector.sparse(6, [1, 4], [0.1, 0.2])
        assert FeatureVector.from_dict(v.to_dict()) == v

    @pytest.mark.parametrize(
        "length, indices, values",
        [
            (3, [0, 0], [1.0, 2.0]),  # duplicate
            (3, [2, 1], [1.0, 2.0]),  # descending
            (3, [0, 3], [1.0, 2.0]),  # out of range
            (3, [0], [1.0, 2.0]),  # count mismatch
            (-1, [], []),  # negative length
        ],
    )
    def test_sparse_invariants(self, length, indices, values):
        with pytest.raises(VectorShapeError):
            FeatureVector.sparse(length, indices, values)

    def test_dense_length_mismatch(self):
        with pytest.raises(VectorShapeError):
            FeatureVector(3, [1.0, 2.0])

    def test_shape_error_is_value_error(self):
        with pytest.raises(ValueError):
            FeatureVector(1, [1.0, 2.0])

    def test_mixed_values_rejected(self, owner_ctx):
        with pytest.raises(VectorShapeError):
            FeatureVector.dense([1.0, owner_ctx.encrypt_value(1.0)])

    def test_ciphertext_kind_inferred(self, owner_ctx):
        v = FeatureVector.dense([owner_ctx.encrypt_value(1.0)])
        assert v.kind is ElementKind.CIPHERTEXT
        with pytest.raises(VectorShapeError):
            v.to_dense()


class TestFeatureSchema:
    """Schema pairing between model and vectors."""

    def test_matching_length(self):
        FeatureSchema(4).check(FeatureVector.sparse(4, [1], [1.0]))

    def test_mismatched_length(self):
        with pytest.raises(IncompatibleContextError):
            FeatureSchema(4).check(FeatureVector.dense([1.0, 2.0]))
