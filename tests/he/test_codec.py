"""
Tests for scheme parameters and the fixed-point codec.

No encryption involved.
"""

import math

import pytest

from cipherscore.errors import OutOfRangeError
from cipherscore.he.codec import FixedPointCodec, Plaintext
from cipherscore.he.params import SchemeParams


class TestSchemeParams:
    """Tests for scheme parameter validation and fingerprinting."""

    def test_default_params_are_valid(self):
        assert SchemeParams.default().validate() == []

    def test_plain_modulus_supports_batching(self):
        params = SchemeParams.default()
        assert params.plain_modulus % (2 * params.poly_modulus_degree) == 1

    def test_hash_is_deterministic(self):
        assert SchemeParams().get_hash() == SchemeParams().get_hash()
        assert SchemeParams().get_hash().startswith("sha256:")

    def test_hash_changes_with_any_field(self):
        base = SchemeParams().get_hash()
        assert SchemeParams(fraction_digits=15).get_hash() != base
        assert SchemeParams(coeff_mod_bit_sizes=[60, 40, 60]).get_hash() != base

    def test_dict_roundtrip(self):
        params = SchemeParams(integer_digits=6)
        assert SchemeParams.from_dict(params.to_dict()) == params

    def test_rejects_unsupported_degree(self):
        problems = SchemeParams(poly_modulus_degree=1000).validate()
        assert any("poly_modulus_degree" in p for p in problems)

    def test_rejects_non_batching_plain_modulus(self):
        problems = SchemeParams(plain_modulus=1 << 40).validate()
        assert any("congruent" in p for p in problems)

    def test_rejects_budget_that_cannot_hold_a_product(self):
        problems = SchemeParams(integer_digits=20, fraction_digits=20).validate()
        assert any("product" in p for p in problems)

    def test_params_usable_as_dict_key(self):
        assert {SchemeParams(): 1}[SchemeParams()] == 1


class TestFixedPointCodec:
    """Tests for encode/decode."""

    @pytest.fixture
    def codec(self):
        return FixedPointCodec(SchemeParams.default())

    @pytest.mark.parametrize("x", [0.0, 1.0, -1.0, 0.5, -0.25, 3.14159, -10.0, 10.0, 255.99, -255.99])
    def test_roundtrip_within_resolution(self, codec, x):
        assert abs(codec.decode(codec.encode(x)) - x) <= codec.resolution / 2

    def test_resolution(self, codec):
        assert codec.resolution == 2.0 ** -16

    def test_encode_scale_exponent(self, codec):
        p = codec.encode(1.5, scale_exponent=2)
        assert p == Plaintext(value=int(1.5 * 2**32), scale_exponent=2)
        assert codec.decode(p) == 1.5

    def test_negative_values_encode_signed(self, codec):
        assert codec.encode(-1.0).value == -(2**16)

    def test_product_of_encodings_decodes_at_exponent_two(self, codec):
        a, b = codec.encode(1.25), codec.encode(-3.5)
        product = Plaintext(a.value * b.value, a.scale_exponent + b.scale_exponent)
        assert codec.decode(product) == pytest.approx(-4.375)

    @pytest.mark.parametrize("x", [256.0, -256.0, 1e9])
    def test_out_of_range_magnitude(self, codec, x):
        with pytest.raises(OutOfRangeError) as exc_info:
            codec.encode(x)
        assert exc_info.value.code == "CS_HE_OUT_OF_RANGE"

    @pytest.mark.parametrize("x", [math.nan, math.inf, -math.inf])
    def test_non_finite_rejected(self, codec, x):
        with pytest.raises(OutOfRangeError):
            codec.encode(x)

    def test_scaled_value_must_fit_plain_modulus(self, codec):
        # 255 at exponent 3 is 255 * 2**48, beyond t/2 ~ 2**49
        with pytest.raises(OutOfRangeError):
            codec.encode(255.0, scale_exponent=3)

    def test_max_score_magnitude(self, codec):
        params = codec.params
        assert codec.max_score_magnitude == pytest.approx(params.plain_bound / 2**32)
        assert codec.max_score_magnitude > 100_000

    def test_rescale_factor(self, codec):
        assert codec.rescale_factor(1, 2) == 2**16
        assert codec.rescale_factor(2, 2) == 1
        with pytest.raises(ValueError):
            codec.rescale_factor(2, 1)
