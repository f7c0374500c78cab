"""
Fixed-point numeric codec.

Maps floats onto signed integers in the BFV plaintext space:

    encode(x, e) = round(x * base ** (fraction_digits * e))

`e` is the scale exponent. A freshly encoded feature or weight sits at
exponent 1; the product of two of them sits at exponent 2, which is where
every linear score ends up. Decoding divides the scale back out, so
encode/decode alone is the identity up to `resolution`.
"""

import math
from dataclasses import dataclass

from ..errors import OutOfRangeError
from .params import SchemeParams


@dataclass(frozen=True)
class Plaintext:
    """An encoded value: signed slot integer plus its scale exponent."""

    value: int
    scale_exponent: int = 1


class FixedPointCodec:
    """Float <-> Plaintext codec bound to one set of scheme parameters."""

    def __init__(self, params: SchemeParams):
        self.params = params
        self._max_input = float(params.encoding_base ** params.integer_digits)

    @property
    def resolution(self) -> float:
        """Smallest representable step at exponent 1."""
        return 1.0 / self.params.scale_factor(1)

    @property
    def max_input(self) -> float:
        """Exclusive magnitude bound accepted by `encode`."""
        return self._max_input

    @property
    def max_score_magnitude(self) -> float:
        """Largest decoded magnitude representable at exponent 2."""
        return self.params.plain_bound / self.params.scale_factor(2)

    def encode(self, x: float, scale_exponent: int = 1) -> Plaintext:
        """Encode a float, failing fast instead of overflowing the plaintext slot."""
        x = float(x)
        if not math.isfinite(x):
            raise OutOfRangeError("value is not finite")
        if scale_exponent < 0:
            raise ValueError(f"scale_exponent must be >= 0, got {scale_exponent}")
        if abs(x) >= self._max_input:
            raise OutOfRangeError("magnitude exceeds integer digit budget", limit=self._max_input)

        value = int(round(x * self.params.scale_factor(scale_exponent)))
        if abs(value) >= self.params.plain_bound:
            raise OutOfRangeError(
                "scaled value exceeds plaintext modulus",
                limit=self.params.plain_bound / self.params.scale_factor(scale_exponent),
            )
        return Plaintext(value=value, scale_exponent=scale_exponent)

    def decode(self, plaintext: Plaintext) -> float:
        """Decode back to a float."""
        return plaintext.value / self.params.scale_factor(plaintext.scale_exponent)

    def rescale_factor(self, from_exponent: int, to_exponent: int) -> int:
        """Integer that lifts a value from one exponent to a higher one."""
        if to_exponent < from_exponent:
            raise ValueError("cannot lower the scale of an encoded value")
        return self.params.scale_factor(to_exponent - from_exponent)
