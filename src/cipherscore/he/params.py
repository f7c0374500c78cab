"""
BFV scheme parameters shared by every party.

Ciphertexts are only interoperable between contexts built from identical
parameters; `SchemeParams.get_hash()` is the fingerprint compared before any
homomorphic operation.
"""

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List

SUPPORTED_POLY_DEGREES = (4096, 8192, 16384, 32768)


@dataclass(frozen=True)
class SchemeParams:
    """
    Homomorphic encryption scheme parameters.

    The ring parameters (degree, coefficient modulus chain, plain modulus)
    configure the BFV backend. The encoding parameters (base and digit
    budget) configure the fixed-point codec that maps floats onto the
    plaintext space.
    """

    # RLWE ring parameters
    poly_modulus_degree: int = 8192
    coeff_mod_bit_sizes: List[int] = field(default_factory=lambda: [43, 43, 44, 44, 44])
    plain_modulus: int = 1125899906826241  # 2**50 - 16383, prime, 1 mod 16384

    # Fixed-point encoding budget
    encoding_base: int = 2
    integer_digits: int = 8
    fraction_digits: int = 16

    # Security level (NIST standard)
    security_level: int = 128

    def __hash__(self) -> int:
        return hash(self.get_hash())

    def get_hash(self) -> str:
        """Compute deterministic hash of parameters."""
        canonical = json.dumps(self.to_dict(), sort_keys=True).encode()
        return f"sha256:{hashlib.sha256(canonical).hexdigest()}"

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "poly_modulus_degree": self.poly_modulus_degree,
            "coeff_mod_bit_sizes": list(self.coeff_mod_bit_sizes),
            "plain_modulus": self.plain_modulus,
            "encoding_base": self.encoding_base,
            "integer_digits": self.integer_digits,
            "fraction_digits": self.fraction_digits,
            "security_level": self.security_level,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SchemeParams":
        """Deserialize from dictionary."""
        defaults = cls()
        return cls(
            poly_modulus_degree=data.get("poly_modulus_degree", defaults.poly_modulus_degree),
            coeff_mod_bit_sizes=list(data.get("coeff_mod_bit_sizes", defaults.coeff_mod_bit_sizes)),
            plain_modulus=data.get("plain_modulus", defaults.plain_modulus),
            encoding_base=data.get("encoding_base", defaults.encoding_base),
            integer_digits=data.get("integer_digits", defaults.integer_digits),
            fraction_digits=data.get("fraction_digits", defaults.fraction_digits),
            security_level=data.get("security_level", defaults.security_level),
        )

    @property
    def plain_bound(self) -> int:
        """Exclusive magnitude bound of a signed plaintext slot value."""
        return self.plain_modulus // 2

    def scale_factor(self, scale_exponent: int = 1) -> int:
        """Integer multiplier applied to a value encoded at `scale_exponent`."""
        return self.encoding_base ** (self.fraction_digits * scale_exponent)

    def validate(self) -> List[str]:
        """
        Validate parameter constraints.

        Returns:
            List of problems (empty when the parameters are usable)
        """
        problems = []
        n = self.poly_modulus_degree
        if n not in SUPPORTED_POLY_DEGREES:
            problems.append(f"poly_modulus_degree must be one of {SUPPORTED_POLY_DEGREES}")
        if not self.coeff_mod_bit_sizes:
            problems.append("coeff_mod_bit_sizes must not be empty")
        if self.plain_modulus < 2:
            problems.append("plain_modulus must be at least 2")
        elif n in SUPPORTED_POLY_DEGREES and self.plain_modulus % (2 * n) != 1:
            problems.append("plain_modulus must be congruent to 1 mod 2*poly_modulus_degree for batching")
        if self.encoding_base < 2:
            problems.append("encoding_base must be at least 2")
        if self.integer_digits < 1:
            problems.append("integer_digits must be at least 1")
        if self.fraction_digits < 0:
            problems.append("fraction_digits must not be negative")

        if not problems:
            # One product of two full-range encoded values must fit the plaintext space
            max_value = self.encoding_base ** self.integer_digits
            if max_value * max_value * self.scale_factor(2) >= self.plain_bound:
                problems.append("encoding budget does not fit one product in the plaintext modulus")
        return problems

    @classmethod
    def default(cls) -> "SchemeParams":
        """Default parameters: N=8192, 50-bit plain modulus, base-2 16.16 budget."""
        return cls()
