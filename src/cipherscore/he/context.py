"""
Encryption Context.

Bundles one configured encryptor, evaluator, decryptor and fixed-point codec.
Which of them are usable depends on the keys supplied at construction:

    mode            keys held          encrypt  evaluate  decrypt
    FULL            fresh pair         yes      yes       yes
    PUBLIC_SECRET   public + secret    yes      yes       yes
    PUBLIC_ONLY     public             yes      yes       no
    SECRET_ONLY     secret             no       add only  yes

The evaluator is always present. Multiplying two ciphertexts needs the
relinearization keys that travel with the public key, so a SECRET_ONLY
context can add but not multiply.

A context is created once per process and passed explicitly to every
component. Use it as a context manager so the backend handles are released
deterministically. The evaluator is not guaranteed thread-safe; parallel
workers must each build their own context.
"""

from enum import Enum
from typing import Any, Dict, Optional

import tenseal as ts
import tenseal.sealapi  # noqa: F401  (registers seal::Modulus etc. used by _check_ring)

from ..errors import CapabilityMissingError, IncompatibleContextError, MalformedStreamError
from ..logging import get_logger
from .codec import FixedPointCodec, Plaintext
from .keys import HEKeyManager, KeyPair, PublicKey, SecretKey
from .params import SchemeParams

logger = get_logger(__name__)


class ContextMode(Enum):
    """Key combinations an encryption context can be built from."""

    FULL = "full"
    PUBLIC_SECRET = "public_secret"
    PUBLIC_ONLY = "public_only"
    SECRET_ONLY = "secret_only"


class Ciphertext:
    """
    One encrypted scalar.

    Wraps a single-slot BFV vector together with the scale exponent of the
    encoded value and the fingerprint of the parameters it was produced under.
    Only an EncryptionContext creates these.
    """

    __slots__ = ("_vector", "scale_exponent", "params_hash")

    def __init__(self, vector: Any, scale_exponent: int, params_hash: str):
        self._vector = vector
        self.scale_exponent = scale_exponent
        self.params_hash = params_hash

    def to_bytes(self) -> bytes:
        """Backend serialization of the ciphertext body."""
        return self._vector.serialize()

    def __repr__(self) -> str:
        return f"Ciphertext(scale_exponent={self.scale_exponent}, params_hash={self.params_hash[:15]}...)"


class Encryptor:
    """Encrypts encoded plaintexts under the public key."""

    def __init__(self, backend: Any, params_hash: str):
        self._backend = backend
        self._params_hash = params_hash

    def encrypt(self, plaintext: Plaintext) -> Ciphertext:
        vector = ts.bfv_vector(self._backend, [plaintext.value])
        return Ciphertext(vector, plaintext.scale_exponent, self._params_hash)


class Decryptor:
    """Decrypts ciphertexts with the secret key."""

    def __init__(self, secret_key: Any, params_hash: str):
        self._secret_key = secret_key
        self._params_hash = params_hash

    def decrypt(self, ciphertext: Ciphertext) -> Plaintext:
        if ciphertext.params_hash != self._params_hash:
            raise IncompatibleContextError(
                "ciphertext was produced under different scheme parameters",
                expected_hash=self._params_hash,
                actual_hash=ciphertext.params_hash,
            )
        values = ciphertext._vector.decrypt(self._secret_key)
        return Plaintext(value=int(values[0]), scale_exponent=ciphertext.scale_exponent)


class Evaluator:
    """
    Homomorphic add/multiply over ciphertexts.

    Operands at different scale exponents are reconciled by lifting the lower
    one with a plain multiplication before adding. Every operation compares
    parameter fingerprints first.
    """

    def __init__(self, codec: FixedPointCodec, params_hash: str, can_multiply: bool):
        self._codec = codec
        self._params_hash = params_hash
        self._can_multiply = can_multiply
        self.operations_count = 0

    def _check(self, *ciphertexts: Ciphertext) -> None:
        for ct in ciphertexts:
            if ct.params_hash != self._params_hash:
                raise IncompatibleContextError(
                    "operands were produced under different scheme parameters",
                    expected_hash=self._params_hash,
                    actual_hash=ct.params_hash,
                )

    def rescale(self, ct: Ciphertext, to_exponent: int) -> Ciphertext:
        """Lift a ciphertext to a higher scale exponent."""
        self._check(ct)
        if ct.scale_exponent == to_exponent:
            return ct
        factor = self._codec.rescale_factor(ct.scale_exponent, to_exponent)
        self.operations_count += 1
        return Ciphertext(ct._vector * [factor], to_exponent, ct.params_hash)

    def add(self, a: Ciphertext, b: Ciphertext) -> Ciphertext:
        self._check(a, b)
        exponent = max(a.scale_exponent, b.scale_exponent)
        a = self.rescale(a, exponent)
        b = self.rescale(b, exponent)
        self.operations_count += 1
        return Ciphertext(a._vector + b._vector, exponent, self._params_hash)

    def add_plain(self, a: Ciphertext, plaintext: Plaintext) -> Ciphertext:
        self._check(a)
        exponent = max(a.scale_exponent, plaintext.scale_exponent)
        a = self.rescale(a, exponent)
        value = plaintext.value * self._codec.rescale_factor(plaintext.scale_exponent, exponent)
        if value == 0:
            return a
        self.operations_count += 1
        return Ciphertext(a._vector + [value], exponent, self._params_hash)

    def multiply(self, a: Ciphertext, b: Ciphertext) -> Ciphertext:
        self._check(a, b)
        if not self._can_multiply:
            raise CapabilityMissingError("multiply ciphertexts (relinearization keys)")
        self.operations_count += 1
        return Ciphertext(
            a._vector * b._vector,
            a.scale_exponent + b.scale_exponent,
            self._params_hash,
        )

    def multiply_plain(self, a: Ciphertext, plaintext: Plaintext) -> Ciphertext:
        """
        Multiply by an encoded plaintext.

        The backend rejects a product with a zero plaintext (the result would
        be a transparent ciphertext), so callers must skip zero multipliers.
        """
        self._check(a)
        if plaintext.value == 0:
            raise ValueError("multiply_plain by zero yields a transparent ciphertext; skip the term instead")
        self.operations_count += 1
        return Ciphertext(
            a._vector * [plaintext.value],
            a.scale_exponent + plaintext.scale_exponent,
            self._params_hash,
        )


class EncryptionContext:
    """
    Capability-gated bundle of {Evaluator, Encryptor?, Decryptor?, Codec}.

    Usage:
        with EncryptionContext.create(params, public_key=pk) as ctx:
            ct = ctx.encrypt_value(1.5)
            ctx.decrypt_value(ct)  # raises CapabilityMissingError
    """

    def __init__(
        self,
        params: SchemeParams,
        mode: ContextMode,
        public_backend: Optional[Any],
        secret_backend: Optional[Any],
        key_pair: Optional[KeyPair] = None,
    ):
        self.params = params
        self.mode = mode
        self.params_hash = params.get_hash()
        self.codec = FixedPointCodec(params)
        self.key_pair = key_pair

        self._public_backend = public_backend
        self._secret_backend = secret_backend
        self._closed = False

        self._encryptor: Optional[Encryptor] = None
        self._decryptor: Optional[Decryptor] = None
        if public_backend is not None:
            self._encryptor = Encryptor(public_backend, self.params_hash)
        if secret_backend is not None:
            self._decryptor = Decryptor(secret_backend.secret_key(), self.params_hash)
        self._evaluator = Evaluator(
            self.codec,
            self.params_hash,
            can_multiply=public_backend is not None,
        )

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def create(
        cls,
        params: SchemeParams,
        public_key: Optional[PublicKey] = None,
        secret_key: Optional[SecretKey] = None,
        n_threads: int = 1,
    ) -> "EncryptionContext":
        """
        Build a context from loaded keys.

        The mode follows from the keys supplied; at least one is required.
        """
        if public_key is None and secret_key is None:
            raise CapabilityMissingError("construct a context (no key supplied)")

        params_hash = params.get_hash()
        for key in (public_key, secret_key):
            if key is not None and key.params_hash != params_hash:
                raise IncompatibleContextError(
                    f"{key.key_type} key belongs to a different parameter set",
                    expected_hash=params_hash,
                    actual_hash=key.params_hash,
                )

        public_backend = None
        secret_backend = None
        if public_key is not None:
            public_backend = _load_backend(public_key.key_bytes, "public", params, n_threads)
            if public_backend.has_secret_key():
                # A host must never hold decryption material, even from a mislabelled file
                raise MalformedStreamError("public key material contains a secret key")
        if secret_key is not None:
            secret_backend = _load_backend(secret_key.key_bytes, "secret", params, n_threads)
            if not secret_backend.has_secret_key():
                raise MalformedStreamError("secret key material holds no secret key")

        if public_key is not None and secret_key is not None:
            mode = ContextMode.PUBLIC_SECRET
        elif public_key is not None:
            mode = ContextMode.PUBLIC_ONLY
        else:
            mode = ContextMode.SECRET_ONLY

        logger.debug(f"Created encryption context mode={mode.value} params={params_hash[:15]}")
        return cls(params, mode, public_backend, secret_backend)

    @classmethod
    def generate(cls, params: SchemeParams, n_threads: int = 1) -> "EncryptionContext":
        """Owner context: generate a fresh key pair and hold both halves."""
        pair = HEKeyManager(params, n_threads=n_threads).generate()
        ctx = cls.create(params, public_key=pair.public_key, secret_key=pair.secret_key, n_threads=n_threads)
        ctx.mode = ContextMode.FULL
        ctx.key_pair = pair
        return ctx

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------

    def _ensure_open(self) -> None:
        if self._closed:
            raise CapabilityMissingError("operate (context closed)", mode=self.mode.value)

    @property
    def can_encrypt(self) -> bool:
        return not self._closed and self._encryptor is not None

    @property
    def can_decrypt(self) -> bool:
        return not self._closed and self._decryptor is not None

    @property
    def encryptor(self) -> Encryptor:
        self._ensure_open()
        if self._encryptor is None:
            raise CapabilityMissingError("encrypt (public key)", mode=self.mode.value)
        return self._encryptor

    @property
    def decryptor(self) -> Decryptor:
        self._ensure_open()
        if self._decryptor is None:
            raise CapabilityMissingError("decrypt (secret key)", mode=self.mode.value)
        return self._decryptor

    @property
    def evaluator(self) -> Evaluator:
        self._ensure_open()
        return self._evaluator

    # ------------------------------------------------------------------
    # Convenience operations
    # ------------------------------------------------------------------

    def encrypt_value(self, x: float, scale_exponent: int = 1) -> Ciphertext:
        """Encode then encrypt one float."""
        encryptor = self.encryptor
        return encryptor.encrypt(self.codec.encode(x, scale_exponent))

    def decrypt_value(self, ciphertext: Ciphertext) -> float:
        """Decrypt then decode one ciphertext."""
        decryptor = self.decryptor
        return self.codec.decode(decryptor.decrypt(ciphertext))

    def load_ciphertext(self, payload: bytes, scale_exponent: int) -> Ciphertext:
        """Rebuild a ciphertext from its backend serialization."""
        self._ensure_open()
        backend = self._public_backend if self._public_backend is not None else self._secret_backend
        try:
            vector = ts.bfv_vector_from(backend, payload)
        except (ValueError, RuntimeError, TypeError) as e:
            raise MalformedStreamError(f"invalid ciphertext payload: {e}") from e
        return Ciphertext(vector, scale_exponent, self.params_hash)

    def get_metrics(self) -> Dict[str, Any]:
        """Get context metrics for monitoring."""
        return {
            "mode": self.mode.value,
            "operations_count": self._evaluator.operations_count,
            "scheme_params_hash": self.params_hash,
            "can_encrypt": self.can_encrypt,
            "can_decrypt": self.can_decrypt,
        }

    # ------------------------------------------------------------------
    # Lifetime
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Release backend handles. Further use raises CapabilityMissingError."""
        self._encryptor = None
        self._decryptor = None
        self._public_backend = None
        self._secret_backend = None
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> "EncryptionContext":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


def _load_backend(key_bytes: bytes, kind: str, params: SchemeParams, n_threads: int) -> Any:
    try:
        backend = ts.context_from(key_bytes, n_threads=n_threads)
    except (ValueError, RuntimeError, TypeError) as e:
        raise MalformedStreamError(f"invalid {kind} key material: {e}") from e
    _check_ring(backend, kind, params)
    return backend


def _check_ring(backend: Any, kind: str, params: SchemeParams) -> None:
    """
    Compare the ring the key bytes were generated under with `params`.

    Key files carry no header, so this is the only place a key from another
    parameter set can be caught before values silently wrap.
    """
    key_data = backend.seal_context().data.key_context_data()
    parms = key_data.parms()
    found = {
        "poly_modulus_degree": parms.poly_modulus_degree(),
        "plain_modulus": parms.plain_modulus().value(),
        "coeff_modulus_bits": key_data.total_coeff_modulus_bit_count(),
    }
    expected = {
        "poly_modulus_degree": params.poly_modulus_degree,
        "plain_modulus": params.plain_modulus,
        "coeff_modulus_bits": sum(params.coeff_mod_bit_sizes),
    }
    mismatched = [f"{name}={found[name]} (expected {expected[name]})" for name in expected if found[name] != expected[name]]
    if mismatched:
        raise IncompatibleContextError(
            f"{kind} key was generated under different scheme parameters: {', '.join(mismatched)}",
            expected_hash=params.get_hash(),
        )
