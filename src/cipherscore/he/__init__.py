"""
CipherScore homomorphic encryption layer.

BFV through TenSEAL, one scalar per ciphertext. Encryptor, Decryptor and
Evaluator are reached only through an EncryptionContext, which wires them
according to the keys it was given.
"""

from .codec import FixedPointCodec, Plaintext
from .context import Ciphertext, ContextMode, EncryptionContext
from .keys import HEKeyManager, Key, KeyPair, PublicKey, SecretKey
from .params import SUPPORTED_POLY_DEGREES, SchemeParams
from .serialization import (
    ciphertext_from_bytes,
    ciphertext_to_bytes,
    iter_ciphertexts,
    read_ciphertext,
    write_ciphertext,
)

__all__ = [
    # Parameters and codec
    "SchemeParams",
    "SUPPORTED_POLY_DEGREES",
    "FixedPointCodec",
    "Plaintext",
    # Keys
    "HEKeyManager",
    "KeyPair",
    "Key",
    "PublicKey",
    "SecretKey",
    # Context
    "EncryptionContext",
    "ContextMode",
    "Ciphertext",
    # Wire form
    "ciphertext_to_bytes",
    "ciphertext_from_bytes",
    "write_ciphertext",
    "read_ciphertext",
    "iter_ciphertexts",
]
