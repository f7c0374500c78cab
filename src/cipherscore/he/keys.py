"""
HE Key Management Module.

Generates, persists and loads the BFV key material for encrypted scoring.

Key Types:
    - PublicKey: encrypts; also carries the relinearization (evaluation)
      keys the scoring host needs to multiply ciphertexts. Safe to distribute.
    - SecretKey: decrypts. Held by the model owner or a trusted client only.

Key Flow:
    1. Owner generates the pair once via HEKeyManager.generate()
    2. PublicKey shipped to the host (scoring) and to clients (encryption)
    3. SecretKey kept by the owner to decrypt scores

Key files are the raw backend serialization written in a single call: no
header, no magic number and no integrity check. A swapped or corrupted public
key is not detected here; it produces wrong scores downstream. There is no
rotation path: regenerating keys invalidates every encrypted model and data
file produced under the old pair.
"""

import hashlib
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import BinaryIO, Tuple, Union

import tenseal as ts

from ..errors import HEKeygenError, MalformedStreamError, StreamIOError
from ..logging import get_logger
from ..utils.files import atomic_write
from .params import SchemeParams

logger = get_logger(__name__)


@dataclass
class PublicKey:
    """
    HE public key for encryption and evaluation.

    Safe to distribute to any party that needs to encrypt or score.
    """

    key_bytes: bytes
    params_hash: str
    created_at: datetime = field(default_factory=datetime.utcnow)

    key_type = "public"

    def get_fingerprint(self) -> str:
        """Get key fingerprint for identification."""
        return f"sha256:{hashlib.sha256(self.key_bytes).hexdigest()[:16]}"


@dataclass
class SecretKey:
    """
    HE secret key for decryption.

    MUST be kept by the owner or a trusted client. Never distribute to a host.
    """

    key_bytes: bytes
    params_hash: str
    created_at: datetime = field(default_factory=datetime.utcnow)

    key_type = "secret"

    def get_fingerprint(self) -> str:
        """Get key fingerprint for identification."""
        return f"sha256:{hashlib.sha256(self.key_bytes).hexdigest()[:16]}"

    def __repr__(self) -> str:
        return f"SecretKey(fingerprint={self.get_fingerprint()!r}, params_hash={self.params_hash!r})"


@dataclass
class KeyPair:
    """Public/secret pair produced by a single generation."""

    public_key: PublicKey
    secret_key: SecretKey


Key = Union[PublicKey, SecretKey]


class HEKeyManager:
    """
    Manages HE key generation and persistence for one parameter set.

    Usage:
        manager = HEKeyManager(params)
        pair = manager.generate()
        manager.save_key_pair(pair, "./keys")
        public_key = manager.load_public_key("./keys/PublicKey")
    """

    def __init__(self, params: SchemeParams, n_threads: int = 1):
        self.params = params
        self.n_threads = n_threads
        self._params_hash = params.get_hash()

    def generate(self) -> KeyPair:
        """
        Generate a fresh key pair.

        Returns:
            KeyPair with public (plus relinearization keys) and secret material

        Raises:
            HEKeygenError: If the backend rejects the parameters
        """
        try:
            ctx = ts.context(
                ts.SCHEME_TYPE.BFV,
                poly_modulus_degree=self.params.poly_modulus_degree,
                plain_modulus=self.params.plain_modulus,
                coeff_mod_bit_sizes=list(self.params.coeff_mod_bit_sizes),
                n_threads=self.n_threads,
            )
            ctx.generate_relin_keys()

            public_bytes = ctx.serialize(
                save_public_key=True,
                save_secret_key=False,
                save_galois_keys=False,
                save_relin_keys=True,
            )
            secret_bytes = ctx.serialize(
                save_public_key=False,
                save_secret_key=True,
                save_galois_keys=False,
                save_relin_keys=False,
            )
        except (ValueError, RuntimeError) as e:
            raise HEKeygenError(str(e), params_hash=self._params_hash) from e

        now = datetime.utcnow()
        pair = KeyPair(
            public_key=PublicKey(key_bytes=public_bytes, params_hash=self._params_hash, created_at=now),
            secret_key=SecretKey(key_bytes=secret_bytes, params_hash=self._params_hash, created_at=now),
        )
        logger.info(
            f"Generated HE key pair: pk={pair.public_key.get_fingerprint()} "
            f"({len(public_bytes)}B), sk={len(secret_bytes)}B"
        )
        return pair

    def save(self, key: Key, stream: BinaryIO) -> None:
        """Write raw key bytes to a binary stream."""
        try:
            stream.write(key.key_bytes)
        except OSError as e:
            raise StreamIOError(f"cannot write {key.key_type} key: {e}") from e

    def load(self, stream: BinaryIO, kind: str) -> Key:
        """
        Read a key from a binary stream.

        Args:
            stream: Stream positioned at the start of the key
            kind: "public" or "secret"
        """
        if kind not in ("public", "secret"):
            raise ValueError(f"Unknown key kind: {kind}")
        try:
            data = stream.read()
        except OSError as e:
            raise StreamIOError(f"cannot read {kind} key: {e}") from e
        if not data:
            raise MalformedStreamError(f"empty {kind} key stream", offset=0)

        if kind == "public":
            return PublicKey(key_bytes=data, params_hash=self._params_hash)
        return SecretKey(key_bytes=data, params_hash=self._params_hash)

    def save_key_pair(
        self,
        pair: KeyPair,
        directory: Union[str, Path] = ".",
        public_name: str = "PublicKey",
        secret_name: str = "PrivateKey",
    ) -> Tuple[Path, Path]:
        """Write the two independent key files; the secret file is owner-only."""
        directory = Path(directory)
        public_path = directory / public_name
        secret_path = directory / secret_name
        try:
            atomic_write(public_path, pair.public_key.key_bytes)
            atomic_write(secret_path, pair.secret_key.key_bytes, mode=0o600)
        except OSError as e:
            raise StreamIOError(f"cannot write key files: {e}", path=str(directory)) from e

        logger.info(f"Saved key pair to {public_path} and {secret_path}")
        return public_path, secret_path

    def load_public_key(self, path: Union[str, Path]) -> PublicKey:
        """Load a public key file."""
        return self._load_file(path, "public")

    def load_secret_key(self, path: Union[str, Path]) -> SecretKey:
        """Load a secret key file."""
        return self._load_file(path, "secret")

    def _load_file(self, path: Union[str, Path], kind: str) -> Key:
        path = Path(path)
        if not path.is_file():
            raise StreamIOError(f"{kind} key file not found", path=str(path))
        if kind == "secret" and os.name == "posix" and path.stat().st_mode & 0o077:
            logger.warning(f"Secret key file {path} is readable by group/others")
        try:
            with open(path, "rb") as f:
                return self.load(f, kind)
        except OSError as e:
            raise StreamIOError(f"cannot open {kind} key file: {e}", path=str(path)) from e
