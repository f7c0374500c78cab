"""
Encrypted vector stream codec.

Layout per vector (little-endian, repeated until end of stream):

    is_sparse  : 1 byte (0 or 1)
    sparse:  length int32, count int32, then count x (index int32, ciphertext)
    dense:   length int32, then length x ciphertext

Ciphertexts use the self-describing wire form from `cipherscore.he.serialization`.
"""

import struct
from typing import BinaryIO, Iterator

from ..errors import MalformedStreamError, StreamIOError, VectorShapeError
from ..he.context import EncryptionContext
from ..he.serialization import ciphertext_to_bytes, read_ciphertext, read_exact, stream_offset, write_bytes
from .vectors import ElementKind, FeatureVector

_FLAG = struct.Struct("<?")
_INT32 = struct.Struct("<i")


def write_vector(stream: BinaryIO, vector: FeatureVector) -> None:
    """Write one encrypted vector."""
    if vector.kind is not ElementKind.CIPHERTEXT and vector.count:
        raise VectorShapeError("only ciphertext vectors can be written to an encrypted stream")

    parts = [_FLAG.pack(vector.is_sparse), _INT32.pack(vector.length)]
    if vector.is_sparse:
        parts.append(_INT32.pack(vector.count))
        for index, ciphertext in vector.items():
            parts.append(_INT32.pack(index))
            parts.append(ciphertext_to_bytes(ciphertext))
    else:
        for ciphertext in vector.values:
            parts.append(ciphertext_to_bytes(ciphertext))
    write_bytes(stream, b"".join(parts))


def read_vector(stream: BinaryIO, ctx: EncryptionContext) -> FeatureVector:
    """Read one encrypted vector; end of stream here is an error."""
    flag = read_exact(stream, 1, "vector flag")
    return _read_vector_body(stream, ctx, flag)


def iter_vectors(stream: BinaryIO, ctx: EncryptionContext) -> Iterator[FeatureVector]:
    """Read vectors until a clean end of stream."""
    while True:
        try:
            flag = stream.read(1)
        except OSError as e:
            raise StreamIOError(f"cannot read vector stream: {e}") from e
        if not flag:
            return
        yield _read_vector_body(stream, ctx, flag)


def _read_int32(stream: BinaryIO, what: str) -> int:
    return _INT32.unpack(read_exact(stream, _INT32.size, what))[0]


def _read_vector_body(stream: BinaryIO, ctx: EncryptionContext, flag: bytes) -> FeatureVector:
    offset = stream_offset(stream)
    if flag not in (b"\x00", b"\x01"):
        raise MalformedStreamError(f"invalid sparse flag {flag!r}", offset=None if offset is None else offset - 1)
    is_sparse = flag == b"\x01"

    length = _read_int32(stream, "vector length")
    if length < 0:
        raise MalformedStreamError(f"negative vector length {length}", offset=offset)

    if not is_sparse:
        values = [read_ciphertext(stream, ctx) for _ in range(length)]
        return FeatureVector(length, values, kind=ElementKind.CIPHERTEXT)

    count = _read_int32(stream, "sparse count")
    if count < 0 or count > length:
        raise MalformedStreamError(f"sparse count {count} invalid for length {length}", offset=offset)
    indices = []
    values = []
    for _ in range(count):
        indices.append(_read_int32(stream, "sparse index"))
        values.append(read_ciphertext(stream, ctx))
    try:
        return FeatureVector(length, values, indices=indices, kind=ElementKind.CIPHERTEXT)
    except VectorShapeError as e:
        raise MalformedStreamError(f"invalid sparse vector: {e.message}", offset=offset) from e
