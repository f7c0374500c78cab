"""
Ciphertext wire form.

Each ciphertext is written self-describing so streams of them need no record
delimiter:

    scale_exponent : uint8
    payload_length : uint32 (little-endian)
    payload        : backend serialization, treated as opaque bytes

Truncated input raises MalformedStreamError; underlying read/write failures
raise StreamIOError. Nothing here retries.
"""

import struct
from typing import BinaryIO, Iterator, Optional

from ..errors import MalformedStreamError, StreamIOError
from .context import Ciphertext, EncryptionContext

_HEADER = struct.Struct("<BI")

MAX_PAYLOAD_BYTES = 1 << 30

# Inputs are encoded at exponent 1, products and biases at exponent 2
SCALE_EXPONENTS = (1, 2)


def stream_offset(stream: BinaryIO) -> Optional[int]:
    """Current position, when the stream can report one."""
    try:
        return stream.tell()
    except (OSError, AttributeError):
        return None


def read_exact(stream: BinaryIO, size: int, what: str) -> bytes:
    """Read exactly `size` bytes or fail with MalformedStreamError."""
    offset = stream_offset(stream)
    try:
        data = stream.read(size)
    except OSError as e:
        raise StreamIOError(f"cannot read {what}: {e}") from e
    if data is None or len(data) != size:
        got = 0 if not data else len(data)
        raise MalformedStreamError(f"truncated {what}: expected {size} bytes, got {got}", offset=offset)
    return data


def write_bytes(stream: BinaryIO, data: bytes) -> None:
    try:
        stream.write(data)
    except OSError as e:
        raise StreamIOError(f"cannot write stream: {e}") from e


def ciphertext_to_bytes(ciphertext: Ciphertext) -> bytes:
    """Wire form of a single ciphertext."""
    payload = ciphertext.to_bytes()
    return _HEADER.pack(ciphertext.scale_exponent, len(payload)) + payload


def write_ciphertext(stream: BinaryIO, ciphertext: Ciphertext) -> None:
    write_bytes(stream, ciphertext_to_bytes(ciphertext))


def read_ciphertext(stream: BinaryIO, ctx: EncryptionContext) -> Ciphertext:
    header = read_exact(stream, _HEADER.size, "ciphertext header")
    return _read_body(stream, ctx, header)


def ciphertext_from_bytes(data: bytes, ctx: EncryptionContext) -> Ciphertext:
    """Parse the wire form of exactly one ciphertext."""
    if len(data) < _HEADER.size:
        raise MalformedStreamError("truncated ciphertext header", offset=0)
    scale_exponent, size = _HEADER.unpack_from(data)
    _check_exponent(scale_exponent, 0)
    payload = data[_HEADER.size:]
    if len(payload) != size:
        raise MalformedStreamError(
            f"ciphertext payload length {len(payload)} does not match header {size}",
            offset=_HEADER.size,
        )
    return ctx.load_ciphertext(payload, scale_exponent)


def iter_ciphertexts(stream: BinaryIO, ctx: EncryptionContext) -> Iterator[Ciphertext]:
    """
    Read a result stream: ciphertexts back to back until end of stream.

    End of stream is only legal on a record boundary.
    """
    while True:
        try:
            first = stream.read(1)
        except OSError as e:
            raise StreamIOError(f"cannot read result stream: {e}") from e
        if not first:
            return
        rest = read_exact(stream, _HEADER.size - 1, "ciphertext header")
        yield _read_body(stream, ctx, first + rest)


def _read_body(stream: BinaryIO, ctx: EncryptionContext, header: bytes) -> Ciphertext:
    scale_exponent, size = _HEADER.unpack(header)
    _check_exponent(scale_exponent, stream_offset(stream))
    if size == 0 or size > MAX_PAYLOAD_BYTES:
        raise MalformedStreamError(f"implausible ciphertext payload length {size}", offset=stream_offset(stream))
    payload = read_exact(stream, size, "ciphertext payload")
    return ctx.load_ciphertext(payload, scale_exponent)


def _check_exponent(scale_exponent: int, offset: Optional[int]) -> None:
    if scale_exponent not in SCALE_EXPONENTS:
        raise MalformedStreamError(f"invalid scale exponent {scale_exponent}", offset=offset)
