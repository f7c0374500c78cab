"""
Tests for the CipherScore error taxonomy.
"""

import pytest

from cipherscore.errors import (
    ERROR_CODES,
    CapabilityMissingError,
    CipherScoreError,
    DataFormatError,
    DriverStateError,
    FormatError,
    HEError,
    IncompatibleContextError,
    MalformedStreamError,
    OperationCancelledError,
    OutOfRangeError,
    StreamIOError,
    VectorShapeError,
    VerificationMismatchError,
    validate_error_code,
)


class TestErrorTaxonomy:
    """Codes, hierarchy and serialization."""

    @pytest.mark.parametrize(
        "error, code, base",
        [
            (CapabilityMissingError("decrypt (secret key)"), "CS_HE_CAPABILITY_MISSING", HEError),
            (OutOfRangeError("too big", limit=256.0), "CS_HE_OUT_OF_RANGE", HEError),
            (IncompatibleContextError("mismatch"), "CS_HE_INCOMPATIBLE_CONTEXT", HEError),
            (MalformedStreamError("truncated", offset=12), "CS_FORMAT_MALFORMED_STREAM", FormatError),
            (DataFormatError("bad token", line_number=3), "CS_FORMAT_DATA_INVALID", FormatError),
            (StreamIOError("missing", path="/tmp/x"), "CS_IO_FAILURE", CipherScoreError),
            (DriverStateError("idle", "done"), "CS_DRIVER_STATE_INVALID", CipherScoreError),
            (OperationCancelledError(4), "CS_DRIVER_CANCELLED", CipherScoreError),
            (VerificationMismatchError(1, 3, 0.5), "CS_DRIVER_VERIFICATION_FAILED", CipherScoreError),
        ],
    )
    def test_codes_registered(self, error, code, base):
        assert error.code == code
        assert isinstance(error, base)
        assert validate_error_code(code)

    def test_every_registered_code_is_documented(self):
        assert all(description for description in ERROR_CODES.values())
        assert not validate_error_code("CS_NOT_A_CODE")

    def test_str_includes_code_and_request_id(self):
        error = StreamIOError("missing", request_id="run-1")
        assert str(error).startswith("[CS_IO_FAILURE]")
        assert "run-1" in str(error)

    def test_to_dict(self):
        error = MalformedStreamError("truncated ciphertext header", offset=7)
        data = error.to_dict()
        assert data["code"] == "CS_FORMAT_MALFORMED_STREAM"
        assert data["details"]["offset"] == 7
        assert data["request_id"] is None

    def test_vector_shape_error_is_value_error(self):
        assert isinstance(VectorShapeError("bad"), ValueError)
