"""
CipherScore Unified Error Taxonomy.

This module provides a centralized error hierarchy for all CipherScore components.
All errors include:
- Machine-readable error codes
- Structured details (never sensitive data)
- Request ID correlation for tracing

Error Code Naming Convention:
- CS_<COMPONENT>_<SPECIFIC>
- Components: HE, FORMAT, IO, DRIVER, CONFIG

Security:
- NEVER include keys, plaintext features or plaintext scores in error messages
- Errors should be safe to log on an untrusted scoring host
"""

from typing import Any, Dict, Optional


class CipherScoreError(Exception):
    """Base exception for all CipherScore errors.

    All CipherScore errors include:
    - code: Machine-readable error code (e.g., CS_HE_OUT_OF_RANGE)
    - message: Human-readable description
    - details: Structured metadata (NEVER include sensitive data)
    - request_id: Optional correlation ID (the driver's run id)
    """

    def __init__(
        self,
        message: str,
        code: str = "CS_INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
        request_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}
        self.request_id = request_id

    def __str__(self) -> str:
        parts = [f"[{self.code}] {self.message}"]
        if self.request_id:
            parts.append(f"(request_id: {self.request_id})")
        return " ".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for JSON serialization."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "request_id": self.request_id,
        }


# =============================================================================
# Homomorphic Encryption Errors (CS_HE_*)
# =============================================================================


class HEError(CipherScoreError):
    """Base class for homomorphic encryption errors."""

    pass


class CapabilityMissingError(HEError):
    """Raised when an operation needs a key the current context does not hold."""

    def __init__(
        self,
        capability: str,
        mode: Optional[str] = None,
        request_id: Optional[str] = None,
    ):
        details = {"capability": capability}
        if mode:
            details["context_mode"] = mode
        super().__init__(
            message=f"Encryption context cannot {capability}: required key not loaded",
            code="CS_HE_CAPABILITY_MISSING",
            details=details,
            request_id=request_id,
        )


class OutOfRangeError(HEError):
    """Raised when a value does not fit the fixed-point encoding budget."""

    def __init__(
        self,
        reason: str,
        limit: Optional[float] = None,
        request_id: Optional[str] = None,
    ):
        # The offending value itself is deliberately left out of details.
        super().__init__(
            message=f"Value outside representable range: {reason}",
            code="CS_HE_OUT_OF_RANGE",
            details={"limit": limit} if limit is not None else {},
            request_id=request_id,
        )


class IncompatibleContextError(HEError):
    """Raised when ciphertexts or vectors from different parameter sets meet."""

    def __init__(
        self,
        reason: str,
        expected_hash: Optional[str] = None,
        actual_hash: Optional[str] = None,
        request_id: Optional[str] = None,
    ):
        details = {}
        if expected_hash:
            details["expected_hash"] = expected_hash[:16] + "..."  # Truncate for safety
        if actual_hash:
            details["actual_hash"] = actual_hash[:16] + "..."
        super().__init__(
            message=f"Incompatible encryption context: {reason}",
            code="CS_HE_INCOMPATIBLE_CONTEXT",
            details=details,
            request_id=request_id,
        )


class HEKeygenError(HEError):
    """Raised when HE key generation fails."""

    def __init__(
        self,
        reason: str,
        params_hash: Optional[str] = None,
        request_id: Optional[str] = None,
    ):
        super().__init__(
            message=f"HE key generation failed: {reason}",
            code="CS_HE_KEYGEN_FAILED",
            details={"params_hash": params_hash} if params_hash else {},
            request_id=request_id,
        )


# =============================================================================
# Format Errors (CS_FORMAT_*)
# =============================================================================


class FormatError(CipherScoreError):
    """Base class for on-disk format errors."""

    pass


class MalformedStreamError(FormatError):
    """Raised when a binary key, ciphertext or vector stream cannot be parsed."""

    def __init__(
        self,
        reason: str,
        offset: Optional[int] = None,
        request_id: Optional[str] = None,
    ):
        super().__init__(
            message=f"Malformed stream: {reason}",
            code="CS_FORMAT_MALFORMED_STREAM",
            details={"offset": offset} if offset is not None else {},
            request_id=request_id,
        )


class ModelFormatError(FormatError):
    """Raised when a model artifact is invalid or unsupported."""

    def __init__(
        self,
        reason: str,
        path: Optional[str] = None,
        request_id: Optional[str] = None,
    ):
        super().__init__(
            message=f"Invalid model artifact: {reason}",
            code="CS_FORMAT_MODEL_INVALID",
            details={"path": path} if path else {},
            request_id=request_id,
        )


class DataFormatError(FormatError):
    """Raised when a row of the input data file cannot be parsed."""

    def __init__(
        self,
        reason: str,
        line_number: Optional[int] = None,
        request_id: Optional[str] = None,
    ):
        msg = f"Invalid data row: {reason}"
        if line_number is not None:
            msg = f"Invalid data row at line {line_number}: {reason}"
        super().__init__(
            message=msg,
            code="CS_FORMAT_DATA_INVALID",
            details={"line_number": line_number} if line_number is not None else {},
            request_id=request_id,
        )


# =============================================================================
# Vector Errors (CS_VECTOR_*)
# =============================================================================


class VectorShapeError(CipherScoreError, ValueError):
    """Raised when a feature vector violates its dense/sparse shape invariants."""

    def __init__(
        self,
        reason: str,
        request_id: Optional[str] = None,
    ):
        super().__init__(
            message=f"Invalid vector shape: {reason}",
            code="CS_VECTOR_SHAPE_INVALID",
            details={},
            request_id=request_id,
        )


# =============================================================================
# I/O Errors (CS_IO_*)
# =============================================================================


class StreamIOError(CipherScoreError):
    """Raised when the underlying file or stream cannot be accessed."""

    def __init__(
        self,
        reason: str,
        path: Optional[str] = None,
        request_id: Optional[str] = None,
    ):
        super().__init__(
            message=f"I/O failure: {reason}",
            code="CS_IO_FAILURE",
            details={"path": path} if path else {},
            request_id=request_id,
        )


# =============================================================================
# Scoring Driver Errors (CS_DRIVER_*)
# =============================================================================


class DriverError(CipherScoreError):
    """Base class for scoring driver errors."""

    pass


class DriverStateError(DriverError):
    """Raised on an illegal driver state transition."""

    def __init__(
        self,
        current: str,
        requested: str,
        request_id: Optional[str] = None,
    ):
        super().__init__(
            message=f"Illegal driver transition {current} -> {requested}",
            code="CS_DRIVER_STATE_INVALID",
            details={"current": current, "requested": requested},
            request_id=request_id,
        )


class OperationCancelledError(DriverError):
    """Raised when a run is cancelled between rows."""

    def __init__(
        self,
        rows_completed: int,
        request_id: Optional[str] = None,
    ):
        super().__init__(
            message=f"Operation cancelled after {rows_completed} rows",
            code="CS_DRIVER_CANCELLED",
            details={"rows_completed": rows_completed},
            request_id=request_id,
        )


class VerificationMismatchError(DriverError):
    """Raised when decrypted encrypted scores disagree with plaintext scores."""

    def __init__(
        self,
        mismatches: int,
        rows: int,
        max_abs_error: float,
        request_id: Optional[str] = None,
    ):
        super().__init__(
            message=f"{mismatches} of {rows} rows outside tolerance (max abs error {max_abs_error:.3g})",
            code="CS_DRIVER_VERIFICATION_FAILED",
            details={"mismatches": mismatches, "rows": rows},
            request_id=request_id,
        )


# =============================================================================
# Configuration Errors (CS_CONFIG_*)
# =============================================================================


class ConfigError(CipherScoreError):
    """Base class for configuration errors."""

    pass


class ConfigValidationError(ConfigError):
    """Raised when configuration validation fails."""

    def __init__(
        self,
        config_key: str,
        reason: str,
        request_id: Optional[str] = None,
    ):
        super().__init__(
            message=f"Invalid configuration for {config_key}: {reason}",
            code="CS_CONFIG_VALIDATION_FAILED",
            details={"config_key": config_key},
            request_id=request_id,
        )


# =============================================================================
# Error Code Registry (for documentation and validation)
# =============================================================================

ERROR_CODES = {
    # HE errors
    "CS_HE_CAPABILITY_MISSING": "Encryption context lacks the required key",
    "CS_HE_OUT_OF_RANGE": "Value outside fixed-point encoding range",
    "CS_HE_INCOMPATIBLE_CONTEXT": "Scheme parameter fingerprint mismatch",
    "CS_HE_KEYGEN_FAILED": "HE key generation failed",
    # Format errors
    "CS_FORMAT_MALFORMED_STREAM": "Truncated or invalid binary stream",
    "CS_FORMAT_MODEL_INVALID": "Invalid model artifact",
    "CS_FORMAT_DATA_INVALID": "Invalid input data row",
    # Vector errors
    "CS_VECTOR_SHAPE_INVALID": "Feature vector shape invariant violated",
    # I/O errors
    "CS_IO_FAILURE": "File or stream access failed",
    # Driver errors
    "CS_DRIVER_STATE_INVALID": "Illegal driver state transition",
    "CS_DRIVER_CANCELLED": "Operation cancelled",
    "CS_DRIVER_VERIFICATION_FAILED": "Encrypted and plaintext scores disagree",
    # Config errors
    "CS_CONFIG_VALIDATION_FAILED": "Configuration validation failed",
    # Internal
    "CS_INTERNAL_ERROR": "Internal error",
}


def validate_error_code(code: str) -> bool:
    """Validate that an error code is registered."""
    return code in ERROR_CODES


__all__ = [
    # Base
    "CipherScoreError",
    # HE
    "HEError",
    "CapabilityMissingError",
    "OutOfRangeError",
    "IncompatibleContextError",
    "HEKeygenError",
    # Format
    "FormatError",
    "MalformedStreamError",
    "ModelFormatError",
    "DataFormatError",
    # Vector
    "VectorShapeError",
    # I/O
    "StreamIOError",
    # Driver
    "DriverError",
    "DriverStateError",
    "OperationCancelledError",
    "VerificationMismatchError",
    # Config
    "ConfigError",
    "ConfigValidationError",
    # Registry
    "ERROR_CODES",
    "validate_error_code",
]
