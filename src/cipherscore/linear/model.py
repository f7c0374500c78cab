"""
Linear model artifacts.

`LinearModel` is the plaintext predictor handed over by the training
pipeline: a weight vector and a bias. `EncryptedModel` is its encrypted twin,
produced once by the owner and shipped to the scoring host.

Both persist as JSON. The encrypted artifact embeds the weight vector in the
binary vector stream encoding (base64) and records the parameters fingerprint
it was encrypted under.
"""

import base64
import binascii
import io
import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Union

from ..errors import IncompatibleContextError, MalformedStreamError, ModelFormatError, StreamIOError, VectorShapeError
from ..he.context import Ciphertext, EncryptionContext
from ..he.serialization import ciphertext_from_bytes, ciphertext_to_bytes
from ..logging import get_logger
from ..utils.files import atomic_write
from .serialization import read_vector, write_vector
from .vectors import ElementKind, FeatureSchema, FeatureVector

logger = get_logger(__name__)

MODEL_FORMAT = "cipherscore-linear-v1"
ENCRYPTED_MODEL_FORMAT = "cipherscore-encrypted-linear-v1"
ENCRYPTED_SUFFIX = ".encrypted"


class ModelKind(Enum):
    """Linear predictor kinds. Classifiers expose the raw margin only."""

    REGRESSION = "regression"
    BINARY_CLASSIFICATION = "binary_classification"


def _parse_kind(value: Any, path: str) -> ModelKind:
    try:
        return ModelKind(value)
    except ValueError as e:
        raise ModelFormatError(f"unknown model kind {value!r}", path=path) from e


def _read_json(path: Union[str, Path]) -> Dict[str, Any]:
    path = Path(path)
    if not path.is_file():
        raise StreamIOError("model file not found", path=str(path))
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise StreamIOError(f"cannot read model file: {e}", path=str(path)) from e
    except json.JSONDecodeError as e:
        raise ModelFormatError(f"invalid JSON: {e}", path=str(path)) from e
    if not isinstance(data, dict):
        raise ModelFormatError("model document must be a JSON object", path=str(path))
    return data


def encrypted_model_path(model_path: Union[str, Path]) -> Path:
    """Where the encrypted twin of a model file is written."""
    return Path(str(model_path) + ENCRYPTED_SUFFIX)


@dataclass
class LinearModel:
    """Plaintext linear predictor: score = dot(weights, x) + bias."""

    weights: FeatureVector
    bias: float = 0.0
    kind: ModelKind = ModelKind.REGRESSION
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.weights.kind is not ElementKind.FLOAT:
            raise VectorShapeError("plaintext model weights must be floats")
        self.bias = float(self.bias)

    @property
    def num_features(self) -> int:
        return self.weights.length

    @property
    def schema(self) -> FeatureSchema:
        return FeatureSchema(self.num_features)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "format": MODEL_FORMAT,
            "kind": self.kind.value,
            "bias": self.bias,
            "weights": self.weights.to_dict(),
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], path: str = "<memory>") -> "LinearModel":
        if data.get("format") != MODEL_FORMAT:
            raise ModelFormatError(f"unsupported model format {data.get('format')!r}", path=path)
        if "calibrator" in data:
            raise ModelFormatError(
                "calibrated predictors are not supported under encryption; export the raw margin",
                path=path,
            )
        if "weights" not in data:
            raise ModelFormatError("missing weights", path=path)
        try:
            weights = FeatureVector.from_dict(data["weights"])
            bias = float(data.get("bias", 0.0))
        except (VectorShapeError, TypeError, ValueError, AttributeError) as e:
            raise ModelFormatError(f"invalid weights or bias: {e}", path=path) from e
        return cls(
            weights=weights,
            bias=bias,
            kind=_parse_kind(data.get("kind", ModelKind.REGRESSION.value), path),
            metadata=data.get("metadata", {}),
        )

    def save(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        atomic_write(path, json.dumps(self.to_dict(), indent=2))
        logger.info(f"Saved linear model ({self.num_features} features) to {path}")
        return path

    @classmethod
    def load(cls, path: Union[str, Path]) -> "LinearModel":
        return cls.from_dict(_read_json(path), path=str(path))


@dataclass
class EncryptedModel:
    """
    Encrypted weight vector, encrypted bias and the parameters fingerprint.

    Immutable once produced; the plaintext weights are not retained.
    """

    weights: FeatureVector
    bias: Ciphertext
    params_hash: str
    kind: ModelKind = ModelKind.REGRESSION
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: str = field(default_factory=lambda: datetime.utcnow().isoformat())

    @property
    def num_features(self) -> int:
        return self.weights.length

    @property
    def schema(self) -> FeatureSchema:
        return FeatureSchema(self.num_features)

    def to_dict(self) -> Dict[str, Any]:
        buffer = io.BytesIO()
        write_vector(buffer, self.weights)
        return {
            "format": ENCRYPTED_MODEL_FORMAT,
            "kind": self.kind.value,
            "params_hash": self.params_hash,
            "num_features": self.num_features,
            "created_at": self.created_at,
            "weights": base64.b64encode(buffer.getvalue()).decode("ascii"),
            "bias": base64.b64encode(ciphertext_to_bytes(self.bias)).decode("ascii"),
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], ctx: EncryptionContext, path: str = "<memory>") -> "EncryptedModel":
        if data.get("format") != ENCRYPTED_MODEL_FORMAT:
            raise ModelFormatError(f"unsupported encrypted model format {data.get('format')!r}", path=path)
        params_hash = data.get("params_hash")
        if params_hash != ctx.params_hash:
            raise IncompatibleContextError(
                "encrypted model was produced under different scheme parameters",
                expected_hash=ctx.params_hash,
                actual_hash=params_hash,
            )
        try:
            weight_bytes = base64.b64decode(data["weights"], validate=True)
            bias_bytes = base64.b64decode(data["bias"], validate=True)
        except (KeyError, TypeError, binascii.Error) as e:
            raise ModelFormatError(f"invalid encrypted weights or bias: {e}", path=path) from e

        buffer = io.BytesIO(weight_bytes)
        weights = read_vector(buffer, ctx)
        if buffer.tell() != len(weight_bytes):
            raise MalformedStreamError("trailing bytes after encrypted weight vector", offset=buffer.tell())
        if data.get("num_features", weights.length) != weights.length:
            raise ModelFormatError("num_features does not match the encrypted weight vector", path=path)

        return cls(
            weights=weights,
            bias=ciphertext_from_bytes(bias_bytes, ctx),
            params_hash=params_hash,
            kind=_parse_kind(data.get("kind", ModelKind.REGRESSION.value), path),
            metadata=data.get("metadata", {}),
            created_at=data.get("created_at", ""),
        )

    def save(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        atomic_write(path, json.dumps(self.to_dict(), indent=2))
        logger.info(f"Saved encrypted model ({self.num_features} features) to {path}")
        return path

    @classmethod
    def load(cls, path: Union[str, Path], ctx: EncryptionContext) -> "EncryptedModel":
        return cls.from_dict(_read_json(path), ctx, path=str(path))
