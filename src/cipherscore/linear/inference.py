"""
Encrypted Inference Engine.

Homomorphic dot product of an encrypted feature vector with encrypted or
plaintext weights, plus the bias:

    score = sum_i  f_i * w_i  + b      over indices i stored in f

Absent sparse indices contribute nothing. Products land at scale exponent 2,
so a plain bias is encoded at that scale and an encrypted bias (already at
exponent 2 when produced by ModelEncryptor) is added directly.

One multiply followed by additions is the whole circuit; the default scheme
parameters leave ample noise budget for it. The engine holds no per-row
state, but it shares the context's evaluator, so run one engine per worker.
"""

import time
from typing import Any, Dict, Iterable, Optional, Union

import numpy as np

from ..errors import IncompatibleContextError, VectorShapeError
from ..he.context import Ciphertext, EncryptionContext
from ..logging import get_logger
from .encryptor import PRODUCT_SCALE
from .model import EncryptedModel, LinearModel
from .vectors import ElementKind, FeatureVector

logger = get_logger(__name__)

Bias = Union[Ciphertext, float]
AnyModel = Union[EncryptedModel, LinearModel]


class EncryptedInferenceEngine:
    """
    Scores encrypted feature vectors without any secret material.

    Usage:
        engine = EncryptedInferenceEngine(host_ctx)
        score_ct = engine.score_model(encrypted_features, encrypted_model)
    """

    def __init__(self, ctx: EncryptionContext):
        self.ctx = ctx
        self._rows_scored = 0
        self._total_ms = 0.0

    def _check_fingerprints(self, items: Iterable[Any]) -> None:
        expected = self.ctx.params_hash
        for value in items:
            if isinstance(value, Ciphertext) and value.params_hash != expected:
                raise IncompatibleContextError(
                    "operands were produced under different scheme parameters",
                    expected_hash=expected,
                    actual_hash=value.params_hash,
                )

    def score(self, features: FeatureVector, weights: FeatureVector, bias: Bias) -> Ciphertext:
        """
        Evaluate one row.

        Args:
            features: Encrypted feature vector (dense or sparse)
            weights: Encrypted or float weight vector (dense or sparse)
            bias: Encrypted bias or float

        Returns:
            Ciphertext of the unrounded linear score at the product scale

        Raises:
            IncompatibleContextError: Fingerprint mismatch, or features wider than the weights
        """
        if features.count and features.kind is not ElementKind.CIPHERTEXT:
            raise VectorShapeError("features must be encrypted")
        if features.length > weights.length:
            raise IncompatibleContextError(
                f"feature vector length {features.length} exceeds model weight count {weights.length}"
            )
        self._check_fingerprints(features.values)
        if weights.kind is ElementKind.CIPHERTEXT:
            self._check_fingerprints(weights.values)
        self._check_fingerprints([bias])

        evaluator = self.ctx.evaluator
        codec = self.ctx.codec
        encrypted_weights = weights.kind is ElementKind.CIPHERTEXT
        start = time.perf_counter()

        acc: Optional[Ciphertext] = None
        for index, feature_ct in features.items():
            weight = weights.get(index)
            if weight is None:
                continue
            if encrypted_weights:
                term = evaluator.multiply(feature_ct, weight)
            else:
                plain_weight = codec.encode(weight)
                if plain_weight.value == 0:
                    continue
                term = evaluator.multiply_plain(feature_ct, plain_weight)
            acc = term if acc is None else evaluator.add(acc, term)

        if isinstance(bias, Ciphertext):
            if acc is None:
                result = evaluator.rescale(bias, max(bias.scale_exponent, PRODUCT_SCALE))
            else:
                result = evaluator.add(acc, bias)
        else:
            plain_bias = codec.encode(bias, PRODUCT_SCALE)
            if acc is None:
                result = self.ctx.encryptor.encrypt(plain_bias)
            else:
                result = evaluator.add_plain(acc, plain_bias)

        elapsed_ms = (time.perf_counter() - start) * 1000
        self._rows_scored += 1
        self._total_ms += elapsed_ms
        logger.debug(f"Scored {features.count} stored features in {elapsed_ms:.2f}ms")
        return result

    def score_model(self, features: FeatureVector, model: AnyModel) -> Ciphertext:
        """Score against an encrypted model, or a plaintext one (host-blind weights)."""
        return self.score(features, model.weights, model.bias)

    def get_metrics(self) -> Dict[str, Any]:
        """Get engine metrics for monitoring."""
        metrics = self.ctx.get_metrics()
        metrics.update(
            {
                "rows_scored": self._rows_scored,
                "avg_score_ms": self._total_ms / self._rows_scored if self._rows_scored else 0.0,
            }
        )
        return metrics


def plaintext_score(features: FeatureVector, model: LinearModel) -> float:
    """Reference score in the clear, used to verify the encrypted path."""
    if features.length > model.num_features:
        raise IncompatibleContextError(
            f"feature vector length {features.length} exceeds model weight count {model.num_features}"
        )
    x = features.to_numpy()
    w = model.weights.to_numpy()[: features.length]
    return float(np.dot(w, x) + model.bias)
