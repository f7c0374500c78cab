"""
Model and feature encryption.

Each weight (and each feature) is encoded and encrypted independently, in
order, so index `i` of the encrypted vector is feature `i` of the plaintext
vector. The bias is encrypted at the product scale so it can be added to the
accumulated dot product without a rescale.
"""

import time
from typing import Optional

from ..he.context import EncryptionContext
from ..logging import get_logger
from .model import EncryptedModel, LinearModel, ModelKind
from .vectors import ElementKind, FeatureSchema, FeatureVector

logger = get_logger(__name__)

PRODUCT_SCALE = 2


def encrypt_vector(vector: FeatureVector, ctx: EncryptionContext) -> FeatureVector:
    """Encrypt a float vector element-wise, keeping its dense/sparse shape."""
    if vector.kind is not ElementKind.FLOAT:
        raise TypeError("only float vectors can be encrypted")
    encryptor = ctx.encryptor
    codec = ctx.codec
    values = [encryptor.encrypt(codec.encode(v)) for v in vector.values]
    return FeatureVector(vector.length, values, indices=vector.indices, kind=ElementKind.CIPHERTEXT)


def encrypt_features(
    features: FeatureVector,
    ctx: EncryptionContext,
    schema: Optional[FeatureSchema] = None,
) -> FeatureVector:
    """Client-side encryption of one feature row."""
    if schema is not None:
        schema.check(features)
    return encrypt_vector(features, ctx)


class ModelEncryptor:
    """
    Turns a plaintext linear predictor into an EncryptedModel.

    Requires an encrypt-capable context (public key). Pure transform: the
    returned model holds no plaintext weights.
    """

    def __init__(self, ctx: EncryptionContext):
        self.ctx = ctx

    def encrypt(
        self,
        weights: FeatureVector,
        bias: float,
        kind: ModelKind = ModelKind.REGRESSION,
        metadata: Optional[dict] = None,
    ) -> EncryptedModel:
        ctx = self.ctx
        # Fail before any work if this context cannot encrypt
        encryptor = ctx.encryptor
        start = time.perf_counter()

        self._check_score_headroom(weights, bias)
        encrypted_weights = encrypt_vector(weights, ctx)
        encrypted_bias = encryptor.encrypt(ctx.codec.encode(bias, PRODUCT_SCALE))

        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(
            f"Encrypted model: {weights.length} features "
            f"({weights.count} stored, {'sparse' if weights.is_sparse else 'dense'}) in {elapsed_ms:.1f}ms"
        )
        return EncryptedModel(
            weights=encrypted_weights,
            bias=encrypted_bias,
            params_hash=ctx.params_hash,
            kind=kind,
            metadata=dict(metadata or {}),
        )

    def encrypt_model(self, model: LinearModel) -> EncryptedModel:
        return self.encrypt(model.weights, model.bias, kind=model.kind, metadata=model.metadata)

    def _check_score_headroom(self, weights: FeatureVector, bias: float) -> None:
        codec = self.ctx.codec
        worst_case = sum(abs(w) for w in weights.values) * codec.max_input + abs(bias)
        if worst_case >= codec.max_score_magnitude:
            logger.warning(
                f"Weight mass allows scores up to {worst_case:.3g} for full-range features, "
                f"beyond the representable {codec.max_score_magnitude:.3g}; extreme rows may wrap"
            )
