"""
Encrypted linear inference: vectors, model artifacts, encryption and scoring.
"""

from .encryptor import ModelEncryptor, encrypt_features, encrypt_vector
from .inference import EncryptedInferenceEngine, plaintext_score
from .model import (
    ENCRYPTED_MODEL_FORMAT,
    MODEL_FORMAT,
    EncryptedModel,
    LinearModel,
    ModelKind,
    encrypted_model_path,
)
from .serialization import iter_vectors, read_vector, write_vector
from .vectors import ElementKind, FeatureIndex, FeatureSchema, FeatureVector

__all__ = [
    # Vectors
    "FeatureVector",
    "FeatureSchema",
    "FeatureIndex",
    "ElementKind",
    # Vector stream codec
    "write_vector",
    "read_vector",
    "iter_vectors",
    # Models
    "LinearModel",
    "EncryptedModel",
    "ModelKind",
    "MODEL_FORMAT",
    "ENCRYPTED_MODEL_FORMAT",
    "encrypted_model_path",
    # Encryption and scoring
    "ModelEncryptor",
    "encrypt_vector",
    "encrypt_features",
    "EncryptedInferenceEngine",
    "plaintext_score",
]
