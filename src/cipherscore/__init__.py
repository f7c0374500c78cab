"""
CipherScore: encrypted linear inference.

A model owner ships a trained linear predictor to an untrusted host, which
scores client-encrypted feature rows under BFV homomorphic encryption without
seeing plaintext features or plaintext scores. Only the holder of the secret
key can decrypt the resulting scores.

- he: scheme parameters, fixed-point codec, keys, encryption context
- linear: feature vectors, model artifacts, model encryption, inference engine
- scoring: the mode-by-mode driver
"""

__version__ = "1.0.0"

from .he import EncryptionContext, HEKeyManager, SchemeParams
from .linear import EncryptedInferenceEngine, EncryptedModel, FeatureVector, LinearModel, ModelEncryptor

__all__ = [
    "__version__",
    "SchemeParams",
    "HEKeyManager",
    "EncryptionContext",
    "FeatureVector",
    "LinearModel",
    "EncryptedModel",
    "ModelEncryptor",
    "EncryptedInferenceEngine",
]
