"""
Tests for plaintext and encrypted model artifacts and the model encryptor.
"""

import json

import pytest

from cipherscore.errors import (
    CapabilityMissingError,
    IncompatibleContextError,
    ModelFormatError,
    StreamIOError,
)
from cipherscore.he.context import EncryptionContext
from cipherscore.he.params import SchemeParams
from cipherscore.linear.encryptor import ModelEncryptor
from cipherscore.linear.model import (
    EncryptedModel,
    LinearModel,
    ModelKind,
    encrypted_model_path,
)
from cipherscore.linear.vectors import ElementKind, FeatureVector

TOL = dict(rel=1e-3, abs=1e-3)


class TestLinearModel:
    """Plaintext model JSON format."""

    def test_save_load(self, tmp_path):
        model = LinearModel(
            weights=FeatureVector.dense([0.5, -0.25]),
            bias=0.1,
            kind=ModelKind.BINARY_CLASSIFICATION,
            metadata={"trainer": "sgd"},
        )
        path = model.save(tmp_path / "model.json")
        loaded = LinearModel.load(path)
        assert loaded.weights == model.weights
        assert loaded.bias == 0.1
        assert loaded.kind is ModelKind.BINARY_CLASSIFICATION
        assert loaded.metadata == {"trainer": "sgd"}
        assert loaded.num_features == 2

    def test_calibrated_model_rejected(self, tmp_path):
        doc = LinearModel(weights=FeatureVector.dense([1.0])).to_dict()
        doc["calibrator"] = {"type": "platt", "a": 1.0, "b": 0.0}
        path = tmp_path / "model.json"
        path.write_text(json.dumps(doc))
        with pytest.raises(ModelFormatError) as exc_info:
            LinearModel.load(path)
        assert "calibrated" in exc_info.value.message

    def test_wrong_format_tag(self, tmp_path):
        path = tmp_path / "model.json"
        path.write_text(json.dumps({"format": "something-else", "weights": {"values": [1.0]}}))
        with pytest.raises(ModelFormatError):
            LinearModel.load(path)

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "model.json"
        path.write_text("{not json")
        with pytest.raises(ModelFormatError):
            LinearModel.load(path)

    def test_bad_weights(self, tmp_path):
        path = tmp_path / "model.json"
        path.write_text(json.dumps({"format": "cipherscore-linear-v1", "weights": {"length": 1, "values": [1, 2]}}))
        with pytest.raises(ModelFormatError):
            LinearModel.load(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(StreamIOError):
            LinearModel.load(tmp_path / "absent.json")

    def test_encrypted_path(self):
        assert str(encrypted_model_path("dir/model.json")) == "dir/model.json.encrypted"


class TestModelEncryptor:
    """Weight-by-weight encryption."""

    def test_positional_correspondence(self, public_ctx, secret_ctx):
        weights = FeatureVector.dense([3.0, -1.0, 0.5])
        encrypted = ModelEncryptor(public_ctx).encrypt(weights, bias=0.25)
        assert encrypted.weights.kind is ElementKind.CIPHERTEXT
        decrypted = [secret_ctx.decrypt_value(ct) for ct in encrypted.weights.values]
        assert decrypted == pytest.approx([3.0, -1.0, 0.5], **TOL)

    def test_bias_at_product_scale(self, public_ctx, secret_ctx):
        encrypted = ModelEncryptor(public_ctx).encrypt(FeatureVector.dense([1.0]), bias=-2.5)
        assert encrypted.bias.scale_exponent == 2
        assert secret_ctx.decrypt_value(encrypted.bias) == pytest.approx(-2.5, **TOL)

    def test_sparse_weights_keep_shape(self, public_ctx):
        weights = FeatureVector.sparse(8, [2, 5], [1.0, 2.0])
        encrypted = ModelEncryptor(public_ctx).encrypt(weights, bias=0.0)
        assert encrypted.weights.is_sparse
        assert encrypted.weights.indices == [2, 5]
        assert encrypted.num_features == 8

    def test_requires_public_key(self, secret_ctx):
        with pytest.raises(CapabilityMissingError):
            ModelEncryptor(secret_ctx).encrypt(FeatureVector.dense([1.0]), bias=0.0)

    def test_records_fingerprint_and_kind(self, public_ctx):
        model = LinearModel(weights=FeatureVector.dense([1.0]), kind=ModelKind.BINARY_CLASSIFICATION)
        encrypted = ModelEncryptor(public_ctx).encrypt_model(model)
        assert encrypted.params_hash == public_ctx.params_hash
        assert encrypted.kind is ModelKind.BINARY_CLASSIFICATION


class TestEncryptedModelArtifact:
    """Encrypted model persistence."""

    @pytest.fixture
    def encrypted(self, public_ctx):
        model = LinearModel(weights=FeatureVector.sparse(5, [0, 4], [1.5, -0.5]), bias=0.75)
        return ModelEncryptor(public_ctx).encrypt_model(model)

    def test_save_load(self, tmp_path, encrypted, public_ctx, secret_ctx):
        path = encrypted.save(tmp_path / "model.json.encrypted")
        doc = json.loads(path.read_text())
        assert doc["format"] == "cipherscore-encrypted-linear-v1"
        assert doc["num_features"] == 5

        loaded = EncryptedModel.load(path, public_ctx)
        assert loaded.weights.indices == [0, 4]
        assert loaded.num_features == 5

        owner_view = EncryptedModel.load(path, secret_ctx)
        weights = [secret_ctx.decrypt_value(ct) for ct in owner_view.weights.values]
        assert weights == pytest.approx([1.5, -0.5], **TOL)
        assert secret_ctx.decrypt_value(owner_view.bias) == pytest.approx(0.75, **TOL)

    def test_fingerprint_mismatch(self, tmp_path, encrypted):
        path = encrypted.save(tmp_path / "model.json.encrypted")
        other_params = SchemeParams(fraction_digits=14)
        with EncryptionContext.generate(other_params) as other_ctx:
            with pytest.raises(IncompatibleContextError):
                EncryptedModel.load(path, other_ctx)

    def test_corrupt_base64(self, tmp_path, encrypted, public_ctx):
        doc = encrypted.to_dict()
        doc["weights"] = "!!!not base64!!!"
        path = tmp_path / "bad.encrypted"
        path.write_text(json.dumps(doc))
        with pytest.raises(ModelFormatError):
            EncryptedModel.load(path, public_ctx)
