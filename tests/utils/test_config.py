"""
Tests for CipherScore settings.
"""

import pytest

from cipherscore.errors import ConfigValidationError
from cipherscore.he.params import SchemeParams
from cipherscore.utils.config import CipherScoreSettings


class TestCipherScoreSettings:
    """Environment-driven configuration."""

    def test_defaults_build_default_params(self):
        assert CipherScoreSettings().scheme_params() == SchemeParams.default()

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("CS_CODEC_FRACTION_DIGITS", "12")
        monkeypatch.setenv("CS_ENVIRONMENT", "production")
        config = CipherScoreSettings()
        assert config.scheme_params().fraction_digits == 12
        assert config.is_production()

    def test_invalid_scheme_rejected(self, monkeypatch):
        monkeypatch.setenv("CS_POLY_MODULUS_DEGREE", "1000")
        with pytest.raises(ConfigValidationError) as exc_info:
            CipherScoreSettings().scheme_params()
        assert exc_info.value.code == "CS_CONFIG_VALIDATION_FAILED"

    def test_log_level_normalized(self, monkeypatch):
        monkeypatch.setenv("CS_LOG_LEVEL", "debug")
        assert CipherScoreSettings().LOG_LEVEL == "DEBUG"

    def test_key_file_names(self):
        config = CipherScoreSettings()
        assert config.PUBLIC_KEY_FILE == "PublicKey"
        assert config.SECRET_KEY_FILE == "PrivateKey"
