"""
CipherScore Configuration Module

Provides centralized configuration management with:
- Environment variable loading (CS_ prefix)
- Type validation via Pydantic
- Development overrides via .env file

Every party (owner, host, client) must run with the same scheme settings;
ciphertexts produced under different settings cannot be combined.
"""

from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..errors import ConfigValidationError
from ..he.params import SchemeParams


class CipherScoreSettings(BaseSettings):
    """
    CipherScore settings.

    Loads from environment variables with CS_ prefix.

    Usage:
        from cipherscore.utils.config import settings

        params = settings.scheme_params()
    """

    model_config = SettingsConfigDict(
        env_prefix="CS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ==========================================================================
    # GENERAL
    # ==========================================================================
    ENVIRONMENT: str = Field(default="development", description="Runtime environment: development, staging, production")
    LOG_LEVEL: str = Field(default="INFO", description="Logging level: DEBUG, INFO, WARNING, ERROR")
    N_THREADS: int = Field(default=1, description="Worker threads handed to the HE backend")

    # ==========================================================================
    # SCHEME PARAMETERS (BFV)
    # ==========================================================================
    POLY_MODULUS_DEGREE: int = Field(default=8192, description="Polynomial ring degree N")
    COEFF_MOD_BIT_SIZES: List[int] = Field(
        default_factory=lambda: [43, 43, 44, 44, 44],
        description="Bit sizes of the coefficient modulus chain",
    )
    PLAIN_MODULUS: int = Field(default=1125899906826241, description="Plaintext modulus t (prime, 1 mod 2N)")
    SECURITY_LEVEL: int = Field(default=128, description="Security level in bits")

    # ==========================================================================
    # FIXED-POINT CODEC
    # ==========================================================================
    CODEC_BASE: int = Field(default=2, description="Fixed-point expansion base")
    CODEC_INTEGER_DIGITS: int = Field(default=8, description="Integer digit budget")
    CODEC_FRACTION_DIGITS: int = Field(default=16, description="Fraction digit budget")

    # ==========================================================================
    # PATHS
    # ==========================================================================
    PUBLIC_KEY_FILE: str = Field(default="PublicKey", description="Public key file name written by key generation")
    SECRET_KEY_FILE: str = Field(default="PrivateKey", description="Secret key file name written by key generation")

    @field_validator("LOG_LEVEL")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        value = value.upper()
        if value not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level {value}")
        return value

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.ENVIRONMENT.lower() == "production"

    def scheme_params(self) -> SchemeParams:
        """Build and validate the scheme parameters shared by every party."""
        params = SchemeParams(
            poly_modulus_degree=self.POLY_MODULUS_DEGREE,
            coeff_mod_bit_sizes=list(self.COEFF_MOD_BIT_SIZES),
            plain_modulus=self.PLAIN_MODULUS,
            encoding_base=self.CODEC_BASE,
            integer_digits=self.CODEC_INTEGER_DIGITS,
            fraction_digits=self.CODEC_FRACTION_DIGITS,
            security_level=self.SECURITY_LEVEL,
        )
        problems = params.validate()
        if problems:
            raise ConfigValidationError("scheme_params", "; ".join(problems))
        return params


# Global settings instance
settings = CipherScoreSettings()
