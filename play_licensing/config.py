"""
Library Configuration - Pydantic Settings for type-safe config.

FAIL FAST - Invalid config is rejected when settings are loaded.
"""

import sys

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


# Lowest PBKDF2 cost accepted for the preference obfuscator
MIN_KDF_ITERATIONS = 1000


class Settings(BaseSettings):
    """Library settings loaded from environment variables (PLAY_LICENSING_*)."""

    # Identity
    service_name: str = "play-licensing"
    version: str = "0.1.0"

    # Logging
    log_level: str = "INFO"
    log_format: str = "console"  # json or console

    # Obfuscator key derivation cost
    kdf_iterations: int = 1024

    # Default location of the JSON preference file used by the CLI
    preferences_path: str = "~/.play_licensing/preferences.json"

    model_config = SettingsConfigDict(
        env_prefix="PLAY_LICENSING_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate configuration when settings are constructed.

        A weak key derivation cost silently weakens every stored value,
        so it is rejected up front rather than discovered later.
        """
        errors: list[str] = []

        if self.kdf_iterations < MIN_KDF_ITERATIONS:
            errors.append(
                f"KDF_ITERATIONS must be at least {MIN_KDF_ITERATIONS}, got {self.kdf_iterations}"
            )

        if self.log_format not in ("json", "console"):
            errors.append(f"LOG_FORMAT must be 'json' or 'console', got: {self.log_format}")

        if errors:
            error_msg = "\n".join(
                [
                    "",
                    "=" * 60,
                    "PLAY LICENSING CONFIGURATION ERROR",
                    "=" * 60,
                    *[f"  ✗ {e}" for e in errors],
                    "=" * 60,
                    "",
                ]
            )
            print(error_msg, file=sys.stderr)
            raise ConfigurationError(error_msg)

        return self


# Global settings instance - validates at import time
settings = Settings()


def get_settings() -> Settings:
    """Get library settings instance."""
    return settings
