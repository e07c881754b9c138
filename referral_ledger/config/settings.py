"""
Application settings.

Loads configuration from environment variables using pydantic-settings.
"""

from loguru import logger
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from referral_ledger.config.constants import (
    DEFAULT_PAYOUT_THRESHOLD,
    REFERRAL_CODE_PREFIX,
    REFERRAL_CODE_RANDOM_LENGTH,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str
    database_echo: bool = False

    # Application
    environment: str = "production"
    debug: bool = False
    log_level: str = "INFO"
    log_file: str | None = None
    health_check_port: int = Field(
        default=8080, ge=1, le=65535, description="Health check HTTP server port"
    )

    # Redis (for Dramatiq)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str | None = None
    redis_db: int = 0

    # Qualification sweep
    qualification_sweep_interval_minutes: int = Field(
        default=5, ge=1, description="Minutes between qualification sweeps"
    )
    qualification_sweep_batch_size: int = Field(
        default=500, ge=1, description="Max commissions promoted per sweep run"
    )

    # Referral codes
    referral_code_prefix: str = Field(
        default=REFERRAL_CODE_PREFIX, max_length=8
    )
    referral_code_length: int = Field(
        default=REFERRAL_CODE_RANDOM_LENGTH,
        ge=4,
        le=16,
        description="Random characters appended after the prefix",
    )

    # Self-serve referrer onboarding on first payment
    auto_assign_on_payment: bool = True

    # Payouts
    default_payout_threshold: float = Field(
        default=DEFAULT_PAYOUT_THRESHOLD,
        ge=0,
        description="Fallback minimum payout when a policy sets none",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator('database_url')
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL."""
        if not v.startswith((
            'postgresql://',
            'postgresql+asyncpg://',
            'sqlite+aiosqlite://',
        )):
            raise ValueError(
                'DATABASE_URL must start with postgresql://, '
                'postgresql+asyncpg:// or sqlite+aiosqlite://'
            )
        if v.startswith('postgresql://'):
            logger.debug("Rewriting DATABASE_URL to asyncpg driver")
            return v.replace('postgresql://', 'postgresql+asyncpg://', 1)
        return v

    @field_validator('referral_code_prefix')
    @classmethod
    def validate_code_prefix(cls, v: str) -> str:
        """Referral code prefix is stored upper-case."""
        return v.strip().upper()

    @property
    def redis_url(self) -> str:
        """Redis URL for the task broker."""
        auth = f":{self.redis_password}@" if self.redis_password else ""
        return f"redis://{auth}{self.redis_host}:{self.redis_port}/{self.redis_db}"


# Global settings instance
settings = Settings()
