"""
Application settings.

Loads configuration from environment variables using pydantic-settings.
"""

from decimal import Decimal

from loguru import logger
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str
    database_echo: bool = False

    # Redis (placement queues, distributed locks and Dramatiq)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str | None = None
    redis_db: int = 0

    # Payment rail
    rpc_url: str
    payout_contract_address: str
    platform_wallet_address: str
    backend_private_key: str | None = None
    gateway_timeout: float = Field(
        default=30.0, gt=0, description="Timeout for a single RPC call (seconds)"
    )
    confirmation_timeout: float = Field(
        default=120.0, gt=0, description="Max wait for a batch receipt (seconds)"
    )
    max_batch_size: int = Field(
        default=50, ge=1, le=50, description="Max lines per executeBatchPayouts call"
    )

    # Auto-pool economics
    base_entry_value: Decimal = Field(
        default=Decimal("20"), gt=0, description="Level 1 pool entry value"
    )
    retopup_price: Decimal = Field(
        default=Decimal("40"), gt=0, description="Price of one retopup"
    )
    direct_income: Decimal = Field(
        default=Decimal("18"), ge=0, description="Direct income paid to the referrer"
    )
    direct_company_fee: Decimal = Field(
        default=Decimal("2"), ge=0, description="Platform fee on a direct referral"
    )
    max_open_trees_per_level: int = Field(
        default=15, ge=1, description="Max concurrently open trees per pool level"
    )
    max_pool_level: int = Field(
        default=10, ge=1, description="Highest pool level a participant can reach"
    )

    # Application
    environment: str = "production"
    debug: bool = False
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator('payout_contract_address', 'platform_wallet_address')
    @classmethod
    def validate_eth_address(cls, v: str) -> str:
        """Validate Ethereum address format."""
        if not v or not v.startswith('0x') or len(v) != 42:
            raise ValueError(
                f'Invalid Ethereum address: {v}. '
                'Must start with 0x and be 42 characters long.'
            )
        try:
            int(v[2:], 16)
        except ValueError as exc:
            raise ValueError(f'Invalid Ethereum address format: {v}') from exc
        return v.lower()

    @field_validator('database_url')
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL uses an async driver."""
        if not v.startswith(('postgresql+asyncpg://', 'sqlite+aiosqlite://')):
            raise ValueError(
                'DATABASE_URL must use an async driver '
                '(postgresql+asyncpg:// or sqlite+aiosqlite://)'
            )
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize log level name."""
        level = v.upper()
        if level not in {'TRACE', 'DEBUG', 'INFO', 'SUCCESS', 'WARNING', 'ERROR', 'CRITICAL'}:
            raise ValueError(f'Unknown LOG_LEVEL: {v}')
        return level

    @model_validator(mode='after')
    def validate_production(self) -> 'Settings':
        """Validate production-specific requirements."""
        if self.environment == 'production':
            if self.debug:
                raise ValueError(
                    'DEBUG must be False in production environment. '
                    'Set DEBUG=false in your .env file.'
                )

            if not self.backend_private_key:
                raise ValueError(
                    'BACKEND_PRIVATE_KEY is required in production. '
                    'The payout contract cannot be called without it.'
                )

            if self.sqlite_in_use:
                raise ValueError('SQLite is not supported in production.')

        if self.direct_income + self.direct_company_fee != self.base_entry_value:
            logger.warning(
                f"DIRECT_INCOME ({self.direct_income}) + DIRECT_COMPANY_FEE "
                f"({self.direct_company_fee}) differs from BASE_ENTRY_VALUE "
                f"({self.base_entry_value})"
            )

        return self

    @property
    def sqlite_in_use(self) -> bool:
        """Whether the ledger runs on SQLite (tests only)."""
        return self.database_url.startswith('sqlite')

    def entry_value(self, pool_level: int) -> Decimal:
        """Entry value of a pool level: base * 2^(level-1)."""
        if pool_level < 1:
            raise ValueError(f"Pool level must be >= 1, got {pool_level}")
        return self.base_entry_value * (2 ** (pool_level - 1))


settings = Settings()
