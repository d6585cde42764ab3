"""Configuration management using Pydantic Settings."""

import logging
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from prophet.llm_providers import OpenAIModel, get_model_string

logger = logging.getLogger(__name__)

SYSTEM_AI_USER_ID = "00000000-0000-0000-0000-000000000000"

DEFAULT_INJECTION_MARKERS = [
    "ignore previous instructions",
    "disregard",
    "jailbreak",
    "override",
    "forget your role",
    "you are now",
    "act as",
    "pretend to be",
    "new instructions",
    "system prompt",
    "developer mode",
]

DEFAULT_BLACKLISTED_DOMAINS = [
    "blogspot.com",
    "wordpress.com",
    "tumblr.com",
    "reddit.com",
    "twitter.com",
    "facebook.com",
    "instagram.com",
    "tiktok.com",
    "youtube.com",
    "pastebin.com",
    "4chan.org",
    "anonymous.com",
]


class SettlementConfig(BaseModel):
    """Stake and balance limits enforced by the settlement engine."""

    min_stake: Decimal = Decimal("1")
    max_stake: Decimal = Decimal("1000000")
    max_admin_credit: Decimal = Decimal("10000")
    title_max_length: int = 200
    description_max_length: int = 1000


class ArbitrationConfig(BaseModel):
    """AI arbitrator research budget and model parameters."""

    model: str = get_model_string(OpenAIModel.GPT_4_1)
    max_searches: int = 10
    max_gathering_turns: int = 12
    results_per_query: int = 8
    max_sources: int = 10
    max_query_length: int = 200
    search_timeout_seconds: float = 20.0
    model_timeout_seconds: float = 60.0
    temperature: float = 0.1
    max_tokens: int = 4000
    decision_max_tokens: int = 2000
    system_user_id: str = SYSTEM_AI_USER_ID
    injection_markers: list[str] = Field(
        default_factory=lambda: list(DEFAULT_INJECTION_MARKERS)
    )
    blacklisted_domains: list[str] = Field(
        default_factory=lambda: list(DEFAULT_BLACKLISTED_DOMAINS)
    )

    @property
    def timeout_seconds(self) -> float:
        """Wall-clock bound for one arbitration (every search plus model turns)."""
        model_turns = self.max_gathering_turns + 1
        return (
            self.max_searches * self.search_timeout_seconds
            + model_turns * self.model_timeout_seconds
        )


class SearchConfig(BaseModel):
    """Web search provider selection."""

    provider: Literal["exa", "google"] = "exa"
    results_per_request: int = 10
    max_retries: int = 1
    user_agent: str = "Prophet-Betting-AI-Arbitrator/1.0"


class SchedulerConfig(BaseModel):
    """Job scheduling intervals in minutes."""

    arbitration_sweep_minutes: int = 15


class CreditPackage(BaseModel):
    """Purchasable credit bundle."""

    id: str
    credits: int
    price: Decimal
    popular: bool = False


class PaymentsConfig(BaseModel):
    """Credit packages offered at checkout."""

    currency: str = "usd"
    packages: list[CreditPackage] = Field(
        default_factory=lambda: [
            CreditPackage(id="credits_100", credits=100, price=Decimal("10")),
            CreditPackage(id="credits_500", credits=500, price=Decimal("40"), popular=True),
            CreditPackage(id="credits_1000", credits=1000, price=Decimal("75")),
            CreditPackage(id="credits_2500", credits=2500, price=Decimal("175")),
        ]
    )

    def get_package(self, package_id: str) -> CreditPackage | None:
        return next((p for p in self.packages if p.id == package_id), None)


class Settings(BaseSettings):
    """Main configuration class."""

    # Paths
    data_dir: Path = Path("data")

    # Database
    database_url: str = "sqlite+aiosqlite:///data/prophet.db"
    database_echo: bool = False

    # API Keys
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    exa_api_key: str = ""
    google_search_api_key: str = ""
    google_search_engine_id: str = ""
    logfire_token: str = ""

    # Shared with the payments gateway that verifies provider signatures
    payments_webhook_secret: str = ""

    environment: str = "development"

    # Nested configuration sections
    settlement: SettlementConfig = Field(default_factory=SettlementConfig)
    arbitration: ArbitrationConfig = Field(default_factory=ArbitrationConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    payments: PaymentsConfig = Field(default_factory=PaymentsConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("data_dir", mode="after")
    @classmethod
    def resolve_data_dir(cls, v: Path) -> Path:
        """Resolve data directory to absolute path."""
        return v.resolve()

    @field_validator("database_url", mode="after")
    @classmethod
    def use_async_driver(cls, v: str) -> str:
        """Hosted Postgres URLs come without a driver; the store needs asyncpg."""
        if v.startswith("postgres://"):
            v = "postgresql://" + v[len("postgres://"):]
        if v.startswith("postgresql://"):
            return "postgresql+asyncpg://" + v[len("postgresql://"):]
        if v.startswith("postgresql+psycopg2://"):
            return v.replace("postgresql+psycopg2://", "postgresql+asyncpg://", 1)
        return v

    def load_yaml_config(self) -> None:
        """Load and merge YAML configuration."""
        config_path = self.data_dir / "config.yaml"

        if not config_path.exists():
            logger.info(f"Config file not found: {config_path}. Using defaults.")
            return

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f)

            if not yaml_config:
                logger.warning(f"Empty config file: {config_path}")
                return

            for section_name in [
                "settlement",
                "arbitration",
                "search",
                "scheduler",
                "payments",
            ]:
                if section_name in yaml_config:
                    section = getattr(self, section_name)
                    yaml_section = yaml_config[section_name]

                    section_dict = section.model_dump()
                    section_dict.update(yaml_section)

                    new_section = section.__class__(**section_dict)
                    setattr(self, section_name, new_section)

            logger.info(f"Loaded configuration from {config_path}")

        except yaml.YAMLError as e:
            logger.error(f"Failed to parse YAML config: {e}")
            raise


@lru_cache()
def get_settings() -> Settings:
    """Get singleton Settings instance."""
    settings = Settings()
    settings.load_yaml_config()
    return settings
