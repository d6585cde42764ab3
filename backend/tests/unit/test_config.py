"""Unit tests for settings, YAML overrides and environment handling."""

from decimal import Decimal

import pytest
import yaml

from prophet.config import ArbitrationConfig, Settings


class TestDefaults:
    def test_arbitration_budget(self) -> None:
        settings = Settings(_env_file=None)
        assert settings.arbitration.max_searches == 10
        assert settings.search.provider == "exa"
        assert "reddit.com" in settings.arbitration.blacklisted_domains
        assert settings.settlement.min_stake == Decimal("1")

    def test_timeout_covers_every_step(self) -> None:
        config = ArbitrationConfig(
            max_searches=2, max_gathering_turns=3, search_timeout_seconds=5, model_timeout_seconds=10
        )
        assert config.timeout_seconds == 2 * 5 + 4 * 10

    def test_credit_packages(self) -> None:
        payments = Settings(_env_file=None).payments
        assert payments.get_package("credits_500").popular is True
        assert payments.get_package("credits_42") is None

    def test_payment_webhook_closed_by_default(self) -> None:
        assert Settings(_env_file=None).payments_webhook_secret == ""


class TestDatabaseUrl:
    @pytest.mark.parametrize(
        "url, expected",
        [
            ("postgres://u:p@db/prophet", "postgresql+asyncpg://u:p@db/prophet"),
            ("postgresql://u:p@db/prophet", "postgresql+asyncpg://u:p@db/prophet"),
            ("postgresql+psycopg2://u:p@db/prophet", "postgresql+asyncpg://u:p@db/prophet"),
            ("sqlite+aiosqlite:///data/x.db", "sqlite+aiosqlite:///data/x.db"),
        ],
    )
    def test_async_driver(self, url, expected) -> None:
        assert Settings(database_url=url, _env_file=None).database_url == expected


class TestYamlConfig:
    def test_merges_sections(self, tmp_path) -> None:
        (tmp_path / "config.yaml").write_text(
            yaml.safe_dump(
                {
                    "arbitration": {"max_searches": 4, "blacklisted_domains": ["example.com"]},
                    "scheduler": {"arbitration_sweep_minutes": 5},
                }
            )
        )
        settings = Settings(data_dir=tmp_path, _env_file=None)
        settings.load_yaml_config()

        assert settings.arbitration.max_searches == 4
        assert settings.arbitration.blacklisted_domains == ["example.com"]
        assert settings.arbitration.max_gathering_turns == 12
        assert settings.scheduler.arbitration_sweep_minutes == 5
        assert settings.search.provider == "exa"

    def test_missing_file_keeps_defaults(self, tmp_path) -> None:
        settings = Settings(data_dir=tmp_path, _env_file=None)
        settings.load_yaml_config()
        assert settings.arbitration == ArbitrationConfig()

    def test_invalid_yaml_raises(self, tmp_path) -> None:
        (tmp_path / "config.yaml").write_text("arbitration: [unclosed")
        settings = Settings(data_dir=tmp_path, _env_file=None)
        with pytest.raises(yaml.YAMLError):
            settings.load_yaml_config()


def test_nested_environment_override(monkeypatch) -> None:
    monkeypatch.setenv("ARBITRATION__MAX_SEARCHES", "3")
    monkeypatch.setenv("SEARCH__PROVIDER", "google")
    settings = Settings(_env_file=None)
    assert settings.arbitration.max_searches == 3
    assert settings.search.provider == "google"
