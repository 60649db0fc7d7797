from __future__ import annotations

import pytest

from credit_service.app import config as config_module
from credit_service.app.config import (
    STORE_BACKEND_MEMORY,
    STORE_BACKEND_MONGO,
    load_credit_config,
)


ENV_NAMES = (
    config_module.CREDIT_TIMEZONE,
    config_module.CREDIT_DEFAULT_DAILY_LIMIT,
    config_module.CREDIT_SIGNUP_BONUS_AMOUNT,
    config_module.CREDIT_SIGNUP_BONUS_EXPIRY_DAYS,
    config_module.CREDIT_DEFAULT_GRANT_EXPIRY_DAYS,
    config_module.CREDIT_EXPIRING_SOON_DAYS,
    config_module.CREDIT_REAPER_INTERVAL_SECONDS,
    config_module.CREDIT_STORE_BACKEND,
)


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    for name in ENV_NAMES:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


def test_defaults_without_config_file(workdir) -> None:
    cfg = load_credit_config()

    assert cfg.timezone == "Asia/Taipei"
    assert cfg.default_daily_limit == 100
    assert cfg.signup_bonus_amount == 100
    assert cfg.signup_bonus_expiry_days is None
    assert cfg.default_grant_expiry_days == 90
    assert cfg.expiring_soon_days == 7
    assert cfg.reaper_interval_seconds == 3600.0
    assert cfg.store_backend == STORE_BACKEND_MONGO


def test_yaml_section_is_found_from_nested_directory(workdir, monkeypatch) -> None:
    (workdir / "config.yaml").write_text(
        "credit:\n"
        "  timezone: UTC\n"
        "  default_daily_limit: 250\n"
        "  signup_bonus_expiry_days: 30\n"
        "  default_grant_expiry_days: 0\n"
        "  store_backend: memory\n",
        encoding="utf-8",
    )
    nested = workdir / "a" / "b"
    nested.mkdir(parents=True)
    monkeypatch.chdir(nested)

    cfg = load_credit_config()

    assert cfg.timezone == "UTC"
    assert cfg.default_daily_limit == 250
    assert cfg.signup_bonus_expiry_days == 30
    assert cfg.default_grant_expiry_days is None
    assert cfg.store_backend == STORE_BACKEND_MEMORY


def test_environment_overrides_yaml(workdir, monkeypatch) -> None:
    (workdir / "config.yaml").write_text(
        "credit:\n  default_daily_limit: 250\n", encoding="utf-8"
    )
    monkeypatch.setenv(config_module.CREDIT_DEFAULT_DAILY_LIMIT, "40")
    monkeypatch.setenv(config_module.CREDIT_SIGNUP_BONUS_EXPIRY_DAYS, "never")
    monkeypatch.setenv(config_module.CREDIT_REAPER_INTERVAL_SECONDS, "0")

    cfg = load_credit_config()

    assert cfg.default_daily_limit == 40
    assert cfg.signup_bonus_expiry_days is None
    assert cfg.reaper_interval_seconds == 0.0


@pytest.mark.parametrize(
    ("env_name", "value"),
    [
        (config_module.CREDIT_TIMEZONE, "Mars/Olympus_Mons"),
        (config_module.CREDIT_DEFAULT_DAILY_LIMIT, "0"),
        (config_module.CREDIT_SIGNUP_BONUS_AMOUNT, "lots"),
        (config_module.CREDIT_STORE_BACKEND, "redis"),
        (config_module.CREDIT_REAPER_INTERVAL_SECONDS, "hourly"),
    ],
)
def test_invalid_values_fail_at_load_time(workdir, monkeypatch, env_name, value) -> None:
    monkeypatch.setenv(env_name, value)

    with pytest.raises(RuntimeError):
        load_credit_config()


def test_non_mapping_credit_section_is_rejected(workdir) -> None:
    (workdir / "config.yaml").write_text("credit: 5\n", encoding="utf-8")

    with pytest.raises(RuntimeError):
        load_credit_config()
