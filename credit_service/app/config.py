from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml


DEFAULT_CONFIG_FILE_NAME = "config.yaml"

STORE_BACKEND_MONGO = "mongo"
STORE_BACKEND_MEMORY = "memory"

CREDIT_TIMEZONE = "CREDIT_TIMEZONE"
CREDIT_DEFAULT_DAILY_LIMIT = "CREDIT_DEFAULT_DAILY_LIMIT"
CREDIT_SIGNUP_BONUS_AMOUNT = "CREDIT_SIGNUP_BONUS_AMOUNT"
CREDIT_SIGNUP_BONUS_EXPIRY_DAYS = "CREDIT_SIGNUP_BONUS_EXPIRY_DAYS"
CREDIT_DEFAULT_GRANT_EXPIRY_DAYS = "CREDIT_DEFAULT_GRANT_EXPIRY_DAYS"
CREDIT_EXPIRING_SOON_DAYS = "CREDIT_EXPIRING_SOON_DAYS"
CREDIT_REAPER_INTERVAL_SECONDS = "CREDIT_REAPER_INTERVAL_SECONDS"
CREDIT_STORE_BACKEND = "CREDIT_STORE_BACKEND"


@dataclass(slots=True)
class CreditConfig:
    """크레딧 원장 동작 설정.

    - timezone: 일일 사용량을 집계할 달력 기준 타임존
    - signup_bonus_expiry_days: None 이면 가입 보너스는 만료되지 않는다.
    - default_grant_expiry_days: add_credits 에 만료 시각이 없을 때 적용할 기본 일수. None 이면 무기한.
    - reaper_interval_seconds: 0 이면 만료 회수 스케줄러를 띄우지 않는다.
    """

    timezone: str = "Asia/Taipei"
    default_daily_limit: int = 100
    signup_bonus_amount: int = 100
    signup_bonus_expiry_days: int | None = None
    default_grant_expiry_days: int | None = 90
    expiring_soon_days: int = 7
    reaper_interval_seconds: float = 3600.0
    store_backend: str = STORE_BACKEND_MONGO


def _find_config_path() -> Path | None:
    """현재 작업 디렉토리 기준으로 상위로 올라가며 config.yaml 을 찾는다.

    파일이 없으면 None 을 반환하고 기본값과 환경 변수만 사용한다.
    """

    current = Path.cwd()
    for directory in (current, *current.parents):
        candidate = directory / DEFAULT_CONFIG_FILE_NAME
        if candidate.is_file():
            return candidate
    return None


def _load_yaml_section(path: Path | None) -> dict[str, Any]:
    if path is None:
        return {}
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    section = data.get("credit") or {}
    if not isinstance(section, dict):
        raise RuntimeError(f"invalid 'credit' section in {path}: expected a mapping")
    return section


def _pick(section: dict[str, Any], key: str, env_name: str) -> Any:
    """환경 변수가 있으면 우선하고, 없으면 YAML 값을 사용한다."""
    raw_env = os.getenv(env_name)
    if raw_env is not None and raw_env.strip() != "":
        return raw_env.strip()
    return section.get(key)


def _as_positive_int(value: Any, name: str, default: int) -> int:
    if value is None:
        return default
    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:  # noqa: TRY003
        raise RuntimeError(f"invalid {name}: {value!r}") from exc
    if parsed <= 0:
        raise RuntimeError(f"{name} must be greater than 0, got {parsed}")
    return parsed


def _as_optional_days(value: Any, name: str, default: int | None) -> int | None:
    """일수 설정을 해석한다. 0 또는 음수는 '만료 없음(None)' 으로 취급한다."""
    if value is None:
        return default
    if isinstance(value, str) and value.strip().lower() in {"none", "null", "never"}:
        return None
    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:  # noqa: TRY003
        raise RuntimeError(f"invalid {name}: {value!r}") from exc
    return parsed if parsed > 0 else None


def load_credit_config() -> CreditConfig:
    section = _load_yaml_section(_find_config_path())
    defaults = CreditConfig()

    timezone_name = str(
        _pick(section, "timezone", CREDIT_TIMEZONE) or defaults.timezone
    )
    try:
        ZoneInfo(timezone_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise RuntimeError(f"unknown timezone: {timezone_name!r}") from exc

    raw_interval = _pick(section, "reaper_interval_seconds", CREDIT_REAPER_INTERVAL_SECONDS)
    try:
        interval = (
            float(raw_interval)
            if raw_interval is not None
            else defaults.reaper_interval_seconds
        )
    except (TypeError, ValueError) as exc:  # noqa: TRY003
        raise RuntimeError(f"invalid reaper_interval_seconds: {raw_interval!r}") from exc

    backend = str(
        _pick(section, "store_backend", CREDIT_STORE_BACKEND) or defaults.store_backend
    ).lower()
    if backend not in {STORE_BACKEND_MONGO, STORE_BACKEND_MEMORY}:
        raise RuntimeError(f"unsupported store_backend: {backend!r}")

    return CreditConfig(
        timezone=timezone_name,
        default_daily_limit=_as_positive_int(
            _pick(section, "default_daily_limit", CREDIT_DEFAULT_DAILY_LIMIT),
            "default_daily_limit",
            defaults.default_daily_limit,
        ),
        signup_bonus_amount=_as_positive_int(
            _pick(section, "signup_bonus_amount", CREDIT_SIGNUP_BONUS_AMOUNT),
            "signup_bonus_amount",
            defaults.signup_bonus_amount,
        ),
        signup_bonus_expiry_days=_as_optional_days(
            _pick(section, "signup_bonus_expiry_days", CREDIT_SIGNUP_BONUS_EXPIRY_DAYS),
            "signup_bonus_expiry_days",
            defaults.signup_bonus_expiry_days,
        ),
        default_grant_expiry_days=_as_optional_days(
            _pick(section, "default_grant_expiry_days", CREDIT_DEFAULT_GRANT_EXPIRY_DAYS),
            "default_grant_expiry_days",
            defaults.default_grant_expiry_days,
        ),
        expiring_soon_days=_as_positive_int(
            _pick(section, "expiring_soon_days", CREDIT_EXPIRING_SOON_DAYS),
            "expiring_soon_days",
            defaults.expiring_soon_days,
        ),
        reaper_interval_seconds=max(interval, 0.0),
        store_backend=backend,
    )
