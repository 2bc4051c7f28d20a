from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_STORE_PATH_ENV = "IOT_STORE_PATH"
_QUERY_LIMIT_ENV = "QUERY_DEFAULT_LIMIT"
_EXPORT_LIMIT_ENV = "EXPORT_DEFAULT_LIMIT"
_STRICT_ENV = "AGGREGATION_STRICT"
_FIELD_POLICY_ENV = "AGGREGATION_FIELD_POLICY"
_SORT_BUCKETS_ENV = "AGGREGATION_SORT_BUCKETS"
_LOG_LEVEL_ENV = "LOG_LEVEL"

_FIELD_POLICIES = ("first", "union")
_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    store_path: Optional[str]
    query_default_limit: int
    export_default_limit: int
    aggregation_strict: bool
    aggregation_field_policy: str
    aggregation_sort_buckets: bool
    log_level: str


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip().lower()
    if candidate in _TRUTHY:
        return True
    if candidate in _FALSY:
        return False
    return default


def _read_field_policy(default: str) -> str:
    value = os.getenv(_FIELD_POLICY_ENV)
    if value is None:
        return default
    candidate = value.strip().lower()
    return candidate if candidate in _FIELD_POLICIES else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        store_path=_read_optional_env(_STORE_PATH_ENV, "./tmp/iot_store.json"),
        query_default_limit=_read_positive_int(_QUERY_LIMIT_ENV, 100),
        export_default_limit=_read_positive_int(_EXPORT_LIMIT_ENV, 1000),
        aggregation_strict=_read_bool(_STRICT_ENV, False),
        aggregation_field_policy=_read_field_policy("first"),
        aggregation_sort_buckets=_read_bool(_SORT_BUCKETS_ENV, True),
        log_level=_read_log_level("INFO"),
    )
