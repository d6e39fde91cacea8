from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

try:
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - Python <3.11
    import tomli as tomllib

from lighter_analytics.ingest.exchange_profiles import DEFAULT_MATCH_THRESHOLD
from lighter_analytics.ingest.lighter import LIVE_FEED_LIMIT
from lighter_analytics.ingest.lighter_api import DEFAULT_BASE_URL, DEFAULT_WS_URL

DEFAULT_CONFIG_PATH = Path("config/app.toml")


@dataclass(frozen=True)
class AppSettings:
    host: str
    port: int
    reload: bool
    env_path: Path
    log_level: str


@dataclass(frozen=True)
class ApiSettings:
    base_url: str
    ws_url: str
    timeout_seconds: float
    retry_attempts: int
    retry_backoff_seconds: float


@dataclass(frozen=True)
class CacheSettings:
    db_path: Path | None
    namespace: str
    default_ttl_seconds: float
    account_ttl_seconds: float
    markets_ttl_seconds: float


@dataclass(frozen=True)
class AnalyzerSettings:
    period: str
    match_threshold: float


@dataclass(frozen=True)
class StreamSettings:
    reconnect_delay_seconds: float
    trade_feed_limit: int
    pnl_history_throttle_seconds: float


@dataclass(frozen=True)
class AppConfig:
    app: AppSettings
    api: ApiSettings
    cache: CacheSettings
    analyzer: AnalyzerSettings
    stream: StreamSettings


def apply_api_settings(
    env: Mapping[str, str],
    app_config: AppConfig,
    *,
    base_url_override: str | None = None,
) -> dict[str, str]:
    """Overlay file settings on the environment; explicit environment values win."""
    merged = dict(env)
    api = app_config.api
    defaults = {
        "LIGHTER_BASE_URL": api.base_url,
        "LIGHTER_WS_URL": api.ws_url,
        "LIGHTER_TIMEOUT_SECONDS": str(api.timeout_seconds),
        "LIGHTER_RETRY_ATTEMPTS": str(api.retry_attempts),
        "LIGHTER_RETRY_BACKOFF_SECONDS": str(api.retry_backoff_seconds),
    }
    for key, value in defaults.items():
        merged.setdefault(key, value)
    if base_url_override:
        merged["LIGHTER_BASE_URL"] = base_url_override
    return merged


def load_app_config(path: Path | None = None) -> AppConfig:
    config_path = path or DEFAULT_CONFIG_PATH
    raw: Mapping[str, Any] = {}
    if config_path.exists():
        raw = tomllib.loads(config_path.read_text(encoding="utf-8"))

    app_raw = _section(raw, "app")
    api_raw = _section(raw, "api")
    cache_raw = _section(raw, "cache")
    analyzer_raw = _section(raw, "analyzer")
    stream_raw = _section(raw, "stream")

    app = AppSettings(
        host=str(app_raw.get("host", "127.0.0.1")),
        port=int(app_raw.get("port", 8000)),
        reload=bool(app_raw.get("reload", False)),
        env_path=Path(app_raw.get("env_path", ".env")),
        log_level=str(app_raw.get("log_level", "INFO")).upper(),
    )

    api = ApiSettings(
        base_url=str(api_raw.get("base_url", DEFAULT_BASE_URL)),
        ws_url=str(api_raw.get("ws_url", DEFAULT_WS_URL)),
        timeout_seconds=float(api_raw.get("timeout_seconds", 30.0)),
        retry_attempts=int(api_raw.get("retry_attempts", 3)),
        retry_backoff_seconds=float(api_raw.get("retry_backoff_seconds", 0.75)),
    )

    cache = CacheSettings(
        db_path=_path_or_none(cache_raw.get("db_path", "data/lighter_cache.sqlite")),
        namespace=str(cache_raw.get("namespace", "lighter-cache:")),
        default_ttl_seconds=float(cache_raw.get("default_ttl_seconds", 300.0)),
        account_ttl_seconds=float(cache_raw.get("account_ttl_seconds", 30.0)),
        markets_ttl_seconds=float(cache_raw.get("markets_ttl_seconds", 3600.0)),
    )

    analyzer = AnalyzerSettings(
        period=str(analyzer_raw.get("period", "daily")).strip().lower() or "daily",
        match_threshold=float(analyzer_raw.get("match_threshold", DEFAULT_MATCH_THRESHOLD)),
    )

    stream = StreamSettings(
        reconnect_delay_seconds=float(stream_raw.get("reconnect_delay_seconds", 5.0)),
        trade_feed_limit=int(stream_raw.get("trade_feed_limit", LIVE_FEED_LIMIT)),
        pnl_history_throttle_seconds=float(stream_raw.get("pnl_history_throttle_seconds", 5.0)),
    )

    return AppConfig(app=app, api=api, cache=cache, analyzer=analyzer, stream=stream)


def _section(raw: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = raw.get(key)
    if isinstance(value, Mapping):
        return value
    return {}


def _path_or_none(value: Any) -> Path | None:
    if value in (None, ""):
        return None
    return Path(str(value))
