from pathlib import Path

from lighter_analytics.config.app_config import apply_api_settings, load_app_config
from lighter_analytics.ingest.lighter_api import DEFAULT_BASE_URL


def test_defaults_when_file_missing(tmp_path):
    config = load_app_config(tmp_path / "missing.toml")
    assert config.app.port == 8000
    assert config.api.base_url == DEFAULT_BASE_URL
    assert config.cache.db_path == Path("data/lighter_cache.sqlite")
    assert config.cache.default_ttl_seconds == 300.0
    assert config.analyzer.period == "daily"
    assert config.stream.trade_feed_limit == 50


def test_file_values_are_read(tmp_path):
    path = tmp_path / "app.toml"
    path.write_text(
        """
[app]
port = 9000
log_level = "debug"

[api]
base_url = "https://api.example.test"
retry_attempts = 1

[cache]
db_path = ""
account_ttl_seconds = 10

[analyzer]
period = "Weekly"
match_threshold = 0.5
""",
        encoding="utf-8",
    )
    config = load_app_config(path)
    assert config.app.port == 9000
    assert config.app.log_level == "DEBUG"
    assert config.api.retry_attempts == 1
    assert config.cache.db_path is None
    assert config.cache.account_ttl_seconds == 10.0
    assert config.analyzer.period == "weekly"
    assert config.analyzer.match_threshold == 0.5


def test_apply_api_settings_precedence(tmp_path):
    path = tmp_path / "app.toml"
    path.write_text('[api]\nbase_url = "https://file.test"\nretry_attempts = 4\n', encoding="utf-8")
    config = load_app_config(path)

    merged = apply_api_settings({"LIGHTER_RETRY_ATTEMPTS": "9"}, config)
    assert merged["LIGHTER_BASE_URL"] == "https://file.test"
    assert merged["LIGHTER_RETRY_ATTEMPTS"] == "9"

    overridden = apply_api_settings({"LIGHTER_BASE_URL": "https://env.test"}, config, base_url_override="https://cli.test")
    assert overridden["LIGHTER_BASE_URL"] == "https://cli.test"
