from __future__ import annotations

import asyncio
import json
import logging
import os
from dataclasses import asdict, dataclass
from typing import Any, Mapping

from fastapi import FastAPI, HTTPException, Request

from lighter_analytics.cache import CacheManager, create_cache
from lighter_analytics.config.app_config import AppConfig, apply_api_settings, load_app_config
from lighter_analytics.formatting import validate_ethereum_address
from lighter_analytics.ingest.csv_import import load_trades_text
from lighter_analytics.ingest.exchange_profiles import (
    REQUIRED_FIELDS,
    Detected,
    detect_exchange,
    suggest_column_mapping,
)
from lighter_analytics.ingest.lighter_api import LighterApiClient, LighterApiConfig, load_dotenv
from lighter_analytics.markets import MarketDirectory
from lighter_analytics.metrics.analysis import analysis_payload, analyze_all_trades, streak_payload
from lighter_analytics.metrics.patterns import PERIOD_WEEKLY
from lighter_analytics.metrics.risk import check_alerts
from lighter_analytics.metrics.streaks import live_trade_records, summarize_streaks

logger = logging.getLogger(__name__)

app = FastAPI(title="Lighter Analytics")


@dataclass
class Services:
    config: AppConfig
    client: Any
    cache: CacheManager
    markets: MarketDirectory


def build_services(app_config: AppConfig | None = None) -> Services:
    config = app_config or load_app_config()
    env = dict(os.environ)
    env.update(load_dotenv(config.app.env_path))
    env = apply_api_settings(env, config)
    return Services(
        config=config,
        client=LighterApiClient(LighterApiConfig.from_env(env)),
        cache=create_cache(
            config.cache.db_path,
            namespace=config.cache.namespace,
            default_ttl=config.cache.default_ttl_seconds,
        ),
        markets=MarketDirectory(),
    )


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        services = build_services()
        request.app.state.services = services
    return services


@app.get("/api/health")
def health() -> dict[str, Any]:
    return {"status": "ok"}


@app.post("/api/analyze")
async def analyze(request: Request) -> dict[str, Any]:
    services = get_services(request)
    text, mapping, period = await _read_analyze_body(request)
    if not text.strip():
        raise HTTPException(status_code=400, detail="Empty CSV payload")
    period = period or services.config.analyzer.period

    try:
        result = load_trades_text(text, mapping=mapping, threshold=services.config.analyzer.match_threshold)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    response: dict[str, Any] = {
        "exchange": result.exchange,
        "headers": result.headers,
        "skipped": result.skipped,
        "needs_mapping": result.needs_mapping,
    }
    if result.needs_mapping:
        response["suggested_mapping"] = suggest_column_mapping(result.headers)
        response["required_fields"] = [asdict(item) for item in REQUIRED_FIELDS]
        return response

    analysis = analyze_all_trades(result.trades, period=PERIOD_WEEKLY if period == PERIOD_WEEKLY else "daily")
    response["trades"] = [trade.to_dict() for trade in result.trades]
    response["analysis"] = analysis_payload(analysis)
    return response


@app.post("/api/detect")
async def detect(request: Request) -> dict[str, Any]:
    services = get_services(request)
    try:
        body = await request.json()
    except json.JSONDecodeError as exc:
        raise HTTPException(status_code=400, detail="Expected a JSON body") from exc
    headers = body.get("headers") if isinstance(body, Mapping) else body
    if not isinstance(headers, list):
        raise HTTPException(status_code=400, detail="Expected a list of headers")
    headers = [str(header) for header in headers]

    detection = detect_exchange(headers, threshold=services.config.analyzer.match_threshold)
    if isinstance(detection, Detected):
        return {"detected": True, "exchange": detection.exchange, "confidence": detection.confidence}
    return {
        "detected": False,
        "exchange": detection.exchange,
        "confidence": detection.best_confidence,
        "suggested_mapping": suggest_column_mapping(headers),
        "required_fields": [asdict(item) for item in REQUIRED_FIELDS],
    }


@app.get("/api/account/{address}")
async def account(address: str, request: Request) -> dict[str, Any]:
    if not validate_ethereum_address(address):
        raise HTTPException(status_code=400, detail="Invalid wallet address")
    services = get_services(request)
    key = f"account:{address.lower()}"

    async def fetch() -> dict[str, Any] | None:
        return await asyncio.to_thread(_load_account, services.client, services.markets, address)

    try:
        payload = await services.cache.cached_fetch(
            key,
            fetch,
            ttl=services.config.cache.account_ttl_seconds,
            stale_while_revalidate=True,
        )
    except RuntimeError as exc:
        logger.error("account fetch failed for %s: %s", address, exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    if payload is None:
        raise HTTPException(status_code=404, detail="No Lighter account found for this address")
    return payload


@app.get("/api/markets")
async def markets(request: Request) -> dict[str, Any]:
    services = get_services(request)

    async def fetch() -> dict[str, str]:
        loaded = await asyncio.to_thread(services.markets.load, services.client)
        if not loaded:
            raise RuntimeError("market list unavailable")
        return {str(key): value for key, value in services.markets.as_dict().items()}

    try:
        table = await services.cache.cached_fetch(
            "markets",
            fetch,
            ttl=services.config.cache.markets_ttl_seconds,
            stale_while_revalidate=True,
        )
        source = "exchange"
    except RuntimeError:
        table = {str(key): value for key, value in services.markets.as_dict().items()}
        source = "fallback"
    return {"source": source, "markets": table}


@app.get("/api/cache/stats")
def cache_stats(request: Request) -> dict[str, Any]:
    return get_services(request).cache.stats()


def _load_account(client: Any, markets: MarketDirectory, address: str) -> dict[str, Any] | None:
    account_index = client.fetch_account_index(address)
    if account_index is None:
        return None
    snapshot = client.fetch_account_snapshot(account_index)
    markets.load(client)
    payload = snapshot.to_dict()
    records = live_trade_records(snapshot.trades, account_index, markets.resolve)
    payload["streaks"] = streak_payload(summarize_streaks(records))
    payload["address"] = address
    payload["alerts"] = [asdict(alert) for alert in check_alerts(snapshot.stats, snapshot.positions, 0.0, 0.0)]
    return payload


async def _read_analyze_body(request: Request) -> tuple[str, dict[str, str] | None, str | None]:
    content_type = request.headers.get("content-type", "")
    raw = await request.body()
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise HTTPException(status_code=400, detail="CSV payload must be UTF-8") from exc
    if "application/json" not in content_type:
        return text, None, request.query_params.get("period")

    try:
        body = json.loads(text)
    except json.JSONDecodeError as exc:
        raise HTTPException(status_code=400, detail="Invalid JSON body") from exc
    if not isinstance(body, Mapping):
        raise HTTPException(status_code=400, detail="Expected a JSON object")
    mapping = body.get("mapping")
    if mapping is not None and not isinstance(mapping, Mapping):
        raise HTTPException(status_code=400, detail="mapping must be an object")
    period = body.get("period") or request.query_params.get("period")
    return str(body.get("csv") or ""), dict(mapping) if mapping else None, period


def main() -> None:
    import uvicorn

    app_config = load_app_config()
    logging.basicConfig(level=app_config.app.log_level, format="%(levelname)s %(name)s: %(message)s")
    uvicorn.run(
        "lighter_analytics.web.app:app",
        host=app_config.app.host,
        port=app_config.app.port,
        reload=app_config.app.reload,
    )


if __name__ == "__main__":
    main()
