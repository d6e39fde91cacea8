from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Iterable, Mapping

from lighter_analytics.ingest.exchange_profiles import (
    DEFAULT_MATCH_THRESHOLD,
    Detected,
    DetectionResult,
    Unrecognized,
    UNKNOWN_EXCHANGE,
    detect_exchange,
    map_custom_row,
    normalize_mapping,
    validate_mapping,
)
from lighter_analytics.models import TradeRecord

logger = logging.getLogger(__name__)

CUSTOM_EXCHANGE = "custom"


@dataclass(frozen=True)
class ImportResult:
    trades: list[TradeRecord]
    skipped: int = 0
    exchange: str = UNKNOWN_EXCHANGE
    headers: list[str] = field(default_factory=list)
    rows: list[dict[str, str]] = field(default_factory=list)
    detection: DetectionResult | None = None

    @property
    def needs_mapping(self) -> bool:
        return self.exchange == UNKNOWN_EXCHANGE


def load_trades(
    path: str | Path,
    *,
    mapping: Mapping[str, str | None] | None = None,
    threshold: float = DEFAULT_MATCH_THRESHOLD,
) -> ImportResult:
    source_path = Path(path)
    suffix = source_path.suffix.lower()
    if suffix not in {".csv", ".tsv", ".txt"}:
        raise ValueError(f"Unsupported file type: {source_path.suffix}")
    delimiter = "\t" if suffix == ".tsv" else ","
    with source_path.open("r", encoding="utf-8-sig", newline="") as handle:
        return _load_from_handle(handle, delimiter=delimiter, mapping=mapping, threshold=threshold)


def load_trades_text(
    text: str,
    *,
    delimiter: str | None = None,
    mapping: Mapping[str, str | None] | None = None,
    threshold: float = DEFAULT_MATCH_THRESHOLD,
) -> ImportResult:
    if text.startswith("\ufeff"):
        text = text[1:]
    resolved = delimiter or _sniff_delimiter(text)
    return _load_from_handle(io.StringIO(text, newline=""), delimiter=resolved, mapping=mapping, threshold=threshold)


def map_rows(
    rows: Iterable[Mapping[str, Any]],
    detection: DetectionResult,
) -> tuple[list[TradeRecord], int]:
    if not isinstance(detection, Detected):
        return [], 0
    trades: list[TradeRecord] = []
    skipped = 0
    for row in rows:
        trade = detection.map_row(row)
        if trade is None:
            skipped += 1
            continue
        trades.append(trade)
    return trades, skipped


def apply_column_mapping(result: ImportResult, mapping: Mapping[str, str | None]) -> ImportResult:
    problems = validate_mapping(mapping, result.headers or None)
    if problems:
        raise ValueError("; ".join(problems))
    columns = normalize_mapping(mapping)
    trades: list[TradeRecord] = []
    skipped = 0
    for row in result.rows:
        trade = map_custom_row(row, columns)
        if trade is None:
            skipped += 1
            continue
        trades.append(trade)
    return replace(result, trades=trades, skipped=skipped, exchange=CUSTOM_EXCHANGE)


def _load_from_handle(
    handle: Iterable[str],
    *,
    delimiter: str,
    mapping: Mapping[str, str | None] | None,
    threshold: float = DEFAULT_MATCH_THRESHOLD,
) -> ImportResult:
    reader = csv.DictReader(handle, delimiter=delimiter)
    try:
        headers = [str(name).strip() for name in (reader.fieldnames or [])]
    except csv.Error as exc:
        raise ValueError(f"Unreadable header row: {exc}") from exc
    rows, unreadable = _read_rows(reader)

    if mapping:
        base = ImportResult(trades=[], headers=headers, rows=rows)
        mapped = apply_column_mapping(base, mapping)
        return replace(mapped, skipped=mapped.skipped + unreadable)

    detection = detect_exchange(headers, threshold=threshold)
    if isinstance(detection, Unrecognized):
        return ImportResult(
            trades=[],
            skipped=unreadable,
            exchange=UNKNOWN_EXCHANGE,
            headers=headers,
            rows=rows,
            detection=detection,
        )
    trades, skipped = map_rows(rows, detection)
    return ImportResult(
        trades=trades,
        skipped=skipped + unreadable,
        exchange=detection.exchange,
        headers=headers,
        rows=rows,
        detection=detection,
    )


def _read_rows(reader: csv.DictReader) -> tuple[list[dict[str, str]], int]:
    """Collect non-blank rows; a malformed row ends the read and counts as one skipped row."""
    rows: list[dict[str, str]] = []
    try:
        for row in reader:
            if _has_values(row):
                rows.append(_clean_row(row))
    except csv.Error as exc:
        logger.warning("stopped reading at malformed row %d: %s", reader.line_num, exc)
        return rows, 1
    return rows, 0


def _clean_row(row: Mapping[str | None, Any]) -> dict[str, str]:
    cleaned: dict[str, str] = {}
    for key, value in row.items():
        if key is None:
            continue
        cleaned[str(key).strip()] = "" if value is None else str(value)
    return cleaned


def _has_values(row: Mapping[str | None, Any]) -> bool:
    for key, value in row.items():
        if key is None:
            continue
        if value not in (None, "") and str(value).strip():
            return True
    return False


def _sniff_delimiter(text: str) -> str:
    first_line = text.split("\n", 1)[0]
    if first_line.count("\t") > first_line.count(","):
        return "\t"
    if first_line.count(";") > first_line.count(","):
        return ";"
    return ","
