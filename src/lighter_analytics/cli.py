from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from lighter_analytics.config.app_config import load_app_config
from lighter_analytics.export_csv import export_trades_csv
from lighter_analytics.formatting import format_currency, format_percentage, format_ratio
from lighter_analytics.ingest.csv_import import load_trades
from lighter_analytics.ingest.exchange_profiles import suggest_column_mapping
from lighter_analytics.metrics.analysis import AnalysisResult, analysis_payload, analyze_all_trades
from lighter_analytics.metrics.patterns import PERIOD_DAILY, PERIOD_WEEKLY


def main(argv: list[str] | None = None) -> int:
    app_config = load_app_config()
    parser = argparse.ArgumentParser(description="Analyze a perp DEX trade history export (CSV/TSV).")
    parser.add_argument("path", type=Path, help="Path to the trade history export.")
    parser.add_argument(
        "--map",
        dest="mappings",
        action="append",
        default=[],
        metavar="FIELD=COLUMN",
        help="Manual column mapping for unrecognized exports (repeatable).",
    )
    parser.add_argument(
        "--period",
        choices=(PERIOD_DAILY, PERIOD_WEEKLY),
        default=app_config.analyzer.period if app_config.analyzer.period in (PERIOD_DAILY, PERIOD_WEEKLY) else PERIOD_DAILY,
        help="Bucket size for period PnL.",
    )
    parser.add_argument("--json", action="store_true", help="Print the full analysis as JSON.")
    parser.add_argument("--export-dir", type=Path, default=None, help="Also write parsed trades as CSV here.")
    parser.add_argument("--out", type=Path, default=None, help="Write the report to a file instead of stdout.")
    args = parser.parse_args(argv)

    logging.basicConfig(level=app_config.app.log_level, format="%(levelname)s %(name)s: %(message)s")

    try:
        mapping = _parse_mappings(args.mappings)
    except ValueError as exc:
        parser.error(str(exc))

    try:
        result = load_trades(args.path, mapping=mapping or None, threshold=app_config.analyzer.match_threshold)
    except (OSError, ValueError) as exc:
        print(f"Unable to import {args.path}: {exc}", file=sys.stderr)
        return 1

    if result.needs_mapping:
        print("Unrecognized export format; supply --map FIELD=COLUMN for each column.", file=sys.stderr)
        print(f"Headers: {', '.join(result.headers)}", file=sys.stderr)
        suggestion = suggest_column_mapping(result.headers)
        if suggestion:
            hint = " ".join(f"--map {key}={column!r}" for key, column in suggestion.items())
            print(f"Suggested: {hint}", file=sys.stderr)
        return 1

    if result.skipped:
        print(f"Skipped {result.skipped} rows during normalization.", file=sys.stderr)

    if not result.trades:
        print("No trades parsed.")
        return 0

    analysis = analyze_all_trades(result.trades, period=args.period)

    if args.export_dir is not None:
        written = export_trades_csv(result.trades, args.export_dir)
        if written is not None:
            print(f"Wrote {written}", file=sys.stderr)

    if args.json:
        output = [json.dumps(analysis_payload(analysis), indent=2)]
    else:
        output = render_report(analysis, exchange=result.exchange)

    if args.out is None:
        for line in output:
            print(line)
    else:
        args.out.parent.mkdir(parents=True, exist_ok=True)
        args.out.write_text("\n".join(output) + "\n", encoding="utf-8")
    return 0


def render_report(analysis: AnalysisResult, *, exchange: str) -> list[str]:
    kpis = analysis.kpis
    lines = [
        f"exchange {exchange}",
        f"trades {kpis.total_trades} (wins {kpis.winning_trades}, losses {kpis.losing_trades})",
        f"net_pnl {format_currency(kpis.net_pnl)}",
        f"total_fees {format_currency(kpis.total_fees)}",
        f"win_rate {kpis.win_rate:.2f}%",
        f"profit_factor {format_ratio(kpis.profit_factor)}",
        f"avg_win {format_currency(kpis.avg_winning_trade)}",
        f"avg_loss {format_currency(kpis.avg_losing_trade)}",
        f"payoff_ratio {format_ratio(kpis.payoff_ratio)}",
    ]

    streaks = analysis.streaks
    if streaks.longest_win is not None:
        lines.append(f"longest_win_streak {streaks.longest_win.count}")
    if streaks.longest_loss is not None:
        lines.append(f"longest_loss_streak {streaks.longest_loss.count}")
    if streaks.current is not None:
        lines.append(f"current_streak {streaks.current.count} {streaks.current.type}")

    side = analysis.side_analysis
    lines.append("")
    lines.append("side pnl win_rate profit_factor trades")
    for name, group in (("long", side.long), ("short", side.short)):
        lines.append(
            f"{name} {format_currency(group.pnl)} {group.win_rate:.2f}% "
            f"{format_ratio(group.profit_factor)} {group.trades}"
        )

    lines.append("")
    lines.append("market net_pnl win_rate profit_factor fees trades")
    for market in analysis.market_breakdown:
        lines.append(
            f"{market.market} {format_currency(market.net_pnl)} {market.win_rate:.2f}% "
            f"{format_ratio(market.profit_factor)} {format_currency(market.total_fees)} {market.total_trades}"
        )

    lines.append("")
    lines.append("period pnl")
    for row in analysis.period_pnl:
        lines.append(f"{row.period} {format_currency(row.pnl)}")

    if len(analysis.period_pnl) > 1:
        first = analysis.period_pnl[0].pnl
        last = analysis.period_pnl[-1].pnl
        if first:
            lines.append(f"last_vs_first_period {format_percentage((last - first) / abs(first) * 100.0)}")
    return lines


def _parse_mappings(values: list[str]) -> dict[str, str]:
    mapping: dict[str, str] = {}
    for value in values:
        if "=" not in value:
            raise ValueError(f"Invalid --map value {value!r}; expected FIELD=COLUMN")
        key, column = value.split("=", 1)
        key = key.strip()
        column = column.strip()
        if not key or not column:
            raise ValueError(f"Invalid --map value {value!r}; expected FIELD=COLUMN")
        mapping[key] = column
    return mapping


if __name__ == "__main__":
    raise SystemExit(main())
