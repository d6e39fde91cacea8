import json

import pytest

from lighter_analytics.cli import _parse_mappings, main

LIGHTER_CSV = (
    "Market,Side,Date,Trade Value,Size,Price,Closed PnL,Fee,Role,Type\n"
    "ETH-USD,Long,2024-01-15 10:00:00,2500,1,2500,100,0.5,Maker,Limit\n"
    "BTC-USD,Short,2024-01-15 12:00:00,42000,1,42000,-40,1.0,Taker,Market\n"
    "ETH-USD,Long,2024-01-16 09:00:00,2600,1,2600,20,0.5,Taker,Market\n"
)

UNKNOWN_CSV = "When,Pair,Action,Result\n2024-01-15 10:00:00,SOL,buy,5\n"


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return tmp_path


def test_report_for_known_export(workdir, capsys):
    path = workdir / "trades.csv"
    path.write_text(LIGHTER_CSV, encoding="utf-8")

    assert main([str(path)]) == 0
    out = capsys.readouterr().out
    assert "exchange lighter" in out
    assert "trades 3 (wins 2, losses 1)" in out
    assert "ETH-USD" in out


def test_json_output_and_export(workdir, capsys):
    path = workdir / "trades.csv"
    path.write_text(LIGHTER_CSV, encoding="utf-8")

    assert main([str(path), "--json", "--period", "weekly", "--export-dir", str(workdir / "out")]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["kpis"]["total_trades"] == 3
    assert len(list((workdir / "out").glob("trades_*.csv"))) == 1


def test_report_written_to_file(workdir):
    path = workdir / "trades.csv"
    path.write_text(LIGHTER_CSV, encoding="utf-8")
    out = workdir / "reports" / "report.txt"

    assert main([str(path), "--out", str(out)]) == 0
    assert out.read_text(encoding="utf-8").startswith("exchange lighter")


def test_unknown_export_needs_mapping(workdir, capsys):
    path = workdir / "unknown.csv"
    path.write_text(UNKNOWN_CSV, encoding="utf-8")

    assert main([str(path)]) == 1
    err = capsys.readouterr().err
    assert "Unrecognized export format" in err
    assert "When, Pair, Action, Result" in err

    args = [str(path), "--map", "date=When", "--map", "market=Pair", "--map", "side=Action", "--map", "closed_pnl=Result"]
    assert main(args) == 0
    assert "exchange custom" in capsys.readouterr().out


def test_missing_file_fails(workdir, capsys):
    assert main([str(workdir / "missing.csv")]) == 1
    assert "Unable to import" in capsys.readouterr().err


def test_bad_mapping_is_a_usage_error(workdir):
    with pytest.raises(SystemExit) as excinfo:
        main([str(workdir / "trades.csv"), "--map", "date"])
    assert excinfo.value.code == 2


def test_parse_mappings():
    assert _parse_mappings(["date = When", "market=Pair"]) == {"date": "When", "market": "Pair"}
    with pytest.raises(ValueError):
        _parse_mappings(["=When"])
