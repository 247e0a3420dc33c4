"""Tests for the condense_pull CLI script."""

import json
from pathlib import Path

from keigen.scripts.condense_pull import parse_args, run


def _write_table(tmp_path):
    path = tmp_path / "fight.json"
    path.write_text(json.dumps({
        "fightId": 4,
        "name": "Omega",
        "rows": [
            {"timestamp": 1000, "ability": "Magitek Ray", "actor": "Main Tank"},
            {"timestamp": 1800, "ability": "Magitek Ray", "actor": "Off Tank"},
        ],
    }), encoding="utf-8")
    return path


def test_parse_args_defaults():
    args = parse_args(["--input", "fight.json"])
    assert args.input == Path("fight.json")
    assert args.output is None
    assert args.window_ms is None
    assert args.margin_pct is None


def test_parse_args_overrides():
    args = parse_args([
        "--input", "fight.json",
        "--output", "out.json",
        "--window-ms", "1500",
        "--margin-pct", "2.5",
    ])
    assert args.output == Path("out.json")
    assert args.window_ms == 1500
    assert args.margin_pct == 2.5


def test_run_writes_output_file(tmp_path):
    out = tmp_path / "out.json"
    count = run(_write_table(tmp_path), out)
    assert count == 1
    result = json.loads(out.read_text(encoding="utf-8"))
    assert result["fightId"] == 4
    assert result["condensedSets"][0]["ability"] == "Magitek Ray"


def test_run_to_stdout_with_window(tmp_path, capsys):
    count = run(_write_table(tmp_path), window_ms=500)
    assert count == 2
    result = json.loads(capsys.readouterr().out)
    assert len(result["condensedSets"]) == 2
