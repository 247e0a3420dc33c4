"""Condense one pull's fight table JSON into grouped display sets."""

import argparse
import json
import logging
import sys
from pathlib import Path

from keigen.analysis.condense import generate_condensed_pull
from keigen.config import get_settings

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Condense a fight table (JSON) into grouped pull analysis",
    )
    parser.add_argument("--input", required=True, type=Path, help="Fight table JSON file")
    parser.add_argument(
        "--output", type=Path, default=None, help="Write result here (default: stdout)",
    )
    parser.add_argument(
        "--window-ms", type=int, default=None, help="Grouping window in milliseconds",
    )
    parser.add_argument(
        "--margin-pct", type=float, default=None,
        help="Mitigation shortfall tolerated before flagging (percentage points)",
    )
    return parser.parse_args(argv)


def run(
    input_path: Path,
    output_path: Path | None = None,
    window_ms: int | None = None,
    margin_pct: float | None = None,
) -> int:
    data = json.loads(input_path.read_text(encoding="utf-8"))
    pull = generate_condensed_pull(
        data,
        grouping_window_ms=window_ms,
        botched_margin_pct=margin_pct,
    )
    payload = pull.model_dump_json(by_alias=True, indent=2)
    if output_path is None:
        sys.stdout.write(payload + "\n")
    else:
        output_path.write_text(payload + "\n", encoding="utf-8")
        logger.info(
            "Wrote %d condensed sets to %s", len(pull.condensed_sets), output_path,
        )
    return len(pull.condensed_sets)


def main() -> None:
    args = parse_args()
    logging.basicConfig(level=get_settings().log_level)
    run(args.input, args.output, args.window_ms, args.margin_pct)


if __name__ == "__main__":
    main()
