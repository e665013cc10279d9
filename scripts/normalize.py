"""CLI entry-point for normalizing raw invoice query results."""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, List

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from invoices.normalize.coerce import NumberFormat
from invoices.normalize.errors import ExhaustedFallbacks
from invoices.normalize.map_to_schema import NormalizeConfig, NormalizeStage
from invoices.normalize.nodes import QueryPath

LOGGER = logging.getLogger("invoices.cli")


def parse_args(argv: List[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Normalize raw invoice query results into canonical records.")
    parser.add_argument("--in", dest="input_path", type=Path, required=True, help="JSON file or directory of JSON files.")
    parser.add_argument(
        "--hint",
        choices=[path.value for path in QueryPath],
        default=QueryPath.UNKNOWN.value,
        help="Query path that produced the results.",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("INVOICE_LOG_LEVEL", "WARNING"),
        help="Logging level (default from INVOICE_LOG_LEVEL).",
    )
    parser.add_argument("--decimal-separator", default=os.getenv("INVOICE_DECIMAL_SEPARATOR", "."))
    parser.add_argument("--thousands-separator", default=os.getenv("INVOICE_THOUSANDS_SEPARATOR", ","))
    parser.add_argument("--no-count-check", action="store_true", help="Ignore store-reported line item counts.")
    return parser.parse_args(argv)


def load_records(path: Path) -> List[Any]:
    """Read raw records from a file or every ``*.json`` file of a directory."""

    files = sorted(p for p in path.glob("*.json") if p.is_file()) if path.is_dir() else [path]
    records: List[Any] = []
    for file in files:
        payload = json.loads(file.read_text(encoding="utf-8"))
        if isinstance(payload, dict) and isinstance(payload.get("Documents"), list):
            records.extend(payload["Documents"])
        elif isinstance(payload, list):
            records.extend(payload)
        else:
            records.append(payload)
    return records


def main(argv: List[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(levelname)s %(name)s: %(message)s")

    config = NormalizeConfig(
        query_path=QueryPath(args.hint),
        number_format=NumberFormat(args.decimal_separator, args.thousands_separator),
        enforce_count_hint=not args.no_count_check,
    )
    raw_records = load_records(args.input_path)
    LOGGER.info("Loaded %d raw records from %s", len(raw_records), args.input_path)
    stage = NormalizeStage(config)
    try:
        records = stage.run(raw_records)
    except ExhaustedFallbacks as exc:
        print(exc.report(), file=sys.stderr)
        return 1
    for record in records:
        print(record.model_dump_json(indent=2))
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
