"""
List remaining global providers and active users with their provider counts.

Usage:
  python scripts/check_global_providers.py
  python scripts/check_global_providers.py --json
"""
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.append(str(ROOT_DIR))

from dotenv import load_dotenv

from chat_backend import create_app
from chat_backend.services.provider_report import (
    build_provider_report,
    format_provider_report,
)
from config.runtime import _resolve_db_uri


def _normalize_db_uri(db_value: str | None) -> str | None:
    if not db_value or not db_value.strip():
        return None
    return _resolve_db_uri(db_value, default_uri="")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Report global providers and active users."
    )
    parser.add_argument(
        "--config",
        default="default",
        help="Config name: development|production|default",
    )
    parser.add_argument("--db", help="Database URI override.")
    parser.add_argument("--json", action="store_true", help="Print JSON instead of text.")
    args = parser.parse_args(argv)

    app = create_app(
        args.config,
        db_uri_override=_normalize_db_uri(args.db),
        create_schema=False,
    )
    with app.app_context():
        report = build_provider_report()

    if args.json:
        print(json.dumps(report, indent=2))
    else:
        print(format_provider_report(report))
    return 0


if __name__ == "__main__":
    load_dotenv()
    sys.exit(main())
