#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
for p in (REPO_ROOT, REPO_ROOT / "src"):
    if str(p) not in sys.path:
        sys.path.insert(0, str(p))

import ibis  # noqa: E402

from casecontrol.testing import generate_synthetic_nesting_cohort  # noqa: E402


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate a synthetic nesting cohort DuckDB.")
    parser.add_argument("--out-db", required=True, help="Path to write the DuckDB database file.")
    parser.add_argument("--schema", default=None, help="DuckDB schema to write tables into.")
    parser.add_argument("--persons", type=int, default=10_000)
    parser.add_argument("--outcome-rate", type=float, default=0.05)
    parser.add_argument("--seed", type=int, default=42)
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    out_db = Path(args.out_db)
    out_db.parent.mkdir(parents=True, exist_ok=True)

    builder = generate_synthetic_nesting_cohort(
        args.persons, outcome_rate=args.outcome_rate, seed=args.seed
    )
    con = ibis.duckdb.connect(database=str(out_db))
    try:
        builder.materialize(con, database=args.schema)
    finally:
        con.disconnect()

    print(f"Wrote synthetic nesting cohort tables to: {out_db}")
    print("\nSuggested `profiles.yaml` snippet:")
    print(f"""
synthetic:
  backend: duckdb
  database: "{out_db}"
  settings:
    controlsPerCase: 4
""".strip())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
