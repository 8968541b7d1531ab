import argparse
import logging
import sys
from pathlib import Path

import ibis
import polars as pl
from pydantic import ValidationError

from .config import AnyProfile, resolve_profile
from .result import summarize_strata
from .selector import ControlSelector
from .source import fetch_nesting_cohort_frames
from .store import EligibilityStore

logger = logging.getLogger(__name__)


def get_connection(cfg: AnyProfile) -> ibis.BaseBackend:
    if not hasattr(ibis, cfg.backend):
        raise ValueError(f"Backend '{cfg.backend}' not recognized.")
    entrypoint = getattr(ibis, cfg.backend)
    try:
        return entrypoint.connect(**cfg.get_ibis_connection_params())
    except Exception as e:
        raise RuntimeError(f"Connection failed: {e}") from e


def _close(conn: ibis.BaseBackend) -> None:
    # Ibis backend objects don't always expose a uniform close() API.
    if hasattr(conn, "disconnect"):
        conn.disconnect()
    elif hasattr(conn, "close"):
        conn.close()


def write_table(df: pl.DataFrame, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix == ".csv":
        df.write_csv(path)
    elif path.suffix == ".parquet":
        df.write_parquet(path)
    else:
        raise ValueError(f"Unsupported output format: {path.suffix!r} (use .parquet or .csv)")


def run(cfg: AnyProfile) -> pl.DataFrame:
    conn = get_connection(cfg)
    try:
        settings = cfg.settings
        frames = fetch_nesting_cohort_frames(
            conn,
            nesting_cohort_table=cfg.nesting_cohort_table,
            case_table=cfg.case_table,
            visit_table=cfg.visit_table if settings.match_on_visit_date else None,
            database=cfg.database_schema,
        )
    finally:
        _close(conn)

    store = EligibilityStore.build(
        frames.records(include_visits=settings.match_on_visit_date), settings
    )
    selector = ControlSelector(
        store, seed=cfg.seed, max_probe_iterations=cfg.max_probe_iterations
    )
    return selector.select_controls()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Select matched controls for every case in a nesting cohort."
    )
    parser.add_argument("--config", default="profiles.yaml", help="Path to the profiles YAML file.")
    parser.add_argument("--profile", help="Profile to use (defaults to default_profile).")
    parser.add_argument("--database", help="Override the profile's database.")
    parser.add_argument("--database-schema", help="Schema holding the input tables.")
    parser.add_argument("--output", type=Path, help="Output path (.parquet or .csv).")
    parser.add_argument("--seed", type=int, help="Random seed.")
    parser.add_argument("--controls-per-case", type=int)
    parser.add_argument("--first-outcome-only", action=argparse.BooleanOptionalAction, default=None)
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    overrides = {
        "database": args.database,
        "database_schema": args.database_schema,
        "output": args.output,
        "seed": args.seed,
        "settings": {
            k: v
            for k, v in {
                "controls_per_case": args.controls_per_case,
                "first_outcome_only": args.first_outcome_only,
            }.items()
            if v is not None
        },
    }
    try:
        cfg = resolve_profile(args.config, args.profile, overrides)
    except (KeyError, RuntimeError, ValidationError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)  # noqa: T201
        return 1

    try:
        case_controls = run(cfg)
        write_table(case_controls, cfg.output)
    except Exception as e:
        logger.exception("Control selection failed")
        print(f"Fatal Error: {e}", file=sys.stderr)  # noqa: T201
        return 1

    summary = summarize_strata(case_controls)
    total_controls = int(summary["control_count"].sum()) if summary.height else 0
    print(  # noqa: T201
        f"Strata: {summary.height} | Controls: {total_controls} | Wrote: {cfg.output}"
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
