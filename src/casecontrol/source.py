from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional, Union, Tuple

import ibis
import polars as pl

from .records import NestingCohortRecord

logger = logging.getLogger(__name__)

Database = Union[str, Tuple[str, str]]

NESTING_COHORT_COLUMNS = (
    "nesting_cohort_id",
    "person_id",
    "gender_concept_id",
    "date_of_birth",
    "provider_id",
    "care_site_id",
    "start_date",
    "end_date",
    "observation_period_start_date",
)
NESTING_COHORT_DATE_COLUMNS = (
    "date_of_birth",
    "start_date",
    "end_date",
    "observation_period_start_date",
)
REQUIRED_NESTING_COHORT_COLUMNS = (
    "nesting_cohort_id",
    "person_id",
    "gender_concept_id",
    *NESTING_COHORT_DATE_COLUMNS,
)
CASE_COLUMNS = ("nesting_cohort_id", "index_date")
VISIT_COLUMNS = ("nesting_cohort_id", "visit_start_date")


def _require_columns(frame: pl.DataFrame, columns: Iterable[str], label: str) -> None:
    missing = [c for c in columns if c not in frame.columns]
    if missing:
        raise ValueError(f"{label} table is missing required columns: {missing}")


def _day_number_expr(name: str, dtype: pl.DataType) -> pl.Expr:
    col = pl.col(name)
    if dtype == pl.Date:
        return col.cast(pl.Int32).cast(pl.Int64)
    if isinstance(dtype, pl.Datetime):
        return col.dt.date().cast(pl.Int32).cast(pl.Int64)
    if dtype == pl.Null or dtype.is_integer():
        return col.cast(pl.Int64)
    raise ValueError(f"Cannot convert column {name!r} of type {dtype} to day numbers")


def as_day_numbers(frame: pl.DataFrame, columns: Iterable[str]) -> pl.DataFrame:
    """Cast date-like columns to integer days since 1970-01-01."""
    return frame.with_columns(
        [_day_number_expr(name, frame.schema[name]).alias(name) for name in columns]
    )


def _optional_int(value) -> Optional[int]:
    return None if value is None else int(value)


def iter_nesting_cohort_records(
    nesting_cohorts: pl.DataFrame,
    cases: pl.DataFrame,
    visits: pl.DataFrame | None = None,
    *,
    include_visits: bool = False,
) -> Iterator[NestingCohortRecord]:
    """
    Lazily yield one record per nesting-cohort entry, in ascending nesting_cohort_id.

    Outcome dates from `cases` and visit dates from `visits` are attached to the
    entry they reference. Visits are only read when `include_visits` is set.
    """
    _require_columns(nesting_cohorts, NESTING_COHORT_COLUMNS, "Nesting cohort")
    _require_columns(cases, CASE_COLUMNS, "Case")

    cohorts = as_day_numbers(
        nesting_cohorts.select(NESTING_COHORT_COLUMNS), NESTING_COHORT_DATE_COLUMNS
    ).with_columns(pl.col("nesting_cohort_id").cast(pl.Int64))
    complete = cohorts.drop_nulls(subset=list(REQUIRED_NESTING_COHORT_COLUMNS))
    if complete.height < cohorts.height:
        logger.debug(
            "Dropped %d nesting cohort entries with missing ids, gender or dates",
            cohorts.height - complete.height,
        )
    cohorts = complete
    case_dates = (
        as_day_numbers(cases.select(CASE_COLUMNS), ("index_date",))
        .drop_nulls()
        .with_columns(pl.col("nesting_cohort_id").cast(pl.Int64))
        .group_by("nesting_cohort_id")
        .agg(pl.col("index_date").sort().alias("index_dates"))
    )
    frame = cohorts.join(case_dates, on="nesting_cohort_id", how="left")

    if include_visits:
        if visits is None:
            raise ValueError("Visit matching requires a visit table")
        _require_columns(visits, VISIT_COLUMNS, "Visit")
        visit_dates = (
            as_day_numbers(visits.select(VISIT_COLUMNS), ("visit_start_date",))
            .drop_nulls()
            .with_columns(pl.col("nesting_cohort_id").cast(pl.Int64))
            .group_by("nesting_cohort_id")
            .agg(pl.col("visit_start_date").unique().sort().alias("visit_dates"))
        )
        frame = frame.join(visit_dates, on="nesting_cohort_id", how="left")

    # Join output order is not guaranteed across polars versions.
    frame = frame.sort("nesting_cohort_id")
    logger.debug("Reading %d nesting cohort entries", frame.height)

    for row in frame.iter_rows(named=True):
        visit_dates = row.get("visit_dates") or ()
        yield NestingCohortRecord(
            person_id=int(row["person_id"]),
            gender_concept_id=int(row["gender_concept_id"]),
            date_of_birth=int(row["date_of_birth"]),
            provider_id=_optional_int(row["provider_id"]),
            care_site_id=_optional_int(row["care_site_id"]),
            start_date=int(row["start_date"]),
            end_date=int(row["end_date"]),
            observation_period_start_date=int(row["observation_period_start_date"]),
            index_dates=tuple(int(d) for d in row["index_dates"] or ()),
            visit_dates=tuple(int(d) for d in visit_dates),
        )


@dataclass(frozen=True)
class NestingCohortFrames:
    """The three input tables of a control selection run, materialised as polars frames."""

    nesting_cohorts: pl.DataFrame
    cases: pl.DataFrame
    visits: Optional[pl.DataFrame] = None

    def records(self, *, include_visits: bool = False) -> Iterator[NestingCohortRecord]:
        return iter_nesting_cohort_records(
            self.nesting_cohorts,
            self.cases,
            self.visits,
            include_visits=include_visits,
        )


def fetch_nesting_cohort_frames(
    conn: ibis.BaseBackend,
    *,
    nesting_cohort_table: str,
    case_table: str,
    visit_table: str | None = None,
    database: Database | None = None,
) -> NestingCohortFrames:
    """Pull the input tables from any ibis backend into polars."""

    def _fetch(name: str, columns: tuple[str, ...]) -> pl.DataFrame:
        table = conn.table(name, database=database)
        return table.select(*columns).to_polars()

    nesting_cohorts = _fetch(nesting_cohort_table, NESTING_COHORT_COLUMNS)
    cases = _fetch(case_table, CASE_COLUMNS)
    visits = _fetch(visit_table, VISIT_COLUMNS) if visit_table else None
    logger.info(
        "Fetched %d nesting cohort entries and %d outcome dates",
        nesting_cohorts.height,
        cases.height,
    )
    return NestingCohortFrames(nesting_cohorts=nesting_cohorts, cases=cases, visits=visits)
