from __future__ import annotations

import polars as pl

CASE_CONTROL_SCHEMA = {
    "person_id": pl.Int64,
    "index_date": pl.Date,
    "is_case": pl.Boolean,
    "stratum_id": pl.Int64,
}


class ResultSink:
    """Accumulates case and control rows in emission order."""

    def __init__(self):
        self._person_ids: list[int] = []
        self._dates: list[int] = []
        self._is_case: list[bool] = []
        self._stratum_ids: list[int] = []

    def add(self, person_id: int, date: int, is_case: bool, stratum_id: int) -> None:
        self._person_ids.append(person_id)
        self._dates.append(date)
        self._is_case.append(is_case)
        self._stratum_ids.append(stratum_id)

    def __len__(self) -> int:
        return len(self._person_ids)

    def to_polars(self) -> pl.DataFrame:
        df = pl.DataFrame(
            {
                "person_id": self._person_ids,
                "index_date": self._dates,
                "is_case": self._is_case,
                "stratum_id": self._stratum_ids,
            },
            schema={
                "person_id": pl.Int64,
                "index_date": pl.Int32,
                "is_case": pl.Boolean,
                "stratum_id": pl.Int64,
            },
        )
        return df.with_columns(pl.col("index_date").cast(pl.Date))


def summarize_strata(case_controls: pl.DataFrame) -> pl.DataFrame:
    """One row per stratum with the case person, its index date and the number of controls."""
    if case_controls.is_empty():
        return pl.DataFrame(
            schema={
                "stratum_id": pl.Int64,
                "case_person_id": pl.Int64,
                "index_date": pl.Date,
                "control_count": pl.UInt32,
            }
        )
    cases = case_controls.filter(pl.col("is_case")).select(
        "stratum_id",
        pl.col("person_id").alias("case_person_id"),
        "index_date",
    )
    control_counts = (
        case_controls.filter(~pl.col("is_case"))
        .group_by("stratum_id")
        .agg(pl.len().alias("control_count"))
    )
    return (
        cases.join(control_counts, on="stratum_id", how="left")
        .with_columns(pl.col("control_count").fill_null(0).cast(pl.UInt32))
        .sort("stratum_id")
    )
