from __future__ import annotations

import math

from pydantic import BaseModel, ConfigDict, Field, model_validator

DAYS_PER_YEAR = 365.25


class ControlSelectionSettings(BaseModel):
    """
    Matching and sampling options for nested case-control selection.

    Field aliases follow the camelCase argument names of the CaseControl R
    package, so settings exported from there validate unchanged. Python callers
    can use the snake_case names.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="forbid")

    first_outcome_only: bool = Field(default=False, alias="firstOutcomeOnly")
    washout_period: int = Field(default=180, ge=0, alias="washoutPeriod")
    controls_per_case: int = Field(default=2, alias="controlsPerCase")

    match_on_age: bool = Field(default=True, alias="matchOnAge")
    age_caliper: float = Field(default=2.0, ge=0, alias="ageCaliper")
    match_on_gender: bool = Field(default=True, alias="matchOnGender")
    match_on_provider: bool = Field(default=False, alias="matchOnProvider")
    match_on_care_site: bool = Field(default=False, alias="matchOnCareSite")
    match_on_visit_date: bool = Field(default=False, alias="matchOnVisitDate")
    visit_date_caliper: int = Field(default=30, ge=0, alias="visitDateCaliper")
    match_on_time_in_cohort: bool = Field(default=False, alias="matchOnTimeInCohort")
    days_in_cohort_caliper: int = Field(default=30, ge=0, alias="daysInCohortCaliper")

    min_age_days: int = Field(default=0, ge=0, alias="minAgeDays")
    max_age_days: int = Field(default=1_000_000, ge=0, alias="maxAgeDays")

    @model_validator(mode="after")
    def check_ranges(self) -> "ControlSelectionSettings":
        if self.controls_per_case <= 0:
            raise ValueError("controls_per_case must be > 0")
        if self.min_age_days > self.max_age_days:
            raise ValueError("min_age_days must be <= max_age_days")
        return self

    @property
    def age_caliper_days(self) -> int:
        return int(math.floor(self.age_caliper * DAYS_PER_YEAR))
