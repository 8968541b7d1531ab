from __future__ import annotations

from bisect import bisect_left
from typing import Optional

from .records import CaseData, NestingCohortRecord
from .settings import ControlSelectionSettings


class MatchPredicate:
    """
    Decide whether a candidate entry can serve as a control for a case on an index date.

    Calling the predicate returns None when the candidate does not match, and
    otherwise the date to report on the control row: the nearest visit date on
    or after the index date when visit-date matching is enabled, else the index
    date itself.
    """

    def __init__(self, settings: ControlSelectionSettings):
        self.settings = settings

    def __call__(
        self, candidate: NestingCohortRecord, case: CaseData, index_date: int
    ) -> Optional[int]:
        s = self.settings
        if (
            index_date < candidate.start_date
            or index_date > candidate.end_date
            or index_date < candidate.observation_period_start_date + s.washout_period
        ):
            return None

        if s.match_on_gender and candidate.gender_concept_id != case.gender_concept_id:
            return None
        if s.match_on_provider and candidate.provider_id != case.provider_id:
            return None
        if s.match_on_care_site and candidate.care_site_id != case.care_site_id:
            return None
        if (
            s.match_on_time_in_cohort
            and abs(candidate.start_date - case.start_date) > s.days_in_cohort_caliper
        ):
            return None

        if s.first_outcome_only:
            if any(d <= index_date for d in candidate.index_dates):
                return None
        elif index_date in candidate.index_dates:
            return None

        if s.match_on_visit_date:
            return nearest_visit_date(candidate.visit_dates, index_date, s.visit_date_caliper)
        return index_date


def nearest_visit_date(
    visit_dates: tuple[int, ...], index_date: int, caliper: int
) -> Optional[int]:
    """First visit on or after `index_date`, if it lies within `caliper` days."""
    pos = bisect_left(visit_dates, index_date)
    if pos == len(visit_dates):
        return None
    visit_date = visit_dates[pos]
    if visit_date - index_date <= caliper:
        return visit_date
    return None
