from __future__ import annotations

import logging
import warnings
from typing import Iterable

from .records import CaseData, IndexDate, NestingCohortRecord
from .settings import ControlSelectionSettings

logger = logging.getLogger(__name__)


def _has_required_attributes(
    record: NestingCohortRecord, settings: ControlSelectionSettings
) -> bool:
    if settings.match_on_provider and record.provider_id is None:
        return False
    if settings.match_on_care_site and record.care_site_id is None:
        return False
    return True


def _is_washed_out(
    record: NestingCohortRecord, date: int, settings: ControlSelectionSettings
) -> bool:
    earliest = max(
        record.observation_period_start_date + settings.washout_period,
        record.date_of_birth + settings.min_age_days,
        record.start_date,
    )
    return date < earliest


class EligibilityStore:
    """
    In-memory eligibility records plus the case index built from them.

    `records` holds every usable nesting-cohort entry; when age matching is
    enabled it is sorted ascending by date of birth. `cases` maps person id to
    that person's case snapshot and candidate index dates.
    """

    def __init__(
        self,
        records: list[NestingCohortRecord],
        cases: dict[int, CaseData],
        settings: ControlSelectionSettings,
    ):
        self.records = records
        self.cases = cases
        self.settings = settings

    @classmethod
    def build(
        cls,
        source: Iterable[NestingCohortRecord],
        settings: ControlSelectionSettings,
    ) -> EligibilityStore:
        if settings.match_on_visit_date:
            logger.info("Loading visit data into memory")

        records: list[NestingCohortRecord] = []
        cases: dict[int, CaseData] = {}
        excluded = 0
        for record in source:
            if not _has_required_attributes(record, settings):
                excluded += 1
                continue
            records.append(record)
            case = cases.get(record.person_id)
            if case is None:
                case = CaseData.from_record(record)
                cases[record.person_id] = case
            last_eligible = min(record.date_of_birth + settings.max_age_days, record.end_date)
            for date in record.index_dates:
                if date <= last_eligible:
                    case.index_dates.append(
                        IndexDate(date=date, washed_out=_is_washed_out(record, date, settings))
                    )

        if excluded:
            logger.debug("Excluded %d entries lacking provider or care site", excluded)

        if settings.match_on_age:
            records.sort(key=lambda r: r.date_of_birth)

        if settings.match_on_visit_date and records and not any(r.visit_dates for r in records):
            message = (
                "Visit date matching is enabled but no visit dates were loaded; "
                "no controls can be matched"
            )
            logger.warning(message)
            warnings.warn(message, RuntimeWarning, stacklevel=2)

        logger.info(
            "Loaded %d nesting cohort entries for %d persons", len(records), len(cases)
        )
        return cls(records, cases, settings)

    def __len__(self) -> int:
        return len(self.records)

    def case_count(self) -> int:
        return sum(
            1 for case in self.cases.values() if any(not d.washed_out for d in case.index_dates)
        )
