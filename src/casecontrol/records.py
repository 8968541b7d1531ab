from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class NestingCohortRecord:
    """One nesting-cohort entry of a person. Dates are day numbers since 1970-01-01."""

    person_id: int
    gender_concept_id: int
    date_of_birth: int
    provider_id: Optional[int]
    care_site_id: Optional[int]
    start_date: int
    end_date: int
    observation_period_start_date: int
    index_dates: tuple[int, ...] = ()
    visit_dates: tuple[int, ...] = ()


@dataclass(frozen=True, order=True)
class IndexDate:
    date: int
    washed_out: bool = False


@dataclass
class CaseData:
    """Demographic snapshot of a person plus every outcome date they can be a case on."""

    gender_concept_id: int
    date_of_birth: int
    provider_id: Optional[int]
    care_site_id: Optional[int]
    start_date: int
    index_dates: list[IndexDate] = field(default_factory=list)

    @classmethod
    def from_record(cls, record: NestingCohortRecord) -> CaseData:
        return cls(
            gender_concept_id=record.gender_concept_id,
            date_of_birth=record.date_of_birth,
            provider_id=record.provider_id,
            care_site_id=record.care_site_id,
            start_date=record.start_date,
        )
