from __future__ import annotations

from datetime import date, timedelta

import numpy as np

from .builder import FEMALE, MALE, NestingCohortBuilder

EPOCH = date(1970, 1, 1)


def _day(n: int) -> date:
    return EPOCH + timedelta(days=int(n))


def generate_synthetic_nesting_cohort(
    n_persons: int = 1000,
    *,
    outcome_rate: float = 0.05,
    visits_per_person: int = 4,
    n_providers: int = 10,
    n_care_sites: int = 5,
    seed: int | None = None,
    builder: NestingCohortBuilder | None = None,
) -> NestingCohortBuilder:
    """
    Random population with one nesting-cohort entry per person.

    Persons are born between 1930 and 2000, enter follow-up between 2005 and
    2015 with one to five years of prior observation, and stay for up to ten
    years. A fraction `outcome_rate` has a single outcome during follow-up.
    """
    if n_persons < 0:
        raise ValueError("n_persons must be >= 0")
    if not 0.0 <= outcome_rate <= 1.0:
        raise ValueError("outcome_rate must be within [0, 1]")

    rng = np.random.default_rng(seed)
    builder = builder or NestingCohortBuilder()
    birth_lo = (date(1930, 1, 1) - EPOCH).days
    birth_hi = (date(2000, 12, 31) - EPOCH).days
    entry_lo = (date(2005, 1, 1) - EPOCH).days
    entry_hi = (date(2015, 12, 31) - EPOCH).days

    for person_id in range(1, n_persons + 1):
        start = int(rng.integers(entry_lo, entry_hi, endpoint=True))
        end = start + int(rng.integers(30, 3650, endpoint=True))
        obs_start = start - int(rng.integers(365, 5 * 365, endpoint=True))
        entry_id = builder.add_entry(
            person_id=person_id,
            gender_concept_id=MALE if rng.random() < 0.5 else FEMALE,
            date_of_birth=_day(rng.integers(birth_lo, birth_hi, endpoint=True)),
            provider_id=int(rng.integers(1, n_providers, endpoint=True)),
            care_site_id=int(rng.integers(1, n_care_sites, endpoint=True)),
            start_date=_day(start),
            end_date=_day(end),
            observation_period_start_date=_day(obs_start),
        )
        if rng.random() < outcome_rate:
            builder.add_case(
                nesting_cohort_id=entry_id,
                index_date=_day(rng.integers(start, end, endpoint=True)),
            )
        for visit in sorted(rng.integers(obs_start, end, size=visits_per_person, endpoint=True)):
            builder.add_visit(nesting_cohort_id=entry_id, visit_start_date=_day(visit))

    return builder
