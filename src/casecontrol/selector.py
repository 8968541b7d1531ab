from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional

import numpy as np
import polars as pl

from .matching import MatchPredicate
from .ranges import AgeSortedView, CandidateRange
from .records import CaseData, NestingCohortRecord
from .result import ResultSink
from .sampling import DEFAULT_MAX_PROBE_ITERATIONS, ControlSearch
from .settings import ControlSelectionSettings
from .store import EligibilityStore

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]

PROGRESS_EVERY = 100


def _log_progress(done: int, total: int) -> None:
    logger.info("%d of %d cases processed", done, total)


class ControlSelector:
    """
    Nested case-control sampling over an eligibility store.

    Persons in the case index are processed in ascending person id. Every
    qualifying (person, index date) gets the next stratum id, a case row, and up
    to `controls_per_case` control rows. All randomness comes from `rng`, so a
    fixed seed and input reproduce the same table.
    """

    def __init__(
        self,
        store: EligibilityStore,
        *,
        rng: np.random.Generator | None = None,
        seed: int | None = None,
        max_probe_iterations: int = DEFAULT_MAX_PROBE_ITERATIONS,
        progress: Optional[ProgressCallback] = None,
    ):
        if rng is not None and seed is not None:
            raise ValueError("Pass either rng or seed, not both")
        if max_probe_iterations < 0:
            raise ValueError("max_probe_iterations must be >= 0")
        self.store = store
        self.settings = store.settings
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self.max_probe_iterations = max_probe_iterations
        self.progress = progress or _log_progress
        self.predicate = MatchPredicate(self.settings)
        self.result = ResultSink()
        self.stratum_id = 0
        self._done = False

        self._age_view: AgeSortedView | None = None
        self._full_range: CandidateRange | None = None
        if self.settings.match_on_age:
            self._age_view = AgeSortedView(store.records)

    def candidate_range(self, case: CaseData) -> CandidateRange:
        if self._age_view is not None:
            return self._age_view.caliper_range(
                case.date_of_birth, self.settings.age_caliper_days
            )
        if self._full_range is None:
            self._full_range = CandidateRange.full(len(self.store))
        return self._full_range

    def find_controls(
        self, person_id: int, case: CaseData, index_date: int, stratum_id: int
    ) -> int:
        search = ControlSearch(
            records=self.store.records,
            predicate=self.predicate,
            rng=self.rng,
            candidate_range=self.candidate_range(case),
            case_person_id=person_id,
            case=case,
            index_date=index_date,
            quota=self.settings.controls_per_case,
            max_probe_iterations=self.max_probe_iterations,
        )
        controls = search.run()
        for control_id, date in controls:
            self.result.add(control_id, date, False, stratum_id)
        return len(controls)

    def process_case(self, person_id: int, case: CaseData) -> None:
        case.index_dates.sort()
        for index_date in case.index_dates:
            if index_date.washed_out:
                continue
            self.stratum_id += 1
            self.result.add(person_id, index_date.date, True, self.stratum_id)
            self.find_controls(person_id, case, index_date.date, self.stratum_id)
            if self.settings.first_outcome_only:
                break

    def select_controls(self) -> pl.DataFrame:
        if self._done:
            return self.result.to_polars()
        self._done = True

        total = len(self.store.cases)
        if total == 0:
            return self.result.to_polars()

        logger.info("Finding controls per case")
        for done, person_id in enumerate(sorted(self.store.cases), start=1):
            self.process_case(person_id, self.store.cases[person_id])
            if done % PROGRESS_EVERY == 0 or done == total:
                self.progress(done, total)

        logger.info(
            "Selected %d rows across %d strata", len(self.result), self.stratum_id
        )
        return self.result.to_polars()


def select_controls(
    records: Iterable[NestingCohortRecord],
    settings: ControlSelectionSettings,
    *,
    rng: np.random.Generator | None = None,
    seed: int | None = None,
    max_probe_iterations: int = DEFAULT_MAX_PROBE_ITERATIONS,
    progress: Optional[ProgressCallback] = None,
) -> pl.DataFrame:
    """Build the eligibility store from `records` and run nested case-control sampling."""
    store = EligibilityStore.build(records, settings)
    selector = ControlSelector(
        store,
        rng=rng,
        seed=seed,
        max_probe_iterations=max_probe_iterations,
        progress=progress,
    )
    return selector.select_controls()
