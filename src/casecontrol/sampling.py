from __future__ import annotations

import logging
from enum import Enum
from typing import Sequence

import numpy as np

from .matching import MatchPredicate
from .ranges import CandidateRange
from .records import CaseData, NestingCohortRecord

logger = logging.getLogger(__name__)

DEFAULT_MAX_PROBE_ITERATIONS = 1000


class SamplingPhase(Enum):
    PROBE = "probe"
    EXHAUSTIVE = "exhaustive"
    DONE = "done"


class ControlSearch:
    """
    Find up to `quota` distinct controls for one case on one index date.

    The search starts in the PROBE phase, drawing uniform random candidates from
    the range and keeping those that match, for at most `max_probe_iterations`
    draws. If the quota is still unmet it moves to the EXHAUSTIVE phase: every
    remaining matching candidate in the range is collected, and controls are
    drawn from that list without replacement. Selected controls are returned as
    (person_id, date) pairs in the order they were picked.
    """

    def __init__(
        self,
        *,
        records: Sequence[NestingCohortRecord],
        predicate: MatchPredicate,
        rng: np.random.Generator,
        candidate_range: CandidateRange,
        case_person_id: int,
        case: CaseData,
        index_date: int,
        quota: int,
        max_probe_iterations: int = DEFAULT_MAX_PROBE_ITERATIONS,
    ):
        self.records = records
        self.predicate = predicate
        self.rng = rng
        self.candidate_range = candidate_range
        self.case_person_id = case_person_id
        self.case = case
        self.index_date = index_date
        self.quota = quota
        self.max_probe_iterations = max_probe_iterations

        self.phase = SamplingPhase.PROBE
        self.probes = 0
        self.selected: list[tuple[int, int]] = []
        self._selected_ids: set[int] = set()

    def run(self) -> list[tuple[int, int]]:
        if self.candidate_range.is_empty():
            logger.debug(
                "No candidates in caliper range for person %s on %s",
                self.case_person_id,
                self.index_date,
            )
            self.phase = SamplingPhase.DONE
        while self.phase is not SamplingPhase.DONE:
            self.phase = self.step()
        return self.selected

    def step(self) -> SamplingPhase:
        if self.phase is SamplingPhase.PROBE:
            return self._probe()
        if self.phase is SamplingPhase.EXHAUSTIVE:
            return self._exhaustive()
        return SamplingPhase.DONE

    def quota_met(self) -> bool:
        return len(self.selected) >= self.quota

    def _is_available(self, person_id: int) -> bool:
        return person_id != self.case_person_id and person_id not in self._selected_ids

    def _accept(self, person_id: int, date: int) -> None:
        self._selected_ids.add(person_id)
        self.selected.append((person_id, date))

    def _probe(self) -> SamplingPhase:
        lower, upper = self.candidate_range
        while not self.quota_met() and self.probes < self.max_probe_iterations:
            self.probes += 1
            candidate = self.records[int(self.rng.integers(lower, upper, endpoint=True))]
            date = self.predicate(candidate, self.case, self.index_date)
            if date is not None and self._is_available(candidate.person_id):
                self._accept(candidate.person_id, date)
        if self.quota_met():
            return SamplingPhase.DONE
        logger.debug(
            "Probing found %d of %d controls for person %s after %d draws",
            len(self.selected),
            self.quota,
            self.case_person_id,
            self.probes,
        )
        return SamplingPhase.EXHAUSTIVE

    def _exhaustive(self) -> SamplingPhase:
        lower, upper = self.candidate_range
        pool: list[tuple[int, int]] = []
        seen: set[int] = set()
        for idx in range(lower, upper + 1):
            candidate = self.records[idx]
            # One pool slot per person: the first matching entry in range.
            if candidate.person_id in seen or not self._is_available(candidate.person_id):
                continue
            date = self.predicate(candidate, self.case, self.index_date)
            if date is not None:
                seen.add(candidate.person_id)
                pool.append((candidate.person_id, date))

        while not self.quota_met() and pool:
            self._accept(*pool.pop(int(self.rng.integers(len(pool)))))
        return SamplingPhase.DONE
