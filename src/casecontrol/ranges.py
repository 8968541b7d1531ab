from __future__ import annotations

from typing import NamedTuple, Sequence

from .records import NestingCohortRecord


class CandidateRange(NamedTuple):
    """Inclusive index range [lower, upper] into the eligibility records."""

    lower: int
    upper: int

    @classmethod
    def full(cls, size: int) -> CandidateRange:
        if size <= 0:
            raise ValueError("Cannot sample controls from an empty eligibility store")
        return cls(0, size - 1)

    def is_empty(self) -> bool:
        return self.upper < self.lower

    def size(self) -> int:
        return max(0, self.upper - self.lower + 1)


def _is_sorted_by_birth(records: Sequence[NestingCohortRecord]) -> bool:
    return all(
        records[i].date_of_birth <= records[i + 1].date_of_birth
        for i in range(len(records) - 1)
    )


class AgeSortedView:
    """Binary-search access to records sorted ascending by date of birth."""

    def __init__(self, records: Sequence[NestingCohortRecord]):
        assert _is_sorted_by_birth(records), "records must be sorted by date_of_birth"
        self._records = records

    def lower_bound(self, key: int) -> int:
        """Smallest index whose date of birth is >= key (the last index if none is)."""
        lo = 0
        hi = len(self._records) - 1
        while lo < hi:
            mid = (lo + hi) // 2
            if self._records[mid].date_of_birth < key:
                lo = mid + 1
            else:
                hi = mid
        return lo

    def upper_bound(self, start: int, key: int) -> int:
        """Largest index at or after `start` whose date of birth is <= key."""
        lo = start
        hi = len(self._records) - 1
        while lo < hi:
            # Ceiling midpoint, otherwise lo == mid never moves.
            mid = (lo + hi + 1) // 2
            if self._records[mid].date_of_birth > key:
                hi = mid - 1
            else:
                lo = mid
        return lo

    def caliper_range(self, date_of_birth: int, caliper_days: int) -> CandidateRange:
        if not self._records:
            return CandidateRange(0, -1)
        lower = self.lower_bound(date_of_birth - caliper_days)
        upper = self.upper_bound(lower, date_of_birth + caliper_days)
        # The searches clamp to a real index; reject when no record falls in the window.
        if not (
            date_of_birth - caliper_days
            <= self._records[lower].date_of_birth
            <= date_of_birth + caliper_days
        ):
            return CandidateRange(lower, lower - 1)
        return CandidateRange(lower, upper)
