from .matching import MatchPredicate, nearest_visit_date
from .ranges import AgeSortedView, CandidateRange
from .records import CaseData, IndexDate, NestingCohortRecord
from .result import CASE_CONTROL_SCHEMA, ResultSink, summarize_strata
from .sampling import DEFAULT_MAX_PROBE_ITERATIONS, ControlSearch, SamplingPhase
from .selector import ControlSelector, select_controls
from .settings import ControlSelectionSettings
from .source import NestingCohortFrames, fetch_nesting_cohort_frames, iter_nesting_cohort_records
from .store import EligibilityStore

__all__ = [
    "MatchPredicate",
    "nearest_visit_date",
    "AgeSortedView",
    "CandidateRange",
    "CaseData",
    "IndexDate",
    "NestingCohortRecord",
    "CASE_CONTROL_SCHEMA",
    "ResultSink",
    "summarize_strata",
    "DEFAULT_MAX_PROBE_ITERATIONS",
    "ControlSearch",
    "SamplingPhase",
    "ControlSelector",
    "select_controls",
    "ControlSelectionSettings",
    "NestingCohortFrames",
    "fetch_nesting_cohort_frames",
    "iter_nesting_cohort_records",
    "EligibilityStore",
]
