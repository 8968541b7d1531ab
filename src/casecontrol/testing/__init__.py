from .builder import FEMALE, MALE, TABLE_SCHEMAS, NestingCohortBuilder
from .synthetic import generate_synthetic_nesting_cohort

__all__ = [
    "FEMALE",
    "MALE",
    "TABLE_SCHEMAS",
    "NestingCohortBuilder",
    "generate_synthetic_nesting_cohort",
]
