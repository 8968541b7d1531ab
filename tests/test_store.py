from __future__ import annotations

import warnings

import pytest

from casecontrol.records import IndexDate, NestingCohortRecord
from casecontrol.settings import ControlSelectionSettings
from casecontrol.store import EligibilityStore


def _record(person_id: int, **kwargs) -> NestingCohortRecord:
    base = dict(
        person_id=person_id,
        gender_concept_id=8507,
        date_of_birth=0,
        provider_id=1,
        care_site_id=1,
        start_date=10_000,
        end_date=12_000,
        observation_period_start_date=9_000,
    )
    base.update(kwargs)
    return NestingCohortRecord(**base)


def _settings(**kwargs) -> ControlSelectionSettings:
    base = dict(washout_period=0, match_on_age=False, match_on_gender=False)
    base.update(kwargs)
    return ControlSelectionSettings(**base)


def test_excludes_entries_missing_required_provider_or_care_site():
    records = [
        _record(1, provider_id=None, index_dates=(10_500,)),
        _record(2, care_site_id=None),
        _record(3),
    ]
    store = EligibilityStore.build(records, _settings(match_on_provider=True))
    assert [r.person_id for r in store.records] == [2, 3]
    assert set(store.cases) == {2, 3}

    store = EligibilityStore.build(
        records, _settings(match_on_provider=True, match_on_care_site=True)
    )
    assert [r.person_id for r in store.records] == [3]

    store = EligibilityStore.build(records, _settings())
    assert len(store) == 3
    assert set(store.cases) == {1, 2, 3}


def test_case_snapshot_comes_from_first_entry_and_dates_are_unioned():
    records = [
        _record(1, provider_id=7, start_date=10_000, end_date=10_400, index_dates=(10_100,)),
        _record(1, provider_id=8, start_date=11_000, end_date=12_000, index_dates=(11_500, 11_200)),
    ]
    store = EligibilityStore.build(records, _settings())
    case = store.cases[1]
    assert case.provider_id == 7
    assert case.start_date == 10_000
    assert sorted(d.date for d in case.index_dates) == [10_100, 11_200, 11_500]
    assert len(store) == 2


def test_drops_index_dates_after_end_date_or_max_age():
    records = [
        _record(1, end_date=11_000, index_dates=(10_500, 11_000, 11_001)),
        _record(2, date_of_birth=0, index_dates=(10_500, 10_801)),
    ]
    store = EligibilityStore.build(records, _settings(max_age_days=10_800))
    assert [d.date for d in store.cases[1].index_dates] == [10_500]
    assert [d.date for d in store.cases[2].index_dates] == [10_500]

    store = EligibilityStore.build(records, _settings())
    assert [d.date for d in store.cases[1].index_dates] == [10_500, 11_000]
    assert [d.date for d in store.cases[2].index_dates] == [10_500, 10_801]


def test_washed_out_flags():
    settings = _settings(washout_period=365, min_age_days=10_300)
    records = [
        # Observation starts 9_000: usable from 9_365, but cohort start is 10_000.
        _record(1, date_of_birth=-1_000, index_dates=(9_999, 10_000)),
        # Late observation start pushes the usable date to 10_665.
        _record(
            2,
            date_of_birth=-1_000,
            observation_period_start_date=10_300,
            index_dates=(10_664, 10_665),
        ),
        # Young person: usable from date_of_birth + min_age_days.
        _record(3, date_of_birth=200, index_dates=(10_499, 10_500)),
    ]
    store = EligibilityStore.build(records, settings)
    # 9_999 is before start_date; it is kept as a washed-out date.
    assert store.cases[1].index_dates == [
        IndexDate(9_999, washed_out=True),
        IndexDate(10_000, washed_out=False),
    ]
    assert store.cases[2].index_dates == [
        IndexDate(10_664, washed_out=True),
        IndexDate(10_665, washed_out=False),
    ]
    assert store.cases[3].index_dates == [
        IndexDate(10_499, washed_out=True),
        IndexDate(10_500, washed_out=False),
    ]
    assert store.case_count() == 3


def test_sorts_by_date_of_birth_when_matching_on_age():
    records = [
        _record(1, date_of_birth=300),
        _record(2, date_of_birth=100),
        _record(3, date_of_birth=300),
        _record(4, date_of_birth=200),
    ]
    store = EligibilityStore.build(records, _settings(match_on_age=True))
    assert [r.person_id for r in store.records] == [2, 4, 1, 3]

    store = EligibilityStore.build(records, _settings(match_on_age=False))
    assert [r.person_id for r in store.records] == [1, 2, 3, 4]


def test_warns_when_visit_matching_has_no_visits():
    with pytest.warns(RuntimeWarning, match="no visit dates"):
        EligibilityStore.build([_record(1), _record(2)], _settings(match_on_visit_date=True))


def test_no_warning_when_visits_present():
    records = [_record(1, visit_dates=(10_500,)), _record(2)]
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        EligibilityStore.build(records, _settings(match_on_visit_date=True))


def test_empty_source():
    store = EligibilityStore.build([], _settings())
    assert len(store) == 0
    assert store.cases == {}
    assert store.case_count() == 0
