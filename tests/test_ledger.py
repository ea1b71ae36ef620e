from datetime import date, timedelta
from decimal import Decimal

import pytest

from rent_ledger.data_models import Contract, VpiReading
from rent_ledger.indexation import IndexValidationError
from rent_ledger.ledger import RentLedger

from .conftest import TODAY, make_period


@pytest.fixture
def history(ledger):
    ledger.create_rent_period(make_period("C1", date(2024, 1, 1), "800", reason="initial"))
    ledger.create_rent_period(make_period("C1", date(2025, 1, 1), "850", reason="increase"))
    ledger.create_rent_period(make_period("C1", date(2025, 9, 1), "900", status="planned", reason="index"))
    ledger.create_rent_period(make_period("C1", date(2025, 7, 1), "880", status="planned", reason="stepped"))
    return ledger


def test_unknown_contract_has_no_rent(ledger):
    assert ledger.get_current_rent("missing") is None
    assert ledger.get_rent_periods("missing") == []
    assert ledger.get_latest_vpi_values("missing") is None


def test_contract_without_periods_falls_back_to_contract_fields(ledger):
    rent = ledger.get_current_rent("C1")
    assert rent.reason == "migration"
    assert rent.rent_period_id is None
    assert rent.is_legacy
    assert rent.cold_rent == Decimal("800")
    assert rent.utilities == Decimal("150")
    assert rent.total_rent == Decimal("950")
    assert rent.effective_date == date(2020, 1, 1)


def test_legacy_fallback_uses_first_available_rent_field(repository, ledger):
    repository.add_contract(Contract(id="C2", cold_rent=Decimal("640"), base_rent=Decimal("600")))
    rent = ledger.get_current_rent("C2")
    assert rent.cold_rent == Decimal("640")
    assert rent.utilities == Decimal("0")
    assert rent.reason == "migration"


def test_current_rent_resolves_by_date(history):
    assert history.get_current_rent("C1").cold_rent == Decimal("850")
    assert history.get_current_rent("C1", date(2024, 6, 1)).cold_rent == Decimal("800")
    assert history.get_current_rent("C1", "2025-01-01").cold_rent == Decimal("850")


def test_planned_periods_are_never_authoritative(history):
    rent = history.get_current_rent("C1", date(2025, 10, 1))
    assert rent.cold_rent == Decimal("850")
    assert rent.period_status == "active"


def test_no_rent_before_first_period_in_force(history):
    assert history.get_current_rent("C1", date(2023, 12, 31)) is None


def test_synced_rent_does_not_leak_into_earlier_dates(repository, ledger):
    ledger.create_rent_period(make_period("C1", date(2025, 6, 1), "900", sync_to_contract=True))
    assert repository.get_contract("C1").cold_rent == Decimal("900")
    assert ledger.get_current_rent("C1", date(2025, 5, 1)) is None
    assert ledger.get_current_rent("C1").cold_rent == Decimal("900")


def test_only_planned_periods_keep_contract_fields(ledger):
    ledger.create_rent_period(make_period("C1", date(2025, 9, 1), "900", status="planned"))
    rent = ledger.get_current_rent("C1", date(2025, 5, 1))
    assert rent.is_legacy
    assert rent.cold_rent == Decimal("800")


def test_current_rent_never_from_the_future(history):
    day = date(2023, 6, 1)
    while day < date(2026, 6, 1):
        rent = history.get_current_rent("C1", day)
        if rent is not None and not rent.is_legacy:
            assert rent.effective_date <= day
        day += timedelta(days=11)


def test_same_day_tie_goes_to_latest_created(ledger):
    ledger.create_rent_period(make_period("C1", date(2025, 3, 1), "820"))
    corrected = ledger.create_rent_period(make_period("C1", date(2025, 3, 1), "825"))
    rent = ledger.get_current_rent("C1")
    assert rent.rent_period_id == corrected.id
    assert rent.cold_rent == Decimal("825")


def test_history_is_newest_first_and_planned_soonest_first(history):
    effective = [p.effective_date for p in history.get_rent_periods("C1")]
    assert effective == [date(2025, 9, 1), date(2025, 7, 1), date(2025, 1, 1), date(2024, 1, 1)]
    planned = [p.effective_date for p in history.get_planned_periods("C1")]
    assert planned == [date(2025, 7, 1), date(2025, 9, 1)]


def test_latest_vpi_values_chain_to_next_baseline(ledger):
    assert ledger.get_latest_vpi_values("C1") is None
    ledger.create_rent_period(
        make_period(
            "C1",
            date(2023, 5, 1),
            "780",
            reason="index",
            vpi_old_month=date(2021, 3, 1),
            vpi_old_value=Decimal("100.0"),
            vpi_new_month=date(2023, 2, 1),
            vpi_new_value=Decimal("114.2"),
        )
    )
    ledger.create_rent_period(
        make_period(
            "C1",
            date(2024, 6, 1),
            "800",
            reason="index",
            vpi_old_month=date(2023, 2, 1),
            vpi_old_value=Decimal("114.2"),
            vpi_new_month=date(2024, 3, 1),
            vpi_new_value=Decimal("117.4"),
        )
    )
    ledger.create_rent_period(make_period("C1", date(2025, 1, 1), "810", reason="manual"))
    assert ledger.get_latest_vpi_values("C1") == VpiReading(month=date(2024, 3, 1), value=Decimal("117.4"))


def test_last_change_date(ledger):
    ledger.create_rent_period(make_period("C1", date(2023, 1, 1), "780", reason="initial"))
    assert ledger.get_last_change_date("C1") is None
    ledger.create_rent_period(make_period("C1", date(2024, 8, 1), "800", reason="increase"))
    assert ledger.get_last_change_date("C1") == date(2024, 8, 1)
    assert ledger.get_last_change_date("C1", date(2024, 7, 31)) is None
    ledger.create_rent_period(make_period("C1", date(2025, 8, 1), "830", status="planned", reason="stepped"))
    assert ledger.get_last_change_date("C1") == date(2025, 8, 1)


def test_first_recorded_period_can_be_a_change(ledger):
    ledger.create_rent_period(make_period("C1", date(2025, 3, 1), "820", reason="index"))
    assert ledger.get_last_change_date("C1") == date(2025, 3, 1)


def test_baseline_periods_are_not_changes(ledger):
    ledger.create_rent_period(make_period("C1", date(2023, 1, 1), "780", reason="initial"))
    ledger.create_rent_period(make_period("C1", date(2024, 1, 1), "790", reason="import"))
    assert ledger.get_last_change_date("C1") is None


def test_planned_period_never_touches_contract_cache(repository, ledger):
    ledger.create_rent_period(
        make_period("C1", date(2025, 9, 1), "999", status="planned", sync_to_contract=True)
    )
    contract = repository.get_contract("C1")
    assert contract.cold_rent == Decimal("800")
    assert contract.total_rent == Decimal("950")


def test_active_period_effective_today_syncs_contract_cache(repository, ledger):
    ledger.create_rent_period(
        make_period("C1", TODAY, "870", utilities="160", status="active", sync_to_contract=True)
    )
    contract = repository.get_contract("C1")
    assert contract.cold_rent == Decimal("870")
    assert contract.monthly_rent == Decimal("870")
    assert contract.base_rent == Decimal("870")
    assert contract.total_rent == Decimal("1030")


def test_future_active_period_does_not_sync(repository, ledger):
    ledger.create_rent_period(
        make_period("C1", TODAY + timedelta(days=1), "870", status="active", sync_to_contract=True)
    )
    assert repository.get_contract("C1").cold_rent == Decimal("800")


def test_sync_is_opt_in(repository, ledger):
    ledger.create_rent_period(make_period("C1", date(2025, 1, 1), "870"))
    assert repository.get_contract("C1").cold_rent == Decimal("800")


@pytest.mark.parametrize(
    "overrides",
    [
        {"reason": "bonus"},
        {"status": "archived"},
        {"cold_rent": "-1"},
    ],
)
def test_invalid_periods_are_rejected(ledger, repository, overrides):
    kwargs = {"reason": "manual", "status": "active", "cold_rent": "800"}
    kwargs.update(overrides)
    cold = kwargs.pop("cold_rent")
    with pytest.raises(ValueError):
        ledger.create_rent_period(make_period("C1", date(2025, 1, 1), cold, **kwargs))
    assert repository.periods == []


def test_half_specified_vpi_is_rejected(ledger):
    with pytest.raises(ValueError):
        ledger.create_rent_period(make_period("C1", date(2025, 1, 1), "800", vpi_new_value=Decimal("117")))


def test_delete_planned_period(history):
    planned = history.get_planned_periods("C1")[0]
    assert history.delete_planned_period(planned.id) is True
    assert planned.id not in [p.id for p in history.get_rent_periods("C1")]


def test_delete_refuses_active_and_unknown_periods(history):
    active = [p for p in history.get_rent_periods("C1") if p.status == "active"][0]
    assert history.delete_planned_period(active.id) is False
    assert active.id in [p.id for p in history.get_rent_periods("C1")]
    assert history.delete_planned_period("nope") is False


def test_store_failures_propagate(repository, ledger):
    repository.fail_writes = True
    with pytest.raises(RuntimeError, match="disk full"):
        ledger.create_rent_period(make_period("C1", TODAY, "870", sync_to_contract=True))
    assert repository.get_contract("C1").cold_rent == Decimal("800")


def test_record_index_increase_plans_future_period(repository, ledger):
    ledger.create_rent_period(make_period("C1", date(2024, 5, 1), "800", reason="initial"))
    increase = ledger.record_index_increase(
        "C1",
        vpi_old=VpiReading(month=date(2024, 3, 1), value=Decimal("110.0")),
        vpi_new=VpiReading(month=date(2025, 3, 1), value=Decimal("115.5")),
    )
    period = increase.period
    assert period.effective_date == date(2025, 8, 1)
    assert period.status == "planned"
    assert period.reason == "index"
    assert period.cold_rent == Decimal("840.00")
    assert period.utilities == Decimal("150")
    assert increase.synced_to_contract is False
    assert increase.previous_rent.cold_rent == Decimal("800")
    assert increase.adjustment.delta == Decimal("40.00")
    assert repository.get_contract("C1").cold_rent == Decimal("800")
    assert ledger.get_current_rent("C1").cold_rent == Decimal("800")
    assert ledger.get_latest_vpi_values("C1") == VpiReading(month=date(2025, 3, 1), value=Decimal("115.5"))


def test_record_index_increase_respects_twelve_month_rule(ledger):
    ledger.create_rent_period(make_period("C1", date(2023, 1, 1), "780", reason="initial"))
    ledger.create_rent_period(make_period("C1", date(2025, 2, 15), "800", reason="increase"))
    increase = ledger.record_index_increase(
        "C1",
        vpi_old=VpiReading(month=date(2024, 12, 1), value=Decimal("120")),
        vpi_new=VpiReading(month=date(2025, 5, 1), value=Decimal("123")),
        possible_since=date(2025, 10, 1),
    )
    assert increase.period.effective_date == date(2026, 2, 15)


def test_record_index_increase_effective_today_is_active_and_synced(repository, ledger):
    increase = ledger.record_index_increase(
        "C1",
        vpi_old=VpiReading(month=date(2024, 3, 1), value=Decimal("110.0")),
        vpi_new=VpiReading(month=date(2025, 3, 1), value=Decimal("115.5")),
        effective_date=date(2025, 6, 1),
    )
    assert increase.period.status == "active"
    assert increase.synced_to_contract is True
    assert repository.get_contract("C1").cold_rent == Decimal("840.00")
    assert ledger.get_current_rent("C1").rent_period_id == increase.period.id


def test_record_index_increase_unknown_contract(ledger):
    with pytest.raises(LookupError):
        ledger.record_index_increase(
            "missing",
            vpi_old=VpiReading(month=date(2024, 3, 1), value=Decimal("110")),
            vpi_new=VpiReading(month=date(2025, 3, 1), value=Decimal("115")),
        )


def test_record_index_increase_rejects_decrease(repository, ledger):
    with pytest.raises(IndexValidationError):
        ledger.record_index_increase(
            "C1",
            vpi_old=VpiReading(month=date(2024, 3, 1), value=Decimal("115")),
            vpi_new=VpiReading(month=date(2025, 3, 1), value=Decimal("110")),
        )
    assert repository.periods == []


def test_record_index_increase_requires_months(repository, ledger):
    with pytest.raises(IndexValidationError):
        ledger.record_index_increase(
            "C1",
            vpi_old=VpiReading(month=None, value=Decimal("110")),
            vpi_new=VpiReading(month=date(2025, 3, 1), value=Decimal("115")),
        )
    assert repository.periods == []


def test_ledger_defaults_to_real_today(repository):
    ledger = RentLedger(repository)
    ledger.create_rent_period(make_period("C1", date.today() + timedelta(days=400), "990", status="planned"))
    assert ledger.get_current_rent("C1").is_legacy


def test_create_period_for_unknown_contract(repository, ledger):
    with pytest.raises(LookupError):
        ledger.create_rent_period(make_period("ghost", date(2025, 1, 1), "850"))
    assert repository.periods == []


def test_twelve_month_rule_after_first_index_increase(ledger):
    first = ledger.record_index_increase(
        "C1",
        vpi_old=VpiReading(month=date(2024, 3, 1), value=Decimal("110.0")),
        vpi_new=VpiReading(month=date(2025, 3, 1), value=Decimal("115.5")),
        effective_date=date(2025, 6, 1),
    )
    assert first.period.status == "active"
    second = ledger.record_index_increase(
        "C1",
        vpi_old=VpiReading(month=date(2025, 3, 1), value=Decimal("115.5")),
        vpi_new=VpiReading(month=date(2025, 5, 1), value=Decimal("117.0")),
    )
    assert second.period.effective_date == date(2026, 6, 1)


def test_twelve_month_rule_counts_planned_increase(ledger):
    planned = ledger.record_index_increase(
        "C1",
        vpi_old=VpiReading(month=date(2024, 3, 1), value=Decimal("110.0")),
        vpi_new=VpiReading(month=date(2025, 3, 1), value=Decimal("115.5")),
    )
    assert planned.period.status == "planned"
    assert planned.period.effective_date == date(2025, 8, 1)
    following = ledger.record_index_increase(
        "C1",
        vpi_old=VpiReading(month=date(2025, 3, 1), value=Decimal("115.5")),
        vpi_new=VpiReading(month=date(2025, 5, 1), value=Decimal("117.0")),
    )
    assert following.period.effective_date == date(2026, 8, 1)
