import json
from datetime import date

from lifecycle_research.analyzers.estimation import (
    EstimationEngine,
    load_interval_overrides,
    shift_years,
)
from lifecycle_research.models.schemas import DateField, LifecycleDates

EOS = DateField.END_OF_SALE
SWM = DateField.END_OF_SW_MAINTENANCE
SWV = DateField.END_OF_SW_VULNERABILITY_SUPPORT
LDOS = DateField.LAST_DAY_OF_SUPPORT


def test_cisco_intervals_from_end_of_sale():
    filled, meta = EstimationEngine().estimate(
        LifecycleDates(end_of_sale=date(2019, 10, 31)), "Cisco", "WS-C3850-48P"
    )
    assert filled.end_of_sale == date(2019, 10, 31)
    assert filled.end_of_sw_maintenance == date(2020, 10, 31)
    assert filled.end_of_sw_vulnerability_support == date(2022, 10, 31)
    assert filled.last_day_of_support == date(2024, 10, 31)
    assert meta.estimated_fields == {SWM, SWV, LDOS}
    assert meta.basis_field == EOS
    assert meta.estimation_confidence == 80
    assert meta.vendor == "cisco"
    assert meta.vendor_specific is True
    assert meta.original_dates_count == 1


def test_default_intervals_for_unknown_vendor():
    filled, meta = EstimationEngine().estimate(LifecycleDates(end_of_sale=date(2020, 1, 31)), "Acme")
    assert filled.end_of_sw_maintenance == date(2023, 1, 31)
    assert filled.end_of_sw_vulnerability_support == date(2024, 1, 31)
    assert filled.last_day_of_support == date(2025, 1, 31)
    assert meta.vendor is None
    assert meta.vendor_specific is False


def test_default_intervals_from_end_of_sale():
    filled, meta = EstimationEngine().estimate(
        LifecycleDates(end_of_sale=date(2016, 1, 24)), "Acme Networks", "AN-4800"
    )
    assert filled.end_of_sw_maintenance == date(2019, 1, 24)
    assert filled.end_of_sw_vulnerability_support == date(2020, 1, 24)
    assert filled.last_day_of_support == date(2021, 1, 24)
    assert meta.estimated_fields == {SWM, SWV, LDOS}
    assert meta.vendor_specific is False


def test_estimates_backwards_from_last_day_of_support():
    filled, meta = EstimationEngine().estimate(LifecycleDates(last_day_of_support=date(2030, 6, 30)), "Acme")
    assert filled.end_of_sale == date(2025, 6, 30)
    assert filled.end_of_sw_maintenance == date(2028, 6, 30)
    assert filled.end_of_sw_vulnerability_support == date(2029, 6, 30)
    assert meta.basis_field == LDOS


def test_existing_dates_are_never_overwritten():
    partial = LifecycleDates(end_of_sale=date(2019, 10, 31), last_day_of_support=date(2026, 1, 31))
    filled, meta = EstimationEngine().estimate(partial, "Cisco")
    assert filled.last_day_of_support == date(2026, 1, 31)
    assert meta.estimated_fields == {SWM, SWV}
    assert meta.estimation_confidence == 85
    assert meta.original_dates_count == 2


def test_no_anchor_leaves_dates_unchanged():
    partial = LifecycleDates(introduced=date(2014, 5, 1))
    filled, meta = EstimationEngine().estimate(partial, "Cisco")
    assert filled == partial
    assert meta.basis_field is None
    assert meta.estimation_confidence == 0
    assert meta.engaged is False


def test_complete_dates_need_no_estimation():
    partial = LifecycleDates(
        end_of_sale=date(2019, 10, 31),
        end_of_sw_maintenance=date(2020, 10, 30),
        end_of_sw_vulnerability_support=date(2022, 10, 30),
        last_day_of_support=date(2025, 10, 31),
    )
    filled, meta = EstimationEngine().estimate(partial, "Cisco")
    assert filled == partial
    assert meta.engaged is False


def test_constructor_overrides_replace_vendor_table():
    engine = EstimationEngine(vendor_overrides={"cisco": {LDOS: 7}})
    filled, _ = engine.estimate(LifecycleDates(end_of_sale=date(2019, 10, 31)), "Cisco")
    assert filled.last_day_of_support == date(2026, 10, 31)
    assert filled.end_of_sw_maintenance == date(2022, 10, 31)


def test_override_key_matches_whole_words_only():
    engine = EstimationEngine(vendor_overrides={"hp": {LDOS: 7}})
    filled, meta = engine.estimate(LifecycleDates(end_of_sale=date(2019, 10, 31)), "Shopify Inc")
    assert meta.vendor is None
    assert filled.last_day_of_support == date(2024, 10, 31)

    _, meta = engine.estimate(LifecycleDates(end_of_sale=date(2019, 10, 31)), "HP Inc")
    assert meta.vendor == "hp"


def test_load_interval_overrides(tmp_path):
    path = tmp_path / "intervals.json"
    path.write_text(json.dumps({"Juniper": {"end_of_sw_maintenance": 2, "last_day_of_support": 6}}))
    overrides = load_interval_overrides(path)
    assert overrides == {"juniper": {SWM: 2, LDOS: 6}}

    filled, meta = EstimationEngine(vendor_overrides=overrides).estimate(
        LifecycleDates(end_of_sale=date(2020, 3, 31)), "Juniper Networks"
    )
    assert filled.last_day_of_support == date(2026, 3, 31)
    assert meta.vendor == "juniper"


def test_shift_years_leap_day():
    assert shift_years(date(2020, 2, 29), 1) == date(2021, 2, 28)
    assert shift_years(date(2020, 2, 29), 4) == date(2024, 2, 29)


def test_validate_reports_ordering_issues():
    dates = LifecycleDates(end_of_sale=date(2025, 1, 1), last_day_of_support=date(2020, 1, 1))
    issues = EstimationEngine.validate(dates)
    assert issues == [
        "End of Sale date (2025-01-01) should not be after Last Day of Support date (2020-01-01)"
    ]


def test_validate_accepts_ordered_dates():
    dates = LifecycleDates(introduced=date(2014, 1, 1), end_of_sale=date(2019, 1, 1))
    assert EstimationEngine.validate(dates) == []


def test_report_lists_found_and_estimated_fields():
    engine = EstimationEngine()
    filled, meta = engine.estimate(LifecycleDates(end_of_sale=date(2019, 10, 31)), "Cisco")
    report = engine.report(filled, meta)
    assert report["original_fields"] == ["End of Sale"]
    assert report["estimated_fields"] == [
        "End of SW Maintenance",
        "End of SW Vulnerability Support",
        "Last Day of Support",
    ]
    assert report["basis"] == "End of Sale"
    assert report["ordering_issues"] == []
