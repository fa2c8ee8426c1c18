"""
tests/test_sarfi_index.py
──────────────────────────
Tests for threshold counting and weighted aggregation.
"""
import pytest

from sarfi.analytics.catalog import build_meter_info
from sarfi.analytics.sarfi_index import (
    aggregate,
    compute_weighted_summary,
    count_thresholds,
    init_data_points,
    normalize_weight,
    retained_voltage,
)
from sarfi.data.models import SarfiDataPoint


@pytest.fixture
def infos(make_meter):
    return {mid: build_meter_info(make_meter(mid)) for mid in ("m1", "m2", "m3")}


def _point(meter_id, weight, **counts):
    return SarfiDataPoint(meter_id=meter_id, meter_no=meter_id, location="x", weight_factor=weight, **counts)


class TestRetainedVoltage:
    def test_prefers_remaining_voltage(self, make_event):
        assert retained_voltage(make_event("m1", remaining_voltage=42.0, magnitude=80.0)) == 42.0

    def test_falls_back_to_magnitude(self, make_event):
        assert retained_voltage(make_event("m1", magnitude=80.0)) == 80.0

    def test_zero_is_a_value_not_missing(self, make_event):
        assert retained_voltage(make_event("m1", remaining_voltage=0.0, magnitude=80.0)) == 0.0

    def test_defaults_to_100(self, make_event):
        assert retained_voltage(make_event("m1")) == 100.0


class TestNormalizeWeight:
    @pytest.mark.parametrize("factor", [None, 0, 0.0, -2.0, float("nan")])
    def test_defaults_to_one(self, factor):
        assert normalize_weight(factor) == 1.0

    def test_keeps_positive_factor(self):
        assert normalize_weight(2.5) == 2.5


class TestInitDataPoints:
    def test_zeroed_points_in_weight_order(self, make_weight, infos):
        weights = [make_weight("m2", 2.0), make_weight("m1", 1.5)]
        points = init_data_points(weights, infos)
        assert list(points) == ["m2", "m1"]
        assert points["m2"].weight_factor == 2.0
        assert points["m2"].meter_no == "MTR-m2"
        assert points["m1"].counts() == (0, 0, 0, 0, 0, 0)

    def test_meter_without_metadata_excluded(self, make_weight, infos):
        weights = [make_weight("m1"), make_weight("ghost", 5.0)]
        points = init_data_points(weights, infos)
        assert list(points) == ["m1"]

    def test_metadata_without_weight_excluded(self, make_weight, infos):
        points = init_data_points([make_weight("m1")], infos)
        assert "m3" not in points

    @pytest.mark.parametrize("factor", [0.0, None, -1.0])
    def test_default_weight(self, make_weight, infos, factor):
        points = init_data_points([make_weight("m1", factor)], infos)
        assert points["m1"].weight_factor == 1.0


class TestCountThresholds:
    def test_cumulative_counters(self, make_weight, make_event, infos):
        points = init_data_points([make_weight("m1")], infos)
        count_thresholds(points, [make_event("m1", remaining_voltage=15.0)])
        p = points["m1"]
        # cutoffs 90, 70, 50, 30, 20 are hit; cutoff 10 is not
        assert p.counts() == (1, 1, 1, 1, 1, 0)

    def test_no_voltage_counts_nothing(self, make_weight, make_event, infos):
        points = init_data_points([make_weight("m1")], infos)
        attributed = count_thresholds(points, [make_event("m1")])
        assert attributed == 1
        assert points["m1"].counts() == (0, 0, 0, 0, 0, 0)

    def test_three_dips_one_meter(self, make_weight, make_event, infos):
        points = init_data_points([make_weight("m1")], infos)
        events = [make_event("m1", remaining_voltage=v) for v in (5.0, 45.0, 95.0)]
        count_thresholds(points, events)
        p = points["m1"]
        assert p.sarfi_10 == 2
        assert p.sarfi_30 == 2
        assert p.sarfi_50 == 2
        assert p.sarfi_70 == 1
        assert p.sarfi_80 == 1
        assert p.sarfi_90 == 1

    def test_cutoffs_are_inclusive(self, make_weight, make_event, infos):
        points = init_data_points([make_weight("m1")], infos)
        count_thresholds(points, [make_event("m1", remaining_voltage=v) for v in (90.0, 10.0)])
        assert points["m1"].sarfi_10 == 2
        assert points["m1"].sarfi_90 == 1

    def test_magnitude_used_when_remaining_absent(self, make_weight, make_event, infos):
        points = init_data_points([make_weight("m1")], infos)
        count_thresholds(points, [make_event("m1", magnitude=60.0)])
        assert points["m1"].counts() == (1, 1, 0, 0, 0, 0)

    def test_unattributed_events_skipped(self, make_weight, make_event, infos):
        points = init_data_points([make_weight("m1")], infos)
        events = [make_event(None, remaining_voltage=5.0), make_event("m9", remaining_voltage=5.0)]
        assert count_thresholds(points, events) == 0
        assert points["m1"].counts() == (0, 0, 0, 0, 0, 0)


class TestWeightedSummary:
    def test_weighted_average(self):
        points = [_point("a", 1.0, sarfi_50=4), _point("b", 3.0, sarfi_50=2)]
        summary = compute_weighted_summary(points)
        assert summary.sarfi_50 == pytest.approx(2.5)
        assert summary.total_weight == 4.0

    def test_same_total_weight_for_all_thresholds(self):
        points = [_point("a", 2.0, sarfi_10=3, sarfi_90=1), _point("b", 2.0, sarfi_10=1)]
        summary = compute_weighted_summary(points)
        assert summary.sarfi_10 == pytest.approx(2.0)
        assert summary.sarfi_90 == pytest.approx(0.5)
        assert summary.sarfi_30 == 0.0

    def test_empty_is_all_zero(self):
        summary = compute_weighted_summary([])
        assert summary.model_dump() == {
            "sarfi_10": 0.0, "sarfi_30": 0.0, "sarfi_50": 0.0,
            "sarfi_70": 0.0, "sarfi_80": 0.0, "sarfi_90": 0.0,
            "total_weight": 0.0,
        }


class TestAggregate:
    def test_missing_meter_weight_not_in_total(self, make_weight, make_event, infos):
        weights = [make_weight("m1", 1.0), make_weight("ghost", 9.0)]
        result = aggregate(weights, infos, [make_event("m1", remaining_voltage=40.0)])
        assert [p.meter_id for p in result.per_meter] == ["m1"]
        assert result.summary.total_weight == 1.0
        assert result.summary.sarfi_10 == 1.0

    def test_deterministic(self, make_weight, make_event, infos):
        weights = [make_weight("m1", 1.2), make_weight("m2", 0.8)]
        events = [make_event("m1", remaining_voltage=v) for v in (12.0, 33.0, 88.0)]
        events += [make_event("m2", magnitude=7.0)]
        assert aggregate(weights, infos, events) == aggregate(weights, infos, events)

    def test_input_points_not_shared_between_runs(self, make_weight, make_event, infos):
        weights = [make_weight("m1")]
        events = [make_event("m1", remaining_voltage=5.0)]
        first = aggregate(weights, infos, events)
        second = aggregate(weights, infos, events)
        assert first.per_meter[0].sarfi_90 == second.per_meter[0].sarfi_90 == 1


class TestDataPointMetadata:
    def test_copies_customer_count_and_voltage_level(self, make_weight, make_meter):
        infos = {"m1": build_meter_info(make_meter("m1", None, "400kV"))}
        weight = make_weight("m1", 0.25).model_copy(update={"customer_count": 120})
        point = init_data_points([weight], infos)["m1"]
        assert point.customer_count == 120
        assert point.voltage_level == "400kV"

    def test_missing_customer_count_is_zero(self, make_weight, infos):
        point = init_data_points([make_weight("m1")], infos)["m1"]
        assert point.customer_count == 0
        assert point.voltage_level == "132kV"
