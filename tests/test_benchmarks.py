"""Tests for the benchmark repository."""

import pytest
from pydantic import ValidationError

from audit_scorer.benchmarks import (
    REQUIRED_METRICS,
    get_all_sectors,
    get_benchmark_version,
    get_benchmarks,
    get_currency,
    get_default_variant,
    get_sector_variants,
)
from audit_scorer.exceptions import BenchmarkLookupError
from audit_scorer.schema import MetricUnit


class TestGetBenchmarks:
    """Tests for benchmark lookups."""

    def test_reference_thresholds(self, veto_benchmarks):
        margin = veto_benchmarks.metric("marge_brute")
        assert margin.unit == MetricUnit.RATIO
        assert (margin.thresholds.critical, margin.thresholds.good, margin.thresholds.excellent) == (
            0.55, 0.70, 0.75,
        )
        hr = veto_benchmarks.metric("charges_rh")
        assert hr.unit == MetricUnit.RATIO_INVERSE
        assert hr.thresholds.excellent < hr.thresholds.good < hr.thresholds.critical

    def test_default_variant(self):
        assert get_benchmarks("veterinaire").variant == "veto_standard"
        assert get_default_variant("veterinaire") == "veto_standard"

    def test_explicit_variant(self):
        rural = get_benchmarks("veterinaire", "veto_rurale")
        assert rural.variant == "veto_rurale"
        assert rural.metric("ca_etp").thresholds.critical == 60000

    def test_unknown_sector_raises(self):
        with pytest.raises(BenchmarkLookupError) as exc_info:
            get_benchmarks("Vétérinaire")
        assert exc_info.value.sector == "Vétérinaire"

    def test_unknown_variant_raises(self):
        with pytest.raises(BenchmarkLookupError) as exc_info:
            get_benchmarks("veterinaire", "veto_lunaire")
        assert exc_info.value.variant == "veto_lunaire"

    def test_missing_metric_raises(self, veto_benchmarks):
        with pytest.raises(BenchmarkLookupError):
            veto_benchmarks.metric("nps")

    def test_benchmarks_are_immutable(self, veto_benchmarks):
        with pytest.raises(ValidationError):
            veto_benchmarks.sector = "btp"

    def test_lookups_are_cached(self):
        assert get_benchmarks("btp") is get_benchmarks("btp")


class TestBenchmarkTable:
    """Tests for the consistency of the shipped table."""

    def test_every_variant_is_complete_and_ordered(self):
        for sector in get_all_sectors():
            for variant in get_sector_variants(sector):
                benchmarks = get_benchmarks(sector, variant.id)
                for name in REQUIRED_METRICS:
                    metric = benchmarks.metric(name)
                    t = metric.thresholds
                    if metric.unit.is_inverse:
                        assert t.excellent <= t.good <= t.critical, f"{sector}/{variant.id}/{name}"
                    else:
                        assert t.critical <= t.good <= t.excellent, f"{sector}/{variant.id}/{name}"

    def test_default_variant_is_declared(self):
        for sector in get_all_sectors():
            ids = [v.id for v in get_sector_variants(sector)]
            assert get_default_variant(sector) in ids

    def test_unknown_sector_has_no_variants(self):
        assert get_sector_variants("astronautique") == []
        assert get_default_variant("astronautique") is None

    def test_metadata(self):
        assert get_benchmark_version() == "2.1"
        assert get_currency() == "EUR"
