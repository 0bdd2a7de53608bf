"""Tests for the coherence warnings."""

import pytest

from audit_scorer.coherence import compute_warnings, has_critical
from audit_scorer.schema import WarningSeverity
from audit_scorer.scorer import compute_scores


def _fields(warnings):
    return [w.field for w in warnings]


class TestComputeWarnings:
    """Tests for each coherence check."""

    def test_reference_audit_is_clean(self, veto_record):
        assert compute_warnings(veto_record) == []

    def test_runway_below_three_months(self, record_factory):
        warnings = compute_warnings(record_factory(**{"finance.cash_runway_months": 2}))
        critical = [w for w in warnings if w.severity == WarningSeverity.CRITICAL]
        assert len(critical) == 1
        assert critical[0].field == "cashRunwayMonths"
        assert critical[0].message == "Trésorerie critique : runway de 2 mois seulement"

    def test_runway_of_three_months_is_fine(self, record_factory):
        assert compute_warnings(record_factory(**{"finance.cash_runway_months": 3})) == []

    def test_margin_plus_cogs_far_from_100(self, record_factory):
        warnings = compute_warnings(record_factory(**{"costs.cogs_percent": 50}))
        assert _fields(warnings) == ["cogsPercent"]
        assert "= 118%" in warnings[0].message

    def test_margin_plus_cogs_within_tolerance(self, record_factory):
        assert compute_warnings(record_factory(**{"costs.cogs_percent": 38})) == []

    def test_net_above_gross(self, record_factory):
        warnings = compute_warnings(record_factory(**{"finance.net_margin_percent": 70}))
        assert _fields(warnings) == ["netMarginPercent"]

    def test_total_costs(self, record_factory):
        record = record_factory(**{"costs.fixed_costs_percent": 40, "costs.cogs_percent": 30})
        warnings = compute_warnings(record)
        assert "costs" in _fields(warnings)

    def test_occupancy_above_95(self, record_factory):
        warnings = compute_warnings(record_factory(**{"ops.occupancy_rate_percent": 98}))
        assert _fields(warnings) == ["occupancyRatePercent"]
        assert warnings[0].severity == WarningSeverity.WARNING

    @pytest.mark.parametrize("hr,field", [
        ({"absenteeism_rate_percent": 16}, "absenteeismRatePercent"),
        ({"turnover_rate_percent": 45}, "turnoverRatePercent"),
    ])
    def test_hr_criticals(self, record_factory, hr, field):
        warnings = compute_warnings(record_factory(hr=hr))
        assert _fields(warnings) == [field]
        assert has_critical(warnings)

    def test_return_rate(self, record_factory):
        warnings = compute_warnings(record_factory(**{"ops.quality": {"return_rate_percent": 12}}))
        assert _fields(warnings) == ["returnRatePercent"]

    def test_satisfaction(self, record_factory):
        record = record_factory(**{"commercial.satisfaction": {"csat_percent": 60, "nps": -10}})
        assert _fields(compute_warnings(record)) == ["nps", "csatPercent"]

    def test_checks_are_independent(self, record_factory):
        record = record_factory(**{
            "finance.cash_runway_months": 1,
            "ops.occupancy_rate_percent": 99,
            "hr": {"absenteeism_rate_percent": 20, "turnover_rate_percent": 50},
        })
        assert _fields(compute_warnings(record)) == [
            "occupancyRatePercent",
            "absenteeismRatePercent",
            "turnoverRatePercent",
            "cashRunwayMonths",
        ]

    def test_warnings_do_not_change_scores(self, record_factory, veto_benchmarks):
        record = record_factory(**{"costs.cogs_percent": 50})
        assert compute_warnings(record)
        assert compute_scores(record, veto_benchmarks) == compute_scores(
            record_factory(**{"costs.cogs_percent": 32}), veto_benchmarks
        )
