"""Tests for the decision engine."""

import pytest

from audit_scorer.config import get_config
from audit_scorer.decision import (
    QUANTIFICATION_RULES,
    RISK_RULES,
    compute_decision,
    compute_quantified_recommendations,
    determine_priority_level,
    evaluate_risk_rules,
    generate_decision_summary,
)
from audit_scorer.schema import PriorityLevel, RuleSeverity, Scores
from audit_scorer.scorer import compute_scores


def _scores(global_score=75.0, financier=75.0, operationnel=75.0, commercial=75.0, strategique=75.0):
    return Scores(
        global_score=global_score,
        financier=financier,
        operationnel=operationnel,
        commercial=commercial,
        strategique=strategique,
    )


def _rules(*ids):
    by_id = {rule.id: rule for rule in RISK_RULES}
    return [by_id[rule_id] for rule_id in ids]


@pytest.fixture
def fragile_record(record_factory):
    """An audit tripping rules of every severity."""
    return record_factory(**{
        "ops.occupancy_rate_percent": 98,
        "commercial.digitalization_percent": 30,
        "commercial.loyalty_percent": 50,
        "hr": {"absenteeism_rate_percent": 20},
        "nb_services": 1,
    })


class TestRiskRules:
    """Tests for rule evaluation."""

    def test_rule_ids_are_unique(self):
        ids = [rule.id for rule in RISK_RULES] + [rule.id for rule in QUANTIFICATION_RULES]
        assert len(ids) == len(set(ids))

    def test_reference_audit_triggers_nothing(self, veto_record, veto_benchmarks):
        scores = compute_scores(veto_record, veto_benchmarks)
        assert evaluate_risk_rules(veto_record, scores) == []

    def test_sorted_by_severity_then_declaration(self, fragile_record, veto_benchmarks):
        scores = compute_scores(fragile_record, veto_benchmarks)
        triggered = evaluate_risk_rules(fragile_record, scores)
        ranks = [rule.severity.rank for rule in triggered]
        assert ranks == sorted(ranks)
        assert [rule.id for rule in triggered[:2]] == ["hr_cost_high", "critical_absenteeism"]
        assert "low_digitalization" in [rule.id for rule in triggered]

    def test_absent_optional_values_use_neutral_defaults(self, veto_record):
        """Missing CSAT, NPS and loyalty never trigger their rules."""
        record = veto_record.model_copy(update={
            "commercial": veto_record.commercial.model_copy(update={"loyalty_percent": None}),
        })
        ids = [rule.id for rule in evaluate_risk_rules(record, _scores())]
        assert "low_loyalty" not in ids
        assert "low_satisfaction" not in ids
        assert "negative_nps" not in ids

    def test_runway_rules_are_exclusive(self, record_factory):
        critical = [r.id for r in evaluate_risk_rules(record_factory(**{"finance.cash_runway_months": 2}), _scores())]
        tense = [r.id for r in evaluate_risk_rules(record_factory(**{"finance.cash_runway_months": 4}), _scores())]
        assert "runway_critical" in critical and "runway_warning" not in critical
        assert "runway_warning" in tense and "runway_critical" not in tense


class TestPriorityLevel:
    """Tests for the priority cascade."""

    def test_low_global_is_critical(self):
        assert determine_priority_level(_scores(global_score=35), []) == PriorityLevel.CRITIQUE

    def test_critical_rule_wins_over_good_global(self):
        triggered = _rules("runway_critical")
        assert determine_priority_level(_scores(global_score=90), triggered) == PriorityLevel.CRITIQUE

    def test_two_high_rules(self):
        triggered = _rules("low_digitalization", "low_loyalty")
        assert determine_priority_level(_scores(), triggered) == PriorityLevel.ELEVE

    def test_global_below_50(self):
        assert determine_priority_level(_scores(global_score=45), []) == PriorityLevel.ELEVE

    def test_one_high_rule(self):
        assert determine_priority_level(_scores(), _rules("low_loyalty")) == PriorityLevel.MODERE

    def test_global_below_60(self):
        assert determine_priority_level(_scores(global_score=55), []) == PriorityLevel.MODERE

    def test_medium_rules_only(self):
        triggered = _rules("very_high_occupancy", "low_diversification")
        assert all(rule.severity == RuleSeverity.MEDIUM for rule in triggered)
        assert determine_priority_level(_scores(), triggered) == PriorityLevel.FAIBLE


class TestDecisionSummary:
    """Tests for summary texts."""

    def test_critical_plural(self):
        summary = generate_decision_summary(PriorityLevel.CRITIQUE, 3, _scores())
        assert "3 risques majeurs identifiés" in summary

    def test_critical_singular(self):
        summary = generate_decision_summary(PriorityLevel.CRITIQUE, 1, _scores())
        assert "1 risque majeur identifié." in summary

    def test_high_quotes_global(self):
        summary = generate_decision_summary(PriorityLevel.ELEVE, 2, _scores(global_score=47.5))
        assert "47.5/100" in summary


class TestQuantifiedRecommendations:
    """Tests for quantified recommendations."""

    def test_reference_audit(self, veto_record, veto_benchmarks):
        scores = compute_scores(veto_record, veto_benchmarks)
        recommendations = compute_quantified_recommendations(veto_record, scores)
        assert [r.id for r in recommendations] == ["hr_cost_reduction"]
        assert recommendations[0].estimated_impact_min == 11250
        assert recommendations[0].estimated_impact_max == 15750
        assert recommendations[0].unit == "€"

    def test_bounded_and_sorted(self, record_factory):
        record = record_factory(**{
            "finance.gross_margin_percent": 50,
            "finance.cash_runway_months": 4,
            "costs.hr_costs_percent": 60,
            "ops.occupancy_rate_percent": 60,
            "commercial.digitalization_percent": 30,
            "hr": {"absenteeism_rate_percent": 10, "turnover_rate_percent": 30},
        })
        recommendations = compute_quantified_recommendations(record, _scores(operationnel=40))
        assert len(recommendations) == 5
        maxima = [r.estimated_impact_max for r in recommendations]
        assert maxima == sorted(maxima, reverse=True)
        for rec in recommendations:
            assert rec.estimated_impact_min <= rec.estimated_impact_max
        assert recommendations[0].id == "cash_optimization"

    def test_limit_from_config(self, record_factory):
        get_config().decision.max_recommendations = 2
        record = record_factory(**{
            "finance.gross_margin_percent": 50,
            "ops.occupancy_rate_percent": 60,
            "commercial.digitalization_percent": 30,
        })
        assert len(compute_quantified_recommendations(record, _scores())) == 2


class TestComputeDecision:
    """Tests for the assembled decision."""

    def test_reference_audit(self, veto_record, veto_benchmarks):
        decision = compute_decision(veto_record, compute_scores(veto_record, veto_benchmarks))
        assert decision.priority_level == PriorityLevel.FAIBLE
        assert decision.top_risks == []
        assert decision.decision_summary.startswith("Situation maîtrisée")

    def test_short_runway_is_critical(self, record_factory, veto_benchmarks):
        record = record_factory(**{"finance.cash_runway_months": 2})
        decision = compute_decision(record, compute_scores(record, veto_benchmarks))
        assert decision.priority_level == PriorityLevel.CRITIQUE
        assert decision.top_risks[0] == "Risque de continuité : trésorerie critique (moins de 3 mois)"
        assert "cash_optimization" in [r.id for r in decision.quantified_recommendations]

    def test_lists_are_truncated(self, fragile_record, veto_benchmarks):
        decision = compute_decision(fragile_record, compute_scores(fragile_record, veto_benchmarks))
        assert len(decision.triggered_rules) > 3
        assert len(decision.top_risks) == 3
        assert len(decision.top_levers) == 3
        assert len(decision.quick_wins) <= 3
        assert len(decision.structural_actions) <= 3

    def test_top_items_from_config(self, fragile_record, veto_benchmarks):
        get_config().decision.top_items = 1
        decision = compute_decision(fragile_record, compute_scores(fragile_record, veto_benchmarks))
        assert len(decision.top_risks) == 1
        assert len(decision.quick_wins) <= 1

    def test_deterministic(self, fragile_record, veto_benchmarks):
        scores = compute_scores(fragile_record, veto_benchmarks)
        assert compute_decision(fragile_record, scores) == compute_decision(fragile_record, scores)
