"""Scoring Engine.

Computes four dimension scores (financier, opérationnel, commercial,
stratégique) and a weighted global score from a normalized AuditRecord and
the sector benchmarks.

Every dimension is the weighted average of the contributions whose
underlying data is present. An absent optional input drops out of both the
weighted sum and the weight total, so its weight is redistributed
proportionally across the remaining contributions.
"""

import logging
import math
from dataclasses import dataclass
from typing import Callable, Optional

from .config import get_config
from .schema import (
    AuditRecord,
    BenchmarkSet,
    DimensionBreakdown,
    MetricDefinition,
    ScoreContribution,
    ScoreLevel,
    ScoreLevelType,
    Scores,
)

logger = logging.getLogger(__name__)

# Below-critical fallbacks never reach the critical tier
FALLBACK_CAP = 50.0


@dataclass
class ContributionWeights:
    """Base weights of the contributions inside each dimension."""
    # Financier
    gross_margin: float = 40
    revenue_per_fte: float = 30
    hr_costs: float = 20
    net_margin: float = 5
    cash_runway: float = 5
    # Opérationnel
    occupancy: float = 60
    productivity: float = 25
    quality: float = 15
    # Commercial
    digitalization: float = 45
    loyalty: float = 35
    csat: float = 10
    nps: float = 10
    # Stratégique
    services: float = 40
    runway_risk: float = 20
    hr_stability: float = 20
    balance: float = 20


# =============================================================================
# Step functions
# =============================================================================


def step_score(
    value: float,
    metric: MetricDefinition,
    fallback: Callable[[float], float],
) -> float:
    """Score a value against critical/good/excellent breakpoints.

    Returns 100, 80 or 50 for the excellent, good and critical tiers. Below
    critical, ``fallback(value)`` is used, floored at 0 and capped at 50.
    Inverse-ratio metrics compare with ``<=`` instead of ``>=``.
    """
    t = metric.thresholds
    if metric.unit.is_inverse:
        if value <= t.excellent:
            return 100.0
        if value <= t.good:
            return 80.0
        if value <= t.critical:
            return 50.0
    else:
        if value >= t.excellent:
            return 100.0
        if value >= t.good:
            return 80.0
        if value >= t.critical:
            return 50.0
    return min(FALLBACK_CAP, max(0.0, fallback(value)))


def score_gross_margin(ratio: float, metric: MetricDefinition) -> float:
    return step_score(ratio, metric, lambda v: v * 100 * 0.9)


def score_revenue_per_fte(amount: float, metric: MetricDefinition) -> float:
    critical = metric.thresholds.critical
    return step_score(amount, metric, lambda v: v / critical * 50 if critical else 0.0)


def score_hr_costs(ratio: float, metric: MetricDefinition) -> float:
    critical = metric.thresholds.critical
    return step_score(ratio, metric, lambda v: 40 - (v - critical) * 100)


def score_digitalization(percent: float, metric: MetricDefinition) -> float:
    return step_score(percent, metric, lambda v: v * 1.5)


def score_loyalty(percent: float, metric: MetricDefinition) -> float:
    return step_score(percent, metric, lambda v: v * 0.8)


def score_net_margin(percent: float) -> float:
    if percent >= 15:
        return 100.0
    if percent >= 10:
        return 80.0
    if percent >= 5:
        return 60.0
    if percent >= 0:
        return 40.0
    return 20.0


def score_cash_runway(months: float) -> float:
    if months >= 12:
        return 100.0
    if months >= 6:
        return 80.0
    if months >= 3:
        return 50.0
    return 20.0


def score_runway_risk(months: float) -> float:
    if months < 3:
        return 20.0
    if months < 6:
        return 50.0
    if months < 12:
        return 80.0
    return 100.0


def score_occupancy(rate: float) -> float:
    """Occupancy as a fraction (0.85), not a percentage."""
    if rate >= 0.95:
        return 100.0
    if rate >= 0.85:
        return 80.0
    if rate >= 0.75:
        return 60.0
    if rate >= 0.60:
        return 40.0
    return max(0.0, rate * 66)


def score_return_rate(percent: float) -> float:
    if percent <= 2:
        return 100.0
    if percent <= 5:
        return 80.0
    if percent <= 10:
        return 50.0
    return 20.0


def score_incidents(per_month: float) -> float:
    if per_month <= 1:
        return 100.0
    if per_month <= 3:
        return 70.0
    if per_month <= 5:
        return 50.0
    return 20.0


def score_csat(percent: float) -> float:
    if percent >= 90:
        return 100.0
    if percent >= 80:
        return 80.0
    if percent >= 70:
        return 60.0
    return max(0.0, percent * 0.8)


def score_nps(nps: float) -> float:
    if nps >= 50:
        return 100.0
    if nps >= 30:
        return 80.0
    if nps >= 0:
        return 60.0
    if nps >= -20:
        return 40.0
    return 20.0


def score_services(nb_services: int) -> float:
    return float(min(100, max(0, 40 + nb_services * 10)))


def score_turnover_risk(percent: float) -> float:
    if percent > 40:
        return 20.0
    if percent > 25:
        return 50.0
    if percent > 15:
        return 70.0
    return 100.0


def score_absenteeism_risk(percent: float) -> float:
    if percent > 15:
        return 20.0
    if percent > 10:
        return 50.0
    if percent > 5:
        return 80.0
    return 100.0


def score_balance(financier: float, operationnel: float, commercial: float) -> float:
    """Penalty keyed on the gap between the strongest and weakest dimension."""
    gap = max(financier, operationnel, commercial) - min(financier, operationnel, commercial)
    if gap > 40:
        return 50.0
    if gap > 30:
        return 70.0
    if gap > 20:
        return 85.0
    return 100.0


def round_half_up(value: float, digits: int = 0) -> float:
    """Round with ties going up (79.25 -> 79.3), unlike the built-in ``round``."""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def _mean(values: list[float]) -> Optional[float]:
    return sum(values) / len(values) if values else None


# =============================================================================
# Aggregation
# =============================================================================


def weighted_average(contributions: list[ScoreContribution]) -> float:
    """Σ(score × weight) / Σ(weight) over the given contributions, 0 if none."""
    total_weight = sum(c.weight for c in contributions)
    if total_weight <= 0:
        return 0.0
    return sum(c.score * c.weight for c in contributions) / total_weight


def optional_field_values(record: AuditRecord) -> dict[str, Optional[float]]:
    """The nine optional fields tracked by the missing-data penalty."""
    quality = record.ops.quality
    hr = record.hr
    satisfaction = record.commercial.satisfaction
    return {
        "netMarginPercent": record.finance.net_margin_percent,
        "cashRunwayMonths": record.finance.cash_runway_months,
        "cogsPercent": record.costs.cogs_percent,
        "fixedCostsPercent": record.costs.fixed_costs_percent,
        "absenteeismRatePercent": hr.absenteeism_rate_percent if hr else None,
        "turnoverRatePercent": hr.turnover_rate_percent if hr else None,
        "returnRatePercent": quality.return_rate_percent if quality else None,
        "csatPercent": satisfaction.csat_percent if satisfaction else None,
        "nps": satisfaction.nps if satisfaction else None,
    }


def count_missing_optional(record: AuditRecord) -> int:
    return sum(1 for value in optional_field_values(record).values() if value is None)


def missing_data_penalty(missing_count: int) -> float:
    if missing_count > 5:
        return 2.0
    if missing_count > 3:
        return 1.0
    return 0.0


def get_score_level(score: float) -> ScoreLevel:
    """Qualitative band of a 0-100 score."""
    if score >= 80:
        return ScoreLevel(level=ScoreLevelType.EXCELLENT, label="Excellent")
    if score >= 60:
        return ScoreLevel(level=ScoreLevelType.BON, label="Bon")
    if score >= 40:
        return ScoreLevel(level=ScoreLevelType.CRITIQUE, label="À améliorer")
    return ScoreLevel(level=ScoreLevelType.DANGER, label="Critique")


# =============================================================================
# Scorer
# =============================================================================


class AuditScorer:
    """Scores an audit record against its sector benchmarks.

    Scoring principles:
    - Mandatory metrics always contribute
    - Absent optional metrics are omitted, never defaulted
    - Global score is penalized for sparse input
    - Output is deterministic and rounded to one decimal

    Configuration:
    - Dimension weights of the global score come from ``get_config()``
    """

    def __init__(self, weights: Optional[ContributionWeights] = None):
        """Initialize scorer with optional custom contribution weights."""
        self.weights = weights or ContributionWeights()

    def score(self, record: AuditRecord, benchmarks: BenchmarkSet) -> Scores:
        """Compute the four dimension scores and the global score."""
        breakdown = self.breakdown(record, benchmarks)
        dims = {b.dimension: b.score for b in breakdown}

        dim_weights = get_config().dimension_weights
        missing = count_missing_optional(record)
        penalty = missing_data_penalty(missing)

        global_score = (
            dims["financier"] * dim_weights.financier
            + dims["operationnel"] * dim_weights.operationnel
            + dims["commercial"] * dim_weights.commercial
            + dims["strategique"] * dim_weights.strategique
            - penalty
        )
        global_score = max(0.0, min(100.0, round_half_up(global_score, 1)))

        logger.debug(
            "Scored '%s' (%s/%s): global=%.1f, %d optional field(s) missing, penalty=%.0f",
            record.business_name, benchmarks.sector, benchmarks.variant,
            global_score, missing, penalty,
        )

        return Scores(
            global_score=global_score,
            financier=round_half_up(dims["financier"], 1),
            operationnel=round_half_up(dims["operationnel"], 1),
            commercial=round_half_up(dims["commercial"], 1),
            strategique=round_half_up(dims["strategique"], 1),
        )

    def breakdown(self, record: AuditRecord, benchmarks: BenchmarkSet) -> list[DimensionBreakdown]:
        """Per-dimension contributions with unrounded dimension scores."""
        w = self.weights

        # Shared by financier and opérationnel
        productivity = score_revenue_per_fte(record.revenue_per_fte, benchmarks.metric("ca_etp"))

        financier = self._dimension("financier", self._financier(record, benchmarks, productivity))
        operationnel = self._dimension("operationnel", self._operationnel(record, productivity))
        commercial = self._dimension("commercial", self._commercial(record, benchmarks))

        strategique_contribs = self._strategique(record)
        strategique_contribs.append(ScoreContribution(
            name="balance",
            score=score_balance(financier.score, operationnel.score, commercial.score),
            weight=w.balance,
        ))
        strategique = self._dimension("strategique", strategique_contribs)

        return [financier, operationnel, commercial, strategique]

    def _dimension(self, name: str, contributions: list[ScoreContribution]) -> DimensionBreakdown:
        total_weight = sum(c.weight for c in contributions)
        score = weighted_average(contributions)
        logger.debug(
            "%s: %s over weight %.0f -> %.2f",
            name, [c.name for c in contributions], total_weight, score,
        )
        return DimensionBreakdown(
            dimension=name,
            contributions=contributions,
            total_weight=total_weight,
            score=score,
        )

    def _financier(
        self, record: AuditRecord, benchmarks: BenchmarkSet, productivity: float
    ) -> list[ScoreContribution]:
        w = self.weights
        finance = record.finance
        contribs = [
            ScoreContribution(
                name="gross_margin",
                score=score_gross_margin(finance.gross_margin_percent / 100, benchmarks.metric("marge_brute")),
                weight=w.gross_margin,
            ),
            ScoreContribution(name="revenue_per_fte", score=productivity, weight=w.revenue_per_fte),
            ScoreContribution(
                name="hr_costs",
                score=score_hr_costs(record.costs.hr_costs_percent / 100, benchmarks.metric("charges_rh")),
                weight=w.hr_costs,
            ),
        ]
        if finance.net_margin_percent is not None:
            contribs.append(ScoreContribution(
                name="net_margin", score=score_net_margin(finance.net_margin_percent), weight=w.net_margin,
            ))
        if finance.cash_runway_months is not None:
            contribs.append(ScoreContribution(
                name="cash_runway", score=score_cash_runway(finance.cash_runway_months), weight=w.cash_runway,
            ))
        return contribs

    def _operationnel(self, record: AuditRecord, productivity: float) -> list[ScoreContribution]:
        w = self.weights
        contribs = [
            ScoreContribution(
                name="occupancy",
                score=score_occupancy(record.ops.occupancy_rate_percent / 100),
                weight=w.occupancy,
            ),
            ScoreContribution(name="productivity", score=productivity, weight=w.productivity),
        ]
        quality = record.ops.quality
        if quality is not None:
            sub_scores = []
            if quality.return_rate_percent is not None:
                sub_scores.append(score_return_rate(quality.return_rate_percent))
            if quality.incidents_per_month is not None:
                sub_scores.append(score_incidents(quality.incidents_per_month))
            quality_score = _mean(sub_scores)
            if quality_score is not None:
                contribs.append(ScoreContribution(name="quality", score=quality_score, weight=w.quality))
        return contribs

    def _commercial(self, record: AuditRecord, benchmarks: BenchmarkSet) -> list[ScoreContribution]:
        w = self.weights
        commercial = record.commercial
        contribs = [
            ScoreContribution(
                name="digitalization",
                score=score_digitalization(commercial.digitalization_percent, benchmarks.metric("digital_pct")),
                weight=w.digitalization,
            ),
        ]
        if commercial.loyalty_percent is not None:
            contribs.append(ScoreContribution(
                name="loyalty",
                score=score_loyalty(commercial.loyalty_percent, benchmarks.metric("fidelisation")),
                weight=w.loyalty,
            ))
        satisfaction = commercial.satisfaction
        if satisfaction is not None and satisfaction.csat_percent is not None:
            contribs.append(ScoreContribution(
                name="csat", score=score_csat(satisfaction.csat_percent), weight=w.csat,
            ))
        if satisfaction is not None and satisfaction.nps is not None:
            contribs.append(ScoreContribution(
                name="nps", score=score_nps(satisfaction.nps), weight=w.nps,
            ))
        return contribs

    def _strategique(self, record: AuditRecord) -> list[ScoreContribution]:
        """Stratégique contributions except the balance term."""
        w = self.weights
        nb_services = record.nb_services if record.nb_services is not None else 1
        contribs = [
            ScoreContribution(name="services", score=score_services(nb_services), weight=w.services),
        ]
        if record.finance.cash_runway_months is not None:
            contribs.append(ScoreContribution(
                name="runway_risk",
                score=score_runway_risk(record.finance.cash_runway_months),
                weight=w.runway_risk,
            ))
        hr = record.hr
        if hr is not None:
            sub_scores = []
            if hr.turnover_rate_percent is not None:
                sub_scores.append(score_turnover_risk(hr.turnover_rate_percent))
            if hr.absenteeism_rate_percent is not None:
                sub_scores.append(score_absenteeism_risk(hr.absenteeism_rate_percent))
            stability = _mean(sub_scores)
            if stability is not None:
                contribs.append(ScoreContribution(name="hr_stability", score=stability, weight=w.hr_stability))
        return contribs


def compute_scores(record: AuditRecord, benchmarks: BenchmarkSet) -> Scores:
    """Score a record with the default contribution weights."""
    return AuditScorer().score(record, benchmarks)


def score_breakdown(record: AuditRecord, benchmarks: BenchmarkSet) -> list[DimensionBreakdown]:
    """Contribution lists behind each dimension score."""
    return AuditScorer().breakdown(record, benchmarks)
