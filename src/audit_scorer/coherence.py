"""Warnings Engine.

Coherence checks over a normalized AuditRecord. Each check is independent
and evaluated unconditionally; several may fire for the same record. The
warnings are advisory and never feed back into scoring.
"""

import logging
from typing import Callable, Optional

from .schema import AuditRecord, AuditWarning, WarningSeverity

logger = logging.getLogger(__name__)

# Tolerance, in points, around gross margin + COGS = 100 %
MARGIN_COGS_TOLERANCE = 8
TOTAL_COSTS_LIMIT = 115


def _num(value: float) -> str:
    """68.0 -> '68', 12.5 -> '12.5'."""
    return f"{value:g}"


def _check_margin_cogs(record: AuditRecord) -> Optional[AuditWarning]:
    cogs = record.costs.cogs_percent
    if cogs is None:
        return None
    margin = record.finance.gross_margin_percent
    total = margin + cogs
    if abs(total - 100) > MARGIN_COGS_TOLERANCE:
        return AuditWarning(
            severity=WarningSeverity.WARNING,
            message=(
                f"Incohérence : Marge brute ({_num(margin)}%) + COGS ({_num(cogs)}%) = "
                f"{_num(total)}% (devrait être proche de 100%)"
            ),
            field="cogsPercent",
        )
    return None


def _check_net_above_gross(record: AuditRecord) -> Optional[AuditWarning]:
    net = record.finance.net_margin_percent
    gross = record.finance.gross_margin_percent
    if net is not None and net > gross:
        return AuditWarning(
            severity=WarningSeverity.WARNING,
            message=(
                f"Incohérence : La marge nette ({_num(net)}%) ne peut pas dépasser "
                f"la marge brute ({_num(gross)}%)"
            ),
            field="netMarginPercent",
        )
    return None


def _check_total_costs(record: AuditRecord) -> Optional[AuditWarning]:
    costs = record.costs
    cogs = costs.cogs_percent or 0
    fixed = costs.fixed_costs_percent or 0
    total = costs.hr_costs_percent + cogs + fixed
    if total > TOTAL_COSTS_LIMIT:
        return AuditWarning(
            severity=WarningSeverity.WARNING,
            message=(
                f"Structure de coûts élevée : RH ({_num(costs.hr_costs_percent)}%) + "
                f"COGS ({_num(cogs)}%) + Fixes ({_num(fixed)}%) = {_num(total)}% du CA"
            ),
            field="costs",
        )
    return None


def _check_occupancy(record: AuditRecord) -> Optional[AuditWarning]:
    occupancy = record.ops.occupancy_rate_percent
    if occupancy > 95:
        return AuditWarning(
            severity=WarningSeverity.WARNING,
            message=(
                f"Taux d'occupation très élevé ({_num(occupancy)}%) : "
                "risque de surcharge et qualité de service impactée"
            ),
            field="occupancyRatePercent",
        )
    return None


def _check_absenteeism(record: AuditRecord) -> Optional[AuditWarning]:
    rate = record.hr.absenteeism_rate_percent if record.hr else None
    if rate is not None and rate > 15:
        return AuditWarning(
            severity=WarningSeverity.CRITICAL,
            message=f"Taux d'absentéisme critique ({_num(rate)}%) : risque RH majeur à traiter en priorité",
            field="absenteeismRatePercent",
        )
    return None


def _check_turnover(record: AuditRecord) -> Optional[AuditWarning]:
    rate = record.hr.turnover_rate_percent if record.hr else None
    if rate is not None and rate > 40:
        return AuditWarning(
            severity=WarningSeverity.CRITICAL,
            message=f"Turnover critique ({_num(rate)}%) : instabilité des équipes, coûts de recrutement élevés",
            field="turnoverRatePercent",
        )
    return None


def _check_return_rate(record: AuditRecord) -> Optional[AuditWarning]:
    rate = record.ops.quality.return_rate_percent if record.ops.quality else None
    if rate is not None and rate > 10:
        return AuditWarning(
            severity=WarningSeverity.WARNING,
            message=f"Taux de retours/erreurs élevé ({_num(rate)}%) : impact sur la satisfaction client",
            field="returnRatePercent",
        )
    return None


def _check_runway(record: AuditRecord) -> Optional[AuditWarning]:
    months = record.finance.cash_runway_months
    if months is not None and months < 3:
        return AuditWarning(
            severity=WarningSeverity.CRITICAL,
            message=f"Trésorerie critique : runway de {_num(months)} mois seulement",
            field="cashRunwayMonths",
        )
    return None


def _check_nps(record: AuditRecord) -> Optional[AuditWarning]:
    satisfaction = record.commercial.satisfaction
    nps = satisfaction.nps if satisfaction else None
    if nps is not None and nps < 0:
        return AuditWarning(
            severity=WarningSeverity.WARNING,
            message=f"NPS négatif ({_num(nps)}) : plus de détracteurs que de promoteurs",
            field="nps",
        )
    return None


def _check_csat(record: AuditRecord) -> Optional[AuditWarning]:
    satisfaction = record.commercial.satisfaction
    csat = satisfaction.csat_percent if satisfaction else None
    if csat is not None and csat < 70:
        return AuditWarning(
            severity=WarningSeverity.WARNING,
            message=f"Satisfaction client faible (CSAT: {_num(csat)}%) : risque de churn élevé",
            field="csatPercent",
        )
    return None


# Evaluation order is the output order
COHERENCE_CHECKS: list[Callable[[AuditRecord], Optional[AuditWarning]]] = [
    _check_margin_cogs,
    _check_net_above_gross,
    _check_total_costs,
    _check_occupancy,
    _check_absenteeism,
    _check_turnover,
    _check_return_rate,
    _check_runway,
    _check_nps,
    _check_csat,
]


def compute_warnings(record: AuditRecord) -> list[AuditWarning]:
    """Run every coherence check and collect the warnings raised."""
    warnings = []
    for check in COHERENCE_CHECKS:
        warning = check(record)
        if warning is not None:
            logger.debug("Coherence check %s raised on '%s'", check.__name__, warning.field)
            warnings.append(warning)
    return warnings


def has_critical(warnings: list[AuditWarning]) -> bool:
    return any(w.severity == WarningSeverity.CRITICAL for w in warnings)
