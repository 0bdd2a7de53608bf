"""Decision Engine.

Derives a priority level, a narrative summary and quantified recommendations
from a record and its scores. Both rule sets are plain tables of
(predicate, payload) entries: every rule is evaluated, nothing short-circuits,
and each rule can be tested on its own.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from .config import get_config
from .schema import (
    AuditRecord,
    ConfidenceLevel,
    DecisionOutput,
    ImpactType,
    PriorityLevel,
    QuantifiedRecommendation,
    RiskCategory,
    RuleSeverity,
    Scores,
)
from .scorer import round_half_up

logger = logging.getLogger(__name__)

DECISION_DISCLAIMER = (
    "Cette synthèse constitue une aide à la décision et ne remplace pas un jugement expert."
)


@dataclass(frozen=True)
class RiskRule:
    """A risk rule and the narrative it contributes when triggered."""
    id: str
    condition: Callable[[AuditRecord, Scores], bool]
    risk: str
    lever: str
    category: RiskCategory
    severity: RuleSeverity
    quick_win: Optional[str] = None
    structural_action: Optional[str] = None


@dataclass(frozen=True)
class QuantificationRule:
    """A lever whose impact is a fixed share of annual revenue."""
    id: str
    condition: Callable[[AuditRecord, Scores], bool]
    lever: str
    impact_type: ImpactType
    revenue_share_min: float
    revenue_share_max: float
    confidence_level: ConfidenceLevel
    assumptions: tuple[str, ...] = field(default_factory=tuple)
    unit: str = "€"

    def calculate_impact(self, record: AuditRecord) -> tuple[float, float]:
        revenue = record.finance.annual_revenue
        return round_half_up(revenue * self.revenue_share_min), round_half_up(revenue * self.revenue_share_max)


# Accessors defaulting absent optional values the way the rules expect

def _absenteeism(record: AuditRecord) -> float:
    value = record.hr.absenteeism_rate_percent if record.hr else None
    return value if value is not None else 0


def _turnover(record: AuditRecord) -> float:
    value = record.hr.turnover_rate_percent if record.hr else None
    return value if value is not None else 0


def _return_rate(record: AuditRecord) -> float:
    value = record.ops.quality.return_rate_percent if record.ops.quality else None
    return value if value is not None else 0


def _csat(record: AuditRecord) -> float:
    satisfaction = record.commercial.satisfaction
    value = satisfaction.csat_percent if satisfaction else None
    return value if value is not None else 100


def _nps(record: AuditRecord) -> float:
    satisfaction = record.commercial.satisfaction
    value = satisfaction.nps if satisfaction else None
    return value if value is not None else 50


def _loyalty(record: AuditRecord) -> float:
    value = record.commercial.loyalty_percent
    return value if value is not None else 100


def _runway_below(record: AuditRecord, months: float) -> bool:
    runway = record.finance.cash_runway_months
    return runway is not None and runway < months


def _dimension_spread(scores: Scores) -> float:
    dims = list(scores.dimensions().values())
    return max(dims) - min(dims)


# =============================================================================
# Risk rules
# =============================================================================

# Declaration order breaks ties between rules of equal severity
RISK_RULES: list[RiskRule] = [
    # Financial
    RiskRule(
        id="runway_critical",
        condition=lambda r, s: _runway_below(r, 3),
        risk="Risque de continuité : trésorerie critique (moins de 3 mois)",
        lever="Sécuriser la trésorerie avant toute autre action",
        category=RiskCategory.FINANCIAL,
        severity=RuleSeverity.CRITICAL,
        structural_action="Renégocier les délais de paiement et optimiser le BFR",
    ),
    RiskRule(
        id="runway_warning",
        condition=lambda r, s: _runway_below(r, 6) and not _runway_below(r, 3),
        risk="Trésorerie tendue : vigilance sur le cash",
        lever="Mettre en place un suivi hebdomadaire de trésorerie",
        category=RiskCategory.FINANCIAL,
        severity=RuleSeverity.HIGH,
        quick_win="Relancer les créances clients en retard",
    ),
    RiskRule(
        id="low_gross_margin",
        condition=lambda r, s: s.financier < 45,
        risk="Marge brute insuffisante pour absorber les aléas",
        lever="Réviser la politique tarifaire et les coûts d'achat",
        category=RiskCategory.FINANCIAL,
        severity=RuleSeverity.HIGH,
        structural_action="Analyser la structure de coûts par activité/produit",
    ),
    RiskRule(
        id="negative_net_margin",
        condition=lambda r, s: r.finance.net_margin_percent is not None and r.finance.net_margin_percent < 0,
        risk="Résultat net négatif : modèle économique déficitaire",
        lever="Identifier les centres de coûts à optimiser en priorité",
        category=RiskCategory.FINANCIAL,
        severity=RuleSeverity.CRITICAL,
        structural_action="Plan de redressement avec objectifs chiffrés",
    ),

    # HR
    RiskRule(
        id="hr_cost_high",
        condition=lambda r, s: r.costs.hr_costs_percent > 50 and _absenteeism(r) > 8,
        risk="Risque humain majeur : coûts RH élevés combinés à un absentéisme important",
        lever="Rééquilibrer la structure RH avant toute action commerciale",
        category=RiskCategory.HR,
        severity=RuleSeverity.CRITICAL,
        structural_action="Audit social et plan QVT ciblé",
    ),
    RiskRule(
        id="high_absenteeism",
        condition=lambda r, s: 8 < _absenteeism(r) <= 15,
        risk="Absentéisme élevé : signal de dysfonctionnement organisationnel",
        lever="Analyser les causes d'absentéisme par service/poste",
        category=RiskCategory.HR,
        severity=RuleSeverity.HIGH,
        quick_win="Entretiens individuels pour identifier les irritants",
    ),
    RiskRule(
        id="critical_absenteeism",
        condition=lambda r, s: _absenteeism(r) > 15,
        risk="Absentéisme critique : désengagement généralisé",
        lever="Lancer un diagnostic social approfondi",
        category=RiskCategory.HR,
        severity=RuleSeverity.CRITICAL,
        structural_action="Plan de transformation RH avec accompagnement externe",
    ),
    RiskRule(
        id="high_turnover",
        condition=lambda r, s: 25 < _turnover(r) <= 40,
        risk="Turnover élevé : perte de compétences et coûts de recrutement",
        lever="Renforcer la politique de fidélisation des talents",
        category=RiskCategory.HR,
        severity=RuleSeverity.HIGH,
        quick_win="Entretiens de sortie systématiques pour comprendre les départs",
    ),
    RiskRule(
        id="critical_turnover",
        condition=lambda r, s: _turnover(r) > 40,
        risk="Turnover critique : instabilité des équipes",
        lever="Réviser la politique salariale et les conditions de travail",
        category=RiskCategory.HR,
        severity=RuleSeverity.CRITICAL,
        structural_action="Benchmark salarial et plan de rétention",
    ),

    # Operational
    RiskRule(
        id="low_occupancy",
        condition=lambda r, s: r.ops.occupancy_rate_percent < 65,
        risk="Inefficacité structurelle : sous-utilisation des capacités",
        lever="Améliorer le taux d'occupation avant d'investir en marketing",
        category=RiskCategory.OPERATIONAL,
        severity=RuleSeverity.HIGH,
        quick_win="Optimiser le planning et réduire les créneaux vides",
        structural_action="Revoir le dimensionnement de l'équipe",
    ),
    RiskRule(
        id="very_high_occupancy",
        condition=lambda r, s: r.ops.occupancy_rate_percent > 95,
        risk="Saturation opérationnelle : risque qualité et épuisement",
        lever="Anticiper les capacités avant que la qualité ne se dégrade",
        category=RiskCategory.OPERATIONAL,
        severity=RuleSeverity.MEDIUM,
        quick_win="Identifier les pics d'activité et lisser la charge",
    ),
    RiskRule(
        id="low_productivity",
        condition=lambda r, s: s.operationnel < 50,
        risk="Productivité insuffisante : CA/ETP sous les benchmarks sectoriels",
        lever="Optimiser les processus et réduire les temps improductifs",
        category=RiskCategory.OPERATIONAL,
        severity=RuleSeverity.HIGH,
        structural_action="Cartographie des processus et identification des goulots",
    ),
    RiskRule(
        id="quality_issues",
        condition=lambda r, s: _return_rate(r) > 5,
        risk="Problèmes qualité récurrents : impact sur la satisfaction client",
        lever="Mettre en place des contrôles qualité systématiques",
        category=RiskCategory.OPERATIONAL,
        severity=RuleSeverity.MEDIUM,
        quick_win="Analyser les causes des 5 derniers incidents majeurs",
    ),

    # Commercial
    RiskRule(
        id="low_digitalization",
        condition=lambda r, s: r.commercial.digitalization_percent < 40,
        risk="Risque commercial moyen terme : retard digital significatif",
        lever="Prioriser la digitalisation des interactions client",
        category=RiskCategory.COMMERCIAL,
        severity=RuleSeverity.HIGH,
        quick_win="Mettre en place un outil de prise de RDV en ligne",
        structural_action="Plan de transformation digitale sur 12 mois",
    ),
    RiskRule(
        id="moderate_digitalization",
        condition=lambda r, s: 40 <= r.commercial.digitalization_percent < 60,
        risk="Digitalisation partielle : opportunités non exploitées",
        lever="Compléter les outils digitaux existants",
        category=RiskCategory.COMMERCIAL,
        severity=RuleSeverity.MEDIUM,
        quick_win="Automatiser les rappels clients (email/SMS)",
    ),
    RiskRule(
        id="low_loyalty",
        condition=lambda r, s: _loyalty(r) < 60,
        risk="Fidélisation faible : coût d'acquisition élevé",
        lever="Mettre en place un programme de fidélisation structuré",
        category=RiskCategory.COMMERCIAL,
        severity=RuleSeverity.HIGH,
        quick_win="Offre de bienvenue pour les nouveaux clients récurrents",
    ),
    RiskRule(
        id="low_satisfaction",
        condition=lambda r, s: _csat(r) < 75,
        risk="Satisfaction client insuffisante : risque de churn",
        lever="Identifier et traiter les irritants clients prioritaires",
        category=RiskCategory.COMMERCIAL,
        severity=RuleSeverity.HIGH,
        quick_win="Enquête satisfaction flash auprès des 20 derniers clients",
    ),
    RiskRule(
        id="negative_nps",
        condition=lambda r, s: _nps(r) < 0,
        risk="NPS négatif : plus de détracteurs que de promoteurs",
        lever="Plan d'action ciblé sur les détracteurs",
        category=RiskCategory.COMMERCIAL,
        severity=RuleSeverity.HIGH,
        structural_action="Refonte de l'expérience client end-to-end",
    ),

    # Strategic
    RiskRule(
        id="dimension_imbalance",
        condition=lambda r, s: _dimension_spread(s) > 30,
        risk="Déséquilibre fort entre les dimensions : fragilité du modèle",
        lever="Rééquilibrer les investissements entre les 4 axes",
        category=RiskCategory.STRATEGIC,
        severity=RuleSeverity.MEDIUM,
        structural_action="Plan d'action différencié par dimension",
    ),
    RiskRule(
        id="low_diversification",
        condition=lambda r, s: (r.nb_services if r.nb_services is not None else 1) <= 2,
        risk="Dépendance à une offre limitée : vulnérabilité commerciale",
        lever="Identifier des opportunités de diversification de l'offre",
        category=RiskCategory.STRATEGIC,
        severity=RuleSeverity.MEDIUM,
        structural_action="Étude de marché pour nouvelles lignes de services",
    ),
]


# =============================================================================
# Quantification rules
# =============================================================================

QUANTIFICATION_RULES: list[QuantificationRule] = [
    QuantificationRule(
        id="occupation_improvement",
        condition=lambda r, s: r.ops.occupancy_rate_percent < 85,
        lever="Améliorer le taux d'occupation (+5 pts)",
        impact_type=ImpactType.CA,
        revenue_share_min=0.03,
        revenue_share_max=0.06,
        confidence_level=ConfidenceLevel.MOYEN,
        assumptions=(
            "Hypothèse : +5 pts d'occupation = +3% à +6% de CA",
            "Basé sur une élasticité linéaire de la capacité",
            "Ne prend pas en compte les coûts marginaux associés",
        ),
    ),
    QuantificationRule(
        id="hr_cost_reduction",
        condition=lambda r, s: r.costs.hr_costs_percent > 48,
        lever="Optimiser les charges RH (-3 pts)",
        impact_type=ImpactType.MARGE,
        revenue_share_min=0.025,
        revenue_share_max=0.035,
        confidence_level=ConfidenceLevel.BON,
        assumptions=(
            "Hypothèse : réduction de 3 pts des charges RH",
            "Impact direct sur le résultat d'exploitation",
            "Mise en œuvre progressive sur 6-12 mois",
        ),
    ),
    QuantificationRule(
        id="absenteeism_reduction",
        condition=lambda r, s: _absenteeism(r) > 5,
        lever="Réduire l'absentéisme (-2 pts)",
        impact_type=ImpactType.COUTS,
        revenue_share_min=0.01,
        revenue_share_max=0.02,
        confidence_level=ConfidenceLevel.MOYEN,
        assumptions=(
            "Hypothèse : -2 pts d'absentéisme = +1% à +2% de productivité",
            "Gain sur les coûts de remplacement et heures supplémentaires",
            "Effet indirect sur la qualité de service",
        ),
    ),
    QuantificationRule(
        id="gross_margin_improvement",
        condition=lambda r, s: r.finance.gross_margin_percent < 65,
        lever="Améliorer la marge brute (+2 pts)",
        impact_type=ImpactType.MARGE,
        revenue_share_min=0.018,
        revenue_share_max=0.022,
        confidence_level=ConfidenceLevel.BON,
        assumptions=(
            "Hypothèse : +2 pts de marge brute",
            "Via renégociation fournisseurs ou ajustement tarifaire",
            "Impact direct sur le résultat",
        ),
    ),
    QuantificationRule(
        id="digitalization_improvement",
        condition=lambda r, s: r.commercial.digitalization_percent < 60,
        lever="Accélérer la digitalisation (+15 pts)",
        impact_type=ImpactType.CA,
        revenue_share_min=0.02,
        revenue_share_max=0.05,
        confidence_level=ConfidenceLevel.FAIBLE,
        assumptions=(
            "Hypothèse : +15 pts de digitalisation",
            "Amélioration de l'acquisition et de la rétention client",
            "Réduction des coûts administratifs",
        ),
    ),
    QuantificationRule(
        id="cash_optimization",
        condition=lambda r, s: _runway_below(r, 6),
        lever="Optimiser le BFR et la trésorerie",
        impact_type=ImpactType.TRESORERIE,
        revenue_share_min=0.05,
        revenue_share_max=0.10,
        confidence_level=ConfidenceLevel.MOYEN,
        assumptions=(
            "Hypothèse : réduction du DSO de 10-15 jours",
            "Renégociation des délais fournisseurs",
            "Impact one-shot sur la trésorerie disponible",
        ),
    ),
    QuantificationRule(
        id="productivity_improvement",
        condition=lambda r, s: s.operationnel < 55,
        lever="Améliorer la productivité par ETP (+10%)",
        impact_type=ImpactType.CA,
        revenue_share_min=0.04,
        revenue_share_max=0.08,
        confidence_level=ConfidenceLevel.MOYEN,
        assumptions=(
            "Hypothèse : +10% de productivité par ETP",
            "Via formation, outils, ou optimisation des processus",
            "Sans augmentation de la masse salariale",
        ),
    ),
    QuantificationRule(
        id="turnover_reduction",
        condition=lambda r, s: _turnover(r) > 20,
        lever="Réduire le turnover (-10 pts)",
        impact_type=ImpactType.COUTS,
        revenue_share_min=0.015,
        revenue_share_max=0.03,
        confidence_level=ConfidenceLevel.FAIBLE,
        assumptions=(
            "Hypothèse : coût moyen d'un départ = 6 mois de salaire",
            "Économie sur recrutement, formation, perte de productivité",
            "Impact progressif sur 12-18 mois",
        ),
    ),
]


# =============================================================================
# Engine
# =============================================================================


def evaluate_risk_rules(
    record: AuditRecord,
    scores: Scores,
    rules: Optional[list[RiskRule]] = None,
) -> list[RiskRule]:
    """Triggered rules, stably sorted by severity (critical first)."""
    rules = RISK_RULES if rules is None else rules
    triggered = [rule for rule in rules if rule.condition(record, scores)]
    triggered.sort(key=lambda rule: rule.severity.rank)
    for rule in triggered:
        logger.debug("Risk rule '%s' triggered (%s)", rule.id, rule.severity.value)
    return triggered


def determine_priority_level(scores: Scores, triggered: list[RiskRule]) -> PriorityLevel:
    """First matching condition wins."""
    high_count = sum(1 for rule in triggered if rule.severity == RuleSeverity.HIGH)

    if scores.global_score < 40:
        return PriorityLevel.CRITIQUE
    if any(rule.severity == RuleSeverity.CRITICAL for rule in triggered):
        return PriorityLevel.CRITIQUE
    if scores.global_score < 50 or high_count >= 2:
        return PriorityLevel.ELEVE
    if scores.global_score < 60 or high_count > 0:
        return PriorityLevel.MODERE
    return PriorityLevel.FAIBLE


def generate_decision_summary(priority: PriorityLevel, risk_count: int, scores: Scores) -> str:
    if priority == PriorityLevel.CRITIQUE:
        s = "s" if risk_count > 1 else ""
        return (
            f"Situation critique nécessitant une action immédiate. "
            f"{risk_count} risque{s} majeur{s} identifié{s}. "
            f"Priorité : stabiliser avant d'optimiser."
        )
    if priority == PriorityLevel.ELEVE:
        return (
            f"Plusieurs zones de fragilité identifiées (score global : {scores.global_score:g}/100). "
            f"Actions correctives recommandées sous 30 jours."
        )
    if priority == PriorityLevel.MODERE:
        return (
            "Performance globale satisfaisante avec des axes d'amélioration ciblés. "
            "Plan d'action à 3 mois recommandé."
        )
    return (
        "Situation maîtrisée. Maintenir la vigilance et poursuivre "
        "l'optimisation continue des performances."
    )


def compute_quantified_recommendations(
    record: AuditRecord,
    scores: Scores,
    limit: Optional[int] = None,
) -> list[QuantifiedRecommendation]:
    """Recommendations of every matching rule, largest max impact first."""
    if limit is None:
        limit = get_config().decision.max_recommendations

    recommendations = []
    for rule in QUANTIFICATION_RULES:
        if not rule.condition(record, scores):
            continue
        impact_min, impact_max = rule.calculate_impact(record)
        recommendations.append(QuantifiedRecommendation(
            id=rule.id,
            lever=rule.lever,
            impact_type=rule.impact_type,
            estimated_impact_min=impact_min,
            estimated_impact_max=impact_max,
            unit=rule.unit,
            assumptions=list(rule.assumptions),
            confidence_level=rule.confidence_level,
        ))

    recommendations.sort(key=lambda rec: rec.estimated_impact_max, reverse=True)
    return recommendations[:limit]


def compute_decision(record: AuditRecord, scores: Scores) -> DecisionOutput:
    """Build the prioritized decision summary for a scored record."""
    top = get_config().decision.top_items
    triggered = evaluate_risk_rules(record, scores)

    top_rules = triggered[:top]
    top_risks = [rule.risk for rule in top_rules]
    top_levers = [rule.lever for rule in top_rules]
    quick_wins = [rule.quick_win for rule in triggered if rule.quick_win][:top]
    structural_actions = [rule.structural_action for rule in triggered if rule.structural_action][:top]

    priority = determine_priority_level(scores, triggered)
    logger.debug(
        "Decision: %s (%d rule(s) triggered, global=%.1f)",
        priority.value, len(triggered), scores.global_score,
    )

    return DecisionOutput(
        priority_level=priority,
        top_risks=top_risks,
        top_levers=top_levers,
        quick_wins=quick_wins,
        structural_actions=structural_actions,
        decision_summary=generate_decision_summary(priority, len(top_risks), scores),
        quantified_recommendations=compute_quantified_recommendations(record, scores),
        triggered_rules=[rule.id for rule in triggered],
    )
