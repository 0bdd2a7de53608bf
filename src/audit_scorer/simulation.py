"""Simulation Engine.

Deterministic what-if scenarios. Each scenario maps one to three
user-chosen deltas onto a bounded [min, max] yearly impact in euros, using
fixed conservative realization rates. Confidence depends on how complete the
record is for the fields the scenario relies on.
"""

import logging
from typing import Callable, Optional, Union

from .exceptions import UnknownScenarioError
from .schema import (
    AuditRecord,
    ConfidenceLevel,
    Scores,
    SimulationInput,
    SimulationInputDefinition,
    SimulationInputOption,
    SimulationResult,
    SimulationScenario,
    SimulationType,
)
from .scorer import round_half_up

logger = logging.getLogger(__name__)

SIMULATION_DISCLAIMER = (
    "Les simulations proposées constituent des aides à la réflexion basées sur des "
    "hypothèses déclaratives. Elles ne constituent ni des prévisions ni des engagements de résultat."
)

WORKING_DAYS_PER_YEAR = 220

DEFAULT_SCENARIO_ORDER = [
    SimulationType.TRESORERIE,
    SimulationType.RENTABILITE,
    SimulationType.ACTIVITE,
    SimulationType.COMMERCIAL,
    SimulationType.RH,
]


def _option(value: float, label: str) -> SimulationInputOption:
    return SimulationInputOption(value=value, label=label)


SIMULATION_SCENARIOS: list[SimulationScenario] = [
    SimulationScenario(
        type=SimulationType.TRESORERIE,
        label="Trésorerie / Runway",
        description="Simulez l'impact d'actions sur votre trésorerie et votre capacité à opérer",
        inputs=[
            SimulationInputDefinition(
                id="delai_client",
                label="Réduction délai client",
                options=[_option(0, "Aucune"), _option(-15, "-15 jours"), _option(-30, "-30 jours")],
                unit="jours",
                description="Réduction du délai moyen de paiement client",
            ),
            SimulationInputDefinition(
                id="delai_fournisseur",
                label="Allongement délai fournisseur",
                options=[_option(0, "Aucun"), _option(15, "+15 jours")],
                unit="jours",
                description="Allongement négocié du délai de paiement fournisseur",
            ),
            SimulationInputDefinition(
                id="reduction_charges",
                label="Réduction charges fixes",
                options=[_option(0, "Aucune"), _option(-5, "-5%"), _option(-10, "-10%")],
                unit="%",
                description="Réduction des charges fixes mensuelles",
            ),
        ],
    ),
    SimulationScenario(
        type=SimulationType.RENTABILITE,
        label="Rentabilité",
        description="Simulez l'impact sur votre résultat net annuel",
        inputs=[
            SimulationInputDefinition(
                id="marge_brute",
                label="Augmentation marge brute",
                options=[
                    _option(0, "Aucune"), _option(1, "+1 point"),
                    _option(2, "+2 points"), _option(3, "+3 points"),
                ],
                unit="points",
                description="Amélioration de la marge brute en points de pourcentage",
            ),
            SimulationInputDefinition(
                id="reduction_cogs",
                label="Réduction COGS",
                options=[_option(0, "Aucune"), _option(-3, "-3%"), _option(-5, "-5%")],
                unit="%",
                description="Réduction des coûts des marchandises vendues",
            ),
            SimulationInputDefinition(
                id="reduction_rh",
                label="Réduction charges RH",
                options=[_option(0, "Aucune"), _option(-5, "-5%")],
                unit="%",
                description="Optimisation des charges de personnel",
            ),
        ],
    ),
    SimulationScenario(
        type=SimulationType.ACTIVITE,
        label="Activité / Productivité",
        description="Simulez l'impact d'une amélioration de l'efficacité opérationnelle",
        inputs=[
            SimulationInputDefinition(
                id="taux_occupation",
                label="Hausse taux d'occupation",
                options=[_option(0, "Aucune"), _option(5, "+5 points"), _option(10, "+10 points")],
                unit="points",
                description="Amélioration du taux d'occupation des ressources",
            ),
            SimulationInputDefinition(
                id="ca_par_etp",
                label="Hausse CA par ETP",
                options=[_option(0, "Aucune"), _option(5, "+5%"), _option(10, "+10%")],
                unit="%",
                description="Augmentation de la productivité par collaborateur",
            ),
        ],
    ),
    SimulationScenario(
        type=SimulationType.COMMERCIAL,
        label="Commercial / Digital",
        description="Simulez l'impact d'actions commerciales et digitales",
        inputs=[
            SimulationInputDefinition(
                id="taux_conversion",
                label="Hausse taux de conversion",
                options=[_option(0, "Aucune"), _option(1, "+1 point"), _option(2, "+2 points")],
                unit="points",
                description="Amélioration du taux de transformation visiteurs/clients",
            ),
            SimulationInputDefinition(
                id="panier_moyen",
                label="Hausse panier moyen",
                options=[_option(0, "Aucune"), _option(5, "+5%"), _option(10, "+10%")],
                unit="%",
                description="Augmentation du montant moyen par transaction",
            ),
        ],
    ),
    SimulationScenario(
        type=SimulationType.RH,
        label="Ressources Humaines",
        description="Simulez l'impact d'améliorations RH (estimation indirecte)",
        inputs=[
            SimulationInputDefinition(
                id="turnover",
                label="Baisse turnover",
                options=[_option(0, "Aucune"), _option(-5, "-5 points"), _option(-10, "-10 points")],
                unit="points",
                description="Réduction du taux de rotation du personnel",
            ),
            SimulationInputDefinition(
                id="absenteisme",
                label="Baisse absentéisme",
                options=[_option(0, "Aucune"), _option(-1, "-1 point"), _option(-2, "-2 points")],
                unit="points",
                description="Réduction du taux d'absentéisme",
            ),
        ],
    ),
]

# Record fields each scenario relies on, as dotted attribute paths
COMPLETENESS_FIELDS = {
    SimulationType.TRESORERIE: [
        "finance.annual_revenue",
        "costs.fixed_costs_percent",
        "finance.cash_runway_months",
    ],
    SimulationType.RENTABILITE: [
        "finance.annual_revenue",
        "finance.gross_margin_percent",
        "costs.hr_costs_percent",
        "costs.cogs_percent",
    ],
    SimulationType.ACTIVITE: [
        "finance.annual_revenue",
        "ops.occupancy_rate_percent",
        "ops.productivity.fte",
    ],
    SimulationType.COMMERCIAL: [
        "finance.annual_revenue",
        "commercial.digitalization_percent",
        "commercial.loyalty_percent",
    ],
    SimulationType.RH: [
        "finance.annual_revenue",
        "costs.hr_costs_percent",
        "ops.productivity.fte",
        "hr.turnover_rate_percent",
        "hr.absenteeism_rate_percent",
    ],
}


# =============================================================================
# Helpers
# =============================================================================


def _whole(value: float) -> int:
    return int(round_half_up(value))


def _num(value: float) -> str:
    return f"{value:g}"


def format_currency(value: float) -> str:
    """Compact euro amount: 1.2M €, 45k €, 800 €."""
    if value >= 1_000_000:
        return f"{value / 1_000_000:.1f}M €"
    if value >= 1000:
        return f"{_whole(value / 1000)}k €"
    return f"{_whole(value)} €"


def get_scenario(simulation_type: SimulationType) -> SimulationScenario:
    for scenario in SIMULATION_SCENARIOS:
        if scenario.type == simulation_type:
            return scenario
    raise UnknownScenarioError(str(simulation_type))


def _input(simulation_type: SimulationType, input_id: str, value: float, description: str) -> SimulationInput:
    definition = next(d for d in get_scenario(simulation_type).inputs if d.id == input_id)
    return SimulationInput(
        id=input_id,
        label=definition.label,
        value=value,
        unit=definition.unit,
        description=description,
    )


def data_completeness(record: AuditRecord, fields: list[str]) -> float:
    """Share of dotted attribute paths that resolve to a non-None value."""
    if not fields:
        return 1.0
    filled = 0
    for path in fields:
        value = record
        for part in path.split("."):
            value = getattr(value, part, None)
            if value is None:
                break
        if value is not None:
            filled += 1
    return filled / len(fields)


def calculate_confidence(completeness: float, simulation_type: SimulationType) -> ConfidenceLevel:
    # HR projections never go above MOYEN
    if simulation_type == SimulationType.RH:
        return ConfidenceLevel.MOYEN if completeness >= 0.8 else ConfidenceLevel.FAIBLE
    if completeness >= 0.9:
        return ConfidenceLevel.BON
    if completeness >= 0.7:
        return ConfidenceLevel.MOYEN
    return ConfidenceLevel.FAIBLE


def _delta(deltas: dict[str, float], key: str) -> float:
    return float(deltas.get(key) or 0)


def _result(
    simulation_type: SimulationType,
    record: AuditRecord,
    title: str,
    description: str,
    total_min: float,
    total_max: float,
    label: Callable[[float, float], str],
    inputs: list[SimulationInput],
    effects: list[str],
    hypotheses: list[str],
    priority: int,
) -> SimulationResult:
    # Negative deltas flip the realization bounds
    low, high = min(total_min, total_max), max(total_min, total_max)
    completeness = data_completeness(record, COMPLETENESS_FIELDS[simulation_type])
    return SimulationResult(
        type=simulation_type,
        title=title,
        description=description,
        inputs=inputs,
        impact_min=_whole(low),
        impact_max=_whole(high),
        impact_label=label(low, high),
        secondary_effects=effects,
        hypotheses=hypotheses,
        confidence_level=calculate_confidence(completeness, simulation_type),
        priority=priority,
    )


# =============================================================================
# Scenarios
# =============================================================================


def simulate_tresorerie(record: AuditRecord, deltas: dict[str, float]) -> Optional[SimulationResult]:
    revenue = record.finance.annual_revenue or 0
    if revenue == 0:
        return None

    client_days = _delta(deltas, "delai_client")
    supplier_days = _delta(deltas, "delai_fournisseur")
    fixed_reduction = _delta(deltas, "reduction_charges")
    if client_days == 0 and supplier_days == 0 and fixed_reduction == 0:
        return None

    fixed_pct = record.costs.fixed_costs_percent
    if fixed_pct is None:
        fixed_pct = record.costs.hr_costs_percent
    monthly_fixed = revenue * fixed_pct / 100 / 12
    monthly_revenue = revenue / 12
    daily_revenue = revenue / 365

    client_gain = abs(client_days) * daily_revenue
    supplier_gain = supplier_days * (monthly_revenue * 0.3) / 30
    fixed_gain = monthly_fixed * abs(fixed_reduction) / 100 * 12

    total_min = client_gain * 0.6 + supplier_gain * 0.5 + fixed_gain * 0.7
    total_max = client_gain * 0.8 + supplier_gain * 0.7 + fixed_gain * 0.9

    burn = monthly_fixed if monthly_fixed > 0 else monthly_revenue * 0.4

    def label(low: float, high: float) -> str:
        runway_min = _whole(low / burn * 30)
        runway_max = _whole(high / burn * 30)
        return (
            f"{format_currency(low)} à {format_currency(high)} / an "
            f"(soit +{runway_min} à +{runway_max} jours de runway)"
        )

    t = SimulationType.TRESORERIE
    inputs, hypotheses, effects = [], [], []
    if client_days != 0:
        inputs.append(_input(t, "delai_client", client_days, f"Encaissement client {_num(abs(client_days))} jours plus tôt"))
        hypotheses.append(f"Réduction effective du DSO de {_num(abs(client_days))} jours")
        effects.append("Amélioration du BFR")
    if supplier_days != 0:
        inputs.append(_input(t, "delai_fournisseur", supplier_days, f"Négociation de +{_num(supplier_days)} jours"))
        hypotheses.append("Négociation réussie avec les fournisseurs clés")
    if fixed_reduction != 0:
        inputs.append(_input(t, "reduction_charges", fixed_reduction, f"Réduction de {_num(abs(fixed_reduction))}%"))
        hypotheses.append(f"Réduction effective des charges fixes de {_num(abs(fixed_reduction))}%")
        effects.append("Réduction du point mort")
    hypotheses.append("Maintien du niveau d'activité actuel")
    hypotheses.append("Pas de détérioration de la relation client/fournisseur")

    return _result(
        t, record,
        title="Simulation trésorerie",
        description="Impact estimé sur la trésorerie annuelle",
        total_min=total_min, total_max=total_max, label=label,
        inputs=inputs, effects=effects, hypotheses=hypotheses, priority=1,
    )


def simulate_rentabilite(record: AuditRecord, deltas: dict[str, float]) -> Optional[SimulationResult]:
    revenue = record.finance.annual_revenue or 0
    if revenue == 0:
        return None

    margin_points = _delta(deltas, "marge_brute")
    cogs_reduction = _delta(deltas, "reduction_cogs")
    hr_reduction = _delta(deltas, "reduction_rh")
    if margin_points == 0 and cogs_reduction == 0 and hr_reduction == 0:
        return None

    margin_gain = margin_points / 100 * revenue
    cogs = revenue * (1 - record.finance.gross_margin_percent / 100)
    cogs_gain = cogs * abs(cogs_reduction) / 100
    hr_gain = revenue * record.costs.hr_costs_percent / 100 * abs(hr_reduction) / 100

    total_min = margin_gain * 0.7 + cogs_gain * 0.6 + hr_gain * 0.5
    total_max = margin_gain * 0.9 + cogs_gain * 0.85 + hr_gain * 0.75

    t = SimulationType.RENTABILITE
    inputs, hypotheses, effects = [], [], []
    if margin_points != 0:
        inputs.append(_input(t, "marge_brute", margin_points, f"+{_num(margin_points)} point(s) de marge"))
        hypotheses.append(f"Augmentation effective de la marge de {_num(margin_points)} point(s)")
        effects.append("Renforcement de la capacité d'autofinancement")
    if cogs_reduction != 0:
        inputs.append(_input(t, "reduction_cogs", cogs_reduction, f"{_num(cogs_reduction)}% sur les coûts directs"))
        hypotheses.append("Négociation achats ou optimisation processus réussie")
    if hr_reduction != 0:
        inputs.append(_input(t, "reduction_rh", hr_reduction, f"{_num(hr_reduction)}% sur les charges de personnel"))
        hypotheses.append("Optimisation sans dégradation de la qualité de service")
        effects.append("Vigilance sur le climat social")
    hypotheses.append("Maintien du volume d'activité")
    hypotheses.append("Pas d'impact négatif sur la qualité")

    return _result(
        t, record,
        title="Simulation rentabilité",
        description="Impact estimé sur le résultat net annuel",
        total_min=total_min, total_max=total_max,
        label=lambda low, high: f"+{format_currency(low)} à +{format_currency(high)} / an",
        inputs=inputs, effects=effects, hypotheses=hypotheses, priority=2,
    )


def simulate_activite(record: AuditRecord, deltas: dict[str, float]) -> Optional[SimulationResult]:
    revenue = record.finance.annual_revenue or 0
    if revenue == 0:
        return None

    occupancy_points = _delta(deltas, "taux_occupation")
    productivity_pct = _delta(deltas, "ca_par_etp")
    if occupancy_points == 0 and productivity_pct == 0:
        return None

    occupancy_gain = occupancy_points / 100 * revenue
    productivity_gain = productivity_pct / 100 * revenue

    total_min = occupancy_gain * 0.5 + productivity_gain * 0.6
    total_max = occupancy_gain * 0.75 + productivity_gain * 0.85

    t = SimulationType.ACTIVITE
    inputs, hypotheses, effects = [], [], []
    if occupancy_points != 0:
        inputs.append(_input(t, "taux_occupation", occupancy_points, f"+{_num(occupancy_points)} points d'occupation"))
        hypotheses.append(f"Amélioration du planning de {_num(occupancy_points)} points")
        hypotheses.append("Demande suffisante pour absorber la capacité libérée")
        effects.append("Effet positif potentiel sur la marge (économies d'échelle)")
    if productivity_pct != 0:
        inputs.append(_input(t, "ca_par_etp", productivity_pct, f"+{_num(productivity_pct)}% de productivité"))
        hypotheses.append(f"Gains de productivité de {_num(productivity_pct)}% réalisables")
        effects.append("Vigilance sur la charge de travail")
    hypotheses.append("Pas de saturation de la demande")

    return _result(
        t, record,
        title="Simulation activité",
        description="Impact estimé sur le chiffre d'affaires annuel",
        total_min=total_min, total_max=total_max,
        label=lambda low, high: f"+{format_currency(low)} à +{format_currency(high)} / an",
        inputs=inputs, effects=effects, hypotheses=hypotheses, priority=3,
    )


def _volume_sensitivity(revenue: float) -> str:
    # Average basket estimated at revenue / 1000, i.e. ~1000 transactions a year
    average_basket = revenue / 1000
    transactions = revenue / average_basket
    if transactions > 10000:
        return "élevée"
    if transactions < 500:
        return "faible"
    return "modérée"


def simulate_commercial(record: AuditRecord, deltas: dict[str, float]) -> Optional[SimulationResult]:
    revenue = record.finance.annual_revenue or 0
    if revenue == 0:
        return None

    conversion_points = _delta(deltas, "taux_conversion")
    basket_pct = _delta(deltas, "panier_moyen")
    if conversion_points == 0 and basket_pct == 0:
        return None

    conversion_gain = conversion_points / 100 * revenue
    basket_gain = basket_pct / 100 * revenue

    total_min = conversion_gain * 0.3 + basket_gain * 0.5
    total_max = conversion_gain * 0.6 + basket_gain * 0.8

    t = SimulationType.COMMERCIAL
    inputs, hypotheses, effects = [], [], []
    if conversion_points != 0:
        inputs.append(_input(t, "taux_conversion", conversion_points, f"+{_num(conversion_points)} point(s) de conversion"))
        hypotheses.append("Amélioration du parcours client et de l'argumentaire")
        hypotheses.append("Trafic entrant maintenu ou en hausse")
    if basket_pct != 0:
        inputs.append(_input(t, "panier_moyen", basket_pct, f"+{_num(basket_pct)}% sur le panier moyen"))
        hypotheses.append("Stratégie d'upsell/cross-sell effective")
        effects.append("Meilleure marge unitaire possible")
    effects.append(f"Sensibilité au volume : {_volume_sensitivity(revenue)}")

    return _result(
        t, record,
        title="Simulation commerciale",
        description="Impact estimé sur le chiffre d'affaires",
        total_min=total_min, total_max=total_max,
        label=lambda low, high: f"+{format_currency(low)} à +{format_currency(high)} / an",
        inputs=inputs, effects=effects, hypotheses=hypotheses, priority=4,
    )


def simulate_rh(record: AuditRecord, deltas: dict[str, float]) -> Optional[SimulationResult]:
    revenue = record.finance.annual_revenue or 0
    if revenue == 0:
        return None

    turnover_points = _delta(deltas, "turnover")
    absenteeism_points = _delta(deltas, "absenteisme")
    if turnover_points == 0 and absenteeism_points == 0:
        return None

    fte = max(record.ops.productivity.fte, 0.1)
    hr_cost_per_fte = revenue * record.costs.hr_costs_percent / 100 / fte

    # Replacing a departure costs about four months of salary
    replacement_cost = hr_cost_per_fte * 0.4
    departures_avoided = fte * abs(turnover_points) / 100
    turnover_gain = departures_avoided * replacement_cost

    recovered_days = fte * WORKING_DAYS_PER_YEAR * abs(absenteeism_points) / 100
    value_per_day = revenue / (fte * WORKING_DAYS_PER_YEAR)
    absenteeism_gain = recovered_days * value_per_day

    total_min = turnover_gain * 0.4 + absenteeism_gain * 0.3
    total_max = turnover_gain * 0.7 + absenteeism_gain * 0.5

    t = SimulationType.RH
    inputs, hypotheses, effects = [], [], []
    if turnover_points != 0:
        inputs.append(_input(t, "turnover", turnover_points, f"{_num(turnover_points)} points de turnover"))
        hypotheses.append("Actions de fidélisation effectives (formation, management, rémunération)")
        effects.append("Préservation des compétences clés")
        effects.append("Réduction des coûts de recrutement")
    if absenteeism_points != 0:
        inputs.append(_input(t, "absenteisme", absenteeism_points, f"{_num(absenteeism_points)} point(s) d'absentéisme"))
        hypotheses.append("Amélioration des conditions de travail et prévention")
        effects.append("Meilleure continuité de service")
    hypotheses.append("Estimation indirecte, impact réel variable selon contexte")
    effects.append("Impact qualitatif supérieur à l'impact financier direct")

    return _result(
        t, record,
        title="Simulation RH",
        description="Impact indirect estimé (ordre de grandeur)",
        total_min=total_min, total_max=total_max,
        label=lambda low, high: f"+{format_currency(low)} à +{format_currency(high)} / an (estimation indirecte)",
        inputs=inputs, effects=effects, hypotheses=hypotheses, priority=5,
    )


SIMULATORS: dict[SimulationType, Callable[[AuditRecord, dict[str, float]], Optional[SimulationResult]]] = {
    SimulationType.TRESORERIE: simulate_tresorerie,
    SimulationType.RENTABILITE: simulate_rentabilite,
    SimulationType.ACTIVITE: simulate_activite,
    SimulationType.COMMERCIAL: simulate_commercial,
    SimulationType.RH: simulate_rh,
}


def run_simulation(
    simulation_type: Union[SimulationType, str],
    record: AuditRecord,
    deltas: dict[str, float],
) -> Optional[SimulationResult]:
    """Project the impact of a scenario.

    Args:
        simulation_type: Scenario type, or its name (``"trésorerie"`` works).
        record: Normalized audit record.
        deltas: Input id to chosen value, e.g. ``{"delai_client": -15}``.

    Returns:
        The bounded result, or None when revenue is zero or every delta is zero.

    Raises:
        UnknownScenarioError: If the type is not a known scenario.
    """
    if not isinstance(simulation_type, SimulationType):
        parsed = SimulationType.from_string(str(simulation_type))
        if parsed is None:
            raise UnknownScenarioError(str(simulation_type))
        simulation_type = parsed

    result = SIMULATORS[simulation_type](record, deltas)
    if result is None:
        logger.debug("Simulation %s skipped: no revenue base or no change", simulation_type.value)
    else:
        logger.debug(
            "Simulation %s: %d..%d %s (%s)",
            simulation_type.value, result.impact_min, result.impact_max,
            result.impact_unit, result.confidence_level.value,
        )
    return result


def get_prioritized_scenarios(record: AuditRecord, scores: Scores) -> list[SimulationType]:
    """Scenario types ranked by relevance to the current scores."""
    priorities: list[tuple[SimulationType, int]] = []

    if scores.global_score < 60:
        priorities.append((SimulationType.TRESORERIE, 100))

    if scores.financier > 75:
        priorities.append((SimulationType.RENTABILITE, 90))
    elif scores.financier < 50:
        priorities.append((SimulationType.RENTABILITE, 85))

    if scores.operationnel < 60:
        priorities.append((SimulationType.ACTIVITE, 80))

    if scores.commercial < 60:
        priorities.append((SimulationType.COMMERCIAL, 75))

    turnover = (record.hr.turnover_rate_percent if record.hr else None) or 0
    absenteeism = (record.hr.absenteeism_rate_percent if record.hr else None) or 0
    if turnover > 15 or absenteeism > 5:
        priorities.append((SimulationType.RH, 70))

    if not priorities:
        return list(DEFAULT_SCENARIO_ORDER)

    priorities.sort(key=lambda p: p[1], reverse=True)
    return [simulation_type for simulation_type, _ in priorities]
