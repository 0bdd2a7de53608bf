"""Pydantic models for the Business Audit Scoring Engine.

The canonical ``AuditRecord`` is the single representation every engine
consumes. Output models (scores, warnings, decision, simulation) are value
objects derived from a record and are never persisted on their own.

Input models accept both snake_case and the camelCase keys produced by the
web form and JSON exports (``annualRevenue``, ``grossMarginPercent``...).
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


# =============================================================================
# Enums
# =============================================================================


class DataOrigin(str, Enum):
    """Where the figures of an audit come from."""
    MANUAL = "manual"
    CLIENT_DECLARED = "client_declared"
    IMPORTED = "imported"
    ESTIMATED = "estimated"


class MetricUnit(str, Enum):
    """Unit semantics of a benchmark metric."""
    RATIO = "ratio"
    RATIO_INVERSE = "ratio_inverse"  # Lower is better
    AMOUNT = "amount"
    PERCENTAGE = "percentage"

    @property
    def is_inverse(self) -> bool:
        return self is MetricUnit.RATIO_INVERSE


class WarningSeverity(str, Enum):
    """Severity of a coherence warning."""
    WARNING = "warning"
    CRITICAL = "critical"


class RuleSeverity(str, Enum):
    """Severity of a decision risk rule."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Sort key: critical first."""
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    RuleSeverity.CRITICAL: 0,
    RuleSeverity.HIGH: 1,
    RuleSeverity.MEDIUM: 2,
    RuleSeverity.LOW: 3,
}


class RiskCategory(str, Enum):
    """Business area a risk rule belongs to."""
    FINANCIAL = "financial"
    OPERATIONAL = "operational"
    HR = "hr"
    COMMERCIAL = "commercial"
    STRATEGIC = "strategic"


class PriorityLevel(str, Enum):
    """Overall action priority derived by the decision engine."""
    CRITIQUE = "CRITIQUE"
    ELEVE = "ÉLEVÉ"
    MODERE = "MODÉRÉ"
    FAIBLE = "FAIBLE"


class ImpactType(str, Enum):
    """What a quantified recommendation moves."""
    CA = "CA"
    MARGE = "MARGE"
    TRESORERIE = "TRÉSORERIE"
    COUTS = "COÛTS"


class ConfidenceLevel(str, Enum):
    """Confidence attached to an estimate."""
    FAIBLE = "FAIBLE"
    MOYEN = "MOYEN"
    BON = "BON"


class SimulationType(str, Enum):
    """What-if scenario families."""
    TRESORERIE = "TRESORERIE"
    RENTABILITE = "RENTABILITE"
    ACTIVITE = "ACTIVITE"
    COMMERCIAL = "COMMERCIAL"
    RH = "RH"

    @classmethod
    def from_string(cls, value: str) -> Optional["SimulationType"]:
        """Parse a scenario type, tolerating case and accents."""
        if not value:
            return None
        cleaned = (
            value.strip().upper()
            .replace("É", "E").replace("È", "E").replace("Ê", "E")
        )
        aliases = {
            "TRESORERIE": cls.TRESORERIE,
            "CASH": cls.TRESORERIE,
            "RUNWAY": cls.TRESORERIE,
            "RENTABILITE": cls.RENTABILITE,
            "PROFITABILITY": cls.RENTABILITE,
            "ACTIVITE": cls.ACTIVITE,
            "ACTIVITY": cls.ACTIVITE,
            "PRODUCTIVITY": cls.ACTIVITE,
            "COMMERCIAL": cls.COMMERCIAL,
            "RH": cls.RH,
            "HR": cls.RH,
        }
        return aliases.get(cleaned)


class ScoreLevelType(str, Enum):
    """Qualitative band of a 0-100 score."""
    EXCELLENT = "excellent"
    BON = "bon"
    CRITIQUE = "critique"
    DANGER = "danger"


# =============================================================================
# Canonical audit record
# =============================================================================


class _CamelModel(BaseModel):
    """Accepts camelCase or snake_case keys, serializes camelCase by alias."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class FinanceData(_CamelModel):
    """Financial block of an audit."""
    annual_revenue: float
    gross_margin_percent: float
    net_margin_percent: Optional[float] = None
    cash_runway_months: Optional[float] = None


class CostData(_CamelModel):
    """Cost structure, each as a percentage of revenue."""
    hr_costs_percent: float
    cogs_percent: Optional[float] = None
    fixed_costs_percent: Optional[float] = None


class Productivity(_CamelModel):
    """Headcount and derived productivity."""
    fte: float
    revenue_per_fte: Optional[float] = None


class QualityData(_CamelModel):
    """Optional service quality indicators."""
    return_rate_percent: Optional[float] = None
    incidents_per_month: Optional[float] = None


class OpsData(_CamelModel):
    """Operational block of an audit."""
    occupancy_rate_percent: float
    productivity: Productivity
    quality: Optional[QualityData] = None


class HRData(_CamelModel):
    """Optional HR stability indicators."""
    absenteeism_rate_percent: Optional[float] = None
    turnover_rate_percent: Optional[float] = None


class SatisfactionData(_CamelModel):
    """Optional customer satisfaction indicators."""
    csat_percent: Optional[float] = None
    nps: Optional[float] = None  # -100..100


class CommercialData(_CamelModel):
    """Commercial block of an audit."""
    digitalization_percent: float
    loyalty_percent: Optional[float] = None
    satisfaction: Optional[SatisfactionData] = None


class AuditRecord(_CamelModel):
    """Normalized audit data.

    This is the primary input to every engine after normalization. Values are
    taken as-is: range validation belongs to the import layer.
    """
    business_name: str = ""
    sector: str
    variant: Optional[str] = None
    data_origin: DataOrigin = DataOrigin.MANUAL
    finance: FinanceData
    costs: CostData
    ops: OpsData
    hr: Optional[HRData] = None
    commercial: CommercialData
    nb_services: Optional[int] = Field(default=None, ge=1)

    @property
    def revenue_per_fte(self) -> float:
        """Revenue per FTE, with FTE floored at 0.1."""
        return self.finance.annual_revenue / max(self.ops.productivity.fte, 0.1)


class LegacyAuditData(BaseModel):
    """Flat audit schema used by the first version of the form.

    ``tauxoccupation`` is a fraction (0.85) while every other rate is a
    percentage.
    """
    nom: str = ""
    secteur: str
    variant: Optional[str] = None
    margebrutepct: float
    caannuel: float
    effectifetp: float
    chargesrhpct: float
    digitalpct: float
    fidelisationpct: float
    tauxoccupation: float
    nbservices: int = 1


# =============================================================================
# Benchmarks and sectors
# =============================================================================


class ThresholdSet(BaseModel):
    """Step-function breakpoints for one metric.

    Increasing for normal metrics, decreasing for inverse ratios.
    """
    critical: float
    good: float
    excellent: float

    class Config:
        frozen = True


class MetricDefinition(BaseModel):
    """Benchmark definition of a single metric."""
    unit: MetricUnit
    thresholds: ThresholdSet

    class Config:
        frozen = True


class BenchmarkSet(BaseModel):
    """Benchmarks of one (sector, variant) pair."""
    sector: str
    variant: str
    description: str = ""
    metrics: dict[str, MetricDefinition]

    class Config:
        frozen = True

    def metric(self, name: str) -> MetricDefinition:
        """Get a metric definition, raising on a malformed table."""
        from .exceptions import BenchmarkLookupError

        try:
            return self.metrics[name]
        except KeyError:
            raise BenchmarkLookupError(
                f"Metric '{name}' missing for '{self.sector}/{self.variant}'",
                sector=self.sector,
                variant=self.variant,
            ) from None


class SectorVariant(BaseModel):
    """Summary of a sector variant for listings."""
    id: str
    description: str


class SectorResolution(BaseModel):
    """Result of mapping free text onto a canonical sector."""
    is_valid: bool
    canonical_sector: str
    label: str
    is_fallback: bool
    warning: Optional[str] = None


# =============================================================================
# Scoring output
# =============================================================================


class Scores(BaseModel):
    """Four-dimension scores plus the weighted global score."""
    global_score: float = Field(..., alias="global", ge=0, le=100)
    financier: float
    operationnel: float
    commercial: float
    strategique: float

    class Config:
        populate_by_name = True

    def dimensions(self) -> dict[str, float]:
        """The four dimension scores keyed by name."""
        return {
            "financier": self.financier,
            "operationnel": self.operationnel,
            "commercial": self.commercial,
            "strategique": self.strategique,
        }


class ScoreContribution(BaseModel):
    """One (score, weight) pair inside a dimension."""
    name: str
    score: float
    weight: float


class DimensionBreakdown(BaseModel):
    """Contributions that produced a dimension score."""
    dimension: str
    contributions: list[ScoreContribution] = Field(default_factory=list)
    total_weight: float = 0.0
    score: float = 0.0


class ScoreLevel(BaseModel):
    """Qualitative band of a score."""
    level: ScoreLevelType
    label: str


class AuditWarning(BaseModel):
    """A coherence warning raised on the audit data."""
    severity: WarningSeverity
    message: str
    field: str


# =============================================================================
# Decision output
# =============================================================================


class QuantifiedRecommendation(BaseModel):
    """A lever with an estimated financial impact range."""
    id: str
    lever: str
    impact_type: ImpactType
    estimated_impact_min: float
    estimated_impact_max: float
    unit: str = "€"
    assumptions: list[str] = Field(default_factory=list)
    confidence_level: ConfidenceLevel


class DecisionOutput(BaseModel):
    """Prioritized decision summary."""
    priority_level: PriorityLevel
    top_risks: list[str] = Field(default_factory=list)
    top_levers: list[str] = Field(default_factory=list)
    quick_wins: list[str] = Field(default_factory=list)
    structural_actions: list[str] = Field(default_factory=list)
    decision_summary: str
    quantified_recommendations: list[QuantifiedRecommendation] = Field(default_factory=list)
    triggered_rules: list[str] = Field(
        default_factory=list,
        description="Ids of triggered risk rules, in severity order",
    )


# =============================================================================
# Simulation
# =============================================================================


class SimulationInputOption(BaseModel):
    """One selectable value for a scenario input."""
    value: float
    label: str


class SimulationInputDefinition(BaseModel):
    """A tunable parameter of a scenario."""
    id: str
    label: str
    options: list[SimulationInputOption]
    unit: str
    description: str


class SimulationScenario(BaseModel):
    """Catalogue entry describing a scenario family."""
    type: SimulationType
    label: str
    description: str
    inputs: list[SimulationInputDefinition]


class SimulationInput(BaseModel):
    """An input actually applied in a simulation."""
    id: str
    label: str
    value: float
    unit: str
    description: str


class SimulationResult(BaseModel):
    """Bounded projected impact of a what-if scenario."""
    type: SimulationType
    title: str
    description: str
    inputs: list[SimulationInput] = Field(default_factory=list)
    impact_min: float
    impact_max: float
    impact_unit: str = "€"
    impact_label: str
    secondary_effects: list[str] = Field(default_factory=list)
    hypotheses: list[str] = Field(default_factory=list)
    confidence_level: ConfidenceLevel
    priority: int = Field(..., ge=1, le=5)


# =============================================================================
# Import
# =============================================================================


class ImportIssue(BaseModel):
    """A field-level import error or warning."""
    field: str
    message: str


class ImportValidationResult(BaseModel):
    """Outcome of validating an imported document."""
    is_valid: bool
    errors: list[ImportIssue] = Field(default_factory=list)
    warnings: list[ImportIssue] = Field(default_factory=list)
    record: Optional[AuditRecord] = None


# =============================================================================
# Report
# =============================================================================


class AuditReport(BaseModel):
    """Complete output of one evaluation pass."""
    # Metadata
    scoring_version: str = Field(default="2.0.0")
    scored_at: datetime = Field(default_factory=datetime.utcnow)
    benchmark_version: str
    currency: str = "EUR"
    business_name: str
    sector_label: str

    # Inputs as interpreted
    record: AuditRecord
    sector_resolution: SectorResolution

    # Results
    scores: Scores
    score_levels: dict[str, ScoreLevel] = Field(default_factory=dict)
    breakdown: list[DimensionBreakdown] = Field(default_factory=list)
    warnings: list[AuditWarning] = Field(default_factory=list)
    decision: DecisionOutput
    prioritized_scenarios: list[SimulationType] = Field(default_factory=list)

    # Debug/audit info
    processing_warnings: list[str] = Field(default_factory=list)
    disclaimer: str = ""
