"""Audit Engine.

Main orchestrator for one evaluation pass:

1. Normalize the input (file, dict, legacy or structured model)
2. Resolve the declared sector and its benchmark variant
3. Score the four dimensions and the global score
4. Run the coherence checks
5. Derive the decision summary
6. Rank the what-if scenarios worth exploring
"""

import logging
from pathlib import Path
from typing import Optional, Union

from pydantic import ValidationError

from .benchmarks import (
    get_benchmark_version,
    get_benchmarks,
    get_currency,
    get_default_variant,
    get_sector_variants,
)
from .coherence import compute_warnings
from .decision import DECISION_DISCLAIMER, compute_decision
from .exceptions import BenchmarkLookupError
from .normalizer import AuditInput, load_audit_file, normalize_record
from .schema import (
    AuditRecord,
    AuditReport,
    SectorResolution,
    SimulationResult,
    SimulationType,
)
from .scorer import AuditScorer, get_score_level
from .sectors import normalize_sector
from .simulation import SIMULATION_DISCLAIMER, get_prioritized_scenarios, run_simulation

logger = logging.getLogger(__name__)

SCORING_VERSION = "2.0.0"

EngineInput = Union[AuditInput, str, Path]


class AuditEngine:
    """Orchestrates scoring, warnings, decision and scenario ranking."""

    def __init__(self, scorer: Optional[AuditScorer] = None):
        self.scorer = scorer or AuditScorer()

    def load(self, data: EngineInput) -> AuditRecord:
        """Normalize any accepted input; strings and paths are read as JSON files."""
        if isinstance(data, (str, Path)):
            return load_audit_file(data)
        return normalize_record(data)

    def resolve(self, record: AuditRecord) -> tuple[AuditRecord, SectorResolution, list[str]]:
        """Replace the declared sector by its canonical id and pin the variant.

        A variant unknown to a recognized sector aborts the evaluation. When
        the sector itself fell back, its variant cannot apply and the
        fallback sector's default is used instead.

        Returns:
            The resolved record, the sector resolution and any processing warnings.

        Raises:
            BenchmarkLookupError: If the variant is not defined for a recognized sector.
        """
        notes: list[str] = []
        resolution = normalize_sector(record.sector)
        sector = resolution.canonical_sector
        if resolution.warning:
            notes.append(resolution.warning)

        variant = record.variant
        if variant is not None and variant not in {v.id for v in get_sector_variants(sector)}:
            if not resolution.is_fallback:
                raise BenchmarkLookupError(
                    f"Variant '{variant}' is not defined for sector '{sector}'",
                    sector=sector,
                    variant=variant,
                )
            logger.warning("Variant '%s' dropped with unrecognized sector '%s'", variant, record.sector)
            notes.append(
                f"Variante '{variant}' ignorée, variante par défaut du secteur "
                f"{resolution.label} utilisée"
            )
            variant = None

        if variant is None:
            variant = get_default_variant(sector)

        resolved = record.model_copy(
            update={"sector": sector, "variant": variant}
        )
        return resolved, resolution, notes

    def evaluate(self, data: EngineInput) -> AuditReport:
        """Run a complete evaluation.

        Args:
            data: Audit data in any accepted shape, or the path to a JSON file.

        Returns:
            The complete AuditReport.

        Raises:
            ValueError: If a file cannot be read.
            pydantic.ValidationError: If the data matches no audit shape.
            BenchmarkLookupError: If the declared variant does not exist for the sector.
        """
        record, resolution, processing_warnings = self.resolve(self.load(data))
        benchmarks = get_benchmarks(record.sector, record.variant)
        logger.info(
            "Evaluating '%s' against %s/%s",
            record.business_name, benchmarks.sector, benchmarks.variant,
        )

        scores = self.scorer.score(record, benchmarks)
        breakdown = self.scorer.breakdown(record, benchmarks)
        warnings = compute_warnings(record)
        decision = compute_decision(record, scores)
        scenarios = get_prioritized_scenarios(record, scores)

        score_levels = {
            name: get_score_level(value) for name, value in scores.dimensions().items()
        }
        score_levels["global"] = get_score_level(scores.global_score)

        logger.info(
            "Global score %.1f, priority %s, %d warning(s)",
            scores.global_score, decision.priority_level.value, len(warnings),
        )

        return AuditReport(
            scoring_version=SCORING_VERSION,
            benchmark_version=get_benchmark_version(),
            currency=get_currency(),
            business_name=record.business_name,
            sector_label=resolution.label,
            record=record,
            sector_resolution=resolution,
            scores=scores,
            score_levels=score_levels,
            breakdown=breakdown,
            warnings=warnings,
            decision=decision,
            prioritized_scenarios=scenarios,
            processing_warnings=processing_warnings,
            disclaimer=f"{DECISION_DISCLAIMER} {SIMULATION_DISCLAIMER}",
        )

    def simulate(
        self,
        simulation_type: Union[SimulationType, str],
        data: EngineInput,
        deltas: dict[str, float],
    ) -> Optional[SimulationResult]:
        """Run one what-if scenario on the resolved record."""
        record, _, _ = self.resolve(self.load(data))
        return run_simulation(simulation_type, record, deltas)

    def scenarios(self, data: EngineInput) -> list[SimulationType]:
        """Scenario types ranked for this audit."""
        record, _, _ = self.resolve(self.load(data))
        scores = self.scorer.score(record, get_benchmarks(record.sector, record.variant))
        return get_prioritized_scenarios(record, scores)


def validate_audit_file(file_path: Union[str, Path]) -> tuple[bool, list[str]]:
    """Validate an audit JSON file.

    Returns:
        Tuple of (is_valid, list of issues). Sector fallbacks are reported
        as issues but do not make the file invalid.
    """
    issues = []

    try:
        record = load_audit_file(file_path)
    except ValidationError as e:
        for error in e.errors():
            location = ".".join(str(part) for part in error["loc"])
            issues.append(f"{location}: {error['msg']}")
        return False, issues
    except ValueError as e:
        return False, [str(e)]

    if record.finance.annual_revenue <= 0:
        issues.append("finance.annualRevenue must be positive")
    if record.ops.productivity.fte <= 0:
        issues.append("ops.productivity.fte must be positive")

    resolution = normalize_sector(record.sector)
    if resolution.warning:
        issues.append(f"Warning: {resolution.warning}")

    sector = resolution.canonical_sector
    if record.variant is not None and not resolution.is_fallback:
        if record.variant not in {v.id for v in get_sector_variants(sector)}:
            issues.append(f"variant '{record.variant}' is not defined for sector '{sector}'")

    errors = [i for i in issues if not i.startswith("Warning:")]
    return len(errors) == 0, issues
