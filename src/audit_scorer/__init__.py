"""Business Audit Scoring and Decision Engine."""

from audit_scorer.benchmarks import get_benchmarks
from audit_scorer.coherence import compute_warnings
from audit_scorer.decision import compute_decision
from audit_scorer.engine import AuditEngine, validate_audit_file
from audit_scorer.exceptions import (
    AuditScorerError,
    BenchmarkLookupError,
    ImportValidationError,
    UnknownScenarioError,
)
from audit_scorer.importer import import_audit
from audit_scorer.normalizer import normalize_record
from audit_scorer.scorer import compute_scores
from audit_scorer.sectors import normalize_sector
from audit_scorer.simulation import run_simulation

__version__ = "2.0.0"

__all__ = [
    "AuditEngine",
    "validate_audit_file",
    "normalize_sector",
    "get_benchmarks",
    "normalize_record",
    "compute_scores",
    "compute_warnings",
    "compute_decision",
    "run_simulation",
    "import_audit",
    "AuditScorerError",
    "BenchmarkLookupError",
    "ImportValidationError",
    "UnknownScenarioError",
]
