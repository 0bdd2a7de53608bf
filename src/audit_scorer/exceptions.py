"""
Custom exceptions for the audit scorer.
"""
from typing import Optional


class AuditScorerError(Exception):
    """Base exception for the audit scorer."""
    pass


class BenchmarkLookupError(AuditScorerError, LookupError):
    """Raised when a sector or variant is absent from the benchmark table.

    Callers must resolve sectors through the sector normalizer first, so this
    always indicates a broken invariant upstream.
    """
    def __init__(self, message: str, sector: str, variant: Optional[str] = None):
        self.message = message
        self.sector = sector
        self.variant = variant
        super().__init__(self.message)


class ImportValidationError(AuditScorerError, ValueError):
    """Exception raised when imported data fails validation."""
    def __init__(self, errors: list):
        self.errors = errors
        details = "; ".join(f"{e.field}: {e.message}" for e in errors)
        self.message = f"Import invalide ({len(errors)} erreur(s)): {details}"
        super().__init__(self.message)


class UnknownScenarioError(AuditScorerError, ValueError):
    """Exception raised for an unsupported simulation type."""
    def __init__(self, scenario: str):
        self.scenario = scenario
        self.message = f"Unknown simulation type: {scenario}"
        super().__init__(self.message)
