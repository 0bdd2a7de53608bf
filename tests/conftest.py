"""Shared fixtures for the audit scorer tests."""

import json
from pathlib import Path

import pytest

from audit_scorer.benchmarks import get_benchmarks
from audit_scorer.config import reset_config
from audit_scorer.schema import AuditRecord


def make_record(**overrides) -> AuditRecord:
    """Build the reference veterinary audit, with nested overrides.

    Keys are dotted snake_case paths, e.g. ``{"finance.cash_runway_months": 2}``.
    """
    data = {
        "business_name": "Clinique des Tilleuls",
        "sector": "veterinaire",
        "variant": "veto_standard",
        "finance": {"annual_revenue": 450000, "gross_margin_percent": 68},
        "costs": {"hr_costs_percent": 52},
        "ops": {"occupancy_rate_percent": 85, "productivity": {"fte": 4.5}},
        "commercial": {"digitalization_percent": 85, "loyalty_percent": 88},
        "nb_services": 5,
    }
    for path, value in overrides.items():
        parts = path.split(".")
        current = data
        for part in parts[:-1]:
            current = current.setdefault(part, {})
        current[parts[-1]] = value
    return AuditRecord.model_validate(data)


@pytest.fixture(autouse=True)
def default_config():
    """Every test starts from the default configuration."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def veto_record() -> AuditRecord:
    """Reference audit: Vétérinaire, veto_standard, mandatory fields only."""
    return make_record()


@pytest.fixture
def veto_benchmarks():
    return get_benchmarks("veterinaire", "veto_standard")


@pytest.fixture
def legacy_payload() -> dict:
    """The reference audit in the flat legacy shape."""
    return {
        "nom": "Clinique des Tilleuls",
        "secteur": "Veterinaire",
        "variant": "veto_standard",
        "margebrutepct": 68,
        "caannuel": 450000,
        "effectifetp": 4.5,
        "chargesrhpct": 52,
        "digitalpct": 85,
        "fidelisationpct": 88,
        "tauxoccupation": 0.85,
        "nbservices": 5,
    }


@pytest.fixture
def audit_file(tmp_path: Path, legacy_payload: dict) -> Path:
    """The reference audit written to a JSON file."""
    path = tmp_path / "audit.json"
    path.write_text(json.dumps(legacy_payload), encoding="utf-8")
    return path


@pytest.fixture
def structured_payload() -> dict:
    """A complete audit in the structured camelCase shape."""
    return {
        "businessName": "Ostéo Santé",
        "sector": "ostéo",
        "finance": {
            "annualRevenue": 120000,
            "grossMarginPercent": 90,
            "netMarginPercent": 12,
            "cashRunwayMonths": 2,
        },
        "costs": {"hrCostsPercent": 30, "cogsPercent": 10, "fixedCostsPercent": 20},
        "ops": {
            "occupancyRatePercent": 70,
            "productivity": {"fte": 1},
            "quality": {"returnRatePercent": 1, "incidentsPerMonth": 0},
        },
        "hr": {"absenteeismRatePercent": 2, "turnoverRatePercent": 5},
        "commercial": {
            "digitalizationPercent": 75,
            "loyaltyPercent": 80,
            "satisfaction": {"csatPercent": 92, "nps": 55},
        },
        "nbServices": 2,
    }


@pytest.fixture
def record_factory():
    """Factory building the reference audit with dotted-path overrides."""
    return make_record
