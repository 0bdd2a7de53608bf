"""Data Normalizer.

Converts between the flat legacy audit schema and the structured
AuditRecord. Every engine consumes an AuditRecord; the legacy shape is only
accepted at this boundary.
"""

import json
from pathlib import Path
from typing import Any, Union

from .schema import (
    AuditRecord,
    CommercialData,
    CostData,
    DataOrigin,
    FinanceData,
    LegacyAuditData,
    OpsData,
    Productivity,
)

AuditInput = Union[AuditRecord, LegacyAuditData, dict]

# Default values of a blank audit form
DEFAULT_AUDIT_DATA = LegacyAuditData(
    nom="",
    secteur="Veterinaire",
    variant="veto_standard",
    margebrutepct=68,
    caannuel=450000,
    effectifetp=4.5,
    chargesrhpct=52,
    digitalpct=85,
    fidelisationpct=88,
    tauxoccupation=0.85,
    nbservices=5,
)


def is_structured(data: dict) -> bool:
    """A dict is in the structured shape when it carries a ``finance`` block."""
    return isinstance(data.get("finance"), dict)


def occupancy_to_percent(value: float) -> float:
    """Legacy occupancy is a fraction; values above 1 are already percentages."""
    return value * 100 if value <= 1 else value


def legacy_to_record(legacy: LegacyAuditData) -> AuditRecord:
    """Upgrade a flat legacy audit to an AuditRecord."""
    fte = legacy.effectifetp
    return AuditRecord(
        business_name=legacy.nom,
        sector=legacy.secteur,
        variant=legacy.variant,
        data_origin=DataOrigin.MANUAL,
        finance=FinanceData(
            annual_revenue=legacy.caannuel,
            gross_margin_percent=legacy.margebrutepct,
        ),
        costs=CostData(hr_costs_percent=legacy.chargesrhpct),
        ops=OpsData(
            occupancy_rate_percent=occupancy_to_percent(legacy.tauxoccupation),
            productivity=Productivity(
                fte=fte,
                revenue_per_fte=legacy.caannuel / max(fte, 0.1),
            ),
        ),
        commercial=CommercialData(
            digitalization_percent=legacy.digitalpct,
            loyalty_percent=legacy.fidelisationpct,
        ),
        nb_services=legacy.nbservices,
    )


def record_to_legacy(record: AuditRecord) -> LegacyAuditData:
    """Flatten an AuditRecord; optional blocks are dropped, loyalty defaults to 0."""
    loyalty = record.commercial.loyalty_percent
    return LegacyAuditData(
        nom=record.business_name,
        secteur=record.sector,
        variant=record.variant,
        margebrutepct=record.finance.gross_margin_percent,
        caannuel=record.finance.annual_revenue,
        effectifetp=record.ops.productivity.fte,
        chargesrhpct=record.costs.hr_costs_percent,
        digitalpct=record.commercial.digitalization_percent,
        fidelisationpct=loyalty if loyalty is not None else 0,
        tauxoccupation=record.ops.occupancy_rate_percent / 100,
        nbservices=record.nb_services if record.nb_services is not None else 1,
    )


def _with_derived_fields(record: AuditRecord) -> AuditRecord:
    if record.ops.productivity.revenue_per_fte is not None:
        return record
    productivity = record.ops.productivity.model_copy(
        update={"revenue_per_fte": record.revenue_per_fte}
    )
    ops = record.ops.model_copy(update={"productivity": productivity})
    return record.model_copy(update={"ops": ops})


def normalize_record(data: AuditInput) -> AuditRecord:
    """Produce the canonical AuditRecord from any accepted input shape.

    Args:
        data: An AuditRecord, a LegacyAuditData, or a dict of either shape
            (camelCase or snake_case keys).

    Returns:
        An AuditRecord with ``revenue_per_fte`` filled in.

    Raises:
        pydantic.ValidationError: If a dict does not match either shape.
    """
    if isinstance(data, AuditRecord):
        record = data
    elif isinstance(data, LegacyAuditData):
        record = legacy_to_record(data)
    elif isinstance(data, dict):
        if is_structured(data):
            record = AuditRecord.model_validate(data)
        else:
            record = legacy_to_record(LegacyAuditData.model_validate(data))
    else:
        raise TypeError(f"Cannot normalize audit data of type {type(data).__name__}")

    return _with_derived_fields(record)


def load_audit_file(file_path: Union[str, Path]) -> AuditRecord:
    """Load and normalize an audit JSON file from disk.

    Args:
        file_path: Path to the JSON file (an object, or an array with one object).

    Returns:
        The normalized AuditRecord.

    Raises:
        ValueError: If the file is missing or not valid JSON.
        pydantic.ValidationError: If the content matches neither shape.
    """
    path = Path(file_path)
    if not path.exists():
        raise ValueError(f"Audit file not found: {file_path}")

    with open(path, "r", encoding="utf-8") as f:
        try:
            data: Any = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in {file_path}: {e}") from e

    # Handle array wrapper (file is JSON array with one object)
    if isinstance(data, list):
        if len(data) != 1:
            raise ValueError(f"Expected exactly 1 audit object, got {len(data)}")
        data = data[0]

    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object in {file_path}")

    return normalize_record(data)
