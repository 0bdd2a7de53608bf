"""Import layer for client-declared data.

Validates JSON documents and pasted "field / value" tables (spreadsheet
copy-paste), maps field-name synonyms onto a fixed set of paths, parses
French-formatted numbers and produces an AuditRecord. Validation collects
every error instead of stopping at the first one.
"""

import json
import logging
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from .exceptions import ImportValidationError
from .schema import (
    AuditRecord,
    CommercialData,
    CostData,
    DataOrigin,
    FinanceData,
    HRData,
    ImportIssue,
    ImportValidationResult,
    OpsData,
    Productivity,
    QualityData,
    SatisfactionData,
)
from .sectors import normalize_sector

logger = logging.getLogger(__name__)


# Field path -> accepted spellings (compared after normalize_key)
FIELD_SYNONYMS: dict[str, list[str]] = {
    # Meta
    "meta.companyName": ["nom entreprise", "entreprise", "raison sociale", "nom", "societe", "company"],
    "meta.sector": ["secteur", "type detablissement", "activite", "sector", "type etablissement"],
    "meta.year": ["annee", "exercice", "year"],

    # Finance
    "finance.caAnnuel": ["ca annuel", "chiffre daffaires", "chiffre affaires", "ca", "revenue", "caannuel"],
    "finance.margeBrute": ["marge brute", "marge brute pct", "margebrute", "gross margin"],
    "finance.resultatNet": ["resultat net", "resultatnet", "net income", "benefice"],
    "finance.tresorerie": ["tresorerie", "cash", "liquidites"],
    "finance.dettesFinancieres": ["dettes financieres", "dettes bancaires", "dette bancaire", "dettes", "debt"],
    "finance.fondsPropres": ["fonds propres", "capitaux propres", "equity"],

    # Costs
    "costs.chargesRH": ["charges rh", "chargesrh", "charges rh pct", "hr costs"],
    "costs.cogs": ["cogs", "cout marchandises", "couts marchandises", "cogs pct"],
    "costs.chargesFixes": ["charges fixes", "chargesfixes", "fixed costs"],

    # Operations
    "operations.effectifETP": ["effectif etp", "etp", "effectif", "fte", "salaries"],
    "operations.tauxOccupation": ["taux doccupation", "taux occupation", "occupation", "occupancy"],
    "operations.qualiteRetours": ["qualite retours", "taux retour", "retours"],

    # Commercial
    "commercial.digitalisation": ["digitalisation", "digital", "digital pct"],
    "commercial.satisfactionClient": ["satisfaction client", "nps", "satisfaction", "csat"],

    # HR
    "rh.absenteisme": ["absenteisme", "absenteeism", "absences"],
    "rh.turnover": ["turnover", "rotation personnel", "rotation"],
}

REQUIRED_FIELDS = {
    "meta.companyName": "Nom entreprise",
    "meta.sector": "Secteur",
    "finance.caAnnuel": "CA Annuel",
}

TEXT_FIELDS = ("meta.companyName", "meta.sector")

NUMERIC_FIELDS = [path for path in FIELD_SYNONYMS if path not in TEXT_FIELDS]

# Applied when the document does not provide the field
IMPORT_DEFAULTS = {
    "finance.margeBrute": 70.0,
    "costs.chargesRH": 50.0,
    "operations.tauxOccupation": 80.0,
    "operations.effectifETP": 1.0,
    "commercial.digitalisation": 50.0,
}


# =============================================================================
# Parsing helpers
# =============================================================================


def normalize_key(key: str) -> str:
    """Lowercase, strip accents, keep only letters, digits and single spaces."""
    text = unicodedata.normalize("NFD", key.lower().strip())
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = re.sub(r"[^a-z0-9\s]", "", text)
    return re.sub(r"\s+", " ", text).strip()


_NUMBER_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")


def parse_value(value: Optional[str]) -> Union[float, str, None]:
    """Parse a cell value, French formatting included.

    "1 200 000 €" -> 1200000.0, "12,5 %" -> 12.5, "Boulangerie" -> "Boulangerie",
    "" -> None. A leading number is enough ("45k" -> 45.0).
    """
    if value is None or not value.strip():
        return None

    cleaned = re.sub(r"\s", "", value.strip())  # also drops non-breaking and thin spaces
    cleaned = cleaned.replace("€", "").replace("%", "").replace(",", ".")

    match = _NUMBER_RE.match(cleaned)
    if match:
        return float(match.group(0))
    return value.strip()


def map_field_to_path(field_name: str) -> Optional[str]:
    """Field path for a spreadsheet label, None if unrecognized."""
    normalized = normalize_key(field_name)
    for path, synonyms in FIELD_SYNONYMS.items():
        if any(normalize_key(syn) == normalized for syn in synonyms):
            return path
    return None


def get_nested_value(data: Any, path: str) -> Any:
    current = data
    for part in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
    return current


def _set_nested_value(data: dict, path: str, value: Any) -> None:
    parts = path.split(".")
    current = data
    for part in parts[:-1]:
        current = current.setdefault(part, {})
    current[parts[-1]] = value


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def to_number(value: Any) -> Optional[float]:
    """Numeric value of a JSON scalar, None when absent or not a number."""
    if _is_blank(value) or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        parsed = parse_value(value)
        return parsed if isinstance(parsed, float) else None
    return None


# =============================================================================
# Field / value tables
# =============================================================================


@dataclass
class ParsedField:
    """One line of a field / value table."""
    original: str
    mapped: Optional[str]
    value: Union[float, str, None]


@dataclass
class FieldValueTable:
    """Result of parsing a pasted field / value table."""
    fields: list[ParsedField] = field(default_factory=list)
    missing_required: list[str] = field(default_factory=list)
    data: dict = field(default_factory=dict)

    @property
    def unmapped(self) -> list[str]:
        return [f.original for f in self.fields if f.mapped is None]


def parse_field_value_table(text: str) -> FieldValueTable:
    """Parse lines of ``label<TAB>value`` (or label and value separated by 2+ spaces)."""
    table = FieldValueTable()

    for line in text.strip().splitlines():
        if not line.strip():
            continue
        parts = line.split("\t")
        if len(parts) < 2:
            parts = re.split(r"\s{2,}", line.strip())
        if len(parts) < 2:
            continue

        field_name = parts[0].strip()
        raw_value = " ".join(parts[1:]).strip()
        mapped = map_field_to_path(field_name)
        if mapped in TEXT_FIELDS:
            value: Union[float, str, None] = raw_value or None
        else:
            value = parse_value(raw_value)
        table.fields.append(ParsedField(original=field_name, mapped=mapped, value=value))

        if mapped and value is not None:
            _set_nested_value(table.data, mapped, value)

    table.missing_required = [
        path for path in REQUIRED_FIELDS if _is_blank(get_nested_value(table.data, path))
    ]
    if table.unmapped:
        logger.debug("Unmapped import fields: %s", table.unmapped)
    return table


# =============================================================================
# Validation
# =============================================================================


def _validate_values(data: dict, errors: list[ImportIssue], warnings: list[ImportIssue]) -> Optional[str]:
    """Shared checks of both import formats. Returns the canonical sector."""
    for path in NUMERIC_FIELDS:
        value = get_nested_value(data, path)
        if not _is_blank(value) and to_number(value) is None:
            errors.append(ImportIssue(field=path, message=f"{path} doit être un nombre"))

    revenue = to_number(get_nested_value(data, "finance.caAnnuel"))
    if revenue is not None and revenue <= 0:
        errors.append(ImportIssue(
            field="finance.caAnnuel", message="Le CA annuel doit être strictement positif",
        ))

    occupancy = to_number(get_nested_value(data, "operations.tauxOccupation"))
    if occupancy is not None and occupancy > 100:
        errors.append(ImportIssue(
            field="operations.tauxOccupation",
            message="Le taux d'occupation ne peut pas dépasser 100%",
        ))

    raw_sector = get_nested_value(data, "meta.sector")
    resolution = normalize_sector(None if _is_blank(raw_sector) else str(raw_sector))
    if resolution.warning and not _is_blank(raw_sector):
        warnings.append(ImportIssue(field="meta.sector", message=resolution.warning))

    treasury = to_number(get_nested_value(data, "finance.tresorerie"))
    if treasury is not None and treasury < -1_000_000:
        warnings.append(ImportIssue(field="finance.tresorerie", message="Trésorerie très négative (< -1M€)"))

    turnover = to_number(get_nested_value(data, "rh.turnover"))
    if turnover is not None and turnover > 60:
        warnings.append(ImportIssue(field="rh.turnover", message="Turnover exceptionnellement élevé (> 60%)"))

    hr_costs = to_number(get_nested_value(data, "costs.chargesRH"))
    if hr_costs is not None and hr_costs > 80:
        warnings.append(ImportIssue(field="costs.chargesRH", message="Charges RH très élevées (> 80% du CA)"))

    return resolution.canonical_sector


def build_record(data: dict, sector: str, warnings: list[ImportIssue]) -> AuditRecord:
    """Convert validated import data to an AuditRecord, applying defaults."""

    def value_or_default(path: str) -> float:
        value = to_number(get_nested_value(data, path))
        if value is None:
            default = IMPORT_DEFAULTS[path]
            warnings.append(ImportIssue(
                field=path, message=f"Valeur absente, valeur par défaut utilisée : {default:g}",
            ))
            return default
        return value

    revenue = to_number(get_nested_value(data, "finance.caAnnuel")) or 0.0
    fte = value_or_default("operations.effectifETP")

    net_income = to_number(get_nested_value(data, "finance.resultatNet"))
    net_margin = round(net_income / revenue * 100, 1) if net_income is not None and revenue else None

    return_rate = to_number(get_nested_value(data, "operations.qualiteRetours"))
    absenteeism = to_number(get_nested_value(data, "rh.absenteisme"))
    turnover = to_number(get_nested_value(data, "rh.turnover"))
    csat = to_number(get_nested_value(data, "commercial.satisfactionClient"))

    return AuditRecord(
        business_name=str(get_nested_value(data, "meta.companyName") or "").strip(),
        sector=sector,
        data_origin=DataOrigin.CLIENT_DECLARED,
        finance=FinanceData(
            annual_revenue=revenue,
            gross_margin_percent=value_or_default("finance.margeBrute"),
            net_margin_percent=net_margin,
        ),
        costs=CostData(
            hr_costs_percent=value_or_default("costs.chargesRH"),
            cogs_percent=to_number(get_nested_value(data, "costs.cogs")),
            fixed_costs_percent=to_number(get_nested_value(data, "costs.chargesFixes")),
        ),
        ops=OpsData(
            occupancy_rate_percent=value_or_default("operations.tauxOccupation"),
            productivity=Productivity(fte=fte, revenue_per_fte=revenue / max(fte, 0.1)),
            quality=QualityData(return_rate_percent=return_rate) if return_rate is not None else None,
        ),
        hr=(
            HRData(absenteeism_rate_percent=absenteeism, turnover_rate_percent=turnover)
            if absenteeism is not None or turnover is not None else None
        ),
        commercial=CommercialData(
            digitalization_percent=value_or_default("commercial.digitalisation"),
            satisfaction=SatisfactionData(csat_percent=csat) if csat is not None else None,
        ),
        nb_services=1,
    )


def _finish(data: dict, errors: list[ImportIssue], warnings: list[ImportIssue]) -> ImportValidationResult:
    sector = _validate_values(data, errors, warnings)
    if errors:
        logger.info("Import rejected with %d error(s)", len(errors))
        return ImportValidationResult(is_valid=False, errors=errors, warnings=warnings)

    record = build_record(data, sector, warnings)
    logger.info("Import accepted for '%s' (%s, %d warning(s))", record.business_name, sector, len(warnings))
    return ImportValidationResult(is_valid=True, errors=errors, warnings=warnings, record=record)


def validate_json_import(text: str) -> ImportValidationResult:
    """Validate a JSON document (``meta``, ``finance``, ``costs``, ``operations``,
    ``commercial`` and ``rh`` blocks) and convert it when valid."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return ImportValidationResult(
            is_valid=False,
            errors=[ImportIssue(field="json", message="Format JSON invalide. Vérifiez la syntaxe.")],
        )
    if not isinstance(data, dict):
        return ImportValidationResult(
            is_valid=False,
            errors=[ImportIssue(field="json", message="Le document JSON doit être un objet.")],
        )

    errors = [
        ImportIssue(field=path, message=f"Champ obligatoire manquant : {label}")
        for path, label in REQUIRED_FIELDS.items()
        if _is_blank(get_nested_value(data, path))
    ]
    return _finish(data, errors, [])


def validate_field_value_import(text: str) -> ImportValidationResult:
    """Validate a pasted field / value table and convert it when valid."""
    table = parse_field_value_table(text)
    errors = [
        ImportIssue(field=path, message=f"Champ obligatoire manquant : {REQUIRED_FIELDS[path]}")
        for path in table.missing_required
    ]
    warnings = [
        ImportIssue(field=name, message="Champ non reconnu, ignoré")
        for name in table.unmapped
    ]
    return _finish(table.data, errors, warnings)


def import_audit(text: str, fmt: str = "json") -> tuple[AuditRecord, list[ImportIssue]]:
    """Validate and convert, raising on errors.

    Args:
        text: Document content.
        fmt: ``"json"`` or ``"table"``.

    Returns:
        The AuditRecord and the non-blocking warnings.

    Raises:
        ImportValidationError: If the document has errors.
        ValueError: If the format is unknown.
    """
    if fmt == "json":
        result = validate_json_import(text)
    elif fmt == "table":
        result = validate_field_value_import(text)
    else:
        raise ValueError(f"Unknown import format: {fmt}")

    if not result.is_valid:
        raise ImportValidationError(result.errors)
    return result.record, result.warnings
