"""Benchmark Repository.

Static sector thresholds loaded once from ``data/benchmarks.yaml``. Lookups
take a canonical sector id; callers resolve free text through
``audit_scorer.sectors.normalize_sector`` first.
"""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional

import yaml

from .exceptions import BenchmarkLookupError
from .schema import BenchmarkSet, MetricDefinition, SectorVariant

logger = logging.getLogger(__name__)

BENCHMARKS_PATH = Path(__file__).parent / "data" / "benchmarks.yaml"

# Metrics every variant must define
REQUIRED_METRICS = ("marge_brute", "ca_etp", "charges_rh", "digital_pct", "fidelisation")


@lru_cache(maxsize=1)
def _load_table() -> dict:
    with open(BENCHMARKS_PATH, 'r', encoding='utf-8') as f:
        table = yaml.safe_load(f)
    logger.debug(
        "Loaded benchmark table v%s (%d sectors)",
        table.get("version"), len(table.get("sectors", {})),
    )
    return table


def get_benchmark_version() -> str:
    """Version string of the benchmark table."""
    return str(_load_table().get("version", "unknown"))


def get_currency() -> str:
    """Currency the amount thresholds are expressed in."""
    return str(_load_table().get("currency", "EUR"))


@lru_cache(maxsize=None)
def get_benchmarks(sector: str, variant: Optional[str] = None) -> BenchmarkSet:
    """Get the thresholds of a (sector, variant) pair.

    Args:
        sector: Canonical sector id.
        variant: Variant id. Defaults to the sector's declared default variant.

    Returns:
        The immutable BenchmarkSet for that pair.

    Raises:
        BenchmarkLookupError: If the sector or the variant is not in the table.
    """
    sectors = _load_table()["sectors"]
    entry = sectors.get(sector)
    if entry is None:
        raise BenchmarkLookupError(
            f"Unknown sector '{sector}': benchmarks require a canonical sector id",
            sector=sector,
            variant=variant,
        )

    variant_id = variant or entry["default_variant"]
    variant_entry = entry["variants"].get(variant_id)
    if variant_entry is None:
        raise BenchmarkLookupError(
            f"Unknown variant '{variant_id}' for sector '{sector}'",
            sector=sector,
            variant=variant_id,
        )

    metrics = {
        name: MetricDefinition.model_validate(definition)
        for name, definition in variant_entry["metrics"].items()
    }
    missing = [name for name in REQUIRED_METRICS if name not in metrics]
    if missing:
        raise BenchmarkLookupError(
            f"Benchmarks for '{sector}/{variant_id}' lack metrics: {', '.join(missing)}",
            sector=sector,
            variant=variant_id,
        )

    return BenchmarkSet(
        sector=sector,
        variant=variant_id,
        description=variant_entry.get("description", ""),
        metrics=metrics,
    )


def get_sector_variants(sector: str) -> list[SectorVariant]:
    """Variants declared for a sector, empty for an unknown sector."""
    entry = _load_table()["sectors"].get(sector)
    if entry is None:
        return []
    return [
        SectorVariant(id=variant_id, description=variant.get("description", ""))
        for variant_id, variant in entry["variants"].items()
    ]


def get_default_variant(sector: str) -> Optional[str]:
    """Default variant id of a sector, None for an unknown sector."""
    entry = _load_table()["sectors"].get(sector)
    return entry["default_variant"] if entry else None


def get_all_sectors() -> list[str]:
    """Sector ids present in the benchmark table, in file order."""
    return list(_load_table()["sectors"].keys())
