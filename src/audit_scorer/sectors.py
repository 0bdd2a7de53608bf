"""Sector Normalizer.

Maps free-text sector names onto the controlled list of canonical sectors
used for benchmark lookup. Resolution never fails: anything unrecognized
falls back to ``autre`` with a warning quoting the original text.
"""

import logging
import re
import unicodedata
from typing import Optional

from .schema import SectorResolution

logger = logging.getLogger(__name__)


FALLBACK_SECTOR = "autre"

# Canonical sectors, in display order
ALLOWED_SECTORS = (
    "veterinaire",
    "clinique_veterinaire",
    "osteopathe",
    "kinesitherapeute",
    "therapeute",
    "sante_liberale_autre",
    "commerce",
    "services",
    "btp",
    "industrie",
    "restauration",
    "autre",
)

SECTOR_LABELS = {
    "veterinaire": "Vétérinaire",
    "clinique_veterinaire": "Clinique Vétérinaire",
    "osteopathe": "Ostéopathe",
    "kinesitherapeute": "Kinésithérapeute",
    "therapeute": "Thérapeute / Bien-être",
    "sante_liberale_autre": "Santé Libérale (autre)",
    "commerce": "Commerce",
    "services": "Services",
    "btp": "BTP / Construction",
    "industrie": "Industrie",
    "restauration": "Restauration",
    "autre": "Autre secteur",
}

# Many-to-one synonym table. Iteration order drives the substring fallback:
# the first synonym contained in (or containing) the input wins.
SECTOR_SYNONYMS = {
    # Vétérinaire
    "veterinaire": "veterinaire",
    "veto": "veterinaire",
    "veterinary": "veterinaire",
    "animal": "veterinaire",
    "clinique veterinaire": "clinique_veterinaire",
    "clinique veto": "clinique_veterinaire",
    "hopital veterinaire": "clinique_veterinaire",

    # Ostéopathe
    "osteopathe": "osteopathe",
    "osteo": "osteopathe",
    "osteopathie": "osteopathe",
    "osteopath": "osteopathe",

    # Kinésithérapeute
    "kinesitherapeute": "kinesitherapeute",
    "kine": "kinesitherapeute",
    "kinetherapeute": "kinesitherapeute",
    "masseur kinesitherapeute": "kinesitherapeute",
    "masseur kine": "kinesitherapeute",
    "physiotherapeute": "kinesitherapeute",
    "physio": "kinesitherapeute",

    # Thérapeute / bien-être
    "therapeute": "therapeute",
    "therapie": "therapeute",
    "praticien bien etre": "therapeute",
    "praticien bien-etre": "therapeute",
    "bien etre": "therapeute",
    "bien-etre": "therapeute",
    "psychologue": "therapeute",
    "psychotherapeute": "therapeute",
    "sophrologie": "therapeute",
    "sophrologue": "therapeute",
    "naturopathe": "therapeute",
    "naturopathie": "therapeute",
    "hypnotherapeute": "therapeute",
    "hypnose": "therapeute",
    "acupuncteur": "therapeute",
    "acupuncture": "therapeute",

    # Santé libérale (autre)
    "sante liberale autre": "sante_liberale_autre",
    "sante liberale": "sante_liberale_autre",
    "professionnel de sante": "sante_liberale_autre",
    "medecin": "sante_liberale_autre",
    "dentiste": "sante_liberale_autre",
    "infirmier": "sante_liberale_autre",
    "infirmiere": "sante_liberale_autre",
    "pharmacien": "sante_liberale_autre",
    "sage femme": "sante_liberale_autre",
    "orthophoniste": "sante_liberale_autre",
    "podologue": "sante_liberale_autre",
    "dieteticien": "sante_liberale_autre",

    # Commerce
    "commerce": "commerce",
    "commerce de detail": "commerce",
    "retail": "commerce",
    "boutique": "commerce",
    "magasin": "commerce",
    "epicerie": "commerce",
    "supermarche": "commerce",

    # Services
    "services": "services",
    "service": "services",
    "conseil": "services",
    "consulting": "services",
    "cabinet conseil": "services",
    "agence": "services",
    "prestataire": "services",
    "b2b": "services",

    # BTP
    "btp": "btp",
    "construction": "btp",
    "batiment": "btp",
    "travaux publics": "btp",
    "artisan": "btp",
    "plombier": "btp",
    "electricien": "btp",
    "maconnerie": "btp",
    "menuiserie": "btp",
    "peintre": "btp",
    "couvreur": "btp",

    # Industrie
    "industrie": "industrie",
    "industriel": "industrie",
    "manufacture": "industrie",
    "usine": "industrie",
    "production": "industrie",
    "fabrication": "industrie",

    # Restauration
    "restauration": "restauration",
    "restaurant": "restauration",
    "resto": "restauration",
    "cafe": "restauration",
    "bar": "restauration",
    "brasserie": "restauration",
    "traiteur": "restauration",
    "fast food": "restauration",
    "snack": "restauration",
    "pizzeria": "restauration",
    "boulangerie": "restauration",
    "patisserie": "restauration",

    # Autre
    "autre": "autre",
    "other": "autre",
    "divers": "autre",
    "non specifie": "autre",
}


def normalize_for_sector_match(value: str) -> str:
    """Lowercase, strip accents and punctuation, collapse whitespace.

    Underscores become spaces so canonical ids (``sante_liberale_autre``)
    survive normalization.
    """
    text = unicodedata.normalize("NFD", value.lower().strip())
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = text.replace("_", " ")
    text = re.sub(r"[^a-z0-9\s-]", "", text)
    return re.sub(r"\s+", " ", text).strip()


def _resolved(sector: str) -> SectorResolution:
    return SectorResolution(
        is_valid=True,
        canonical_sector=sector,
        label=SECTOR_LABELS[sector],
        is_fallback=False,
    )


def _fallback(warning: str, is_valid: bool = True) -> SectorResolution:
    return SectorResolution(
        is_valid=is_valid,
        canonical_sector=FALLBACK_SECTOR,
        label=SECTOR_LABELS[FALLBACK_SECTOR],
        is_fallback=True,
        warning=warning,
    )


def normalize_sector(raw_value: Optional[str]) -> SectorResolution:
    """Map a declared sector onto a canonical sector.

    Resolution order: canonical id, exact synonym, substring match against
    the synonym table (first entry wins), then fallback to ``autre``.
    Never raises.
    """
    if raw_value is None or not str(raw_value).strip():
        return _fallback("Secteur non renseigné", is_valid=False)

    raw_value = str(raw_value)
    normalized = normalize_for_sector_match(raw_value)

    if normalized:
        as_id = normalized.replace(" ", "_")
        if as_id in ALLOWED_SECTORS:
            return _resolved(as_id)

        mapped = SECTOR_SYNONYMS.get(normalized)
        if mapped:
            return _resolved(mapped)

        for synonym, sector in SECTOR_SYNONYMS.items():
            if synonym in normalized or normalized in synonym:
                logger.debug("Sector %r matched synonym %r by substring", raw_value, synonym)
                return _resolved(sector)

    logger.warning("Unrecognized sector %r, falling back to '%s'", raw_value, FALLBACK_SECTOR)
    return _fallback(
        f'Secteur non reconnu ("{raw_value}"), analyse réalisée sans benchmark sectoriel précis'
    )


def list_sectors() -> list[tuple[str, str]]:
    """All canonical sectors as (id, label) pairs, in display order."""
    return [(sector, SECTOR_LABELS[sector]) for sector in ALLOWED_SECTORS]
