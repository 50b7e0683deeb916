"""Best-effort chemical metadata for a CAS registry number.

Two sources feed the result: a curated table of common laboratory chemicals
and PubChem's PUG REST service. They are combined by ``merge_sources`` using
the per-field order in ``FIELD_PRECEDENCE``. NFPA ratings are safety data and
are only ever taken from the curated table.

Nothing here raises to the caller: an unreachable or confused PubChem is
logged and treated as "no data".
"""

import logging
import re
from typing import Optional
from urllib.parse import quote

import requests

from . import config
from .errors import ExternalLookupFailure, InvalidArgument

logger = logging.getLogger(__name__)

CAS_PATTERN = re.compile(r"^\d{2,7}-\d{2}-\d$")

CURATED = "curated"
PUBCHEM = "pubchem"

FIELD_PRECEDENCE: dict[str, tuple[str, ...]] = {
    "name": (PUBCHEM, CURATED),
    "formula": (PUBCHEM, CURATED),
    "molecular_weight": (PUBCHEM, CURATED),
    "nfpa_health": (CURATED,),
    "nfpa_fire": (CURATED,),
    "nfpa_reactivity": (CURATED,),
    "nfpa_special": (CURATED,),
    "supplier": (CURATED, PUBCHEM),
    "sds_url": (CURATED, PUBCHEM),
}

COMMON_CHEMICALS: dict[str, dict] = {
    "64-17-5": {
        "name": "Ethanol", "formula": "C2H5OH", "molecular_weight": 46.07,
        "nfpa_health": 0, "nfpa_fire": 3, "nfpa_reactivity": 0,
        "supplier": "Sigma Aldrich", "sds_url": "https://www.sigmaaldrich.com/US/en/sds/sial/459836",
    },
    "67-56-1": {
        "name": "Methanol", "formula": "CH3OH", "molecular_weight": 32.04,
        "nfpa_health": 1, "nfpa_fire": 3, "nfpa_reactivity": 0,
    },
    "67-63-0": {
        "name": "Isopropyl Alcohol", "formula": "C3H8O", "molecular_weight": 60.10,
        "nfpa_health": 1, "nfpa_fire": 3, "nfpa_reactivity": 0,
    },
    "67-66-3": {
        "name": "Chloroform", "formula": "CHCl3", "molecular_weight": 119.38,
        "nfpa_health": 2, "nfpa_fire": 0, "nfpa_reactivity": 0,
    },
    "7732-18-5": {
        "name": "Water", "formula": "H2O", "molecular_weight": 18.02,
        "nfpa_health": 0, "nfpa_fire": 0, "nfpa_reactivity": 0,
        "supplier": "Spectrum Chemical", "sds_url": "https://www.spectrumchemical.com/msds/water",
    },
    "7647-01-0": {
        "name": "Hydrochloric Acid", "formula": "HCl", "molecular_weight": 36.46,
        "nfpa_health": 3, "nfpa_fire": 0, "nfpa_reactivity": 0,
    },
    "7664-93-9": {
        "name": "Sulfuric Acid", "formula": "H2SO4", "molecular_weight": 98.08,
        "nfpa_health": 3, "nfpa_fire": 0, "nfpa_reactivity": 2, "nfpa_special": "W",
    },
    "7697-37-2": {
        "name": "Nitric Acid", "formula": "HNO3", "molecular_weight": 63.01,
        "nfpa_health": 4, "nfpa_fire": 0, "nfpa_reactivity": 0, "nfpa_special": "OX",
    },
    "7664-38-2": {
        "name": "Phosphoric Acid", "formula": "H3PO4", "molecular_weight": 98.00,
        "nfpa_health": 2, "nfpa_fire": 0, "nfpa_reactivity": 0,
    },
    "64-19-7": {
        "name": "Acetic Acid", "formula": "CH3COOH", "molecular_weight": 60.05,
        "nfpa_health": 2, "nfpa_fire": 2, "nfpa_reactivity": 0,
    },
    "75-09-2": {
        "name": "Dichloromethane", "formula": "CH2Cl2", "molecular_weight": 84.93,
        "nfpa_health": 2, "nfpa_fire": 1, "nfpa_reactivity": 0,
    },
    "110-54-3": {
        "name": "Hexane", "formula": "C6H14", "molecular_weight": 86.18,
        "nfpa_health": 1, "nfpa_fire": 3, "nfpa_reactivity": 0,
    },
    "67-64-1": {
        "name": "Acetone", "formula": "C3H6O", "molecular_weight": 58.08,
        "nfpa_health": 1, "nfpa_fire": 3, "nfpa_reactivity": 0,
        "supplier": "Fisher Scientific", "sds_url": "https://www.fishersci.com/store/msds?partNumber=A9494",
    },
    "108-88-3": {
        "name": "Toluene", "formula": "C7H8", "molecular_weight": 92.14,
        "nfpa_health": 2, "nfpa_fire": 3, "nfpa_reactivity": 0,
    },
    "71-43-2": {
        "name": "Benzene", "formula": "C6H6", "molecular_weight": 78.11,
        "nfpa_health": 2, "nfpa_fire": 3, "nfpa_reactivity": 0,
    },
    "7727-37-9": {
        "name": "Nitrogen", "formula": "N2", "molecular_weight": 28.01,
        "nfpa_health": 0, "nfpa_fire": 0, "nfpa_reactivity": 0, "nfpa_special": "SA",
    },
    "7782-44-7": {
        "name": "Oxygen", "formula": "O2", "molecular_weight": 32.00,
        "nfpa_health": 0, "nfpa_fire": 0, "nfpa_reactivity": 0, "nfpa_special": "OX",
    },
    "1310-73-2": {
        "name": "Sodium Hydroxide", "formula": "NaOH", "molecular_weight": 40.00,
        "nfpa_health": 3, "nfpa_fire": 0, "nfpa_reactivity": 1,
    },
    "7681-52-9": {
        "name": "Sodium Hypochlorite", "formula": "NaClO", "molecular_weight": 74.44,
        "nfpa_health": 2, "nfpa_fire": 0, "nfpa_reactivity": 1, "nfpa_special": "OX",
    },
    "7722-84-1": {
        "name": "Hydrogen Peroxide", "formula": "H2O2", "molecular_weight": 34.01,
        "nfpa_health": 2, "nfpa_fire": 0, "nfpa_reactivity": 1, "nfpa_special": "OX",
    },
}

PUBCHEM_PROPERTIES = "MolecularFormula,MolecularWeight,IUPACName,Title"


def validate_cas(cas_number: str) -> str:
    cas_number = (cas_number or "").strip()
    if not CAS_PATTERN.match(cas_number):
        raise InvalidArgument("Invalid CAS number format", code="lookup.invalid_cas", casNumber=cas_number)
    return cas_number


def _pubchem_properties(identifier: str) -> list[dict]:
    url = (
        f"{config.PUBCHEM_BASE_URL}/compound/name/{quote(identifier, safe='')}"
        f"/property/{PUBCHEM_PROPERTIES}/JSON"
    )
    try:
        resp = requests.get(url, timeout=config.LOOKUP_TIMEOUT)
    except requests.RequestException as exc:
        raise ExternalLookupFailure(f"PubChem unreachable: {exc}") from exc
    # PubChem answers 404 for names it does not know
    if resp.status_code == 404:
        return []
    if resp.status_code != 200:
        raise ExternalLookupFailure(f"PubChem returned HTTP {resp.status_code}")
    try:
        return resp.json()["PropertyTable"]["Properties"]
    except (ValueError, KeyError, TypeError) as exc:
        raise ExternalLookupFailure("Unexpected PubChem payload") from exc


def _to_float(value) -> Optional[float]:
    # PubChem serialises MolecularWeight as a string
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def fetch_pubchem(cas_number: str) -> Optional[dict]:
    """Return PubChem fields for a CAS number, or None when nothing usable came back."""
    try:
        properties = _pubchem_properties(cas_number)
    except ExternalLookupFailure as exc:
        logger.warning("PubChem lookup for %s failed: %s", cas_number, exc)
        return None
    if not properties:
        return None
    props = properties[0]
    data = {
        "name": props.get("IUPACName") or props.get("Title"),
        "formula": props.get("MolecularFormula"),
        "molecular_weight": _to_float(props.get("MolecularWeight")),
    }
    cid = props.get("CID")
    if cid:
        data["sds_url"] = f"https://pubchem.ncbi.nlm.nih.gov/compound/{cid}#section=Safety-and-Hazards"
    return {k: v for k, v in data.items() if v not in (None, "")}


def merge_sources(sources: dict[str, Optional[dict]]) -> dict:
    """Combine per-source field dicts according to ``FIELD_PRECEDENCE``.

    For each field the first source in its precedence list that has a
    non-empty value wins. Sources not listed for a field are ignored for it,
    which is what keeps scraped data away from the NFPA ratings.
    """
    merged = {}
    for field_name, order in FIELD_PRECEDENCE.items():
        for source in order:
            value = (sources.get(source) or {}).get(field_name)
            if value is not None and value != "":
                merged[field_name] = value
                break
    return merged


def lookup_cas(cas_number: str) -> Optional[dict]:
    """Look a CAS number up in every source. None means nothing was found."""
    cas_number = validate_cas(cas_number)
    merged = merge_sources(
        {
            CURATED: COMMON_CHEMICALS.get(cas_number),
            PUBCHEM: fetch_pubchem(cas_number),
        }
    )
    if not merged.get("name"):
        return None
    merged["cas_number"] = cas_number
    return merged


def search_by_name(query: str, limit: int = 10) -> list[dict]:
    try:
        properties = _pubchem_properties(query)
    except ExternalLookupFailure as exc:
        logger.warning("PubChem name search for %r failed: %s", query, exc)
        return []
    return [
        {
            "name": props.get("IUPACName") or props.get("Title") or query,
            "formula": props.get("MolecularFormula"),
            "molecular_weight": _to_float(props.get("MolecularWeight")),
        }
        for props in properties[:limit]
    ]


def sds_links(cas_number: str) -> dict[str, str]:
    """Supplier SDS/search pages for a CAS number."""
    cas_number = validate_cas(cas_number)
    return {
        "sigmaAldrich": f"https://www.sigmaaldrich.com/US/en/sds/sial/{cas_number.replace('-', '')}",
        "fisher": f"https://www.fishersci.com/store/msds?partNumber={cas_number}&vendorId=VN00033897",
        "vwr": f"https://us.vwr.com/store/search/searchAdv.jsp?keyword={cas_number}&pimId=&tabId=&resultType=documents",
        "spectrum": f"https://www.spectrumchemical.com/search?term={cas_number}",
    }
