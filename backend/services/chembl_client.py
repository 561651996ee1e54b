"""
ChEMBL API Client

Looks up a compound by name and returns its clinical development status and
basic properties. Absence from ChEMBL is a normal outcome.
"""
import math
from typing import Any, Dict, Optional

import httpx
from loguru import logger
from pydantic import ValidationError

from models import BioactivityRecord
from .base import BioactivitySource, HttpSource

CHEMBL_API_BASE = "https://www.ebi.ac.uk/chembl/api/data"

MOLECULE_FIELDS = (
    "molecule_chembl_id,pref_name,max_phase,molecule_properties,"
    "molecule_type,first_approval,indication_class"
)


def _parse_max_phase(raw: Any) -> Optional[int]:
    """ChEMBL reports phases as strings like "4.0", 0.5 for early phase 1, -1 or null for unknown."""
    if raw is None or raw == "":
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    if math.isnan(value) or value < 0:
        return None
    return min(4, int(math.ceil(value)))


def _parse_float(raw: Any) -> Optional[float]:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    return value if math.isfinite(value) and value > 0 else None


def parse_molecule(molecule: Dict[str, Any], fallback_name: str) -> Optional[BioactivityRecord]:
    """Normalize one ChEMBL molecule entry."""
    if not isinstance(molecule, dict):
        logger.error(f"ChEMBL returned a malformed molecule entry for {fallback_name}")
        return None
    props = molecule.get("molecule_properties")
    if not isinstance(props, dict):
        props = {}

    description_parts = []
    if molecule.get("molecule_type"):
        description_parts.append(f"Type: {molecule['molecule_type']}")
    if molecule.get("indication_class"):
        description_parts.append(f"Indication class: {molecule['indication_class']}")
    if molecule.get("first_approval"):
        description_parts.append(f"First approved: {molecule['first_approval']}")

    try:
        return BioactivityRecord(
            chembl_id=molecule.get("molecule_chembl_id") or "",
            name=molecule.get("pref_name") or fallback_name,
            max_phase=_parse_max_phase(molecule.get("max_phase")),
            molecular_weight=_parse_float(props.get("full_mwt")),
            molecular_formula=props.get("full_molformula") or None,
            description="; ".join(description_parts) or None,
        )
    except ValidationError as e:
        logger.error(f"ChEMBL data validation failed for {fallback_name}: {e}")
        return None


class ChEMBLBioactivitySource(HttpSource, BioactivitySource):
    """Live ChEMBL adapter: preferred-name match first, then synonyms."""

    def __init__(
        self,
        base_url: str = CHEMBL_API_BASE,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        max_attempts: int = 1,
    ):
        super().__init__(client=client, timeout=timeout, max_attempts=max_attempts)
        self.base_url = base_url.rstrip("/")

    async def _search(self, name: str, field: str) -> Optional[Dict[str, Any]]:
        url = f"{self.base_url}/molecule.json"
        params = {field: name, "fields": MOLECULE_FIELDS, "limit": 5}

        response = await self._request("GET", url, params=params)
        if response.status_code == 400:
            logger.warning(f"ChEMBL returned 400 Bad Request for drug '{name}'")
            return None
        if response.status_code != 200:
            logger.warning(f"ChEMBL API returned status {response.status_code} for drug '{name}'")
            return None

        data = response.json()
        molecules = data.get("molecules") if isinstance(data, dict) else None
        if not isinstance(molecules, list):
            return None
        return molecules[0] if molecules else None

    async def lookup_by_name(self, name: str) -> Optional[BioactivityRecord]:
        """Search ChEMBL for a drug by name (case-insensitive)."""
        logger.info(f"Searching ChEMBL for drug: {name}")
        try:
            molecule = await self._search(name, "pref_name__iexact")
            if molecule is None:
                molecule = await self._search(name, "molecule_synonyms__molecule_synonym__iexact")
        except httpx.HTTPError as e:
            logger.error(f"ChEMBL lookup error for '{name}': {e!r}")
            return None
        except (ValueError, AttributeError) as e:
            logger.error(f"ChEMBL returned malformed data for '{name}': {e}")
            return None

        if molecule is None:
            logger.warning(f"Drug '{name}' not found in ChEMBL")
            return None

        record = parse_molecule(molecule, name)
        if record:
            logger.info(f"Found drug in ChEMBL: {record.name} (ID: {record.chembl_id})")
        return record


_MOCK_DRUGS = {
    "aspirin": dict(chembl_id="CHEMBL25", name="ASPIRIN", max_phase=4, molecular_weight=180.16,
                    molecular_formula="C9H8O4", description="Type: Small molecule"),
    "caffeine": dict(chembl_id="CHEMBL113", name="CAFFEINE", max_phase=4, molecular_weight=194.19,
                     molecular_formula="C8H10N4O2", description="Type: Small molecule"),
    "ibuprofen": dict(chembl_id="CHEMBL521", name="IBUPROFEN", max_phase=4, molecular_weight=206.29,
                      molecular_formula="C13H18O2", description="Type: Small molecule"),
    "acetaminophen": dict(chembl_id="CHEMBL112", name="ACETAMINOPHEN", max_phase=4, molecular_weight=151.17,
                          molecular_formula="C8H9NO2", description="Type: Small molecule"),
    "ethanol": dict(chembl_id="CHEMBL545", name="ALCOHOL", max_phase=4, molecular_weight=46.07,
                    molecular_formula="C2H6O", description="Type: Small molecule"),
}


class MockBioactivitySource(BioactivitySource):
    """Offline ChEMBL stand-in keyed by lowercase name."""

    async def lookup_by_name(self, name: str) -> Optional[BioactivityRecord]:
        entry = _MOCK_DRUGS.get(name.strip().lower())
        if entry is None:
            logger.warning(f"Drug '{name}' not found in ChEMBL (mock bioactivity source)")
            return None
        return BioactivityRecord(**entry)
