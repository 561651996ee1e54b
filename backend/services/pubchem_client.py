"""
PubChem PUG REST Client

Resolves a SMILES string to a CID, then fetches the canonical property
record for that CID. PubChem asks clients to stay under five requests per
second, so the two calls are separated by `request_delay`.
"""
from typing import Any, Dict, Optional

import httpx
from loguru import logger
from pydantic import ValidationError

from config import MIN_PUBCHEM_DELAY_SECONDS
from models import StructureRecord
from .base import HttpSource, Identifier, StructureSource

PUBCHEM_API_BASE = "https://pubchem.ncbi.nlm.nih.gov/rest/pug"

PROPERTY_FIELDS = "MolecularFormula,IUPACName,CanonicalSMILES,IsomericSMILES,MolecularWeight,Title"

# Newer PUG REST responses renamed CanonicalSMILES
_CANONICAL_KEYS = ("CanonicalSMILES", "ConnectivitySMILES", "SMILES", "IsomericSMILES")


def parse_property_table(data: Any) -> Optional[StructureRecord]:
    """Normalize a PUG REST PropertyTable payload, or None if incomplete."""
    try:
        properties = data["PropertyTable"]["Properties"]
    except (KeyError, TypeError):
        return None
    if not isinstance(properties, list) or not properties or not isinstance(properties[0], dict):
        return None

    props: Dict[str, Any] = properties[0]
    canonical = next((props[k] for k in _CANONICAL_KEYS if props.get(k)), None)

    if not props.get("CID") or not props.get("MolecularFormula") or not canonical or props.get("MolecularWeight") in (None, ""):
        logger.error(f"Incomplete data received from PubChem: {props}")
        return None

    try:
        return StructureRecord(
            cid=props["CID"],
            molecular_formula=props["MolecularFormula"],
            canonical_smiles=canonical,
            molecular_weight=float(props["MolecularWeight"]),
            iupac_name=props.get("IUPACName"),
            title=props.get("Title"),
        )
    except (ValueError, TypeError, ValidationError) as e:
        logger.error(f"PubChem property record failed validation: {e}")
        return None


class PubChemStructureSource(HttpSource, StructureSource):
    """Live PubChem adapter."""

    def __init__(
        self,
        base_url: str = PUBCHEM_API_BASE,
        request_delay: float = MIN_PUBCHEM_DELAY_SECONDS,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        max_attempts: int = 1,
    ):
        super().__init__(client=client, timeout=timeout, max_attempts=max_attempts)
        self.base_url = base_url.rstrip("/")
        self.request_delay = max(MIN_PUBCHEM_DELAY_SECONDS, request_delay)

    async def resolve_identifier(self, smiles: str) -> Optional[Identifier]:
        """Look up the CID for a SMILES string."""
        url = f"{self.base_url}/compound/smiles/cids/JSON"
        try:
            response = await self._request("GET", url, params={"smiles": smiles})
        except httpx.HTTPError as e:
            logger.error(f"PubChem CID lookup error for SMILES {smiles}: {e!r}")
            return None

        if response.status_code != 200:
            logger.warning(f"PubChem CID lookup failed for SMILES {smiles}: {response.status_code}")
            return None

        try:
            cids = response.json()["IdentifierList"]["CID"]
        except (ValueError, KeyError, TypeError):
            logger.warning(f"No CID found for SMILES: {smiles}")
            return None

        # PubChem answers CID 0 for a valid but unknown structure
        first = cids[0] if isinstance(cids, list) and cids else None
        if not isinstance(first, (int, str)) or not first:
            logger.warning(f"No CID found for SMILES: {smiles}")
            return None

        logger.info(f"Resolved SMILES {smiles} to CID {first}")
        return first

    async def fetch_properties(self, identifier: Identifier) -> Optional[StructureRecord]:
        """Fetch the property record for a CID."""
        url = f"{self.base_url}/compound/cid/{identifier}/property/{PROPERTY_FIELDS}/JSON"
        try:
            response = await self._request("GET", url)
        except httpx.HTTPError as e:
            logger.error(f"PubChem property fetch error for CID {identifier}: {e!r}")
            return None

        if response.status_code != 200:
            logger.warning(f"PubChem property fetch failed for CID {identifier}: {response.status_code}")
            return None

        try:
            data = response.json()
        except ValueError:
            logger.warning(f"PubChem returned non-JSON properties for CID {identifier}")
            return None

        return parse_property_table(data)


# name, cid, formula, canonical smiles, weight, iupac name, input aliases
_MOCK_MOLECULES = [
    ("Benzene", 241, "C6H6", "C1=CC=CC=C1", 78.11, "benzene", ["c1ccccc1"]),
    ("Ethanol", 702, "C2H6O", "CCO", 46.07, "ethanol", ["OCC"]),
    ("Aspirin", 2244, "C9H8O4", "CC(=O)OC1=CC=CC=C1C(=O)O", 180.16,
     "2-acetyloxybenzoic acid", ["CC(=O)Oc1ccccc1C(=O)O"]),
    ("Caffeine", 2519, "C8H10N4O2", "CN1C=NC2=C1C(=O)N(C(=O)N2C)C", 194.19,
     "1,3,7-trimethylpurine-2,6-dione", ["Cn1cnc2c1c(=O)n(C)c(=O)n2C"]),
    ("Ibuprofen", 3672, "C13H18O2", "CC(C)CC1=CC=C(C=C1)C(C)C(=O)O", 206.28,
     "2-[4-(2-methylpropyl)phenyl]propanoic acid", ["CC(C)Cc1ccc(cc1)C(C)C(=O)O"]),
    ("Acetaminophen", 1983, "C8H9NO2", "CC(=O)NC1=CC=C(C=C1)O", 151.16,
     "N-(4-hydroxyphenyl)acetamide", ["CC(=O)Nc1ccc(O)cc1"]),
]


class MockStructureSource(StructureSource):
    """Offline structure source backed by a small table of known molecules."""

    def __init__(self):
        self._records: Dict[int, StructureRecord] = {}
        self._index: Dict[str, int] = {}
        for title, cid, formula, canonical, weight, iupac, aliases in _MOCK_MOLECULES:
            self._records[cid] = StructureRecord(
                cid=cid,
                molecular_formula=formula,
                canonical_smiles=canonical,
                molecular_weight=weight,
                iupac_name=iupac,
                title=title,
            )
            for key in [canonical] + aliases:
                self._index[key] = cid

    async def resolve_identifier(self, smiles: str) -> Optional[Identifier]:
        cid = self._index.get(smiles.strip())
        if cid is None:
            logger.warning(f"No CID found for SMILES: {smiles} (mock structure source)")
        return cid

    async def fetch_properties(self, identifier: Identifier) -> Optional[StructureRecord]:
        try:
            return self._records.get(int(identifier))
        except (TypeError, ValueError):
            return None
