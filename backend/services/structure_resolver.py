"""
Structure resolution: user SMILES -> canonical StructureRecord.

Everything downstream keys off the resolved record, so any failure here ends
the run.
"""
import asyncio
import math
import re
from typing import Optional

from loguru import logger

from core.errors import InputInvalidError, ResolutionError, ResolutionReason
from models import StructureRecord
from .base import Identifier, StructureSource

_WHITESPACE = re.compile(r"\s")
_BOND_SYNTAX = re.compile(r"[=#()\[\]@/\\.%+\-:]")
_ELEMENT_COUNTS = re.compile(r"^(?:[A-Z][a-z]?\d*)+$")


def looks_like_formula(text: str) -> bool:
    """
    Guess whether the input is a molecular formula rather than SMILES.

    Element symbols with explicit counts, no whitespace and no bond, ring or
    branch syntax. Best effort only: "CC1CC1" is flagged even though it is a
    valid SMILES, so the result must only shape the error message.
    """
    text = text.strip()
    if not text or _WHITESPACE.search(text) or _BOND_SYNTAX.search(text):
        return False
    return bool(_ELEMENT_COUNTS.match(text)) and any(ch.isdigit() for ch in text)


def _is_complete(record: StructureRecord) -> bool:
    return (
        record.cid not in (None, "")
        and bool(record.molecular_formula)
        and bool(record.canonical_smiles)
        and isinstance(record.molecular_weight, (int, float))
        and math.isfinite(record.molecular_weight)
        and record.molecular_weight > 0
    )


class StructureResolver:
    """Two-step lookup against the structure source."""

    def __init__(self, source: StructureSource):
        self.source = source

    async def _identifier(self, smiles: str) -> Optional[Identifier]:
        try:
            return await self.source.resolve_identifier(smiles)
        except Exception as e:
            logger.error(f"Structure source failed resolving {smiles}: {e!r}")
            return None

    async def _properties(self, identifier: Identifier) -> Optional[StructureRecord]:
        try:
            return await self.source.fetch_properties(identifier)
        except Exception as e:
            logger.error(f"Structure source failed fetching properties for {identifier}: {e!r}")
            return None

    async def resolve(self, smiles: str) -> StructureRecord:
        smiles = (smiles or "").strip()
        if not smiles:
            raise InputInvalidError("SMILES string is required.", {"field": "smiles"})

        logger.info(f"Resolving structure for SMILES: {smiles}")
        identifier = await self._identifier(smiles)
        if identifier is None or identifier == "":
            hint = looks_like_formula(smiles)
            logger.warning(f"Structure not recognized: {smiles} (looks like formula: {hint})")
            raise ResolutionError(smiles, ResolutionReason.NOT_RECOGNIZED, looks_like_formula=hint)

        # Upstream usage policy between the two calls
        if self.source.request_delay > 0:
            await asyncio.sleep(self.source.request_delay)

        record = await self._properties(identifier)
        if record is None or not _is_complete(record):
            logger.error(f"Incomplete property data for CID {identifier}")
            raise ResolutionError(smiles, ResolutionReason.INCOMPLETE, details={"cid": identifier})

        logger.info(f"Resolved {smiles} -> CID {record.cid} ({record.molecular_formula})")
        return record
