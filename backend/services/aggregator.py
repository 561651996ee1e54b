"""
Fan-out aggregation of the secondary lookups.

Bioactivity, property prediction and mechanism prediction run concurrently.
A lookup that fails or finds nothing leaves its slot empty; it never stops
the others. No retries here: that is each adapter's business.
"""
import asyncio
from typing import Any, Optional

from loguru import logger

from models import AggregateData, StructureRecord
from .base import SourceBundle


class FanOutAggregator:
    """Best-effort concurrent lookups keyed off a resolved structure."""

    def __init__(self, sources: SourceBundle):
        self.sources = sources

    async def _bioactivity(self, structure: StructureRecord):
        names = [n for n in (structure.title, structure.iupac_name) if n]
        for name in dict.fromkeys(names):
            record = await self.sources.bioactivity.lookup_by_name(name)
            if record is not None:
                return record
        if not names:
            logger.info(f"CID {structure.cid} has no name; skipping bioactivity lookup")
        return None

    async def gather(self, structure: StructureRecord) -> AggregateData:
        smiles = structure.canonical_smiles
        slots = ("bioactivity", "properties", "mechanism")

        results = await asyncio.gather(
            self._bioactivity(structure),
            self.sources.properties.predict(smiles),
            self.sources.mechanism.predict(smiles),
            return_exceptions=True,
        )

        values = {}
        for slot, result in zip(slots, results):
            values[slot] = self._settle(slot, result)

        aggregate = AggregateData(**values)
        missing = aggregate.missing_slots()
        if missing:
            logger.info(f"Aggregation for CID {structure.cid} missing: {', '.join(missing)}")
        else:
            logger.info(f"Aggregation for CID {structure.cid} complete")
        return aggregate

    @staticmethod
    def _settle(slot: str, result: Any) -> Optional[Any]:
        if isinstance(result, BaseException):
            if not isinstance(result, Exception):
                # CancelledError and friends are not lookup failures
                raise result
            logger.warning(f"{slot} lookup failed: {result!r}")
            return None
        if result is None:
            logger.warning(f"{slot} lookup returned no data")
        return result
