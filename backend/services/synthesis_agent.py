"""
Synthesis agent: turns the user's query plus gathered data into a narrative.

Two modes, chosen by configuration:
- prefetched: the pipeline aggregates first and the data is embedded in the
  instruction; no tools are offered.
- tool_use: the instruction carries only the query; the model fetches what
  it needs through tools that wrap the same source adapters.

Whatever the backend, an empty or non-string answer is a SynthesisError.
"""
import asyncio
import json
from typing import Any, Awaitable, Callable, Dict, List, Optional

from loguru import logger

from core.errors import SynthesisError
from models import AggregateData, AnalysisQuery, StructureRecord
from .base import LanguageModel, SourceBundle, ToolSpec

PREFETCHED = "prefetched"
TOOL_USE = "tool_use"

PREFETCHED_TEMPLATE = """You are an expert medicinal chemist and drug discovery analyst.
Analyze the drug candidate below and answer the user's query in a clear, well-structured narrative.

SMILES: {smiles}
Target Protein: {target_protein}
Query: {query}

Data gathered from external sources (JSON; null means the source had no data):
{data}

Ground the analysis in this data. When a source had no data, say so instead of inventing values."""

TOOL_USE_TEMPLATE = """You are an expert medicinal chemist and drug discovery analyst.
Analyze the drug candidate below and answer the user's query in a clear, well-structured narrative.

SMILES: {smiles}
Target Protein: {target_protein}
Query: {query}

Use the available tools to retrieve structure details (PubChem), clinical and bioactivity
status (ChEMBL), predicted properties (Molprop) and a predicted mechanism of action.
A tool result of {{"found": false}} means the source had no data; say so instead of inventing values."""

_SMILES_SCHEMA = {
    "type": "object",
    "properties": {"smiles": {"type": "string", "description": "SMILES string of the molecule"}},
    "required": ["smiles"],
}

_NAME_SCHEMA = {
    "type": "object",
    "properties": {"name": {"type": "string", "description": "Drug or compound name"}},
    "required": ["name"],
}


def _found(record: Any) -> Dict[str, Any]:
    if record is None:
        return {"found": False}
    return {"found": True, **record.model_dump(mode="json")}


def _guarded(name: str, handler: Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]):
    """A failing lookup is reported to the model as absent data, never raised."""

    async def run(args: Dict[str, Any]) -> Dict[str, Any]:
        try:
            return await handler(args)
        except Exception as e:
            logger.warning(f"Tool {name} lookup failed: {e!r}")
            return {"found": False}

    return run


class SynthesisAgent:
    """Invokes the language model with a fixed instruction template."""

    def __init__(self, model: LanguageModel, sources: SourceBundle, mode: str = PREFETCHED):
        if mode not in (PREFETCHED, TOOL_USE):
            raise ValueError(f"Unknown synthesis mode: {mode}")
        self.model = model
        self.sources = sources
        self.mode = mode

    @property
    def uses_prefetched_data(self) -> bool:
        return self.mode == PREFETCHED

    # ---- tools ----

    async def _tool_pubchem(self, args: Dict[str, Any]) -> Dict[str, Any]:
        smiles = str(args.get("smiles") or "").strip()
        if not smiles:
            return {"found": False, "error": "smiles is required"}
        identifier = await self.sources.structure.resolve_identifier(smiles)
        if identifier is None:
            return {"found": False}
        if self.sources.structure.request_delay > 0:
            await asyncio.sleep(self.sources.structure.request_delay)
        return _found(await self.sources.structure.fetch_properties(identifier))

    async def _tool_chembl(self, args: Dict[str, Any]) -> Dict[str, Any]:
        name = str(args.get("name") or "").strip()
        if not name:
            return {"found": False, "error": "name is required"}
        return _found(await self.sources.bioactivity.lookup_by_name(name))

    async def _tool_molprop(self, args: Dict[str, Any]) -> Dict[str, Any]:
        smiles = str(args.get("smiles") or "").strip()
        if not smiles:
            return {"found": False, "error": "smiles is required"}
        return _found(await self.sources.properties.predict(smiles))

    async def _tool_mechanism(self, args: Dict[str, Any]) -> Dict[str, Any]:
        smiles = str(args.get("smiles") or "").strip()
        if not smiles:
            return {"found": False, "error": "smiles is required"}
        return _found(await self.sources.mechanism.predict(smiles))

    def tools(self) -> List[ToolSpec]:
        """Tool contracts mirroring the source adapters."""
        return [
            ToolSpec(
                name="get_pubchem_properties",
                description="Resolve a SMILES string in PubChem and return CID, formula, canonical SMILES, "
                            "molecular weight, IUPAC name and common name.",
                input_schema=_SMILES_SCHEMA,
                handler=_guarded("get_pubchem_properties", self._tool_pubchem),
            ),
            ToolSpec(
                name="get_chembl_bioactivity",
                description="Look up a drug by name in ChEMBL and return its ChEMBL ID, preferred name, "
                            "maximum clinical phase (0-4, null if unknown), weight, formula and description.",
                input_schema=_NAME_SCHEMA,
                handler=_guarded("get_chembl_bioactivity", self._tool_chembl),
            ),
            ToolSpec(
                name="get_molprop_prediction",
                description="Predict logP, aqueous solubility (logS) and a 0-1 toxicity score for a SMILES string.",
                input_schema=_SMILES_SCHEMA,
                handler=_guarded("get_molprop_prediction", self._tool_molprop),
            ),
            ToolSpec(
                name="get_mechanism_prediction",
                description="Predict the purpose or mechanism of action of a molecule from its SMILES string, "
                            "with a 0-1 confidence score when available.",
                input_schema=_SMILES_SCHEMA,
                handler=_guarded("get_mechanism_prediction", self._tool_mechanism),
            ),
        ]

    # ---- synthesis ----

    def build_variables(
        self,
        query: AnalysisQuery,
        structure: StructureRecord,
        aggregate: Optional[AggregateData],
    ) -> Dict[str, str]:
        variables = {
            "smiles": structure.canonical_smiles,
            "target_protein": query.target_protein or "Not specified",
            "query": query.query,
        }
        if self.uses_prefetched_data:
            aggregate = aggregate or AggregateData()
            data = {
                "pubchem": structure.model_dump(mode="json"),
                "chembl": aggregate.bioactivity.model_dump(mode="json") if aggregate.bioactivity else None,
                "molprop": aggregate.properties.model_dump(mode="json") if aggregate.properties else None,
                "mechanism": aggregate.mechanism.model_dump(mode="json") if aggregate.mechanism else None,
            }
            variables["data"] = json.dumps(data, indent=2)
        return variables

    async def synthesize(
        self,
        query: AnalysisQuery,
        structure: StructureRecord,
        aggregate: Optional[AggregateData] = None,
    ) -> str:
        variables = self.build_variables(query, structure, aggregate)
        if self.uses_prefetched_data:
            template, tools = PREFETCHED_TEMPLATE, None
        else:
            template, tools = TOOL_USE_TEMPLATE, self.tools()

        backend = type(self.model).__name__
        logger.info(f"Synthesizing analysis for CID {structure.cid} with {backend} ({self.mode})")
        try:
            narrative = await self.model.generate(template, variables, tools)
        except Exception as e:
            logger.error(f"Synthesis call failed: {e!r}")
            raise SynthesisError(f"Analysis generation failed: {e}", {"backend": backend}) from e

        if not isinstance(narrative, str) or not narrative.strip():
            logger.error("Model did not generate an analysis")
            raise SynthesisError("Model did not generate an analysis.", {"backend": backend})

        return narrative.strip()
