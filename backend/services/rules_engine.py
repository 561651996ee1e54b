"""
Offline report writer used when no hosted model is configured.

It honours the same contract as the Claude backend: with pre-fetched data it
reads the JSON block from the variables, otherwise it calls the declared
tools itself.
"""
import json
from typing import Any, Dict, List, Optional

from loguru import logger

from .base import LanguageModel, ToolSpec


def _describe_logp(logp: float) -> str:
    if logp < 0:
        return f"logP {logp:.2f} (hydrophilic; passive membrane permeability is likely limited)"
    if logp <= 3:
        return f"logP {logp:.2f} (balanced lipophilicity, favourable for oral absorption)"
    if logp <= 5:
        return f"logP {logp:.2f} (lipophilic, still within Lipinski's limit)"
    return f"logP {logp:.2f} (exceeds Lipinski's limit of 5; solubility and clearance may suffer)"


def _describe_solubility(logs: float) -> str:
    if logs > -2:
        return f"logS {logs:.2f} (highly soluble)"
    if logs > -4:
        return f"logS {logs:.2f} (moderately soluble)"
    return f"logS {logs:.2f} (poorly soluble; formulation work may be needed)"


def _describe_toxicity(score: float) -> str:
    if score < 0.3:
        return f"toxicity score {score:.2f} (low predicted risk)"
    if score < 0.7:
        return f"toxicity score {score:.2f} (moderate predicted risk)"
    return f"toxicity score {score:.2f} (high predicted risk; prioritize safety profiling)"


def _describe_phase(phase: Optional[int]) -> str:
    if phase is None:
        return "its maximum clinical phase is unknown"
    if phase == 4:
        return "it has reached approval (phase 4)"
    if phase == 0:
        return "it has no recorded clinical development (phase 0)"
    return f"it has progressed to clinical phase {phase}"


class RuleBasedLanguageModel(LanguageModel):
    """Deterministic narrative generator."""

    async def _call(self, tools: Dict[str, ToolSpec], name: str, args: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        tool = tools.get(name)
        if tool is None:
            return None
        result = await tool.handler(args)
        return result if result and result.get("found") else None

    async def _fetch_with_tools(self, smiles: str, tools: List[ToolSpec]) -> Dict[str, Any]:
        by_name = {tool.name: tool for tool in tools}
        pubchem = await self._call(by_name, "get_pubchem_properties", {"smiles": smiles})
        lookup_smiles = (pubchem or {}).get("canonical_smiles") or smiles

        chembl = None
        for name in ((pubchem or {}).get("title"), (pubchem or {}).get("iupac_name")):
            if name:
                chembl = await self._call(by_name, "get_chembl_bioactivity", {"name": name})
                if chembl:
                    break

        return {
            "pubchem": pubchem,
            "chembl": chembl,
            "molprop": await self._call(by_name, "get_molprop_prediction", {"smiles": lookup_smiles}),
            "mechanism": await self._call(by_name, "get_mechanism_prediction", {"smiles": lookup_smiles}),
        }

    async def generate(
        self,
        template: str,
        variables: Dict[str, str],
        tools: Optional[List[ToolSpec]] = None,
    ) -> str:
        smiles = variables.get("smiles", "")
        if "data" in variables:
            data = json.loads(variables["data"])
        elif tools:
            data = await self._fetch_with_tools(smiles, tools)
        else:
            data = {}
        logger.debug(f"Rule-based synthesis with sources: {[k for k, v in data.items() if v]}")
        return self.write_report(variables, data)

    def write_report(self, variables: Dict[str, str], data: Dict[str, Any]) -> str:
        smiles = variables.get("smiles", "")
        query = variables.get("query", "")
        target = variables.get("target_protein")
        if target == "Not specified":
            target = None

        pubchem = data.get("pubchem") or {}
        chembl = data.get("chembl")
        molprop = data.get("molprop")
        mechanism = data.get("mechanism")
        name = pubchem.get("title") or pubchem.get("iupac_name") or smiles

        sections = []

        header = f"Analysis of {name}"
        if pubchem:
            header += (
                f" ({pubchem.get('molecular_formula')}, MW {float(pubchem.get('molecular_weight', 0)):.2f} g/mol, "
                f"PubChem CID {pubchem.get('cid')})"
            )
        sections.append(header)
        sections.append(f"Query: {query}")

        if pubchem:
            identity = f"Canonical SMILES: {pubchem.get('canonical_smiles')}."
            if pubchem.get("iupac_name"):
                identity += f" IUPAC name: {pubchem['iupac_name']}."
            if float(pubchem.get("molecular_weight", 0)) > 500:
                identity += " Molecular weight exceeds 500 g/mol, a Lipinski rule-of-five violation."
            sections.append(identity)

        if chembl:
            sections.append(
                f"Clinical status: {chembl.get('name')} is registered in ChEMBL as {chembl.get('chembl_id')}; "
                f"{_describe_phase(chembl.get('max_phase'))}."
                + (f" {chembl['description']}." if chembl.get("description") else "")
            )
        else:
            sections.append("Clinical status: no ChEMBL record was found, so no clinical history is available.")

        if molprop:
            parts = []
            if molprop.get("logp") is not None:
                parts.append(_describe_logp(molprop["logp"]))
            if molprop.get("solubility") is not None:
                parts.append(_describe_solubility(molprop["solubility"]))
            if molprop.get("toxicity_score") is not None:
                parts.append(_describe_toxicity(molprop["toxicity_score"]))
            sections.append("Predicted properties: " + "; ".join(parts) + ".")
        else:
            sections.append("Predicted properties: no property prediction was available.")

        if mechanism:
            text = f"Predicted mechanism: {mechanism.get('predicted_purpose')}"
            if mechanism.get("confidence") is not None:
                text += f" (confidence {mechanism['confidence']:.0%})"
            sections.append(text + ".")
        else:
            sections.append("Predicted mechanism: no mechanism-of-action prediction was available.")

        if target:
            sections.append(
                f"Target {target}: no direct binding data for this target was retrieved; "
                "an in vitro binding or functional assay is needed to confirm engagement."
            )

        sections.extend(self._answer_focus(query, chembl, molprop, mechanism))

        missing = [label for label, value in (
            ("ChEMBL", chembl), ("Molprop", molprop), ("mechanism prediction", mechanism)
        ) if not value]
        caveat = "These observations are automated and should be confirmed experimentally."
        if missing:
            caveat = f"Unavailable sources: {', '.join(missing)}. " + caveat
        sections.append(caveat)

        return "\n\n".join(sections)

    @staticmethod
    def _answer_focus(query, chembl, molprop, mechanism) -> List[str]:
        focus = []
        lowered = query.lower()

        if "toxic" in lowered or "safety" in lowered:
            score = (molprop or {}).get("toxicity_score")
            if score is None:
                focus.append("Toxicity: no toxicity prediction is available; standard in vitro safety panels are advised.")
            else:
                focus.append(f"Toxicity: the model gives a {_describe_toxicity(score)}.")

        if any(word in lowered for word in ("efficacy", "effective", "potency", "activity")):
            if chembl and chembl.get("max_phase") == 4:
                focus.append("Efficacy: approval status indicates demonstrated clinical efficacy for at least one indication.")
            elif mechanism:
                focus.append("Efficacy: efficacy is unproven clinically; the predicted mechanism suggests where to test it.")
            else:
                focus.append("Efficacy: there is no clinical or mechanistic evidence to support efficacy at this stage.")

        if any(word in lowered for word in ("solub", "absorption", "bioavailab", "adme")):
            if molprop and molprop.get("solubility") is not None:
                focus.append(f"Absorption: {_describe_solubility(molprop['solubility'])}.")
            else:
                focus.append("Absorption: no solubility prediction is available.")

        return focus
