"""
Mechanism-of-action prediction (DeepPurpose-style).

The live adapter asks Claude for a structured prediction. The offline
adapter matches a handful of well-known scaffolds in the canonical SMILES
and reports nothing for anything else.
"""
from typing import Optional

from loguru import logger
from pydantic import ValidationError

from models import MechanismPrediction
from .base import MechanismSource
from .claude_service import ClaudeLanguageModel, extract_json_object

MECHANISM_PROMPT = """You are an expert AI model specializing in predicting the purpose or mechanism of action of molecules.
Given the SMILES string of a molecule, predict its potential purpose or mechanism of action.
Return a confidence score (0-1) for the prediction, if available.

SMILES: {smiles}

Return only a JSON object:
{{"predicted_purpose": "string", "confidence": 0.0-1.0 or null}}"""


class ClaudeMechanismSource(MechanismSource):
    """Mechanism prediction backed by Claude."""

    def __init__(self, model: ClaudeLanguageModel, max_tokens: int = 1024):
        self.model = model
        self.max_tokens = max_tokens

    async def predict(self, smiles: str) -> Optional[MechanismPrediction]:
        try:
            content = await self.model.complete(MECHANISM_PROMPT.format(smiles=smiles), max_tokens=self.max_tokens)
        except Exception as e:
            logger.error(f"Error during mechanism prediction for SMILES {smiles}: {e}")
            return None

        parsed = extract_json_object(content)
        if not parsed:
            logger.warning(f"Mechanism prediction not found for SMILES: {smiles}")
            return None

        try:
            prediction = MechanismPrediction(
                predicted_purpose=parsed.get("predicted_purpose") or "",
                confidence=parsed.get("confidence"),
            )
        except ValidationError as e:
            logger.error(f"Mechanism prediction failed validation for SMILES {smiles}: {e}")
            return None

        logger.info(f"Mechanism prediction found for SMILES: {smiles}")
        return prediction


# (required substrings of the canonical SMILES, predicted purpose, confidence)
_SCAFFOLD_RULES = [
    (("OC1=CC=CC=C1C(=O)O",),
     "Acetylating cyclooxygenase (COX-1/COX-2) inhibitor of the salicylate class; "
     "analgesic, anti-inflammatory and antiplatelet activity.", 0.74),
    (("N1C=NC2=C1", "C(=O)N"),
     "Xanthine scaffold: non-selective adenosine receptor antagonist and weak "
     "phosphodiesterase inhibitor; central nervous system stimulant.", 0.71),
    (("C(C)C(=O)O", "C1=CC=C"),
     "Arylpropionic acid (profen): reversible cyclooxygenase inhibitor with "
     "anti-inflammatory and analgesic activity.", 0.68),
    (("NC1=CC=C(C=C1)O",),
     "para-Aminophenol analgesic: antipyretic with weak peripheral and central "
     "cyclooxygenase inhibition.", 0.63),
]


class MockMechanismSource(MechanismSource):
    """Offline scaffold-rule predictor."""

    async def predict(self, smiles: str) -> Optional[MechanismPrediction]:
        for required, purpose, confidence in _SCAFFOLD_RULES:
            if all(fragment in smiles for fragment in required):
                return MechanismPrediction(predicted_purpose=purpose, confidence=confidence)
        logger.warning(f"Mechanism prediction not found for SMILES: {smiles} (mock mechanism source)")
        return None
