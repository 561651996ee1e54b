"""
Molprop property prediction client.

The live adapter POSTs a SMILES string to a Molprop-style prediction service.
The mock adapter derives stable pseudo-predictions from a hash of the SMILES,
so repeated runs see identical values.
"""
import hashlib
from typing import Any, Dict, Optional

import httpx
from loguru import logger
from pydantic import ValidationError

from models import PropertyPrediction
from .base import HttpSource, PropertySource

# Accept both the service's camelCase keys and snake_case
_FIELD_ALIASES = {
    "logp": ("logP", "logp", "log_p"),
    "solubility": ("solubility", "logS", "logs"),
    "toxicity_score": ("toxicityScore", "toxicity_score", "toxicity"),
}


def parse_prediction(data: Any) -> Optional[PropertyPrediction]:
    """Normalize a Molprop payload; None for malformed or empty predictions."""
    if not isinstance(data, dict):
        logger.error(f"Molprop API returned unexpected payload type: {type(data).__name__}")
        return None

    values: Dict[str, Any] = {}
    for field, aliases in _FIELD_ALIASES.items():
        for alias in aliases:
            if data.get(alias) is not None:
                values[field] = data[alias]
                break

    try:
        prediction = PropertyPrediction(**values)
    except ValidationError as e:
        logger.error(f"Molprop API response validation failed: {e}")
        return None

    if prediction.is_empty():
        logger.warning("Molprop API returned no usable properties")
        return None
    return prediction


class MolpropPropertySource(HttpSource, PropertySource):
    """Live Molprop adapter."""

    def __init__(
        self,
        api_url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        max_attempts: int = 1,
    ):
        super().__init__(client=client, timeout=timeout, max_attempts=max_attempts)
        self.api_url = api_url

    async def predict(self, smiles: str) -> Optional[PropertyPrediction]:
        if not self.api_url:
            logger.warning("MOLPROP_API_URL not set; no property prediction available")
            return None

        logger.info(f"Calling Molprop API at {self.api_url} for SMILES: {smiles}")
        try:
            response = await self._request("POST", self.api_url, json={"smiles": smiles})
        except httpx.HTTPError as e:
            logger.error(f"Error calling Molprop API: {e!r}")
            return None

        if response.status_code != 200:
            logger.error(f"Molprop API error! Status: {response.status_code}")
            return None

        try:
            data = response.json()
        except ValueError:
            logger.error("Molprop API returned non-JSON body")
            return None

        return parse_prediction(data)


def _unit_values(smiles: str, count: int):
    digest = hashlib.sha256(smiles.encode("utf-8")).digest()
    for i in range(count):
        chunk = int.from_bytes(digest[i * 4:(i + 1) * 4], "big")
        yield chunk / 0xFFFFFFFF


class MockPropertySource(PropertySource):
    """Deterministic offline predictor."""

    async def predict(self, smiles: str) -> Optional[PropertyPrediction]:
        smiles = smiles.strip()
        if not smiles:
            return None
        a, b, c = _unit_values(smiles, 3)
        return PropertyPrediction(
            logp=round(-1.0 + 6.0 * a, 2),
            solubility=round(-6.0 * b, 2),
            toxicity_score=round(c, 2),
        )
