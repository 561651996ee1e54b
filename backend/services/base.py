"""
Source adapter interfaces.

Every external capability sits behind one of these interfaces, with a live
implementation and a deterministic offline one. Adapters never raise for
"not found", bad payloads, non-2xx responses or transport failures: they log
and return None. The orchestration layer only ever sees "got valid data" or
"did not".
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from models import BioactivityRecord, MechanismPrediction, PropertyPrediction, StructureRecord

Identifier = Union[int, str]


class StructureSource(ABC):
    """Structure database: SMILES -> identifier -> canonical record."""

    name = "structure"
    # Seconds to wait between identifier resolution and property fetch
    request_delay: float = 0.0

    @abstractmethod
    async def resolve_identifier(self, smiles: str) -> Optional[Identifier]:
        ...

    @abstractmethod
    async def fetch_properties(self, identifier: Identifier) -> Optional[StructureRecord]:
        ...


class BioactivitySource(ABC):
    """Bioactivity database lookup by compound name."""

    name = "bioactivity"

    @abstractmethod
    async def lookup_by_name(self, name: str) -> Optional[BioactivityRecord]:
        ...


class PropertySource(ABC):
    """Molecular property predictor."""

    name = "properties"

    @abstractmethod
    async def predict(self, smiles: str) -> Optional[PropertyPrediction]:
        ...


class MechanismSource(ABC):
    """Mechanism-of-action predictor."""

    name = "mechanism"

    @abstractmethod
    async def predict(self, smiles: str) -> Optional[MechanismPrediction]:
        ...


@dataclass
class SourceBundle:
    """The four adapters the pipeline works with, chosen once at construction."""
    structure: StructureSource
    bioactivity: BioactivitySource
    properties: PropertySource
    mechanism: MechanismSource

    def describe(self) -> Dict[str, str]:
        return {
            "structure": type(self.structure).__name__,
            "bioactivity": type(self.bioactivity).__name__,
            "properties": type(self.properties).__name__,
            "mechanism": type(self.mechanism).__name__,
        }


@dataclass
class ToolSpec:
    """A callable tool the synthesis model may invoke."""
    name: str
    description: str
    input_schema: Dict[str, Any]
    handler: Callable[[Dict[str, Any]], Awaitable[Any]] = field(repr=False)

    def to_anthropic(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }


class LanguageModel(ABC):
    """
    Narrative generator behind the synthesis agent.

    `generate` renders the instruction template with the variables, may call
    any of the declared tools, and returns the model's final text. It may
    raise; the agent turns any failure into a synthesis-stage error.
    """

    @abstractmethod
    async def generate(
        self,
        template: str,
        variables: Dict[str, str],
        tools: Optional[List[ToolSpec]] = None,
    ) -> str:
        ...


class HttpSource:
    """
    Shared HTTP plumbing for live adapters.

    Transport errors (including timeouts) are retried up to `max_attempts`;
    HTTP status errors are not. The client is created lazily unless one is
    injected.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        max_attempts: int = 1,
    ):
        self._client = client
        self._owns_client = client is None
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self):
        """Close the HTTP client if this adapter created it."""
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=0.5, max=4),
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        ):
            with attempt:
                client = await self._get_client()
                response = await client.request(method, url, **kwargs)
        return response
