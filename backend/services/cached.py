"""
Caching decorators for source adapters.

Each wrapper implements the same interface as the source it wraps, so the
pipeline cannot tell whether caching is on.
"""
from typing import Optional

from loguru import logger

from core.cache import LookupCache, cache_key
from models import BioactivityRecord, MechanismPrediction, PropertyPrediction, StructureRecord
from .base import BioactivitySource, Identifier, MechanismSource, PropertySource, StructureSource


class CachedStructureSource(StructureSource):

    def __init__(self, inner: StructureSource, cache: LookupCache):
        self.inner = inner
        self.cache = cache

    @property
    def request_delay(self) -> float:
        return self.inner.request_delay

    async def resolve_identifier(self, smiles: str) -> Optional[Identifier]:
        key = cache_key("structure", "cid", smiles)
        cached = await self.cache.get(key)
        if cached is not None:
            logger.debug(f"Cache hit for CID of {smiles}")
            return cached
        identifier = await self.inner.resolve_identifier(smiles)
        await self.cache.set(key, identifier)
        return identifier

    async def fetch_properties(self, identifier: Identifier) -> Optional[StructureRecord]:
        key = cache_key("structure", "properties", identifier)
        cached = await self.cache.get(key)
        if cached is not None:
            return cached
        record = await self.inner.fetch_properties(identifier)
        await self.cache.set(key, record)
        return record


class CachedBioactivitySource(BioactivitySource):

    def __init__(self, inner: BioactivitySource, cache: LookupCache):
        self.inner = inner
        self.cache = cache

    async def lookup_by_name(self, name: str) -> Optional[BioactivityRecord]:
        key = cache_key("bioactivity", "name", name.lower())
        cached = await self.cache.get(key)
        if cached is not None:
            return cached
        record = await self.inner.lookup_by_name(name)
        await self.cache.set(key, record)
        return record


class CachedPropertySource(PropertySource):

    def __init__(self, inner: PropertySource, cache: LookupCache):
        self.inner = inner
        self.cache = cache

    async def predict(self, smiles: str) -> Optional[PropertyPrediction]:
        key = cache_key("properties", "predict", smiles)
        cached = await self.cache.get(key)
        if cached is not None:
            return cached
        prediction = await self.inner.predict(smiles)
        await self.cache.set(key, prediction)
        return prediction


class CachedMechanismSource(MechanismSource):

    def __init__(self, inner: MechanismSource, cache: LookupCache):
        self.inner = inner
        self.cache = cache

    async def predict(self, smiles: str) -> Optional[MechanismPrediction]:
        key = cache_key("mechanism", "predict", smiles)
        cached = await self.cache.get(key)
        if cached is not None:
            return cached
        prediction = await self.inner.predict(smiles)
        await self.cache.set(key, prediction)
        return prediction
