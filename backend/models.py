"""
Pydantic models for the Drug Candidate Analyzer
"""
import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

MIN_QUERY_LENGTH = 5


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _finite(value: Optional[float]) -> Optional[float]:
    if value is not None and not math.isfinite(value):
        raise ValueError("value must be a finite number")
    return value


class StructureRecord(BaseModel):
    """Canonical structure record resolved from PubChem"""
    model_config = ConfigDict(frozen=True)

    cid: Union[int, str]
    molecular_formula: str = Field(..., min_length=1)
    canonical_smiles: str = Field(..., min_length=1)
    molecular_weight: float = Field(..., gt=0)
    iupac_name: Optional[str] = None
    title: Optional[str] = None

    @field_validator("molecular_weight")
    @classmethod
    def _weight_finite(cls, v: float) -> float:
        return _finite(v)

    @property
    def display_name(self) -> Optional[str]:
        """Common name if PubChem has one, otherwise the IUPAC name"""
        return self.title or self.iupac_name


class BioactivityRecord(BaseModel):
    """Molecule entry from ChEMBL"""
    chembl_id: str = Field(..., min_length=1)
    name: str
    # None means the phase is unknown, not that the molecule never reached one
    max_phase: Optional[int] = Field(None, ge=0, le=4)
    molecular_weight: Optional[float] = Field(None, gt=0)
    molecular_formula: Optional[str] = None
    description: Optional[str] = None

    @field_validator("molecular_weight")
    @classmethod
    def _weight_finite(cls, v: Optional[float]) -> Optional[float]:
        return _finite(v)


class PropertyPrediction(BaseModel):
    """Predicted molecular properties from Molprop"""
    logp: Optional[float] = None
    solubility: Optional[float] = None  # logS
    toxicity_score: Optional[float] = Field(None, ge=0, le=1)

    @field_validator("logp", "solubility", "toxicity_score")
    @classmethod
    def _values_finite(cls, v: Optional[float]) -> Optional[float]:
        return _finite(v)

    def is_empty(self) -> bool:
        return self.logp is None and self.solubility is None and self.toxicity_score is None


class MechanismPrediction(BaseModel):
    """Predicted purpose / mechanism of action"""
    predicted_purpose: str = Field(..., min_length=1)
    confidence: Optional[float] = Field(None, ge=0, le=1)

    @field_validator("predicted_purpose")
    @classmethod
    def _purpose_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("predicted_purpose must not be blank")
        return v.strip()


class AnalysisQuery(BaseModel):
    """User-authored analysis request"""
    smiles: str = Field(..., description="SMILES string of the molecule")
    target_protein: Optional[str] = Field(None, description="Optional target protein (e.g., 'EGFR')")
    query: str = Field(..., description="Free-text analysis question")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "smiles": "c1ccccc1",
                "target_protein": None,
                "query": "Analyze potential efficacy and toxicity.",
            }
        }
    )

    @field_validator("smiles")
    @classmethod
    def _smiles_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("SMILES string is required.")
        return v

    @field_validator("target_protein")
    @classmethod
    def _blank_target_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip()

    @field_validator("query")
    @classmethod
    def _query_length(cls, v: str) -> str:
        v = v.strip()
        if len(v) < MIN_QUERY_LENGTH:
            raise ValueError(
                f"Please provide an analysis query (at least {MIN_QUERY_LENGTH} characters)."
            )
        return v


class AggregateData(BaseModel):
    """Secondary lookups gathered after resolution; every slot is independent"""
    bioactivity: Optional[BioactivityRecord] = None
    properties: Optional[PropertyPrediction] = None
    mechanism: Optional[MechanismPrediction] = None

    def missing_slots(self) -> List[str]:
        return [name for name in ("bioactivity", "properties", "mechanism") if getattr(self, name) is None]


class AnalysisResult(BaseModel):
    """Final output of a successful pipeline run"""
    request_id: str
    structure: StructureRecord
    bioactivity: Optional[BioactivityRecord] = None
    properties: Optional[PropertyPrediction] = None
    mechanism: Optional[MechanismPrediction] = None
    narrative: str = Field(..., min_length=1)
    completed_at: datetime = Field(default_factory=_utcnow)

    @field_validator("narrative")
    @classmethod
    def _narrative_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("narrative must not be blank")
        return v

    @classmethod
    def assemble(
        cls,
        request_id: str,
        structure: StructureRecord,
        aggregate: Optional[AggregateData],
        narrative: str,
    ) -> "AnalysisResult":
        aggregate = aggregate or AggregateData()
        return cls(
            request_id=request_id,
            structure=structure,
            bioactivity=aggregate.bioactivity,
            properties=aggregate.properties,
            mechanism=aggregate.mechanism,
            narrative=narrative,
        )


class PartialAnalysis(BaseModel):
    """Data already gathered when a later stage fails"""
    structure: Optional[StructureRecord] = None
    aggregate: Optional[AggregateData] = None


class PipelineStage(str, Enum):
    """Stage of the analysis pipeline an error originated from"""
    INPUT = "input"
    RESOLUTION = "resolution"
    AGGREGATION = "aggregation"
    SYNTHESIS = "synthesis"


class PipelineState(str, Enum):
    """Client-visible state of one pipeline run"""
    IDLE = "idle"
    RESOLVING = "resolving"
    ANALYZING = "analyzing"
    DONE = "done"
    FAILED = "failed"


class StageErrorInfo(BaseModel):
    """Serializable form of a stage-tagged error"""
    stage: PipelineStage
    message: str
    looks_like_formula: bool = False
    details: Dict[str, Any] = {}


class PipelineStatus(BaseModel):
    """Status of an analysis run"""
    request_id: str
    state: PipelineState
    current_stage: Optional[PipelineStage] = None
    progress: float = Field(..., ge=0, le=1)
    structure: Optional[StructureRecord] = None
    aggregate: Optional[AggregateData] = None
    result: Optional[AnalysisResult] = None
    error: Optional[StageErrorInfo] = None
    started_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
