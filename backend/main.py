"""
FastAPI Main Application for the Drug Candidate Analyzer
"""
import asyncio
import uuid
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import BackgroundTasks, FastAPI, HTTPException, Request, WebSocket
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel, Field

from config import configure_logging, settings
from core.errors import AnalysisError, InputInvalidError, ResolutionError, SynthesisError
from models import AnalysisQuery, AnalysisResult, PipelineStage, PipelineState, PipelineStatus, StructureRecord
from pipeline import AnalysisPipeline

configure_logging(settings.log_level)

# Initialize services
pipeline = AnalysisPipeline()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    logger.info("Starting Drug Candidate Analyzer")
    yield
    for source in vars(pipeline.sources).values():
        close = getattr(getattr(source, "inner", source), "close", None)
        if close is not None:
            await close()
    logger.info("Shutting down Drug Candidate Analyzer")


app = FastAPI(
    title="Drug Candidate Analyzer",
    description="Analyze a molecule against PubChem, ChEMBL, property and mechanism predictors, "
                "and synthesize a natural-language report",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class ResolveRequest(BaseModel):
    """Request for structure resolution only"""
    smiles: str = Field(..., description="SMILES string to resolve")


class JobResponse(BaseModel):
    """Response for background analysis submission"""
    request_id: str
    status: str


_STATUS_CODES = {
    PipelineStage.INPUT: 422,
    PipelineStage.RESOLUTION: 404,
    PipelineStage.SYNTHESIS: 502,
}


def _error_response(error: AnalysisError) -> JSONResponse:
    """Stage-tagged error body; partial data from earlier stages is included"""
    body = error.to_info().model_dump(mode="json")
    body["partial"] = error.partial.model_dump(mode="json")
    return JSONResponse(status_code=_STATUS_CODES.get(error.stage, 500), content=body)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are input-stage errors like any other"""
    errors = exc.errors()
    messages = "; ".join(err.get("msg", "") for err in errors)
    fields = ",".join(str(err["loc"][-1]) for err in errors if err.get("loc"))
    logger.warning(f"Rejected request to {request.url.path}: {messages}")
    return _error_response(InputInvalidError(f"Invalid analysis request: {messages}", {"fields": fields}))


# ============= API Endpoints =============

@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "name": "Drug Candidate Analyzer",
        "version": "1.0.0",
        "status": "running",
        "endpoints": {
            "analyze": "/api/analyze",
            "analyze_async": "/api/analyze/async",
            "resolve": "/api/resolve",
            "status": "/api/status/{request_id}",
            "progress": "/ws/progress/{request_id}",
        },
    }


@app.post("/api/resolve", response_model=StructureRecord)
async def resolve_structure(request: ResolveRequest):
    """Resolve a SMILES string to its PubChem record"""
    try:
        return await pipeline.resolver.resolve(request.smiles)
    except (InputInvalidError, ResolutionError) as e:
        return _error_response(e)


@app.post("/api/analyze", response_model=AnalysisResult)
async def analyze(query: AnalysisQuery):
    """
    Run the full analysis pipeline

    1. Resolve the structure in PubChem
    2. Gather ChEMBL, Molprop and mechanism data (each optional)
    3. Synthesize the narrative
    """
    try:
        return await pipeline.run(query)
    except AnalysisError as e:
        return _error_response(e)


async def _run_in_background(query: AnalysisQuery, request_id: str):
    try:
        await pipeline.run(query, request_id=request_id)
    except AnalysisError as e:
        # Already recorded on the run's status
        logger.info(f"Background run {request_id} ended in {e.stage.value} failure")


@app.post("/api/analyze/async", response_model=JobResponse)
async def analyze_async(query: AnalysisQuery, background_tasks: BackgroundTasks):
    """Start an analysis and poll /api/status or the progress websocket"""
    request_id = str(uuid.uuid4())
    background_tasks.add_task(_run_in_background, query, request_id)
    return JobResponse(request_id=request_id, status=PipelineState.RESOLVING.value)


@app.get("/api/status/{request_id}", response_model=PipelineStatus)
async def get_pipeline_status(request_id: str):
    """Get the status of a running pipeline"""
    status = pipeline.get_status(request_id)
    if status is None:
        raise HTTPException(status_code=404, detail="Pipeline not found")
    return status


# ============= Health Check =============

@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "sources": pipeline.sources.describe(),
        "synthesis": {
            "backend": type(pipeline.agent.model).__name__,
            "mode": pipeline.agent.mode,
        },
    }


# ============= WebSocket for Progress Updates =============

@app.websocket("/ws/progress/{request_id}")
async def websocket_progress(websocket: WebSocket, request_id: str):
    """WebSocket endpoint for real-time progress updates"""
    await websocket.accept()

    try:
        while True:
            status = pipeline.get_status(request_id)
            if status:
                await websocket.send_json(status.model_dump(mode="json"))
                if status.state in (PipelineState.DONE, PipelineState.FAILED):
                    break
            await asyncio.sleep(1)
    except Exception as e:
        logger.error(f"WebSocket error: {e}")
    finally:
        await websocket.close()


# ============= Main Entry Point =============

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info",
    )
