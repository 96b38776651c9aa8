"""
Medication Safety Analysis API

Main FastAPI application entry point.
"""
from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging
from datetime import datetime, timezone

from medsafe.config import get_settings
from medsafe.exceptions import MedicationNotFoundError
from medsafe.schemas import (
    AnalysisResult, AnalyzeRequest, InteractionCheckRequest, InteractionReport, MedicationRecord,
)
from medsafe.services import MedicationAnalysisService, create_analysis_service
from medsafe.services.rate_limiter import rate_limit

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    if getattr(app.state, "analysis_service", None) is None:
        app.state.analysis_service = create_analysis_service(settings)
    app.state.analysis_service.start_sweepers(settings.CACHE_SWEEP_INTERVAL_SECONDS)
    logger.info(f"{settings.APP_NAME} v{settings.APP_VERSION} ready (LLM provider: {settings.LLM_PROVIDER})")

    yield

    # Shutdown
    logger.info("Shutting down...")
    await app.state.analysis_service.stop_sweepers()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="""
    ## Medication Safety Analysis Engine

    Educational information about natural alternatives to a medication, with
    interaction and contraindication screening.

    ### Severity Levels:
    - **Minor**: Generally safe, minimal effects
    - **Moderate**: Use caution, monitor for effects
    - **Major**: Significant interaction, consult healthcare provider
    - **Contraindicated**: Do NOT use together

    Every result requires consultation with a healthcare provider.
    """,
    lifespan=lifespan,
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify actual origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_analysis_service(request: Request) -> MedicationAnalysisService:
    return request.app.state.analysis_service


async def client_rate_limit(request: Request) -> None:
    """Per-client fixed-window limit on analysis endpoints."""
    await rate_limit(request, limit=settings.RATE_LIMIT_REQUESTS_PER_MIN, key_prefix="medsafe")


# ============== Health Endpoints ==============

@app.get("/", tags=["Health"])
async def root():
    """Root endpoint - API health check."""
    return {
        "message": "Medication Safety Analysis API",
        "version": settings.APP_VERSION,
        "status": "healthy",
        "docs": "/docs"
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """Detailed health check."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": settings.APP_VERSION,
        "llmProvider": settings.LLM_PROVIDER,
    }


# ============== Analysis Endpoints ==============

@app.post("/analyze", response_model=AnalysisResult, tags=["Analysis"])
async def analyze_medication(
    payload: AnalyzeRequest,
    _: None = Depends(client_rate_limit),
    service: MedicationAnalysisService = Depends(get_analysis_service),
):
    """
    Analyze a medication: natural alternatives, interactions and warnings.

    Returns 400 when the medication name fails validation.
    """
    return await service.analyze(payload.medication_name, payload.patient_factors)


@app.post("/interactions/check", response_model=InteractionReport, tags=["Interactions"])
async def check_interactions(
    payload: InteractionCheckRequest,
    _: None = Depends(client_rate_limit),
    service: MedicationAnalysisService = Depends(get_analysis_service),
):
    """Check medications against each other and the patient profile."""
    return await service.check_interactions(payload.medications, payload.patient_factors)


@app.get("/medications/{name}", response_model=MedicationRecord, tags=["Medications"])
async def get_medication(
    name: str,
    _: None = Depends(client_rate_limit),
    service: MedicationAnalysisService = Depends(get_analysis_service),
):
    """Resolve a medication name to its canonical record."""
    record = await service.resolve(name)
    if record.validation_warning and not record.upstream_unavailable:
        raise MedicationNotFoundError(record.name)
    return record


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("medsafe.main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
