"""
Vocal Performance Analysis Service (FastAPI app).

Endpoints:
    POST /api/v1/session-analysis         Telemetry + diagnosis + quick score
    POST /api/v1/telemetry                Telemetry only
    POST /api/v1/diagnose                 Diagnose a telemetry record
    POST /api/v1/analyze-performance      Quick score + feedback
    GET  /api/v1/notes/{note}/frequency   Note name to Hz
    GET  /api/v1/health                   Health check

Persistence, auth and audio capture live in the calling backend; this
service only computes.
"""

import logging
import os
import random
import traceback
import uuid
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from diagnosis import diagnose
from models import (
    PerformanceAnalysis,
    PerformanceFeedback,
    PerformanceSample,
    SessionTelemetry,
    VocalDiagnosis,
)
from pitch_math import InvalidNoteFormat, note_to_frequency
from scoring import analyze_performance
from telemetry import compute_telemetry
from thresholds import DEFAULT_DIAGNOSIS_CONFIG

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("vocal-service")

# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

SERVICE_NAME = "vocal-analysis-service"
SERVICE_VERSION = "1.0.0"

# Sessions with fewer voiced frames are rejected before analysis
MIN_VALID_SAMPLES = int(os.environ.get("MIN_VALID_SAMPLES", "10"))

DIAGNOSIS_CONFIG = DEFAULT_DIAGNOSIS_CONFIG

# One picker for the whole process so "excellent" headlines vary between
# sessions; DIAGNOSIS_SEED pins the sequence, unset seeds from the OS.
_seed = os.environ.get("DIAGNOSIS_SEED")
HEADLINE_RNG = random.Random(int(_seed) if _seed else None)

web_app = FastAPI(title="Vocal Performance Analysis", version=SERVICE_VERSION)

# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------


class TelemetryRequest(BaseModel):
    samples: list[PerformanceSample]
    songDurationSeconds: float


class AnalyzePerformanceRequest(BaseModel):
    samples: list[PerformanceSample]


class SessionAnalysisRequest(BaseModel):
    sessionId: Optional[str] = None
    samples: list[PerformanceSample] = Field(min_length=1)
    songDurationSeconds: float = Field(gt=0)


class SessionAnalysisResponse(BaseModel):
    sessionId: str
    score: int
    feedback: PerformanceFeedback
    telemetry: SessionTelemetry
    diagnosis: VocalDiagnosis


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@web_app.get("/api/v1/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@web_app.post("/api/v1/telemetry", response_model=SessionTelemetry)
def telemetry(req: TelemetryRequest):
    return compute_telemetry(req.samples, req.songDurationSeconds)


@web_app.post("/api/v1/diagnose", response_model=VocalDiagnosis)
def diagnose_telemetry(req: SessionTelemetry):
    return diagnose(req, DIAGNOSIS_CONFIG, rng=HEADLINE_RNG)


@web_app.post("/api/v1/analyze-performance", response_model=PerformanceAnalysis)
def analyze(req: AnalyzePerformanceRequest):
    return analyze_performance(req.samples)


@web_app.get("/api/v1/notes/{note}/frequency")
def note_frequency(note: str):
    try:
        return {"note": note, "frequency": note_to_frequency(note)}
    except InvalidNoteFormat as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@web_app.post("/api/v1/session-analysis", response_model=SessionAnalysisResponse)
def session_analysis(req: SessionAnalysisRequest):
    """Full analysis of one finished session.

    Pipeline:
        1. Reject sessions with too few voiced frames
        2. Telemetry -> rule-based diagnosis
        3. Quick score + recommendations
    """
    session_id = req.sessionId or str(uuid.uuid4())
    valid_count = sum(1 for s in req.samples if s.is_valid)
    logger.info(
        "session-analysis: session=%s samples=%d voiced=%d duration=%.1fs",
        session_id,
        len(req.samples),
        valid_count,
        req.songDurationSeconds,
    )

    if valid_count < MIN_VALID_SAMPLES:
        raise HTTPException(
            status_code=422,
            detail=(
                f"Too few valid samples to analyse: {valid_count} voiced frames, "
                f"at least {MIN_VALID_SAMPLES} required"
            ),
        )

    try:
        session_telemetry = compute_telemetry(req.samples, req.songDurationSeconds)
        vocal_diagnosis = diagnose(session_telemetry, DIAGNOSIS_CONFIG, rng=HEADLINE_RNG)
        quick = analyze_performance(req.samples)
    except InvalidNoteFormat as exc:
        logger.error("Session %s has corrupt note data: %s", session_id, exc)
        raise HTTPException(status_code=400, detail=str(exc))
    except Exception as exc:
        logger.error("Session %s failed: %s\n%s", session_id, exc, traceback.format_exc())
        raise HTTPException(status_code=500, detail=f"Analysis failed: {exc}")

    return SessionAnalysisResponse(
        sessionId=session_id,
        score=quick.score,
        feedback=quick.feedback,
        telemetry=session_telemetry,
        diagnosis=vocal_diagnosis,
    )
