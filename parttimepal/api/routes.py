"""
FastAPI Routes for Part-time Pal

REST endpoints for job search, posting verification and CV matching.
One in-memory session per browser; nothing is persisted.

Run with: uvicorn parttimepal.api.routes:app --reload
"""

from typing import Optional
from datetime import datetime
import logging

from fastapi import FastAPI, HTTPException, Depends, UploadFile, File, Form
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from parttimepal import __version__
from parttimepal.core.config import get_settings
from parttimepal.core.errors import PartTimePalError, InputRejectedError, UnsupportedFileError
from parttimepal.core.schemas import (
    AppMode, SearchCriteria, TextInput, UrlInput, ImageInput, FileInput
)
from parttimepal.services.orchestrator import create_orchestrator
from parttimepal.services.presenter import SessionSnapshot, snapshot
from parttimepal.services.session import SessionStore, SessionController

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# ============================================================================
# FastAPI App Setup
# ============================================================================

app = FastAPI(
    title=f"{settings.app_name} API",
    description="AI-assisted part-time job search and scam checking for students",
    version=__version__,
    debug=settings.debug
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_store: Optional[SessionStore] = None


def get_store() -> SessionStore:
    """Session store over the configured provider, created on first use."""
    global _store
    if _store is None:
        _store = SessionStore(create_orchestrator())
    return _store


def get_controller(session_id: str, store: SessionStore = Depends(get_store)) -> SessionController:
    controller = store.get(session_id)
    if not controller:
        raise HTTPException(status_code=404, detail="Session not found")
    return controller


async def read_upload(upload: UploadFile) -> bytes:
    """Read at most one byte past the limit; the normalizer rejects oversized data."""
    return await upload.read(settings.upload.max_upload_bytes + 1)


# ============================================================================
# Error Handlers
# ============================================================================

@app.exception_handler(InputRejectedError)
async def input_rejected_handler(request, exc: InputRejectedError):
    return JSONResponse(status_code=422, content={"detail": exc.user_message})


@app.exception_handler(PartTimePalError)
async def provider_error_handler(request, exc: PartTimePalError):
    logger.error(f"{request.url.path} failed: {exc}")
    return JSONResponse(status_code=502, content={"detail": exc.user_message})


# ============================================================================
# Request Models
# ============================================================================

class ModeRequest(BaseModel):
    """Switch between the two tabs."""
    mode: AppMode


class LocationRequest(BaseModel):
    """Browser geolocation; missing or out-of-range values are ignored."""
    lat: Optional[float] = None
    lng: Optional[float] = None


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "version": __version__
    }


# ============================================================================
# Session Endpoints
# ============================================================================

@app.post("/sessions", response_model=SessionSnapshot)
async def create_session(store: SessionStore = Depends(get_store)):
    """Start a new session in Find Jobs mode."""
    controller = store.create()
    return snapshot(controller.ctx)


@app.get("/sessions/{session_id}", response_model=SessionSnapshot)
async def get_session(controller: SessionController = Depends(get_controller)):
    """Current session state."""
    return snapshot(controller.ctx)


@app.delete("/sessions/{session_id}")
async def delete_session(session_id: str, store: SessionStore = Depends(get_store)):
    """Forget a session."""
    if not store.delete(session_id):
        raise HTTPException(status_code=404, detail="Session not found")
    return {"status": "ok"}


@app.post("/sessions/{session_id}/mode", response_model=SessionSnapshot)
async def switch_mode(request: ModeRequest, controller: SessionController = Depends(get_controller)):
    """Switch tab; always lands on the input view."""
    return snapshot(controller.switch_mode(request.mode))


@app.post("/sessions/{session_id}/location", response_model=SessionSnapshot)
async def set_location(request: LocationRequest, controller: SessionController = Depends(get_controller)):
    """Best-effort location hint for search and company verification."""
    if request.lat is not None and request.lng is not None:
        controller.set_location(request.lat, request.lng)
    return snapshot(controller.ctx)


@app.post("/sessions/{session_id}/back", response_model=SessionSnapshot)
async def go_back(controller: SessionController = Depends(get_controller)):
    """Return to the input view; any in-flight result will be discarded."""
    return snapshot(controller.back())


# ============================================================================
# Job Search Endpoints
# ============================================================================

@app.post("/sessions/{session_id}/search", response_model=SessionSnapshot)
async def search_jobs(criteria: SearchCriteria, controller: SessionController = Depends(get_controller)):
    """
    Search part-time jobs.

    Zero results and search failures are reported in the snapshot's
    ``error`` field, not as HTTP errors.
    """
    return snapshot(await controller.search(criteria))


@app.post("/sessions/{session_id}/jobs/{job_id}/analyze", response_model=SessionSnapshot)
async def analyze_job(job_id: str, controller: SessionController = Depends(get_controller)):
    """Run the full analysis on a listed job."""
    try:
        controller.find_job(job_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Job not found")
    return snapshot(await controller.select_job(job_id))


# ============================================================================
# Verify Endpoints
# ============================================================================

@app.post("/sessions/{session_id}/verify", response_model=SessionSnapshot)
async def verify_job(
    input_type: str = Form(...),
    content: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    controller: SessionController = Depends(get_controller)
):
    """
    Check a posting given as text, a link or a screenshot.

    Rejected input comes back as status ERROR on the input view with a
    message telling the user what to do instead.
    """
    if input_type == "text":
        raw = TextInput(content=content or "")
    elif input_type == "url":
        raw = UrlInput(url=content or "")
    elif input_type == "image":
        if image is None:
            raise HTTPException(status_code=422, detail="Vui lòng chọn hoặc dán một hình ảnh.")
        raw = ImageInput(data=await read_upload(image), mime_type=image.content_type or "")
    else:
        raise HTTPException(status_code=422, detail=f"Unknown input_type: {input_type}")

    return snapshot(await controller.verify(raw))


# ============================================================================
# CV Matching Endpoints
# ============================================================================

@app.post("/sessions/{session_id}/cv-match", response_model=SessionSnapshot)
async def match_cv(
    cv_text: Optional[str] = Form(None),
    cv_file: Optional[UploadFile] = File(None),
    controller: SessionController = Depends(get_controller)
):
    """Score a CV (pasted or uploaded) against the job being viewed."""
    if cv_file is not None:
        cv = FileInput(data=await read_upload(cv_file), mime_type=cv_file.content_type or "", filename=cv_file.filename or "")
    elif cv_text:
        cv = TextInput(content=cv_text)
    else:
        raise UnsupportedFileError("No CV provided", user_message="Vui lòng dán nội dung CV hoặc tải tệp CV lên.")

    await controller.match_cv(cv)
    return snapshot(controller.ctx)


# ============================================================================
# Startup Event
# ============================================================================

@app.on_event("startup")
async def startup_event():
    """Initialize on startup."""
    logger.info(f"{settings.app_name} API starting up ({settings.environment})...")


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown."""
    logger.info(f"{settings.app_name} API shutting down...")
