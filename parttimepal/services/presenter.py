"""
Display payloads for the front-end.

Picks the text-cleaning mode per field:
- verification narrative -> markdown-lite blocks
- verdict, reasons, advice -> plain-text strip
Grounding chunks are deduplicated by uri here, not earlier.
"""

from typing import Optional, List

from pydantic import BaseModel, Field

from parttimepal.core.schemas import (
    AppMode, ViewMode, AnalysisStatus, RiskLevel, JobListing, JobEntity,
    GroundingSource, AnalysisResult, CVAnalysis, LatLng
)
from parttimepal.core.text_cleaning import Block, clean_plain_text, parse_markdown_lite, dedupe_sources
from parttimepal.services.session import SessionContext


RISK_TONES = {
    RiskLevel.SAFE: "safe",
    RiskLevel.WARNING: "warning",
    RiskLevel.DANGEROUS: "danger",
}


# ============================================================================
# Payload Models
# ============================================================================

class ScamView(BaseModel):
    risk_level: RiskLevel
    tone: str
    reasons: List[str] = Field(default_factory=list)
    verdict: str
    # Informational only; risk_level is the safety signal
    score: Optional[int] = None


class SuitabilityView(BaseModel):
    skills_required: List[str] = Field(default_factory=list)
    pros: List[str] = Field(default_factory=list)
    cons: List[str] = Field(default_factory=list)
    contact_risks: List[str] = Field(default_factory=list)
    has_contact_risks: bool = False
    advice: str = ""
    match_score: Optional[int] = None


class VerificationView(BaseModel):
    blocks: List[Block] = Field(default_factory=list)
    search_sources: List[GroundingSource] = Field(default_factory=list)
    map_sources: List[GroundingSource] = Field(default_factory=list)


class ResultView(BaseModel):
    """Everything the result panel renders."""

    entities: JobEntity
    scam: ScamView
    suitability: SuitabilityView
    verification: VerificationView
    application_draft: str


class CVView(BaseModel):
    match_score: int
    pros: List[str] = Field(default_factory=list)
    missing_skills: List[str] = Field(default_factory=list)
    advice: str = ""


class SessionSnapshot(BaseModel):
    """Read model of a session, returned by every session endpoint."""

    session_id: str
    mode: AppMode
    view: ViewMode
    status: AnalysisStatus
    error: Optional[str] = None
    jobs: List[JobListing] = Field(default_factory=list)
    sources: List[GroundingSource] = Field(default_factory=list)
    selected_job: Optional[JobListing] = None
    result: Optional[ResultView] = None
    cv_analysis: Optional[CVView] = None
    location: Optional[LatLng] = None


# ============================================================================
# Builders
# ============================================================================

def _clean_list(items: List[str]) -> List[str]:
    cleaned = (clean_plain_text(item) for item in items)
    return [item for item in cleaned if item]


def present_result(result: AnalysisResult) -> ResultView:
    scam = result.scam_analysis
    suitability = result.suitability
    grounding = result.grounding
    contact_risks = _clean_list(suitability.contact_risks)

    return ResultView(
        entities=result.entities,
        scam=ScamView(
            risk_level=scam.risk_level,
            tone=RISK_TONES[scam.risk_level],
            reasons=_clean_list(scam.reasons),
            verdict=clean_plain_text(scam.verdict),
            score=scam.score
        ),
        suitability=SuitabilityView(
            skills_required=_clean_list(suitability.skills_required),
            pros=_clean_list(suitability.pros),
            cons=_clean_list(suitability.cons),
            contact_risks=contact_risks,
            has_contact_risks=bool(contact_risks),
            advice=clean_plain_text(suitability.advice),
            match_score=suitability.match_score
        ),
        verification=VerificationView(
            blocks=parse_markdown_lite(grounding.verification_text),
            search_sources=dedupe_sources(grounding.search_chunks),
            map_sources=dedupe_sources(grounding.map_chunks)
        ),
        application_draft=result.application_draft.strip()
    )


def present_cv(cv: CVAnalysis) -> CVView:
    return CVView(
        match_score=cv.match_score,
        pros=_clean_list(cv.pros),
        missing_skills=_clean_list(cv.missing_skills),
        advice=clean_plain_text(cv.advice)
    )


def snapshot(ctx: SessionContext) -> SessionSnapshot:
    """Build the session read model. Search sources are deduplicated for display."""
    return SessionSnapshot(
        session_id=ctx.session_id,
        mode=ctx.mode,
        view=ctx.view,
        status=ctx.status,
        error=ctx.error,
        jobs=ctx.jobs,
        sources=dedupe_sources(ctx.sources),
        selected_job=ctx.selected_job,
        result=present_result(ctx.result) if ctx.result else None,
        cv_analysis=present_cv(ctx.cv_analysis) if ctx.cv_analysis else None,
        location=ctx.location
    )
