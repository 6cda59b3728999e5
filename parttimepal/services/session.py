"""
Session State

One browser session = one SessionContext driven by one SessionController.

Implements:
- (mode, view, status) state machine with an explicit transition table
- Search, job selection, verify-input and CV-matching flows
- Generation counter: every submission, "back" and mode switch bumps it,
  and a run only commits its outcome if its generation is still current,
  so a slow stale response never overwrites newer state

Mutation happens only on the event loop that serves the session.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional, List, Dict, Tuple

from pydantic import ValidationError

from parttimepal.core.config import get_settings
from parttimepal.core.errors import (
    InputRejectedError, AnalysisFailedError, SearchFailedError
)
from parttimepal.core.schemas import (
    AppMode, ViewMode, AnalysisStatus, JobListing, GroundingSource,
    AnalysisResult, CVAnalysis, LatLng, SearchCriteria, RawInput
)
from parttimepal.services.orchestrator import AnalysisOrchestrator

logger = logging.getLogger(__name__)

NO_RESULTS_MESSAGE = "Không tìm thấy công việc phù hợp. Hãy thử thay đổi từ khóa hoặc địa điểm."
NO_JOB_FOR_CV_MESSAGE = "Hãy chọn hoặc phân tích một công việc trước khi so khớp CV."


# ============================================================================
# Session Context (State Container)
# ============================================================================

@dataclass
class SessionContext:
    """
    All state for one user session.

    Only SessionController mutates it.
    """

    # Identity
    session_id: str

    # View state
    mode: AppMode = AppMode.FIND_JOBS
    view: ViewMode = ViewMode.INPUT
    status: AnalysisStatus = AnalysisStatus.IDLE

    # Search
    jobs: List[JobListing] = field(default_factory=list)
    sources: List[GroundingSource] = field(default_factory=list)

    # Analysis
    selected_job: Optional[JobListing] = None
    analysis_text: Optional[str] = None
    result: Optional[AnalysisResult] = None
    cv_analysis: Optional[CVAnalysis] = None

    # Localized message shown to the user, if any
    error: Optional[str] = None

    # Best-effort geolocation
    location: Optional[LatLng] = None

    # Bumped on every submission/navigation; stale runs compare against it
    generation: int = 0

    # Timestamps
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    def update(self):
        """Update timestamp."""
        self.updated_at = datetime.utcnow()

    @property
    def view_state(self) -> Tuple[ViewMode, AnalysisStatus]:
        return self.view, self.status


# ============================================================================
# State Machine
# ============================================================================

INPUT_IDLE = (ViewMode.INPUT, AnalysisStatus.IDLE)
INPUT_SEARCHING = (ViewMode.INPUT, AnalysisStatus.SEARCHING)
INPUT_ANALYZING = (ViewMode.INPUT, AnalysisStatus.ANALYZING)
INPUT_ERROR = (ViewMode.INPUT, AnalysisStatus.ERROR)
RESULT_ANALYZING = (ViewMode.RESULT, AnalysisStatus.ANALYZING)
RESULT_COMPLETE = (ViewMode.RESULT, AnalysisStatus.COMPLETE)
RESULT_ERROR = (ViewMode.RESULT, AnalysisStatus.ERROR)

# A new submission may start from anywhere; it supersedes whatever is in flight
SUBMISSIONS = [INPUT_SEARCHING, INPUT_ANALYZING, RESULT_ANALYZING]


class ViewStateMachine:
    """
    Manages (view, status) transitions within the current mode.

    Valid transitions:
    any -> INPUT/SEARCHING | INPUT/ANALYZING | RESULT/ANALYZING (submissions)
    INPUT/SEARCHING -> INPUT/IDLE (jobs or "no results" message) | INPUT/ERROR
    INPUT/ANALYZING -> RESULT/ANALYZING (input normalized) | INPUT/ERROR (input rejected)
    RESULT/ANALYZING -> RESULT/COMPLETE | RESULT/ERROR
    any -> INPUT/IDLE via reset() ("back" or mode switch)
    """

    TRANSITIONS = {
        INPUT_IDLE: SUBMISSIONS,
        INPUT_SEARCHING: SUBMISSIONS + [INPUT_IDLE, INPUT_ERROR],
        INPUT_ANALYZING: SUBMISSIONS + [INPUT_ERROR],
        INPUT_ERROR: SUBMISSIONS,
        RESULT_ANALYZING: SUBMISSIONS + [RESULT_COMPLETE, RESULT_ERROR],
        RESULT_COMPLETE: SUBMISSIONS,
        RESULT_ERROR: SUBMISSIONS,
    }

    @classmethod
    def can_transition(cls, from_state: Tuple[ViewMode, AnalysisStatus],
                       to_state: Tuple[ViewMode, AnalysisStatus]) -> bool:
        """Check if transition is valid."""
        return to_state in cls.TRANSITIONS.get(from_state, [])

    @classmethod
    def transition(cls, ctx: SessionContext, to_state: Tuple[ViewMode, AnalysisStatus]) -> bool:
        """
        Attempt state transition.

        Returns True if successful, False if invalid.
        """
        if cls.can_transition(ctx.view_state, to_state):
            logger.info(
                f"Session {ctx.session_id}: {_label(ctx.view_state)} -> {_label(to_state)}"
            )
            ctx.view, ctx.status = to_state
            ctx.update()
            return True

        logger.warning(f"Invalid transition: {_label(ctx.view_state)} -> {_label(to_state)}")
        return False

    @classmethod
    def reset(cls, ctx: SessionContext):
        """Back to the input view, idle. Always allowed."""
        logger.info(f"Session {ctx.session_id}: {_label(ctx.view_state)} -> {_label(INPUT_IDLE)} (reset)")
        ctx.view, ctx.status = INPUT_IDLE
        ctx.update()


def _label(state: Tuple[ViewMode, AnalysisStatus]) -> str:
    return f"{state[0].value}/{state[1].value}"


# ============================================================================
# Helpers
# ============================================================================

def job_analysis_text(job: JobListing) -> str:
    """Text analyzed when the user picks a job card."""
    return (
        f"Tiêu đề: {job.title}. Công ty: {job.company}. Địa điểm: {job.location}. "
        f"Lương: {job.salary}. Mô tả: {job.description}"
    )


def placeholder_job() -> JobListing:
    """Stand-in selected job shown while a verify submission is processed."""
    return JobListing(
        id=f"verify-{int(time.time() * 1000)}",
        title="Đang phân tích...",
        company="Đang phân tích...",
        location="...",
        salary="...",
        description="Đang xử lý dữ liệu đầu vào...",
        source="User Input",
        logo_url=None
    )


# ============================================================================
# Controller
# ============================================================================

class SessionController:
    """
    Single mutation entry point for a session.

    Every public coroutine returns the (possibly unchanged) context.
    """

    def __init__(self, orchestrator: AnalysisOrchestrator, session_id: Optional[str] = None):
        self.orchestrator = orchestrator
        self.ctx = SessionContext(session_id=session_id or str(uuid.uuid4()))

    # =========================================================================
    # Generations
    # =========================================================================

    def _begin(self, to_state: Tuple[ViewMode, AnalysisStatus]) -> int:
        self.ctx.generation += 1
        ViewStateMachine.transition(self.ctx, to_state)
        return self.ctx.generation

    def _is_current(self, generation: int, what: str) -> bool:
        if generation == self.ctx.generation:
            return True
        logger.info(
            f"Session {self.ctx.session_id}: discarding stale {what} "
            f"(generation {generation}, current {self.ctx.generation})"
        )
        return False

    # =========================================================================
    # Navigation
    # =========================================================================

    def switch_mode(self, mode: AppMode) -> SessionContext:
        """Explicit tab switch: input view, idle, analysis state cleared."""
        self.ctx.generation += 1
        self.ctx.mode = mode
        self._clear_analysis()
        self.ctx.error = None
        ViewStateMachine.reset(self.ctx)
        return self.ctx

    def back(self) -> SessionContext:
        """Return to the input view regardless of the current status."""
        self.ctx.generation += 1
        self._clear_analysis()
        self.ctx.error = None
        ViewStateMachine.reset(self.ctx)
        return self.ctx

    def set_location(self, lat: float, lng: float) -> SessionContext:
        """Best effort: invalid coordinates leave the location unset."""
        try:
            self.ctx.location = LatLng(lat=lat, lng=lng)
        except ValidationError as e:
            logger.warning(f"Ignoring invalid location ({lat}, {lng}): {e.error_count()} errors")
        return self.ctx

    def _clear_analysis(self):
        self.ctx.selected_job = None
        self.ctx.analysis_text = None
        self.ctx.result = None
        self.ctx.cv_analysis = None

    # =========================================================================
    # Job Search
    # =========================================================================

    async def search(self, criteria: SearchCriteria) -> SessionContext:
        """Search jobs; zero results is an informational message, not an error state."""
        generation = self._begin(INPUT_SEARCHING)
        self.ctx.jobs = []
        self.ctx.sources = []
        self.ctx.error = None
        self._clear_analysis()

        try:
            found = await self.orchestrator.search_jobs(criteria, self.ctx.location)
        except Exception as e:
            if self._is_current(generation, "search"):
                logger.error(f"Search failed: {e}")
                self.ctx.error = SearchFailedError.default_message
                ViewStateMachine.transition(self.ctx, INPUT_ERROR)
            return self.ctx

        if not self._is_current(generation, "search"):
            return self.ctx

        self.ctx.jobs = found.jobs
        self.ctx.sources = found.sources
        if not found.jobs:
            self.ctx.error = NO_RESULTS_MESSAGE
        ViewStateMachine.transition(self.ctx, INPUT_IDLE)
        return self.ctx

    def find_job(self, job_id: str) -> JobListing:
        """Raises KeyError for an id not in the current listing."""
        for job in self.ctx.jobs:
            if job.id == job_id:
                return job
        raise KeyError(job_id)

    async def select_job(self, job_id: str) -> SessionContext:
        """Analyze a job card from the search results."""
        job = self.find_job(job_id)
        self.ctx.selected_job = job
        return await self._analyze(job_analysis_text(job))

    # =========================================================================
    # Verify Input
    # =========================================================================

    async def verify(self, raw: RawInput) -> SessionContext:
        """Normalize a submitted posting, then analyze it."""
        generation = self._begin(INPUT_ANALYZING)
        self.ctx.error = None
        self._clear_analysis()
        self.ctx.selected_job = placeholder_job()

        try:
            text = await self.orchestrator.normalizer.normalize(raw)
        except InputRejectedError as e:
            if self._is_current(generation, "input"):
                logger.warning(f"Input rejected: {e}")
                self.ctx.error = e.user_message
                ViewStateMachine.transition(self.ctx, INPUT_ERROR)
            return self.ctx
        except Exception as e:
            if self._is_current(generation, "input"):
                logger.error(f"Input processing failed: {e}")
                self.ctx.error = InputRejectedError.default_message
                ViewStateMachine.transition(self.ctx, INPUT_ERROR)
            return self.ctx

        if not self._is_current(generation, "input"):
            return self.ctx

        preview_length = self.orchestrator.normalizer.settings.analysis.description_preview_length
        self.ctx.selected_job = self.ctx.selected_job.model_copy(
            update={"description": text[:preview_length] + "..."}
        )
        return await self._analyze(text)

    # =========================================================================
    # Analysis
    # =========================================================================

    async def _analyze(self, text: str) -> SessionContext:
        generation = self._begin(RESULT_ANALYZING)
        self.ctx.error = None
        self.ctx.result = None
        self.ctx.cv_analysis = None
        self.ctx.analysis_text = text

        try:
            result = await self.orchestrator.run_analysis(text, self.ctx.location)
        except AnalysisFailedError as e:
            if self._is_current(generation, "analysis"):
                self.ctx.error = e.user_message
                ViewStateMachine.transition(self.ctx, RESULT_ERROR)
            return self.ctx

        if self._is_current(generation, "analysis"):
            self.ctx.result = result
            ViewStateMachine.transition(self.ctx, RESULT_COMPLETE)
        return self.ctx

    # =========================================================================
    # CV Matching
    # =========================================================================

    async def match_cv(self, cv: RawInput) -> CVAnalysis:
        """
        Score a CV against the job being viewed.

        Does not touch the view state. The score is stored only if the user
        is still on the same job when it arrives.

        Raises:
            InputRejectedError: no job to match, or the CV is unusable
        """
        if not self.ctx.analysis_text:
            raise InputRejectedError("No analyzed job in session", user_message=NO_JOB_FOR_CV_MESSAGE)

        parts = self.orchestrator.normalizer.prepare_cv_parts(cv)
        generation = self.ctx.generation
        analysis = await self.orchestrator.analyzer.match_cv(self.ctx.analysis_text, parts)

        if self._is_current(generation, "CV match"):
            self.ctx.cv_analysis = analysis
            self.ctx.update()
        return analysis


# ============================================================================
# Session Store
# ============================================================================

class SessionStore:
    """
    In-memory sessions, one per browser. Nothing is persisted.

    Sessions whose context has not changed for ``idle_seconds`` are dropped
    the next time the store is touched.
    """

    def __init__(self, orchestrator: AnalysisOrchestrator, idle_seconds: Optional[int] = None):
        self.orchestrator = orchestrator
        self.idle_timeout = timedelta(seconds=idle_seconds or get_settings().session_idle_seconds)
        self._sessions: Dict[str, SessionController] = {}

    def create(self) -> SessionController:
        self.evict_idle()
        controller = SessionController(self.orchestrator)
        self._sessions[controller.ctx.session_id] = controller
        logger.info(f"Created session {controller.ctx.session_id}")
        return controller

    def get(self, session_id: str) -> Optional[SessionController]:
        self.evict_idle()
        return self._sessions.get(session_id)

    def delete(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def evict_idle(self, now: Optional[datetime] = None) -> int:
        """Drop idle sessions and return how many were removed."""
        cutoff = (now or datetime.utcnow()) - self.idle_timeout
        idle = [sid for sid, c in self._sessions.items() if c.ctx.updated_at < cutoff]
        for session_id in idle:
            del self._sessions[session_id]
        if idle:
            logger.info(f"Evicted {len(idle)} idle session(s)")
        return len(idle)

    def __len__(self) -> int:
        return len(self._sessions)
