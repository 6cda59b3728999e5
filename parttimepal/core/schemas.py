"""
Pydantic schemas for data validation and LLM structured outputs.

These schemas ensure:
1. User input is validated
2. LLM outputs conform to expected structure
3. API responses are consistent
"""

from typing import Optional, List, Union, Literal
from enum import Enum
import unicodedata
from pydantic import BaseModel, Field, field_validator, model_validator


# ============================================================================
# Enums for State Management
# ============================================================================

class AppMode(str, Enum):
    """Top-level tab the user is on."""

    FIND_JOBS = "FIND_JOBS"
    VERIFY_JOB = "VERIFY_JOB"


class ViewMode(str, Enum):
    """Whether the current mode shows its input/list or the analysis result."""

    INPUT = "INPUT"
    RESULT = "RESULT"


class AnalysisStatus(str, Enum):
    """Progress of the current search or analysis."""

    IDLE = "IDLE"
    SEARCHING = "SEARCHING"
    ANALYZING = "ANALYZING"
    COMPLETE = "COMPLETE"
    ERROR = "ERROR"


class RiskLevel(str, Enum):
    """Categorical scam risk. This is the authoritative safety signal."""

    SAFE = "An Toàn"
    WARNING = "Cảnh Báo"
    DANGEROUS = "Nguy Hiểm"


def _fold_label(value: str) -> str:
    return unicodedata.normalize("NFC", value).strip().lower()


# Any casing of the labels, plus English and unaccented spellings
_RISK_LEVEL_ALIASES = {
    "safe": RiskLevel.SAFE,
    "an toan": RiskLevel.SAFE,
    "warning": RiskLevel.WARNING,
    "canh bao": RiskLevel.WARNING,
    "dangerous": RiskLevel.DANGEROUS,
    "danger": RiskLevel.DANGEROUS,
    "nguy hiem": RiskLevel.DANGEROUS,
    **{_fold_label(level.value): level for level in RiskLevel},
}


def _lenient_score(value):
    """Clamp a model-reported 0-100 score; anything unusable becomes None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        score = round(float(value))
    except (TypeError, ValueError, OverflowError):
        return None
    return min(max(score, 0), 100)


class WorkShift(str, Enum):
    """Working time slots a student can filter on."""

    MORNING = "Ca sáng"
    AFTERNOON = "Ca chiều"
    EVENING = "Ca tối"
    WEEKEND = "Cuối tuần"
    FLEXIBLE = "Linh hoạt"


class GroundingKind(str, Enum):
    """Origin of a grounding chunk."""

    WEB = "web"
    MAPS = "maps"


# ============================================================================
# Raw input (consumed once by the normalizer)
# ============================================================================

class TextInput(BaseModel):
    """Job posting pasted as text."""

    kind: Literal["text"] = "text"
    content: str


class UrlInput(BaseModel):
    """Link to a job posting."""

    kind: Literal["url"] = "url"
    url: str

    @field_validator("url")
    @classmethod
    def strip_url(cls, v: str) -> str:
        return v.strip()


class ImageInput(BaseModel):
    """Screenshot of a job posting."""

    kind: Literal["image"] = "image"
    data: bytes
    mime_type: str


class FileInput(BaseModel):
    """Uploaded CV file. Binary or text is decided by the upload table."""

    kind: Literal["file"] = "file"
    data: bytes
    mime_type: str = ""
    filename: str = ""


RawInput = Union[TextInput, UrlInput, ImageInput, FileInput]


class LatLng(BaseModel):
    """Geographic coordinate used to bias search and maps grounding."""

    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


# ============================================================================
# Job Search
# ============================================================================

class SalaryRange(BaseModel):
    """Hourly or monthly salary bounds, in VND."""

    min: Optional[int] = Field(default=None, ge=0)
    max: Optional[int] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def check_order(self):
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError("salary min must not exceed max")
        return self


class SearchCriteria(BaseModel):
    """Filters for one job search call."""

    keyword: str = Field(min_length=1, description="Required search keyword")
    city: str = Field(default="", description="City, e.g. Hà Nội")
    district: Optional[str] = None
    job_category: Optional[str] = None
    work_shifts: List[WorkShift] = Field(default_factory=list)
    salary_range: Optional[SalaryRange] = None

    @field_validator("keyword")
    @classmethod
    def keyword_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("keyword must not be blank")
        return v


class GroundingSource(BaseModel):
    """One citation unit: a source URI and its title."""

    uri: str
    title: str


class JobListing(BaseModel):
    """A job found by search. Never mutated after creation."""

    id: str
    title: str
    company: str
    location: str
    salary: str
    description: str = ""
    source: str
    logo_url: Optional[str] = None
    original_link: Optional[str] = None

    class Config:
        frozen = True


class JobSearchResult(BaseModel):
    """Parsed listings plus the sources the provider searched."""

    jobs: List[JobListing] = Field(default_factory=list)
    sources: List[GroundingSource] = Field(default_factory=list)


# ============================================================================
# Analysis Schemas (For LLM Structured Output)
# ============================================================================

class JobEntity(BaseModel):
    """Key facts pulled out of a posting."""

    job_title: str = Field(description="Job title, or 'Không rõ' if absent")
    company_name: str = Field(description="Company name, or 'Không rõ' if absent")
    salary: str = Field(description="Salary or salary range, or 'Không rõ' if absent")
    location: str = Field(description="Work location, or 'Không rõ' if absent")


class ScamAnalysis(BaseModel):
    """Scam-risk assessment. ``score`` is informative only."""

    risk_level: RiskLevel = Field(description="One of: An Toàn, Cảnh Báo, Nguy Hiểm")
    reasons: List[str] = Field(default_factory=list, description="Ordered warning signs found")
    verdict: str = Field(description="Detailed conclusion about the posting's safety")
    score: Optional[int] = Field(
        default=None, ge=0, le=100,
        description="Safety score 0-100, 100 is very safe"
    )

    @field_validator("risk_level", mode="before")
    @classmethod
    def normalize_risk_level(cls, v):
        if isinstance(v, str):
            alias = _RISK_LEVEL_ALIASES.get(_fold_label(v))
            if alias is not None:
                return alias
        return v

    @field_validator("score", mode="before")
    @classmethod
    def coerce_score(cls, v):
        return _lenient_score(v)


class SuitabilityAnalysis(BaseModel):
    """How well a posting suits a part-time student.

    An empty ``contact_risks`` list means no risk flags were found.
    """

    skills_required: List[str] = Field(default_factory=list)
    pros: List[str] = Field(default_factory=list)
    cons: List[str] = Field(default_factory=list)
    contact_risks: List[str] = Field(
        default_factory=list,
        description="Red flags about the phone numbers, emails or links in the posting"
    )
    advice: str = ""
    match_score: Optional[int] = Field(default=None, ge=0, le=100)

    @field_validator("match_score", mode="before")
    @classmethod
    def coerce_match_score(cls, v):
        return _lenient_score(v)


class SuitabilityDraft(BaseModel):
    """Combined suitability analysis and application message."""

    suitability: SuitabilityAnalysis
    draft: str = Field(default="", description="Short polite application message in Vietnamese")


class GroundingData(BaseModel):
    """Company verification narrative and its citations."""

    verification_text: str
    search_chunks: List[GroundingSource] = Field(default_factory=list)
    map_chunks: List[GroundingSource] = Field(default_factory=list)


class AnalysisResult(BaseModel):
    """Everything shown on the result view. Built once, all fields present."""

    entities: JobEntity
    scam_analysis: ScamAnalysis
    suitability: SuitabilityAnalysis
    grounding: GroundingData
    application_draft: str


class CVAnalysis(BaseModel):
    """CV-to-job match. Independent of AnalysisResult."""

    match_score: int = Field(ge=0, le=100)
    pros: List[str] = Field(default_factory=list)
    missing_skills: List[str] = Field(default_factory=list)
    advice: str = ""
