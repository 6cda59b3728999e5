"""
Job Search

Finds part-time listings through search-augmented generation. The
provider answers in a fixed free-text record format which is parsed
leniently: records without a title are dropped, missing fields fall back
to defaults.

Record format, repeated per listing:

    Title: <text>
    Company: <text>
    Domain: <text, optional>
    Location: <text>
    Salary: <text>
    Description: <text>
    Source: <text>
    Link: <text, optional>
    ---JOB_SEPARATOR---
"""

import logging
import re
import time
from typing import Dict, List, Optional

from parttimepal.core.config import get_settings, SearchSettings
from parttimepal.core.errors import ProviderError, SearchFailedError
from parttimepal.core.llm_client import LLMClient, GenerateOptions, GroundingTool
from parttimepal.core.schemas import (
    SearchCriteria, JobListing, JobSearchResult, GroundingKind, GroundingSource, LatLng
)
from parttimepal.core.text_cleaning import strip_emphasis

logger = logging.getLogger(__name__)

JOB_SEPARATOR = "---JOB_SEPARATOR---"

RECORD_FIELDS = ("Title", "Company", "Domain", "Location", "Salary", "Description", "Source", "Link")

# "Title: x", also "- Title: x", "1. Title: x" and "**Title:** x"
_FIELD_PATTERNS = {
    name: re.compile(rf"^[ \t*\-]*(?:\d+[.)][ \t]*)?\**{name}[ \t]*\**[ \t]*:[ \t]*(.+)$", re.MULTILINE)
    for name in RECORD_FIELDS
}

DEFAULT_COMPANY = "Đang cập nhật"
DEFAULT_SALARY = "Thỏa thuận"
DEFAULT_SOURCE = "Google Search"


# ============================================================================
# Parsing
# ============================================================================

def _match_field(record: str, name: str) -> Optional[str]:
    match = _FIELD_PATTERNS[name].search(record)
    if not match:
        return None
    value = strip_emphasis(match.group(1)).strip()
    return value or None


def derive_logo_url(domain: Optional[str], settings: Optional[SearchSettings] = None) -> Optional[str]:
    """
    Logo URL for a company domain, or None to use the generic icon.

    Heuristic only: nothing checks that the logo exists or belongs to the
    company. Social and search-engine domains never get a logo.
    """
    settings = settings or get_settings().search
    if not domain:
        return None

    host = domain.strip().lower()
    host = re.sub(r"^[a-z]+://", "", host)
    host = host.split("/")[0]
    if host.startswith("www."):
        host = host[4:]

    if len(host) < settings.min_logo_domain_length or "." not in host or " " in host:
        return None
    for excluded in settings.logo_excluded_domains:
        if host == excluded or host.endswith("." + excluded):
            return None

    return settings.logo_url_template.format(domain=host)


def parse_job_listings(
    text: str,
    criteria: SearchCriteria,
    settings: Optional[SearchSettings] = None
) -> List[JobListing]:
    """
    Split provider text into listings.

    A segment without a Title line is skipped silently.
    """
    settings = settings or get_settings().search
    stamp = int(time.time() * 1000)
    jobs = []

    for index, record in enumerate((text or "").split(JOB_SEPARATOR)):
        if not record.strip():
            continue

        fields: Dict[str, Optional[str]] = {
            name: _match_field(record, name) for name in RECORD_FIELDS
        }
        if not fields["Title"]:
            continue

        link = fields["Link"]
        jobs.append(JobListing(
            id=f"job-{index}-{stamp}",
            title=fields["Title"],
            company=fields["Company"] or DEFAULT_COMPANY,
            location=fields["Location"] or criteria.city or settings.default_country_label,
            salary=fields["Salary"] or DEFAULT_SALARY,
            description=fields["Description"] or "",
            source=fields["Source"] or DEFAULT_SOURCE,
            logo_url=derive_logo_url(fields["Domain"], settings),
            original_link=link if link and link.startswith(("http://", "https://")) else None
        ))

    return jobs


def build_search_query(criteria: SearchCriteria) -> str:
    """Natural-language query from the search filters."""
    query = f"việc làm part-time cho sinh viên {criteria.keyword}"
    if criteria.job_category:
        query += f" ngành {criteria.job_category}"
    if criteria.district:
        query += f" tại {criteria.district}"
    if criteria.city:
        query += f" ở {criteria.city}"
    if criteria.work_shifts:
        query += " (" + ", ".join(shift.value for shift in criteria.work_shifts) + ")"
    if criteria.salary_range:
        if criteria.salary_range.min is not None:
            query += f" lương từ {criteria.salary_range.min:,}đ".replace(",", ".")
        if criteria.salary_range.max is not None:
            query += f" đến {criteria.salary_range.max:,}đ".replace(",", ".")
    return query


# ============================================================================
# Service
# ============================================================================

class JobSearchService:
    """Runs one search-augmented call and parses the listings out of it."""

    SEARCH_PROMPT = """Help me find a comprehensive list of RECENT part-time job recruitments for students in Vietnam based on this query: "{query}". {location_context}

You MUST use web search to find real, active listings.
FIND AS MANY JOBS AS POSSIBLE (Target at least {target} distinct jobs).

After searching, format the output strictly as a list where each job is separated by "{separator}".
For each job, use this exact format:

Title: [Job Title]
Company: [Company Name]
Domain: [Company website domain, e.g. highlandscoffee.com.vn; leave empty if unknown]
Location: [Location]
Salary: [Salary]
Description: [Short summary of the job (approx 2 sentences)]
Source: [Source Name]
Link: [Direct link to the posting, if known]

{separator}

(Repeat for all found jobs)"""

    def __init__(self, llm_client: LLMClient):
        """Initialize with the analysis provider."""
        self.llm_client = llm_client
        self.settings = get_settings()

    def build_prompt(self, criteria: SearchCriteria, location: Optional[LatLng] = None) -> str:
        location_context = (
            f"(Context: User is at Latitude {location.lat}, Longitude {location.lng})"
            if location else ""
        )
        return self.SEARCH_PROMPT.format(
            query=build_search_query(criteria),
            location_context=location_context,
            target=self.settings.analysis.target_job_count,
            separator=JOB_SEPARATOR
        )

    async def search(self, criteria: SearchCriteria, location: Optional[LatLng] = None) -> JobSearchResult:
        """
        Search listings for ``criteria``.

        Zero listings is a valid result. Sources come from the grounding
        metadata and may contain duplicates.

        Raises:
            SearchFailedError: the provider call failed
            ProviderTimeoutError: the provider call timed out
        """
        try:
            response = await self.llm_client.generate(
                self.build_prompt(criteria, location),
                GenerateOptions(tools=[GroundingTool.WEB_SEARCH])
            )
        except ProviderError as e:
            logger.error(f"Job search failed: {e}")
            raise SearchFailedError(str(e)) from e

        jobs = parse_job_listings(response.content, criteria, self.settings.search)
        sources = [
            GroundingSource(uri=s.uri, title=s.title or "Web Source")
            for s in response.sources(GroundingKind.WEB)
        ]

        logger.info(f"Search '{criteria.keyword}' returned {len(jobs)} jobs, {len(sources)} sources")
        return JobSearchResult(jobs=jobs, sources=sources)
