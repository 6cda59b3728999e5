"""
Analysis Orchestrator

Runs the four-way analysis of a posting:
1. Fan-out: entity extraction, scam risk, company verification and
   suitability + draft are all started before any is awaited
2. Fan-in: wait until all four settle, then build one AnalysisResult

Two failure tiers:
- each sub-call is resilient and degrades to a cautious default
- anything that still escapes (timeouts, unexpected errors) fails the
  whole run; no partial result is ever assembled
"""

import asyncio
import logging
import time
from typing import Optional

from parttimepal.core.errors import AnalysisFailedError
from parttimepal.core.llm_client import LLMClient, get_llm_client
from parttimepal.core.schemas import AnalysisResult, LatLng, JobSearchResult, SearchCriteria
from parttimepal.services.analysis import JobAnalyzer
from parttimepal.services.job_search import JobSearchService
from parttimepal.services.normalizer import InputNormalizer

logger = logging.getLogger(__name__)


class AnalysisOrchestrator:
    """
    Coordinates the normalizer, analyzer and job search over one provider.

    Stateless across runs: session state lives in SessionController.
    """

    def __init__(self, llm_client: LLMClient):
        """
        Initialize the orchestrator.

        Args:
            llm_client: Analysis provider shared by all components
        """
        self.llm_client = llm_client
        self.normalizer = InputNormalizer(llm_client)
        self.analyzer = JobAnalyzer(llm_client)
        self.job_search = JobSearchService(llm_client)

    async def run_analysis(self, text: str, location: Optional[LatLng] = None) -> AnalysisResult:
        """
        Analyze a normalized posting.

        Args:
            text: Normalized text (already length-validated)
            location: Optional coordinate hint for company verification

        Returns:
            A fully populated AnalysisResult

        Raises:
            AnalysisFailedError: any sub-call raised past its own fallback
        """
        started = time.monotonic()

        tasks = [
            asyncio.ensure_future(self.analyzer.extract_entities(text)),
            asyncio.ensure_future(self.analyzer.analyze_scam_risk(text)),
            asyncio.ensure_future(self.analyzer.verify_company(text, location)),
            asyncio.ensure_future(self.analyzer.analyze_suitability_and_draft(text)),
        ]

        try:
            entities, scam_analysis, grounding, suitability = await asyncio.gather(*tasks)
        except Exception as e:
            for task in tasks:
                task.cancel()
            logger.error(f"Analysis failed after {time.monotonic() - started:.1f}s: {e!r}")
            raise AnalysisFailedError(repr(e)) from e

        logger.info(
            f"Analysis complete in {time.monotonic() - started:.1f}s: "
            f"risk={scam_analysis.risk_level.value}"
        )
        return AnalysisResult(
            entities=entities,
            scam_analysis=scam_analysis,
            suitability=suitability.suitability,
            grounding=grounding,
            application_draft=suitability.draft
        )

    async def search_jobs(self, criteria: SearchCriteria, location: Optional[LatLng] = None) -> JobSearchResult:
        """Single search call; see JobSearchService.search."""
        return await self.job_search.search(criteria, location)


# ============================================================================
# Convenience Functions
# ============================================================================

def create_orchestrator(llm_client: Optional[LLMClient] = None) -> AnalysisOrchestrator:
    """Create an orchestrator over the configured provider."""
    return AnalysisOrchestrator(llm_client or get_llm_client())
