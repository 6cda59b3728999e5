"""
Tests for the four-way analysis fan-out/fan-in.

Run with: python -m pytest parttimepal/tests/test_orchestrator.py -v
"""

import asyncio

import pytest

from parttimepal.core.errors import ProviderError, AnalysisFailedError
from parttimepal.core.llm_client import MockLLMClient
from parttimepal.core.schemas import RiskLevel, LatLng, SearchCriteria
from parttimepal.services.orchestrator import AnalysisOrchestrator, create_orchestrator
from parttimepal.tests.helpers import scripted_client, fail, slow, call_kind


POSTING = "Tuyển nhân viên phục vụ part-time tại quán cà phê, lương 25.000đ/giờ, ca tối."


def test_full_result():
    client = MockLLMClient()
    orchestrator = create_orchestrator(client)

    result = asyncio.run(orchestrator.run_analysis(POSTING, LatLng(lat=10.77, lng=106.70)))

    assert result.entities.company_name == "Quán Cà Phê Mẫu"
    assert result.scam_analysis.risk_level == RiskLevel.WARNING
    assert result.suitability.match_score == 70
    assert result.application_draft.startswith("Chào anh/chị")
    assert len(result.grounding.map_chunks) == 1

    kinds = sorted(call_kind(c["parts"], c["options"]) for c in client.calls)
    assert kinds == ["JobEntity", "ScamAnalysis", "SuitabilityDraft", "verify"]


def test_calls_run_concurrently():
    # Each call takes 0.2s; sequential execution would take 0.8s
    client = scripted_client(
        JobEntity=slow(0.2), ScamAnalysis=slow(0.2), SuitabilityDraft=slow(0.2), verify=slow(0.2)
    )
    orchestrator = AnalysisOrchestrator(client)

    async def timed():
        loop = asyncio.get_running_loop()
        started = loop.time()
        await orchestrator.run_analysis(POSTING)
        return loop.time() - started

    assert asyncio.run(timed()) < 0.6


def test_one_failed_call_degrades_to_default():
    orchestrator = AnalysisOrchestrator(scripted_client(ScamAnalysis=fail(ProviderError("overloaded"))))

    result = asyncio.run(orchestrator.run_analysis(POSTING))

    assert result.scam_analysis.risk_level == RiskLevel.WARNING
    assert result.scam_analysis.score == 50
    # The other three are unaffected
    assert result.entities.company_name == "Quán Cà Phê Mẫu"
    assert result.suitability.match_score == 70


def test_all_calls_failing_still_yields_complete_result():
    error = fail(ProviderError("down"))
    orchestrator = AnalysisOrchestrator(scripted_client(
        JobEntity=error, ScamAnalysis=error, SuitabilityDraft=error, verify=error
    ))

    result = asyncio.run(orchestrator.run_analysis(POSTING))

    assert result.entities.job_title == "Unknown"
    assert result.grounding.verification_text == "Lỗi khi kết nối hệ thống xác minh."
    assert result.suitability.advice == "Lỗi phân tích"
    assert result.application_draft == ""


def test_timeout_fails_whole_run():
    orchestrator = AnalysisOrchestrator(scripted_client(timeout=0.05, verify=slow(1.0)))

    with pytest.raises(AnalysisFailedError) as exc_info:
        asyncio.run(orchestrator.run_analysis(POSTING))

    assert exc_info.value.user_message == "Có lỗi xảy ra trong quá trình phân tích."


def test_unexpected_error_fails_whole_run():
    orchestrator = AnalysisOrchestrator(scripted_client(JobEntity=fail(RuntimeError("bug"))))

    with pytest.raises(AnalysisFailedError):
        asyncio.run(orchestrator.run_analysis(POSTING))


def test_search_jobs_delegates():
    orchestrator = create_orchestrator(MockLLMClient())

    result = asyncio.run(orchestrator.search_jobs(SearchCriteria(keyword="gia sư")))

    assert len(result.jobs) == 2
