"""
Tests for the individual analysis calls and their fallbacks.

Run with: python -m pytest parttimepal/tests/test_analysis.py -v
"""

import asyncio
import json
import unicodedata

import pytest

from parttimepal.core.config import get_settings
from parttimepal.core.errors import ProviderError, ProviderTimeoutError
from parttimepal.core.llm_client import (
    MockLLMClient, LLMResponse, GroundingChunk, GroundingTool, TextPart
)
from parttimepal.core.schemas import RiskLevel, GroundingKind, LatLng
from parttimepal.services.analysis import JobAnalyzer
from parttimepal.tests.helpers import scripted_client, fail, slow, prompt_text


POSTING = "Tuyển CTV nhập liệu tại nhà, lương 500k/ngày, đóng phí 200k để nhận tài liệu. Liên hệ Zalo."


class TestScamAnalysis:

    def test_parsed(self):
        client = MockLLMClient()
        analysis = asyncio.run(JobAnalyzer(client).analyze_scam_risk(POSTING))

        assert analysis.risk_level == RiskLevel.WARNING
        assert analysis.score == 55
        assert client.calls[0]["options"].model == get_settings().llm.reasoning_model

    def test_english_risk_level_normalized(self):
        answer = json.dumps({
            "risk_level": "Dangerous",
            "reasons": ["Yêu cầu đóng phí trước"],
            "verdict": "Lừa đảo."
        })
        analyzer = JobAnalyzer(scripted_client(ScamAnalysis=answer))

        analysis = asyncio.run(analyzer.analyze_scam_risk(POSTING))

        assert analysis.risk_level == RiskLevel.DANGEROUS
        assert analysis.score is None

    @pytest.mark.parametrize("label, expected", [
        ("Nguy hiểm", RiskLevel.DANGEROUS),
        ("an toàn", RiskLevel.SAFE),
        ("cảnh báo", RiskLevel.WARNING),
        (" NGUY HIỂM ", RiskLevel.DANGEROUS),
        (unicodedata.normalize("NFD", "Nguy hiểm"), RiskLevel.DANGEROUS),
    ])
    def test_vietnamese_label_any_case(self, label, expected):
        answer = json.dumps({"risk_level": label, "reasons": ["Yêu cầu đặt cọc"], "verdict": "Lừa đảo."})
        analyzer = JobAnalyzer(scripted_client(ScamAnalysis=answer))

        analysis = asyncio.run(analyzer.analyze_scam_risk(POSTING))

        assert analysis.risk_level == expected
        assert analysis.reasons == ["Yêu cầu đặt cọc"]

    @pytest.mark.parametrize("score, expected", [
        (12.5, 12),
        (105, 100),
        (-3, 0),
        ("80", 80),
        ("cao", None),
    ])
    def test_bad_score_keeps_risk_level(self, score, expected):
        answer = json.dumps({
            "risk_level": "Nguy Hiểm",
            "reasons": ["Yêu cầu đặt cọc"],
            "verdict": "Lừa đảo.",
            "score": score
        })
        analyzer = JobAnalyzer(scripted_client(ScamAnalysis=answer))

        analysis = asyncio.run(analyzer.analyze_scam_risk(POSTING))

        assert analysis.risk_level == RiskLevel.DANGEROUS
        assert analysis.score == expected

    def test_code_fenced_json(self):
        answer = '```json\n{"risk_level": "An Toàn", "reasons": [], "verdict": "Ổn."}\n```'
        analyzer = JobAnalyzer(scripted_client(ScamAnalysis=answer))

        assert asyncio.run(analyzer.analyze_scam_risk(POSTING)).risk_level == RiskLevel.SAFE

    @pytest.mark.parametrize("answer", [
        "{}",
        "không phải JSON",
        "",
        fail(ProviderError("overloaded")),
    ])
    def test_failure_defaults_to_warning(self, answer):
        analyzer = JobAnalyzer(scripted_client(ScamAnalysis=answer))

        analysis = asyncio.run(analyzer.analyze_scam_risk(POSTING))

        assert analysis.risk_level == RiskLevel.WARNING
        assert analysis.score == 50
        assert analysis.reasons == ["Không thể phân tích chi tiết do lỗi hệ thống."]
        assert analysis.verdict == "Vui lòng tự kiểm tra kỹ lưỡng."

    def test_timeout_is_not_swallowed(self):
        analyzer = JobAnalyzer(scripted_client(timeout=0.05, ScamAnalysis=slow(1.0)))

        with pytest.raises(ProviderTimeoutError):
            asyncio.run(analyzer.analyze_scam_risk(POSTING))


class TestOtherAnalyses:

    def test_entities_default(self):
        analyzer = JobAnalyzer(scripted_client(JobEntity=fail(ProviderError("down"))))

        entities = asyncio.run(analyzer.extract_entities(POSTING))

        assert entities.company_name == "Unknown"
        assert entities.job_title == "Unknown"

    def test_suitability_and_draft(self):
        result = asyncio.run(JobAnalyzer(MockLLMClient()).analyze_suitability_and_draft(POSTING))

        assert result.suitability.contact_risks == []
        assert result.draft.startswith("Chào anh/chị")

    def test_suitability_fractional_match_score(self):
        answer = json.dumps({
            "suitability": {"advice": "Phù hợp với sinh viên.", "match_score": 72.6},
            "draft": "Chào anh/chị"
        })
        analyzer = JobAnalyzer(scripted_client(SuitabilityDraft=answer))

        result = asyncio.run(analyzer.analyze_suitability_and_draft(POSTING))

        assert result.suitability.advice == "Phù hợp với sinh viên."
        assert result.suitability.match_score == 73

    def test_suitability_default(self):
        analyzer = JobAnalyzer(scripted_client(SuitabilityDraft="[]"))

        result = asyncio.run(analyzer.analyze_suitability_and_draft(POSTING))

        assert result.suitability.advice == "Lỗi phân tích"
        assert result.suitability.contact_risks == []
        assert result.draft == ""

    def test_long_text_clipped_in_prompt(self):
        client = MockLLMClient()
        analyzer = JobAnalyzer(client)
        limit = analyzer.settings.analysis.max_prompt_chars

        asyncio.run(analyzer.extract_entities("x" * (limit * 2)))

        assert "x" * limit in prompt_text(client.calls[0]["parts"])
        assert "x" * (limit + 1) not in prompt_text(client.calls[0]["parts"])


class TestVerifyCompany:

    def test_grounding_split_by_kind(self):
        client = MockLLMClient()
        location = LatLng(lat=21.03, lng=105.85)

        grounding = asyncio.run(JobAnalyzer(client).verify_company(POSTING, location))

        assert "Xác thực công ty" in grounding.verification_text
        assert [s.uri for s in grounding.search_chunks] == ["https://reviewcongty.com"]
        assert [s.uri for s in grounding.map_chunks] == ["https://maps.google.com/?cid=1"]

        options = client.calls[0]["options"]
        assert options.tools == [GroundingTool.WEB_SEARCH, GroundingTool.MAPS_SEARCH]
        assert options.location_bias == location

    def test_missing_titles_and_text_filled_in(self):
        answer = LLMResponse(
            content="",
            model="mock-claude",
            grounding_chunks=[
                GroundingChunk(GroundingKind.WEB, "https://a.vn", ""),
                GroundingChunk(GroundingKind.MAPS, "https://maps.google.com/?cid=2", ""),
            ]
        )
        analyzer = JobAnalyzer(scripted_client(verify=answer))

        grounding = asyncio.run(analyzer.verify_company(POSTING))

        assert grounding.verification_text == "Không tìm thấy thông tin xác minh cụ thể trên mạng."
        assert grounding.search_chunks[0].title == "Nguồn Web"
        assert grounding.map_chunks[0].title == "Địa điểm Maps"

    def test_failure_default(self):
        analyzer = JobAnalyzer(scripted_client(verify=fail(ProviderError("search down"))))

        grounding = asyncio.run(analyzer.verify_company(POSTING))

        assert grounding.verification_text == "Lỗi khi kết nối hệ thống xác minh."
        assert grounding.search_chunks == []
        assert grounding.map_chunks == []


class TestMatchCv:

    def test_job_text_and_cv_parts_sent(self):
        client = MockLLMClient()
        cv_parts = [TextPart("CV của ứng viên:\nCó kinh nghiệm phục vụ 1 năm.")]

        analysis = asyncio.run(JobAnalyzer(client).match_cv(POSTING, cv_parts))

        assert analysis.match_score == 65
        parts = client.calls[0]["parts"]
        assert POSTING in parts[0].text
        assert parts[1] is cv_parts[0]

    def test_failure_default(self):
        analyzer = JobAnalyzer(scripted_client(CVAnalysis='{"match_score": 150}'))

        analysis = asyncio.run(analyzer.match_cv(POSTING, [TextPart("CV")]))

        assert analysis.match_score == 0
