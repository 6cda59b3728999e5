"""
Tests for display payloads.

Run with: python -m pytest parttimepal/tests/test_presenter.py -v
"""

from parttimepal.core.schemas import (
    AnalysisResult, JobEntity, ScamAnalysis, RiskLevel, SuitabilityAnalysis,
    GroundingData, GroundingSource, CVAnalysis
)
from parttimepal.services.presenter import present_result, present_cv, snapshot, RISK_TONES
from parttimepal.services.session import SessionContext


def make_result(risk_level=RiskLevel.DANGEROUS, score=None) -> AnalysisResult:
    return AnalysisResult(
        entities=JobEntity(job_title="CTV nhập liệu", company_name="Không rõ", salary="500k/ngày", location="Online"),
        scam_analysis=ScamAnalysis(
            risk_level=risk_level,
            reasons=["**Yêu cầu đóng phí** trước [1]", "  ", "Chỉ liên hệ qua Telegram [Second tool output]"],
            verdict="***Lừa đảo*** rất rõ ràng [1, 2].",
            score=score
        ),
        suitability=SuitabilityAnalysis(
            contact_risks=["Số điện thoại bị báo cáo lừa đảo [1]"],
            advice="**Không** nên ứng tuyển."
        ),
        grounding=GroundingData(
            verification_text="**Kết luận**: Đáng ngờ [1].\n- Nhiều bài **bóc phốt**.",
            search_chunks=[
                GroundingSource(uri="https://voz.vn/t/1", title="Voz"),
                GroundingSource(uri="https://voz.vn/t/1", title="Voz (trùng)"),
                GroundingSource(uri="https://tinhte.vn/2", title="Tinh tế"),
            ],
            map_chunks=[]
        ),
        application_draft="  Chào anh/chị.  "
    )


def test_plain_text_fields_cleaned():
    view = present_result(make_result())

    assert view.scam.reasons == ["Yêu cầu đóng phí trước", "Chỉ liên hệ qua Telegram"]
    assert view.scam.verdict == "Lừa đảo rất rõ ràng ."
    assert view.suitability.advice == "Không nên ứng tuyển."
    assert view.suitability.contact_risks == ["Số điện thoại bị báo cáo lừa đảo"]
    assert view.suitability.has_contact_risks
    assert view.application_draft == "Chào anh/chị."


def test_verification_parsed_and_sources_deduplicated():
    view = present_result(make_result())

    assert [b.kind for b in view.verification.blocks] == ["heading", "bullet"]
    assert any(span.bold for span in view.verification.blocks[1].spans)
    assert [s.title for s in view.verification.search_sources] == ["Voz", "Tinh tế"]
    assert view.verification.map_sources == []


def test_risk_tone_from_category_not_score():
    # A contradictory numeric score does not change the tone
    view = present_result(make_result(risk_level=RiskLevel.DANGEROUS, score=95))

    assert view.scam.tone == "danger"
    assert view.scam.score == 95
    assert RISK_TONES[RiskLevel.SAFE] == "safe"
    assert RISK_TONES[RiskLevel.WARNING] == "warning"


def test_cv_view():
    view = present_cv(CVAnalysis(match_score=40, missing_skills=["**Tiếng Anh**"], advice="Bổ sung *kỹ năng* [1]"))

    assert view.missing_skills == ["Tiếng Anh"]
    assert view.advice == "Bổ sung kỹ năng"


def test_snapshot_without_result():
    ctx = SessionContext(session_id="abc")

    snap = snapshot(ctx)

    assert snap.session_id == "abc"
    assert snap.result is None
    assert snap.cv_analysis is None
    assert snap.jobs == []
