"""
Job Analysis Calls

The four independent analyses run for every posting, plus CV matching:
1. Entity extraction (title, company, salary, location)
2. Scam-risk analysis (reasoning model)
3. Company verification with web/maps grounding
4. Suitability for students + application message draft
5. CV-to-job matching (on demand)

Each call is resilient: expected provider failures (API errors, empty or
malformed JSON) turn into a cautious default instead of an exception.
Anything else, including timeouts, propagates to the caller.
"""

import json
import logging
from typing import Awaitable, Callable, List, Optional, TypeVar

from pydantic import ValidationError

from parttimepal.core.config import get_settings
from parttimepal.core.errors import ProviderError
from parttimepal.core.llm_client import (
    LLMClient, GenerateOptions, GroundingTool, TextPart, Part
)
from parttimepal.core.schemas import (
    JobEntity, ScamAnalysis, RiskLevel, SuitabilityAnalysis, SuitabilityDraft,
    GroundingData, GroundingKind, GroundingSource, CVAnalysis, LatLng
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

RESILIENT_ERRORS = (ProviderError, json.JSONDecodeError, ValidationError)


async def resilient(call: Awaitable[T], default: Callable[[], T], label: str = "call") -> T:
    """
    Await ``call``; on an expected provider failure return ``default()``.

    Timeouts and unexpected exceptions are not caught.
    """
    try:
        return await call
    except RESILIENT_ERRORS as e:
        logger.warning(f"{label} failed, using default: {e}")
        return default()


# ============================================================================
# Conservative Defaults
# ============================================================================

def default_entities() -> JobEntity:
    return JobEntity(job_title="Unknown", company_name="Unknown", salary="Unknown", location="Unknown")


def default_scam_analysis() -> ScamAnalysis:
    """Never "safe": an unanalyzed posting is a posting to double-check."""
    return ScamAnalysis(
        risk_level=RiskLevel.WARNING,
        score=50,
        reasons=["Không thể phân tích chi tiết do lỗi hệ thống."],
        verdict="Vui lòng tự kiểm tra kỹ lưỡng."
    )


def default_grounding() -> GroundingData:
    return GroundingData(verification_text="Lỗi khi kết nối hệ thống xác minh.")


def default_suitability_draft() -> SuitabilityDraft:
    return SuitabilityDraft(
        suitability=SuitabilityAnalysis(match_score=0, advice="Lỗi phân tích"),
        draft=""
    )


def default_cv_analysis() -> CVAnalysis:
    return CVAnalysis(
        match_score=0,
        advice="Không thể phân tích CV lúc này. Vui lòng thử lại sau."
    )


class JobAnalyzer:
    """
    Issues the analysis prompts against the provider.

    One instance is shared by all sessions; it holds no per-run state.
    """

    ENTITY_PROMPT = (
        "Extract the job title, company name, salary range, and location from "
        "this job posting text. If not found, use \"Không rõ\".\n\nText: {text}"
    )

    SCAM_PROMPT = """Bạn là một chuyên gia an ninh mạng và bảo vệ người lao động. Hãy phân tích tin tuyển dụng dưới đây để tìm dấu hiệu lừa đảo (scam).

Hãy suy nghĩ kỹ về:
1. Ngôn ngữ: Có sai chính tả, dùng từ ngữ lôi kéo thái quá, hay urgency giả tạo không?
2. Lợi ích: Lương có cao bất thường so với yêu cầu không? "Việc nhẹ lương cao"?
3. Yêu cầu tiền: Có yêu cầu đóng phí, đặt cọc, mua đồng phục trước không?
4. Thông tin liên hệ: Email cá nhân (gmail, yahoo) thay vì email doanh nghiệp, chỉ liên hệ qua Zalo/Telegram?
5. Hình ảnh: Nếu nội dung có mô tả logo lỗi, phông chữ cẩu thả hay ảnh cắt ghép, hãy xem đó là dấu hiệu đáng ngờ.

Mức rủi ro (risk_level) bắt buộc là một trong: "An Toàn", "Cảnh Báo", "Nguy Hiểm".

Tin tuyển dụng: "{text}"

Trả về kết quả dạng JSON."""

    VERIFY_PROMPT = """Hãy thực hiện xác minh đa chiều cho tin tuyển dụng này:
"{text}"

Nhiệm vụ tìm kiếm:
1. Xác minh cơ bản: Công ty có tồn tại không? Địa chỉ có thật trên Google Maps không?
2. Kiểm tra Uy Tín Cộng Đồng (Rất Quan Trọng): Hãy tìm kiếm trên các DIỄN ĐÀN (Voz, Tinh tế, ReviewCongTy) và MẠNG XÃ HỘI (Facebook Groups tuyển dụng).
   - Tìm kiếm các từ khóa: "Tên công ty + lừa đảo", "Tên công ty + phốt", "SĐT + lừa đảo".
   - Tìm các đánh giá tiêu cực hoặc cảnh báo từ cộng đồng.

Trả về kết quả dưới dạng văn bản Markdown rõ ràng:
- **Xác thực công ty**: (Có thật không, địa chỉ ở đâu)
- **Đánh giá cộng đồng**: (Tóm tắt thái độ của mọi người: Có bài "bóc phốt" nào không? Có ai cảnh báo không?)
- **Kết luận**: Đáng tin hay Đáng ngờ."""

    SUITABILITY_PROMPT = """Phân tích tin tuyển dụng này dưới góc độ phù hợp cho sinh viên (part-time).
Đặc biệt kiểm tra số điện thoại, email và đường link liên hệ: ghi mọi dấu hiệu bất thường vào contact_risks (để trống nếu không có).
Sau đó viết một tin nhắn xin việc mẫu ngắn gọn, lịch sự, chuyên nghiệp bằng tiếng Việt.

Tin tuyển dụng: "{text}"

Trả về JSON."""

    CV_MATCH_PROMPT = """So sánh CV của ứng viên với công việc dưới đây và đánh giá mức độ phù hợp.
- match_score: số nguyên từ 0 đến 100
- pros: điểm mạnh của ứng viên so với công việc
- missing_skills: kỹ năng hoặc kinh nghiệm còn thiếu
- advice: lời khuyên ngắn gọn để cải thiện hồ sơ

Công việc: "{job_text}"

Trả về JSON."""

    def __init__(self, llm_client: LLMClient):
        """Initialize with the analysis provider."""
        self.llm_client = llm_client
        self.settings = get_settings()

    def _clip(self, text: str) -> str:
        return text[:self.settings.analysis.max_prompt_chars]

    # =========================================================================
    # The Four Analyses
    # =========================================================================

    async def extract_entities(self, text: str) -> JobEntity:
        """Fast extraction of the key facts, to show the input was understood."""
        async def call() -> JobEntity:
            response = await self.llm_client.generate(
                self.ENTITY_PROMPT.format(text=self._clip(text)),
                GenerateOptions(response_schema=JobEntity)
            )
            return response.parse(JobEntity)

        return await resilient(call(), default_entities, "Entity extraction")

    async def analyze_scam_risk(self, text: str) -> ScamAnalysis:
        """Deep scam-pattern analysis on the reasoning model."""
        async def call() -> ScamAnalysis:
            response = await self.llm_client.generate(
                self.SCAM_PROMPT.format(text=self._clip(text)),
                GenerateOptions(
                    response_schema=ScamAnalysis,
                    model=self.settings.llm.reasoning_model
                )
            )
            return response.parse(ScamAnalysis)

        return await resilient(call(), default_scam_analysis, "Scam analysis")

    async def verify_company(self, text: str, location: Optional[LatLng] = None) -> GroundingData:
        """
        Check the company's existence and community reputation.

        Uses web and maps grounding, biased towards ``location`` when known.
        Chunks are kept in provider order; deduplication happens at display.
        """
        async def call() -> GroundingData:
            response = await self.llm_client.generate(
                self.VERIFY_PROMPT.format(text=self._clip(text)),
                GenerateOptions(
                    tools=[GroundingTool.WEB_SEARCH, GroundingTool.MAPS_SEARCH],
                    location_bias=location
                )
            )
            return GroundingData(
                verification_text=response.content or "Không tìm thấy thông tin xác minh cụ thể trên mạng.",
                search_chunks=[
                    GroundingSource(uri=s.uri, title=s.title or "Nguồn Web")
                    for s in response.sources(GroundingKind.WEB)
                ],
                map_chunks=[
                    GroundingSource(uri=s.uri, title=s.title or "Địa điểm Maps")
                    for s in response.sources(GroundingKind.MAPS)
                ]
            )

        return await resilient(call(), default_grounding, "Company verification")

    async def analyze_suitability_and_draft(self, text: str) -> SuitabilityDraft:
        """Suitability for a student plus a draft application message, in one call."""
        async def call() -> SuitabilityDraft:
            response = await self.llm_client.generate(
                self.SUITABILITY_PROMPT.format(text=self._clip(text)),
                GenerateOptions(response_schema=SuitabilityDraft)
            )
            return response.parse(SuitabilityDraft)

        return await resilient(call(), default_suitability_draft, "Suitability analysis")

    # =========================================================================
    # CV Matching
    # =========================================================================

    async def match_cv(self, job_text: str, cv_parts: List[Part]) -> CVAnalysis:
        """
        Score a CV against a job.

        Args:
            job_text: Full analyzed posting text
            cv_parts: Prompt parts from InputNormalizer.prepare_cv_parts

        Returns:
            CVAnalysis, or a zero-score default if the provider fails
        """
        async def call() -> CVAnalysis:
            parts = [TextPart(self.CV_MATCH_PROMPT.format(job_text=self._clip(job_text)))]
            parts.extend(cv_parts)
            response = await self.llm_client.generate(
                parts,
                GenerateOptions(response_schema=CVAnalysis)
            )
            return response.parse(CVAnalysis)

        return await resilient(call(), default_cv_analysis, "CV matching")
