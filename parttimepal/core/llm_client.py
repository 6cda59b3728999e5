"""
LLM Client Wrapper for Part-time Pal

Provides one async interface for the analysis provider: prompt parts in,
text (or schema-conformant JSON) plus grounding citations out.
Claude (Anthropic) is the production backend; a mock backend answers
offline for demos and tests.

Usage:
    from parttimepal.core.llm_client import get_llm_client, GenerateOptions

    client = get_llm_client()
    response = await client.generate("Your prompt here")
"""

import asyncio
import base64
import inspect
import io
import json
import logging
import os
import time
import zipfile
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, Any, List, Union, Type, Callable
from xml.etree import ElementTree

import anthropic
from pydantic import BaseModel

from parttimepal.core.config import get_settings
from parttimepal.core.errors import ProviderError, ProviderTimeoutError
from parttimepal.core.schemas import GroundingKind, GroundingSource, LatLng

logger = logging.getLogger(__name__)


# ============================================================================
# Provider Contract
# ============================================================================

class GroundingTool(str, Enum):
    """Search augmentation the provider may use while answering."""

    WEB_SEARCH = "web_search"
    MAPS_SEARCH = "maps_search"


@dataclass
class TextPart:
    """Plain text prompt part."""

    text: str


@dataclass
class InlineBinaryPart:
    """Attached file or image, sent whole."""

    data: bytes
    mime_type: str
    filename: str = ""


Part = Union[TextPart, InlineBinaryPart]


@dataclass
class GenerateOptions:
    """Per-call options understood by every backend."""

    response_schema: Optional[Type[BaseModel]] = None
    tools: List[GroundingTool] = field(default_factory=list)
    location_bias: Optional[LatLng] = None
    model: Optional[str] = None
    max_tokens: Optional[int] = None


@dataclass
class GroundingChunk:
    """One citation returned by search augmentation."""

    kind: GroundingKind
    uri: str
    title: str


@dataclass
class LLMResponse:
    """Standardized LLM response."""

    content: str
    model: str
    usage: Dict[str, int] = field(default_factory=dict)
    grounding_chunks: List[GroundingChunk] = field(default_factory=list)
    raw_response: Any = None

    def to_json(self) -> Optional[Any]:
        """Parse content as JSON if possible."""
        try:
            return json.loads(extract_json(self.content))
        except json.JSONDecodeError:
            return None

    def parse(self, schema: Type[BaseModel]) -> BaseModel:
        """
        Validate content against a pydantic schema.

        Raises:
            ProviderError: content is empty
            pydantic.ValidationError: content is not schema-conformant JSON
        """
        if not self.content or not self.content.strip():
            raise ProviderError(f"Empty response from {self.model}")
        return schema.model_validate_json(extract_json(self.content))

    def sources(self, kind: GroundingKind = GroundingKind.WEB) -> List[GroundingSource]:
        """Grounding chunks of one kind, in provider order."""
        return [
            GroundingSource(uri=chunk.uri, title=chunk.title)
            for chunk in self.grounding_chunks
            if chunk.kind == kind
        ]


def extract_json(text: str) -> str:
    """Extract JSON from response text."""
    text = text.strip()

    # Remove markdown code blocks if present
    if text.startswith("```json"):
        text = text[7:]
    elif text.startswith("```"):
        text = text[3:]

    if text.endswith("```"):
        text = text[:-3]

    return text.strip()


def docx_to_text(data: bytes) -> str:
    """Paragraph text of a DOCX file (zipfile + xml)."""
    ns = "{http://schemas.openxmlformats.org/wordprocessingml/2006/main}"
    texts: List[str] = []
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            with zf.open("word/document.xml") as f:
                tree = ElementTree.parse(f)
    except (zipfile.BadZipFile, KeyError, ElementTree.ParseError) as e:
        raise ProviderError(f"Unreadable DOCX file: {e}") from e

    for para in tree.iter(f"{ns}p"):
        parts = [node.text for node in para.iter(f"{ns}t") if node.text]
        if parts:
            texts.append("".join(parts))
    return "\n".join(texts)


def _as_parts(parts: Union[str, List[Part]]) -> List[Part]:
    if isinstance(parts, str):
        return [TextPart(parts)]
    return list(parts)


class LLMClient(ABC):
    """
    Base class for analysis providers.

    ``generate`` enforces the per-call timeout and logs latency; backends
    implement ``_generate``. No retries: a failed call is final.
    """

    model: str = ""

    def __init__(self, timeout: float = 60.0):
        self.timeout = timeout

    async def generate(
        self,
        parts: Union[str, List[Part]],
        options: Optional[GenerateOptions] = None,
        system_prompt: Optional[str] = None
    ) -> LLMResponse:
        """
        Generate a response.

        Args:
            parts: Prompt text, or a list of text/binary parts
            options: Schema, grounding tools, location bias, model override
            system_prompt: Optional system prompt for context

        Returns:
            LLMResponse with content, grounding chunks and metadata

        Raises:
            ProviderTimeoutError: the call exceeded ``timeout`` seconds
            ProviderError: the backend failed or could not take the input
        """
        options = options or GenerateOptions()
        started = time.monotonic()

        try:
            response = await asyncio.wait_for(
                self._generate(_as_parts(parts), options, system_prompt),
                timeout=self.timeout
            )
        except asyncio.TimeoutError:
            logger.error(f"{options.model or self.model} timed out after {self.timeout:.0f}s")
            raise ProviderTimeoutError(
                f"Provider call exceeded {self.timeout:.0f}s"
            ) from None

        logger.info(
            f"{response.model} answered in {time.monotonic() - started:.1f}s "
            f"({len(response.content)} chars, {len(response.grounding_chunks)} citations)"
        )
        return response

    @abstractmethod
    async def _generate(
        self,
        parts: List[Part],
        options: GenerateOptions,
        system_prompt: Optional[str]
    ) -> LLMResponse:
        """Backend-specific call."""


# ============================================================================
# Claude Backend
# ============================================================================

class ClaudeLLMClient(LLMClient):
    """
    Claude (Anthropic) LLM client.

    Uses the async Anthropic SDK. Structured output is requested through
    the system prompt with the pydantic JSON schema attached; grounding uses
    the server-side web search tool.
    """

    DEFAULT_SYSTEM_PROMPT = "Bạn là trợ lý việc làm thông minh cho sinh viên Việt Nam."

    JSON_INSTRUCTION = (
        "\n\nIMPORTANT: You must respond with valid JSON only. No markdown, "
        "no explanations, just one JSON object matching this JSON schema:\n{schema}"
    )

    MAPS_INSTRUCTION = (
        "\n\nWhen checking an address, search Google Maps as well and cite "
        "the Google Maps links you used."
    )

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "claude-sonnet-4-20250514",
        max_tokens: int = 4096,
        temperature: float = 0.3,
        timeout: float = 60.0,
        web_search_max_uses: int = 5
    ):
        """
        Initialize Claude client.

        Args:
            api_key: Anthropic API key. If not provided, reads from
                    ANTHROPIC_API_KEY environment variable.
            model: Default Claude model
            max_tokens: Maximum tokens in response
            temperature: Sampling temperature (0-1)
            timeout: Seconds per call before ProviderTimeoutError
            web_search_max_uses: Cap on searches per grounded call
        """
        super().__init__(timeout=timeout)
        self.api_key = api_key or os.getenv("ANTHROPIC_API_KEY")

        if not self.api_key:
            raise ValueError(
                "Anthropic API key required. Set ANTHROPIC_API_KEY env var "
                "or pass api_key parameter."
            )

        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.web_search_max_uses = web_search_max_uses

        # SDK retries are off; the SDK timeout is a backstop behind wait_for
        self.client = anthropic.AsyncAnthropic(
            api_key=self.api_key,
            timeout=timeout + 5,
            max_retries=0
        )
        logger.info(f"Claude client initialized with model: {model}")

    async def _generate(
        self,
        parts: List[Part],
        options: GenerateOptions,
        system_prompt: Optional[str]
    ) -> LLMResponse:
        system = system_prompt or self.DEFAULT_SYSTEM_PROMPT
        if options.response_schema is not None:
            schema = json.dumps(options.response_schema.model_json_schema(), ensure_ascii=False)
            system += self.JSON_INSTRUCTION.format(schema=schema)
        if GroundingTool.MAPS_SEARCH in options.tools:
            system += self.MAPS_INSTRUCTION

        content = [self._to_block(part) for part in parts]
        if options.location_bias is not None:
            content.append({
                "type": "text",
                "text": (
                    f"(Context: User is at Latitude {options.location_bias.lat}, "
                    f"Longitude {options.location_bias.lng})"
                )
            })

        request = {
            "model": options.model or self.model,
            "max_tokens": options.max_tokens or self.max_tokens,
            "temperature": self.temperature,
            "system": system,
            "messages": [{"role": "user", "content": content}],
        }
        if options.tools:
            request["tools"] = [{
                "type": "web_search_20250305",
                "name": "web_search",
                "max_uses": self.web_search_max_uses,
            }]

        try:
            response = await self.client.messages.create(**request)
        except anthropic.APITimeoutError as e:
            raise ProviderTimeoutError(f"Claude API timeout: {e}") from e
        except anthropic.APIError as e:
            logger.error(f"Claude API error: {e}")
            raise ProviderError(f"Claude API error: {e}") from e

        text = "".join(
            block.text for block in response.content if block.type == "text"
        )
        if options.response_schema is not None:
            text = extract_json(text)

        return LLMResponse(
            content=text,
            model=response.model,
            usage={
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens
            },
            grounding_chunks=self._collect_grounding(
                response.content,
                label_maps=GroundingTool.MAPS_SEARCH in options.tools
            ),
            raw_response=response
        )

    def _to_block(self, part: Part) -> Dict[str, Any]:
        """Convert a prompt part into a Messages API content block."""
        if isinstance(part, TextPart):
            return {"type": "text", "text": part.text}

        mime = (part.mime_type or "").lower()
        encoded = base64.standard_b64encode(part.data).decode("ascii")

        if mime.startswith("image/"):
            return {
                "type": "image",
                "source": {"type": "base64", "media_type": mime, "data": encoded}
            }
        if mime == "application/pdf" or part.filename.lower().endswith(".pdf"):
            return {
                "type": "document",
                "source": {"type": "base64", "media_type": "application/pdf", "data": encoded}
            }
        if (mime.endswith("wordprocessingml.document")
                or part.filename.lower().endswith(".docx")):
            return {"type": "text", "text": docx_to_text(part.data)}

        raise ProviderError(f"Unsupported attachment type: {mime or part.filename}")

    def _collect_grounding(self, blocks: List[Any], label_maps: bool) -> List[GroundingChunk]:
        """Search results in answer order; citations only when no result block came back."""
        results = []
        citations = []

        for block in blocks:
            if block.type == "web_search_tool_result" and isinstance(block.content, list):
                for item in block.content:
                    results.append((getattr(item, "url", ""), getattr(item, "title", "")))
            elif block.type == "text":
                for citation in getattr(block, "citations", None) or []:
                    url = getattr(citation, "url", None)
                    if url:
                        citations.append((url, getattr(citation, "title", "") or ""))

        chunks = []
        for uri, title in results or citations:
            kind = GroundingKind.MAPS if label_maps and _is_maps_uri(uri) else GroundingKind.WEB
            chunks.append(GroundingChunk(kind=kind, uri=uri or "", title=title or ""))
        return chunks


_MAPS_URI_MARKERS = ("google.com/maps", "maps.google.", "maps.app.goo.gl", "goo.gl/maps")


def _is_maps_uri(uri: str) -> bool:
    uri = (uri or "").lower()
    return any(marker in uri for marker in _MAPS_URI_MARKERS)


# ============================================================================
# Mock Backend
# ============================================================================

class MockLLMClient(LLMClient):
    """
    Mock LLM client for testing without API calls.

    Returns predefined responses based on the requested schema or prompt
    pattern. Pass ``handler`` to script answers: it receives
    ``(parts, options, system_prompt)`` and returns an LLMResponse, a plain
    string, or raises. It may be sync or async.
    """

    def __init__(self, handler: Optional[Callable] = None, timeout: float = 60.0):
        """Initialize mock client."""
        super().__init__(timeout=timeout)
        logger.info("Using Mock LLM Client (no API calls)")
        self.model = "mock-claude"
        self.handler = handler
        self.calls: List[Dict[str, Any]] = []

    async def _generate(
        self,
        parts: List[Part],
        options: GenerateOptions,
        system_prompt: Optional[str]
    ) -> LLMResponse:
        self.calls.append({"parts": parts, "options": options, "system_prompt": system_prompt})

        if self.handler is not None:
            answer = self.handler(parts, options, system_prompt)
            if inspect.isawaitable(answer):
                answer = await answer
            if isinstance(answer, LLMResponse):
                return answer
            return LLMResponse(content=answer, model=options.model or self.model)

        return self._canned(parts, options)

    def _canned(self, parts: List[Part], options: GenerateOptions) -> LLMResponse:
        """Return a mock response."""
        prompt = "\n".join(p.text for p in parts if isinstance(p, TextPart))
        schema_name = options.response_schema.__name__ if options.response_schema else ""
        chunks: List[GroundingChunk] = []

        if schema_name == "JobEntity":
            content = json.dumps({
                "job_title": "Nhân viên phục vụ part-time",
                "company_name": "Quán Cà Phê Mẫu",
                "salary": "25.000đ/giờ",
                "location": "Cầu Giấy, Hà Nội"
            }, ensure_ascii=False)

        elif schema_name == "ScamAnalysis":
            content = json.dumps({
                "risk_level": "Cảnh Báo",
                "score": 55,
                "reasons": ["Chỉ liên hệ qua Zalo", "Mức lương cao hơn mặt bằng chung"],
                "verdict": "Cần kiểm tra thêm thông tin công ty trước khi nhận việc."
            }, ensure_ascii=False)

        elif schema_name == "SuitabilityDraft":
            content = json.dumps({
                "suitability": {
                    "match_score": 70,
                    "skills_required": ["Giao tiếp", "Nhanh nhẹn"],
                    "pros": ["Giờ làm linh hoạt"],
                    "cons": ["Làm cuối tuần"],
                    "contact_risks": [],
                    "advice": "Hỏi rõ về hợp đồng và cách trả lương."
                },
                "draft": "Chào anh/chị, em là sinh viên và muốn ứng tuyển vị trí này."
            }, ensure_ascii=False)

        elif schema_name == "CVAnalysis":
            content = json.dumps({
                "match_score": 65,
                "pros": ["Có kinh nghiệm phục vụ"],
                "missing_skills": ["Tiếng Anh giao tiếp"],
                "advice": "Bổ sung kỹ năng tiếng Anh vào CV."
            }, ensure_ascii=False)

        elif "JOB_SEPARATOR" in prompt:
            content = (
                "Title: Nhân viên phục vụ\nCompany: Highlands Coffee\n"
                "Domain: highlandscoffee.com.vn\nLocation: Cầu Giấy, Hà Nội\n"
                "Salary: 25.000đ/giờ\nDescription: Phục vụ khách, ca linh hoạt.\n"
                "Source: TopCV\n---JOB_SEPARATOR---\n"
                "Title: Gia sư Toán\nCompany: Trung tâm Gia sư Mẫu\n"
                "Location: Đống Đa, Hà Nội\nSalary: 200.000đ/buổi\n"
                "Description: Dạy kèm học sinh lớp 9.\nSource: Facebook\n"
                "---JOB_SEPARATOR---\n"
            )
            chunks = [GroundingChunk(GroundingKind.WEB, "https://www.topcv.vn", "TopCV")]

        elif GroundingTool.MAPS_SEARCH in options.tools:
            content = (
                "**Xác thực công ty**: Công ty có địa chỉ trên Google Maps.\n"
                "**Đánh giá cộng đồng**:\n- Không tìm thấy bài bóc phốt nào.\n"
                "**Kết luận**: Đáng tin."
            )
            chunks = [
                GroundingChunk(GroundingKind.WEB, "https://reviewcongty.com", "Review Công Ty"),
                GroundingChunk(GroundingKind.MAPS, "https://maps.google.com/?cid=1", "Địa điểm Maps"),
            ]

        elif "ERROR_CANNOT_READ_LINK" in prompt:
            content = (
                "Tuyển nhân viên bán hàng part-time tại cửa hàng thời trang, "
                "lương 22.000đ/giờ, làm ca tối, liên hệ email tuyendung@example.vn."
            )

        elif any(isinstance(p, InlineBinaryPart) for p in parts):
            content = (
                "Tuyển nhân viên phát tờ rơi, 150.000đ/buổi. Liên hệ Zalo 0901xxxxxx. "
                "Logo công ty bị mờ, có dấu hiệu cắt ghép."
            )

        else:
            content = "This is a mock response for testing."

        return LLMResponse(
            content=content,
            model=options.model or self.model,
            usage={"input_tokens": 100, "output_tokens": 200},
            grounding_chunks=chunks
        )


# ============================================================================
# Factory Function
# ============================================================================

def get_llm_client(
    api_key: Optional[str] = None,
    model: Optional[str] = None,
    use_mock: Optional[bool] = None
) -> LLMClient:
    """
    Get an LLM client instance.

    Args:
        api_key: API key (or set ANTHROPIC_API_KEY env var)
        model: Model name override
        use_mock: Return the mock client; defaults to LLM_USE_MOCK

    Returns:
        LLM client instance
    """
    llm = get_settings().llm
    if use_mock is None:
        use_mock = llm.use_mock

    if use_mock:
        return MockLLMClient(timeout=llm.request_timeout)

    return ClaudeLLMClient(
        api_key=api_key or llm.anthropic_api_key,
        model=model or llm.default_model,
        max_tokens=llm.max_tokens,
        temperature=llm.temperature,
        timeout=llm.request_timeout,
        web_search_max_uses=llm.web_search_max_uses
    )
