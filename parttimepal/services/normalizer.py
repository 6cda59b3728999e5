"""
Input Normalizer

Turns whatever the user submitted (pasted text, a link, a screenshot or a
CV file) into plain text or prompt parts for the analysis provider:
1. Text -> unchanged
2. Image -> provider transcription (never raises; errors become text)
3. URL -> provider search-augmented extraction, coerced to the
   ERROR_CANNOT_READ_LINK sentinel when nothing usable comes back
4. File -> attachment or decoded text, decided by the upload table
"""

import logging
import os
from typing import List, Optional

from parttimepal.core.config import get_settings
from parttimepal.core.errors import (
    ContentTooShortError, InputRejectedError, UnreadableLinkError, UnsupportedFileError
)
from parttimepal.core.llm_client import (
    LLMClient, GenerateOptions, GroundingTool, TextPart, InlineBinaryPart, Part
)
from parttimepal.core.schemas import (
    RawInput, TextInput, UrlInput, ImageInput, FileInput
)

logger = logging.getLogger(__name__)

URL_SENTINEL = "ERROR_CANNOT_READ_LINK"


class InputNormalizer:
    """
    Produces one analyzable text from any RawInput variant.

    ``normalize`` also enforces the minimum length, so callers either get
    text that may enter the pipeline or an InputRejectedError.
    """

    IMAGE_PROMPT = (
        "Đây là hình ảnh một tin tuyển dụng. Hãy trích xuất toàn bộ nội dung "
        "văn bản có trong ảnh, giữ nguyên câu chữ. Nếu có các chi tiết hình ảnh "
        "đáng ngờ (ví dụ: logo bị lỗi, phông chữ cẩu thả, hình ảnh cắt ghép), "
        "hãy mô tả chúng kèm theo nội dung văn bản."
    )

    IMAGE_EMPTY_MESSAGE = "Không thể đọc được nội dung từ ảnh."
    IMAGE_ERROR_MESSAGE = "Lỗi khi xử lý hình ảnh. Vui lòng thử lại hoặc nhập văn bản thủ công."

    URL_PROMPT = """Analyze the content of this URL: "{url}"

Goal: Extract the full job posting content.

Instructions:
1. Use web search to find the page content.
2. CRITICAL FOR SOCIAL MEDIA (Facebook, LinkedIn):
   - These pages are often private or require login.
   - You MUST look at the search snippets, page titles and cached text in
     the search results to reconstruct the job details.
   - DO NOT just say "Login required". Try to find the content from the public preview.
3. If it is a JOB BOARD (TopCV, VietnamWorks):
   - Extract Title, Company, Salary, Location, and Description.
4. ALSO: Look for any scam warnings or "bóc phốt" related to this specific URL in the search results.

OUTPUT RULE:
- If you find RELEVANT job information, return the full text description.
- If the link is dead, purely private (no snippets found), or you strictly
  cannot find any job details, return exactly: "{sentinel}"
"""

    def __init__(self, llm_client: LLMClient):
        """Initialize with the analysis provider."""
        self.llm_client = llm_client
        self.settings = get_settings()

    # =========================================================================
    # Entry Point
    # =========================================================================

    async def normalize(self, raw: RawInput) -> str:
        """
        Normalize a verify-job submission into validated text.

        Raises:
            UnreadableLinkError: URL extraction returned the sentinel
            ContentTooShortError: resulting text is shorter than the minimum
        """
        if isinstance(raw, TextInput):
            text = raw.content
        elif isinstance(raw, ImageInput):
            text = await self.extract_from_image(raw)
            if text in (self.IMAGE_EMPTY_MESSAGE, self.IMAGE_ERROR_MESSAGE):
                raise InputRejectedError("Image transcription failed", user_message=text)
        elif isinstance(raw, UrlInput):
            text = await self.extract_from_url(raw.url)
            if URL_SENTINEL in text:
                raise UnreadableLinkError(f"Could not read link: {raw.url}")
        elif isinstance(raw, FileInput):
            text = self.decode_text_file(raw)
        else:
            raise UnsupportedFileError(f"Unknown input type: {type(raw).__name__}")

        return self.validate_length(text)

    def check_upload_size(self, data: bytes, name: str):
        """Reject uploads above the configured limit."""
        if len(data) > self.settings.upload.max_upload_bytes:
            raise UnsupportedFileError(
                f"{name} is {len(data)} bytes",
                user_message="Tệp quá lớn. Vui lòng chọn tệp nhỏ hơn."
            )

    def validate_length(self, text: Optional[str]) -> str:
        """Reject text below the minimum length, whatever produced it."""
        minimum = self.settings.analysis.min_content_length
        if not text or len(text.strip()) < minimum:
            raise ContentTooShortError(
                f"Content has {len((text or '').strip())} chars, minimum is {minimum}"
            )
        return text

    # =========================================================================
    # Image
    # =========================================================================

    async def extract_from_image(self, image: ImageInput) -> str:
        """
        Transcribe a screenshot and describe suspicious visual artifacts.

        Never raises: on provider failure a readable Vietnamese message is
        returned instead of the error.
        """
        if not image.mime_type.lower().startswith("image/"):
            raise UnsupportedFileError(
                f"Not an image: {image.mime_type}",
                user_message="Vui lòng chỉ dán hoặc chọn file hình ảnh."
            )
        self.check_upload_size(image.data, "screenshot")

        try:
            response = await self.llm_client.generate([
                InlineBinaryPart(data=image.data, mime_type=image.mime_type),
                TextPart(self.IMAGE_PROMPT),
            ])
            return response.content or self.IMAGE_EMPTY_MESSAGE
        except Exception as e:
            logger.error(f"Image extraction failed: {e}")
            return self.IMAGE_ERROR_MESSAGE

    # =========================================================================
    # URL
    # =========================================================================

    async def extract_from_url(self, url: str) -> str:
        """
        Reconstruct a posting from a link with web search.

        Answers that are short, vague, or contain the sentinel anywhere come
        back as exactly URL_SENTINEL. Provider failures do too.
        """
        prompt = self.URL_PROMPT.format(url=url, sentinel=URL_SENTINEL)

        try:
            response = await self.llm_client.generate(
                prompt,
                GenerateOptions(tools=[GroundingTool.WEB_SEARCH])
            )
        except Exception as e:
            logger.error(f"URL extraction failed for {url}: {e}")
            return URL_SENTINEL

        text = (response.content or "").strip()
        if URL_SENTINEL in text or len(text) < self.settings.analysis.min_url_content_length:
            logger.warning(f"URL extraction unusable for {url} ({len(text)} chars)")
            return URL_SENTINEL
        return text

    # =========================================================================
    # CV File
    # =========================================================================

    def is_binary_upload(self, file: FileInput) -> bool:
        """Look the upload up in the binary mime/extension table."""
        upload = self.settings.upload
        mime = (file.mime_type or "").lower().split(";")[0].strip()

        for entry in upload.binary_mime_types:
            if entry.endswith("/") and mime.startswith(entry):
                return True
            if mime == entry:
                return True

        extension = os.path.splitext(file.filename or "")[1].lower()
        return extension in upload.binary_extensions

    def decode_text_file(self, file: FileInput) -> str:
        """Decode a text upload (txt/md/csv/json)."""
        try:
            return file.data.decode(self.settings.upload.text_encoding)
        except UnicodeDecodeError as e:
            raise UnsupportedFileError(f"Cannot decode {file.filename}: {e}") from e

    def prepare_cv_parts(self, cv: RawInput) -> List[Part]:
        """
        Prompt parts for the CV-matching call.

        Binary formats (pdf, doc/docx, images) are attached whole; anything
        else is decoded and sent inline. Pasted CV text is length-checked.
        """
        if isinstance(cv, TextInput):
            return [TextPart(f"CV của ứng viên:\n{self.validate_length(cv.content)}")]

        if not isinstance(cv, FileInput):
            raise UnsupportedFileError(f"CV must be text or a file, got {type(cv).__name__}")

        self.check_upload_size(cv.data, cv.filename or "CV")

        if self.is_binary_upload(cv):
            logger.info(f"Attaching CV {cv.filename or '(unnamed)'} as {cv.mime_type or 'binary'}")
            return [
                TextPart("CV của ứng viên được đính kèm:"),
                InlineBinaryPart(data=cv.data, mime_type=cv.mime_type, filename=cv.filename),
            ]

        text = self.validate_length(self.decode_text_file(cv))
        return [TextPart(f"CV của ứng viên:\n{text}")]
