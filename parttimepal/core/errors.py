"""
Error types for Part-time Pal.

Every error carries a localized ``user_message`` that the HTTP layer shows
as-is; the class itself is the structured kind used internally.
"""

from typing import Optional


class PartTimePalError(Exception):
    """Base error with a user-facing (Vietnamese) message."""

    default_message = "Đã có lỗi xảy ra. Vui lòng thử lại."

    def __init__(self, message: Optional[str] = None, user_message: Optional[str] = None):
        self.user_message = user_message or self.default_message
        super().__init__(message or self.user_message)


# ============================================================================
# Input rejection (user-correctable)
# ============================================================================

class InputRejectedError(PartTimePalError):
    """Input could not be turned into analyzable text."""

    default_message = "Không thể xử lý dữ liệu đầu vào. Vui lòng thử lại."


class ContentTooShortError(InputRejectedError):
    """Normalized text is below the minimum length."""

    default_message = "Nội dung quá ngắn hoặc không đủ thông tin để phân tích."


class UnreadableLinkError(InputRejectedError):
    """URL extraction returned the failure sentinel."""

    default_message = (
        "Không thể đọc nội dung từ link này (do quyền riêng tư hoặc chưa được "
        "Google lập chỉ mục). Vui lòng COPY NỘI DUNG và dùng tab 'Văn Bản' "
        "để AI phân tích chính xác."
    )


class UnsupportedFileError(InputRejectedError):
    """Uploaded file type or size is not accepted."""

    default_message = "Định dạng tệp không được hỗ trợ. Vui lòng chọn tệp khác."


# ============================================================================
# Provider failures
# ============================================================================

class ProviderError(PartTimePalError):
    """Expected provider hiccup: API error, empty or unusable answer."""

    default_message = "Hệ thống AI tạm thời không phản hồi. Vui lòng thử lại."


class ProviderTimeoutError(PartTimePalError):
    """A provider call exceeded the configured timeout.

    Not a ProviderError: resilient calls let it through so the
    whole run ends in the Error status instead of a silent default.
    """

    default_message = "Hệ thống AI phản hồi quá lâu. Vui lòng thử lại."


# ============================================================================
# Pipeline failures
# ============================================================================

class AnalysisFailedError(PartTimePalError):
    """The four-way analysis could not be assembled."""

    default_message = "Có lỗi xảy ra trong quá trình phân tích."


class SearchFailedError(PartTimePalError):
    """The job search call failed."""

    default_message = "Lỗi khi tìm kiếm việc làm."
